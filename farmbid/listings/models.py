"""Listing records as stored by the registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from ..ledger.fsm import BidStatus, ListingStatus
from ..ledger.models import Bid
from ..transport.timestamps import has_passed


@dataclass(frozen=True)
class Listing:
    id: str
    owner_id: str
    title: str
    description: str
    image: str
    base_price: Decimal
    unit: str
    quantity: int
    location: str
    category: str
    status: ListingStatus
    created_at: str
    updated_at: str
    version: int = 0
    harvest_date: str | None = None
    closes_at: str | None = None
    winning_bid_id: str | None = None
    bids: tuple[Bid, ...] = field(default_factory=tuple)

    @property
    def is_open(self) -> bool:
        return self.status is ListingStatus.OPEN

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.is_open and has_passed(self.closes_at, now=now)

    def current_highest(self) -> Decimal:
        """Maximum of the base price and every live bid amount."""
        amounts = [
            bid.amount
            for bid in self.bids
            if bid.status in (BidStatus.PENDING, BidStatus.ACCEPTED)
        ]
        return max([self.base_price, *amounts])

    def leading_bid(self) -> Bid | None:
        live = [bid for bid in self.bids if bid.status is not BidStatus.REJECTED]
        return max(live, key=lambda bid: bid.amount, default=None)

    def to_record(self) -> dict[str, Any]:
        return {
            "listing_id": self.id,
            "owner_id": self.owner_id,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "base_price": str(self.base_price),
            "unit": self.unit,
            "quantity": self.quantity,
            "location": self.location,
            "category": self.category,
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "version": self.version,
            "harvest_date": self.harvest_date,
            "closes_at": self.closes_at,
            "winning_bid_id": self.winning_bid_id,
            "bids": [bid.to_record() for bid in self.bids],
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Listing":
        return cls(
            id=record["listing_id"],
            owner_id=record["owner_id"],
            title=record["title"],
            description=record["description"],
            image=record["image"],
            base_price=Decimal(str(record["base_price"])),
            unit=record["unit"],
            quantity=int(record["quantity"]),
            location=record["location"],
            category=record["category"],
            status=ListingStatus(record.get("status", ListingStatus.OPEN.value)),
            created_at=record["created_at"],
            updated_at=record.get("updated_at") or record["created_at"],
            version=int(record.get("version", 0)),
            harvest_date=record.get("harvest_date"),
            closes_at=record.get("closes_at"),
            winning_bid_id=record.get("winning_bid_id"),
            bids=tuple(Bid.from_record(item) for item in record.get("bids") or []),
        )

    def to_summary(self) -> dict[str, Any]:
        """Public view: the listing without its bid list."""
        summary = self.to_record()
        summary.pop("bids")
        summary["current_highest"] = str(self.current_highest())
        summary["bid_count"] = len(self.bids)
        return summary
