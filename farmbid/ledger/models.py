"""Bid records and submission results."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from .errors import InvalidAmount
from .fsm import BidEvent, BidStatus, transition_bid

_CENT = Decimal("0.01")


def parse_amount(value: Any) -> Decimal:
    """Coerce a submitted amount into a positive decimal with at most two places."""
    if isinstance(value, bool) or value is None:
        raise InvalidAmount("amount must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise InvalidAmount(f"amount {value!r} is not a number") from exc
    if not amount.is_finite():
        raise InvalidAmount("amount must be finite")
    if amount <= 0:
        raise InvalidAmount("amount must be positive")
    try:
        cents = amount.quantize(_CENT)
    except InvalidOperation as exc:
        raise InvalidAmount("amount is too large") from exc
    if amount != cents:
        raise InvalidAmount("amount supports at most two decimal places")
    return amount


@dataclass(frozen=True)
class Bid:
    id: str
    listing_id: str
    bidder_id: str
    amount: Decimal
    status: BidStatus
    created_at: str
    updated_at: str | None = None
    rejection_reason: str | None = None

    @classmethod
    def new(cls, listing_id: str, bidder_id: str, amount: Decimal, created_at: str) -> "Bid":
        return cls(
            id=f"bid_{uuid4().hex}",
            listing_id=listing_id,
            bidder_id=bidder_id,
            amount=amount,
            status=BidStatus.PENDING,
            created_at=created_at,
        )

    def resolve(self, event: BidEvent, at: str, reason: str | None = None) -> "Bid":
        return replace(
            self,
            status=transition_bid(self.status, event),
            updated_at=at,
            rejection_reason=reason,
        )

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "listing_id": self.listing_id,
            "bidder_id": self.bidder_id,
            "amount": str(self.amount),
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "rejection_reason": self.rejection_reason,
        }

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "Bid":
        return cls(
            id=record["id"],
            listing_id=record["listing_id"],
            bidder_id=record["bidder_id"],
            amount=Decimal(str(record["amount"])),
            status=BidStatus(record.get("status", BidStatus.PENDING.value)),
            created_at=record["created_at"],
            updated_at=record.get("updated_at"),
            rejection_reason=record.get("rejection_reason"),
        )


@dataclass
class BidResult:
    bid: Bid
    current_highest: Decimal
    bid_count: int
    outbid: list[str] = field(default_factory=list)

    def to_payload(self) -> dict[str, Any]:
        return {
            "bid": self.bid.to_record(),
            "current_highest": str(self.current_highest),
            "bid_count": self.bid_count,
        }
