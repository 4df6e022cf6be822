"""Listing registry: source of truth for base price, quantity, status and deadline."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from ..ledger.errors import InvalidAmount, InvalidListing, ListingNotFound
from ..ledger.fsm import ListingStatus
from ..ledger.models import parse_amount
from ..storage import ListingStorage
from ..transport.timestamps import TimestampError, format_timestamp, parse_timestamp, utc_now
from .models import Listing

logger = logging.getLogger(__name__)


@dataclass
class ListingRegistry:
    storage: ListingStorage
    clock: Callable[[], datetime] = utc_now

    async def create_listing(self, owner_id: str, payload: dict[str, Any]) -> Listing:
        """Persist a new open listing from a schema-validated payload."""
        now = self.clock()
        try:
            base_price = parse_amount(payload["base_price"])
        except KeyError as exc:
            raise InvalidListing("base_price is required") from exc
        except InvalidAmount as exc:
            raise InvalidListing(f"base_price: {exc}") from exc
        closes_at = payload.get("closes_at")
        if closes_at:
            try:
                deadline = parse_timestamp(closes_at)
            except TimestampError as exc:
                raise InvalidListing(f"closes_at: {exc}") from exc
            if deadline <= now:
                raise InvalidListing("closes_at must be in the future")
            closes_at = format_timestamp(deadline)
        timestamp = format_timestamp(now)
        listing = Listing(
            id=f"lst_{uuid4().hex}",
            owner_id=owner_id,
            title=payload["title"].strip(),
            description=payload["description"].strip(),
            image=payload["image"],
            base_price=base_price,
            unit=payload["unit"],
            quantity=int(payload["quantity"]),
            location=payload["location"].strip(),
            category=payload["category"].strip(),
            status=ListingStatus.OPEN,
            created_at=timestamp,
            updated_at=timestamp,
            harvest_date=payload.get("harvest_date"),
            closes_at=closes_at,
        )
        await self.storage.create_listing(listing.to_record())
        logger.info(
            "listing created id=%s owner=%s base_price=%s closes_at=%s",
            listing.id,
            owner_id,
            base_price,
            closes_at,
        )
        return listing

    async def get_listing(self, listing_id: str) -> Listing:
        try:
            record = await self.storage.get_listing(listing_id)
        except KeyError as exc:
            raise ListingNotFound(listing_id) from exc
        return Listing.from_record(record)

    async def list_listings(self, status: ListingStatus | None = None) -> list[Listing]:
        listings = [Listing.from_record(record) for record in await self.storage.list_listings()]
        if status is None:
            return listings
        return [listing for listing in listings if listing.status is status]
