"""Auction ledger: accepts bids per listing and resolves listings to a winner.

Every write is a compare-and-set on the listing's ``version``. A submission
reads one snapshot, validates the amount against that snapshot and writes only
if no other writer has touched the listing since; otherwise it re-reads and
re-validates. Two concurrent submissions can therefore never both pass against
the same stale highest amount.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any, Awaitable, Callable, TypeVar

from ..listings.models import Listing
from ..listings.registry import ListingRegistry
from ..notifications.sink import Notification, NotificationSink, NotificationType
from ..storage import ListingStorage
from ..transport.timestamps import format_timestamp, utc_now
from .errors import (
    BidTooLow,
    LedgerBusy,
    ListingClosed,
    ListingNotFound,
    NotListingOwner,
    OwnListingBid,
    StorageUnavailable,
    Unauthenticated,
    ValidationError,
)
from .fsm import BidEvent, BidStatus, ListingEvent, ListingStatus, transition_listing
from .models import Bid, BidResult, parse_amount

logger = logging.getLogger(__name__)

T = TypeVar("T")

HISTORY_ORDERS = ("acceptance", "amount")


@dataclass
class AuctionLedger:
    registry: ListingRegistry
    storage: ListingStorage
    sink: NotificationSink
    max_attempts: int = 5
    storage_timeout_ms: int = 2000
    clock: Callable[[], datetime] = utc_now

    async def _bounded(self, operation: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(operation, timeout=self.storage_timeout_ms / 1000)
        except asyncio.TimeoutError as exc:
            raise StorageUnavailable(
                f"storage did not answer within {self.storage_timeout_ms}ms"
            ) from exc

    async def _read(self, listing_id: str) -> Listing:
        return await self._bounded(self.registry.get_listing(listing_id))

    async def _compare_and_set(self, listing: Listing, updates: dict[str, Any]) -> Listing | None:
        try:
            stored = await self._bounded(
                self.storage.compare_and_set_listing(listing.id, listing.version, updates)
            )
        except KeyError as exc:
            raise ListingNotFound(listing.id) from exc
        if stored is None:
            logger.debug("version conflict on listing=%s at version=%s", listing.id, listing.version)
            return None
        return Listing.from_record(stored)

    # Bidding ----------------------------------------------------------------

    async def submit_bid(self, listing_id: str, bidder_id: str | None, amount: Any) -> BidResult:
        """Record ``amount`` as the new leading bid, or reject it without persisting anything."""
        if not bidder_id:
            raise Unauthenticated("bid submission requires an authenticated actor")
        value = parse_amount(amount)
        for _attempt in range(self.max_attempts):
            listing = await self._read(listing_id)
            if listing.is_expired(self.clock()):
                settled = await self._settle(listing.id)
                raise ListingClosed(settled.id, settled.status.value)
            if not listing.is_open:
                raise ListingClosed(listing.id, listing.status.value)
            if bidder_id == listing.owner_id:
                raise OwnListingBid(listing.id)
            highest = listing.current_highest()
            if value <= highest:
                await self.sink.publish(
                    Notification(
                        event_type=NotificationType.BID_REJECTED,
                        recipient_id=bidder_id,
                        listing_id=listing.id,
                        data={
                            "amount": str(value),
                            "current_highest": str(highest),
                            "reason": "bid_too_low",
                        },
                    )
                )
                raise BidTooLow(value, highest)
            now = format_timestamp(self.clock())
            bid = Bid.new(listing.id, bidder_id, value, now)
            stored = await self._compare_and_set(
                listing,
                {
                    "bids": [item.to_record() for item in (*listing.bids, bid)],
                    "updated_at": now,
                },
            )
            if stored is None:
                continue
            previous = listing.leading_bid()
            result = BidResult(bid=bid, current_highest=value, bid_count=len(stored.bids))
            notifications = [
                Notification(
                    event_type=NotificationType.BID_ACCEPTED,
                    recipient_id=bidder_id,
                    listing_id=listing.id,
                    reference_id=bid.id,
                    data={"amount": str(value)},
                )
            ]
            if previous is not None and previous.bidder_id != bidder_id:
                result.outbid.append(previous.bidder_id)
                notifications.append(
                    Notification(
                        event_type=NotificationType.BID_OUTBID,
                        recipient_id=previous.bidder_id,
                        listing_id=listing.id,
                        reference_id=previous.id,
                        data={"amount": str(previous.amount), "current_highest": str(value)},
                    )
                )
            await self.sink.publish_many(notifications)
            logger.info(
                "bid recorded listing=%s bid=%s bidder=%s amount=%s count=%s",
                listing.id,
                bid.id,
                bidder_id,
                value,
                result.bid_count,
            )
            return result
        raise LedgerBusy(listing_id, self.max_attempts)

    async def current_highest(self, listing_id: str) -> Decimal:
        listing = await self.get_listing(listing_id)
        return listing.current_highest()

    async def bid_history(self, listing_id: str, order: str = "acceptance") -> list[Bid]:
        """Bids in append order (strictly increasing amounts) or by amount, highest first."""
        if order not in HISTORY_ORDERS:
            raise ValidationError(f"order must be one of {', '.join(HISTORY_ORDERS)}")
        listing = await self.get_listing(listing_id)
        bids = list(listing.bids)
        if order == "amount":
            bids.sort(key=lambda bid: bid.amount, reverse=True)
        return bids

    # Lifecycle --------------------------------------------------------------

    async def get_listing(self, listing_id: str) -> Listing:
        """Read a listing, settling it first when its deadline has passed."""
        listing = await self._read(listing_id)
        if listing.is_expired(self.clock()):
            return await self._settle(listing.id)
        return listing

    async def list_listings(self, status: ListingStatus | None = None) -> list[Listing]:
        await self.settle_expired()
        return await self._bounded(self.registry.list_listings(status))

    async def close_listing(self, listing_id: str, actor_id: str | None) -> Listing:
        if not actor_id:
            raise Unauthenticated("closing a listing requires an authenticated actor")
        for _attempt in range(self.max_attempts):
            listing = await self._read(listing_id)
            if listing.owner_id != actor_id:
                raise NotListingOwner(listing.id)
            if not listing.is_open:
                raise ListingClosed(listing.id, listing.status.value)
            closed = await self._finalize(listing, closed_by=actor_id)
            if closed is not None:
                return closed
        raise LedgerBusy(listing_id, self.max_attempts)

    async def settle_expired(self) -> list[Listing]:
        """Close every open listing whose deadline has passed."""
        now = self.clock()
        settled: list[Listing] = []
        for listing in await self._bounded(self.registry.list_listings()):
            if listing.is_expired(now):
                settled.append(await self._settle(listing.id))
        if settled:
            logger.info("settled %s expired listings", len(settled))
        return settled

    async def _settle(self, listing_id: str) -> Listing:
        for _attempt in range(self.max_attempts):
            listing = await self._read(listing_id)
            if not listing.is_expired(self.clock()):
                return listing
            closed = await self._finalize(listing, closed_by=None)
            if closed is not None:
                return closed
        raise LedgerBusy(listing_id, self.max_attempts)

    async def _finalize(self, listing: Listing, closed_by: str | None) -> Listing | None:
        now = format_timestamp(self.clock())
        leader = listing.leading_bid()
        resolved: list[Bid] = []
        for bid in listing.bids:
            if bid.status is not BidStatus.PENDING:
                resolved.append(bid)
            elif leader is not None and bid.id == leader.id:
                resolved.append(bid.resolve(BidEvent.WON, now))
            else:
                resolved.append(bid.resolve(BidEvent.LOST, now, reason="outbid"))
        event = ListingEvent.CLOSED_WITH_WINNER if leader else ListingEvent.CLOSED_WITHOUT_BIDS
        status = transition_listing(listing.status, event)
        closed = await self._compare_and_set(
            listing,
            {
                "status": status.value,
                "bids": [bid.to_record() for bid in resolved],
                "winning_bid_id": leader.id if leader else None,
                "updated_at": now,
            },
        )
        if closed is None:
            return None
        logger.info(
            "listing closed id=%s status=%s winner=%s closed_by=%s",
            closed.id,
            closed.status.value,
            closed.winning_bid_id,
            closed_by or "deadline",
        )
        await self.sink.publish_many(self._closing_notifications(closed, closed_by))
        return closed

    def _closing_notifications(self, listing: Listing, closed_by: str | None) -> list[Notification]:
        notifications = [
            Notification(
                event_type=NotificationType.LISTING_CLOSED,
                recipient_id=listing.owner_id,
                listing_id=listing.id,
                reference_id=listing.winning_bid_id,
                data={
                    "status": listing.status.value,
                    "closed_by": closed_by or "deadline",
                    "final_price": str(listing.current_highest()) if listing.winning_bid_id else None,
                },
            )
        ]
        for bid in listing.bids:
            if bid.status is BidStatus.ACCEPTED:
                notifications.append(
                    Notification(
                        event_type=NotificationType.LISTING_WON,
                        recipient_id=bid.bidder_id,
                        listing_id=listing.id,
                        reference_id=bid.id,
                        data={"amount": str(bid.amount)},
                    )
                )
            elif bid.status is BidStatus.REJECTED:
                notifications.append(
                    Notification(
                        event_type=NotificationType.BID_REJECTED,
                        recipient_id=bid.bidder_id,
                        listing_id=listing.id,
                        reference_id=bid.id,
                        data={"amount": str(bid.amount), "reason": bid.rejection_reason},
                    )
                )
        return notifications
