"""Operational stats endpoint."""

from __future__ import annotations

from collections import Counter
from typing import Any

from fastapi import APIRouter, Depends, Request

from ..ledger.fsm import ListingStatus
from ..listings.models import Listing
from ..listings.registry import ListingRegistry

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_registry(request: Request) -> ListingRegistry:
    return request.app.state.listing_registry


@router.get("/stats")
async def stats(registry: ListingRegistry = Depends(_get_registry)) -> dict[str, Any]:
    return summarize(await registry.list_listings())


def summarize(listings: list[Listing]) -> dict[str, Any]:
    listings_by_status: Counter[str] = Counter(listing.status.value for listing in listings)
    bids_by_status: Counter[str] = Counter()
    bids_by_bidder: Counter[str] = Counter()
    wins_by_bidder: Counter[str] = Counter()
    listings_by_category: Counter[str] = Counter()

    for listing in listings:
        listings_by_category[listing.category] += 1
        for bid in listing.bids:
            bids_by_status[bid.status.value] += 1
            bids_by_bidder[bid.bidder_id] += 1
            if bid.id == listing.winning_bid_id:
                wins_by_bidder[bid.bidder_id] += 1

    resolved = listings_by_status[ListingStatus.SOLD.value] + listings_by_status[ListingStatus.CLOSED.value]
    sell_through = (listings_by_status[ListingStatus.SOLD.value] / resolved) if resolved else 0.0
    bidder_win_rates = {
        bidder: round(wins_by_bidder[bidder] / bids_by_bidder[bidder], 4)
        for bidder in bids_by_bidder
        if bids_by_bidder[bidder]
    }

    return {
        "total_listings": len(listings),
        "total_bids": sum(bids_by_status.values()),
        "listings_by_status": {status.value: listings_by_status[status.value] for status in ListingStatus},
        "bids_by_status": dict(bids_by_status),
        "sell_through_rate": round(sell_through, 4),
        "bidder_win_rates": bidder_win_rates,
        "category_distribution": dict(listings_by_category),
    }
