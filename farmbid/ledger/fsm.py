"""Listing and bid finite state machines."""

from __future__ import annotations

from enum import Enum


class ListingStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"
    SOLD = "sold"


class ListingEvent(str, Enum):
    CLOSED_WITH_WINNER = "closed_with_winner"
    CLOSED_WITHOUT_BIDS = "closed_without_bids"


class BidStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class BidEvent(str, Enum):
    WON = "won"
    LOST = "lost"


_LISTING_TRANSITIONS = {
    (ListingStatus.OPEN, ListingEvent.CLOSED_WITH_WINNER): ListingStatus.SOLD,
    (ListingStatus.OPEN, ListingEvent.CLOSED_WITHOUT_BIDS): ListingStatus.CLOSED,
}

_BID_TRANSITIONS = {
    (BidStatus.PENDING, BidEvent.WON): BidStatus.ACCEPTED,
    (BidStatus.PENDING, BidEvent.LOST): BidStatus.REJECTED,
}


def transition_listing(current: ListingStatus, event: ListingEvent) -> ListingStatus:
    try:
        return _LISTING_TRANSITIONS[(current, event)]
    except KeyError as exc:
        raise ValueError(f"invalid listing transition from {current.value} via {event.value}") from exc


def transition_bid(current: BidStatus, event: BidEvent) -> BidStatus:
    try:
        return _BID_TRANSITIONS[(current, event)]
    except KeyError as exc:
        raise ValueError(f"invalid bid transition from {current.value} via {event.value}") from exc
