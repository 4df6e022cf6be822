"""Settle listings whose deadline has passed; meant to be driven by an external scheduler."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..dependencies import get_admin_actor, http_error
from ..identity.registry import Actor
from ..ledger.apply import AuctionLedger
from ..ledger.errors import LedgerError

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_ledger(request: Request) -> AuctionLedger:
    return request.app.state.ledger


@router.post("/settle")
async def settle(
    actor: Actor = Depends(get_admin_actor),
    ledger: AuctionLedger = Depends(_get_ledger),
) -> dict[str, Any]:
    try:
        settled = await ledger.settle_expired()
    except LedgerError as exc:
        raise http_error(exc) from exc
    return {
        "settled": len(settled),
        "settled_by": actor.id,
        "listings": [
            {"listing_id": listing.id, "status": listing.status.value, "winning_bid_id": listing.winning_bid_id}
            for listing in settled
        ],
    }
