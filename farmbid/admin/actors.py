"""Expose the actor registry."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request

from ..identity.registry import ActorRegistry

router = APIRouter(prefix="/admin", tags=["admin"])

_PERMISSIONS = {
    "farmer": ["create-listing", "close-listing", "submit-bid"],
    "buyer": ["submit-bid"],
    "admin": ["create-listing", "close-listing", "submit-bid", "settle"],
}


def _get_registry(request: Request) -> ActorRegistry:
    return request.app.state.actor_registry


@router.get("/actors")
async def actors(registry: ActorRegistry = Depends(_get_registry)) -> list[dict[str, Any]]:
    inventory = []
    for actor in registry.all():
        inventory.append(
            {
                "id": actor.id,
                "role": actor.role,
                "display_name": actor.display_name,
                "location": actor.location,
                "permissions": _PERMISSIONS.get(actor.role, []),
                "signing_key": bool(actor.public_key),
            }
        )
    return inventory
