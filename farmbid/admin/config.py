"""Expose currently loaded server config for debugging."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from ..config import ServerConfig
from ..identity.registry import ActorRegistry

router = APIRouter(prefix="/admin", tags=["admin"])


def _get_config(request: Request) -> ServerConfig:
    return request.app.state.server_config


def _get_actor_registry(request: Request) -> ActorRegistry:
    return request.app.state.actor_registry


@router.get("/config")
async def config(
    request: Request,
    config: ServerConfig = Depends(_get_config),
    registry: ActorRegistry = Depends(_get_actor_registry),
) -> dict:
    roles: dict[str, list[str]] = {}
    for actor in registry.all():
        roles.setdefault(actor.role, []).append(actor.id)
    return {
        "version": request.app.version,
        "storage_backend": config.ledger.backend,
        "notification_backend": config.notifications.backend,
        "identity_mode": config.identity.mode,
        "listing_roles": list(config.identity.listing_roles),
        "max_cas_attempts": config.auction.max_cas_attempts,
        "storage_timeout_ms": config.auction.storage_timeout_ms,
        "max_clock_skew_ms": config.transport.max_clock_skew_ms,
        "actors_by_role": {role: sorted(ids) for role, ids in sorted(roles.items())},
    }
