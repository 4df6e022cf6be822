from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

from fastapi import Body, Depends, FastAPI, HTTPException, Query, Request, status
from jsonschema import ValidationError as SchemaValidationError

from .admin import actors as admin_actors
from .admin import config as admin_config
from .admin import health as admin_health
from .admin import settle as admin_settle
from .admin import stats as admin_stats
from .config import ServerConfig, get_actor_config_path, get_server_config
from .dependencies import get_current_actor, http_error
from .identity.nonces import NonceCache
from .identity.provider import IdentityProvider, require_role
from .identity.registry import Actor, ActorRegistry
from .ledger.apply import AuctionLedger
from .ledger.errors import LedgerError
from .ledger.fsm import ListingStatus
from .listings.models import Listing
from .listings.registry import ListingRegistry
from .notifications.sink import NotificationSink
from .storage import build_storage
from .validation.validator import SchemaRegistry, get_schema_registry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    server_config = get_server_config()
    logging.basicConfig(
        level=server_config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    schema_registry = get_schema_registry()
    actor_registry = ActorRegistry(get_actor_config_path())
    nonce_cache = NonceCache(server_config.transport.nonce_ttl_seconds)
    identity = IdentityProvider(
        actor_registry,
        nonce_cache,
        mode=server_config.identity.mode,
        max_skew_ms=server_config.transport.max_clock_skew_ms,
    )
    storage = build_storage(server_config)
    listing_registry = ListingRegistry(storage)
    sink = NotificationSink(
        backend=server_config.notifications.backend,
        options=server_config.notifications.options,
    )
    ledger = AuctionLedger(
        registry=listing_registry,
        storage=storage,
        sink=sink,
        max_attempts=server_config.auction.max_cas_attempts,
        storage_timeout_ms=server_config.auction.storage_timeout_ms,
    )

    app.state.server_config = server_config
    app.state.schema_registry = schema_registry
    app.state.actor_registry = actor_registry
    app.state.nonce_cache = nonce_cache
    app.state.identity = identity
    app.state.storage = storage
    app.state.listing_registry = listing_registry
    app.state.notification_sink = sink
    app.state.ledger = ledger
    app.state.start_time = datetime.now(timezone.utc)
    logger.info(
        "farmbid ready storage=%s identity=%s notifications=%s",
        server_config.ledger.backend,
        server_config.identity.mode,
        server_config.notifications.backend,
    )

    yield

    await storage.close()


app = FastAPI(
    title="Farmbid Marketplace",
    version="1.0.0",
    docs_url="/docs",
    lifespan=lifespan,
)

app.include_router(admin_health.router)
app.include_router(admin_stats.router)
app.include_router(admin_config.router)
app.include_router(admin_actors.router)
app.include_router(admin_settle.router)


# Dependency helpers ---------------------------------------------------------


def get_server_settings(request: Request) -> ServerConfig:
    return request.app.state.server_config


def get_schema_service(request: Request) -> SchemaRegistry:
    return request.app.state.schema_registry


def get_ledger(request: Request) -> AuctionLedger:
    return request.app.state.ledger


def get_listing_registry(request: Request) -> ListingRegistry:
    return request.app.state.listing_registry


def schema_error(exc: SchemaValidationError) -> HTTPException:
    field = ".".join(str(part) for part in exc.absolute_path)
    detail: dict[str, Any] = {"error": "validation_error", "message": exc.message}
    if field:
        detail["field"] = field
    return HTTPException(status_code=422, detail=detail)


def listing_view(listing: Listing) -> dict[str, Any]:
    view = listing.to_summary()
    leader = listing.leading_bid()
    view["leading_bid"] = leader.to_record() if leader else None
    return view


# Routes ---------------------------------------------------------------------


@app.get("/", tags=["meta"])
async def root(settings: ServerConfig = Depends(get_server_settings)) -> dict[str, Any]:
    return {
        "service": "farmbid",
        "version": app.version,
        "identity_mode": settings.identity.mode,
        "storage_backend": settings.ledger.backend,
        "transport": {
            "nonce_ttl_seconds": settings.transport.nonce_ttl_seconds,
            "max_clock_skew_ms": settings.transport.max_clock_skew_ms,
        },
    }


@app.get("/ping", tags=["meta"])
async def ping() -> dict[str, Any]:
    return {"status": "ok", "version": app.version}


@app.post("/listings", tags=["listings"], status_code=status.HTTP_201_CREATED)
async def create_listing(
    payload: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    registry: ListingRegistry = Depends(get_listing_registry),
    schemas: SchemaRegistry = Depends(get_schema_service),
    settings: ServerConfig = Depends(get_server_settings),
) -> dict[str, Any]:
    try:
        require_role(actor, settings.identity.listing_roles)
        schemas.validate("listing_create", payload)
        listing = await registry.create_listing(actor.id, payload)
    except SchemaValidationError as exc:
        raise schema_error(exc) from exc
    except LedgerError as exc:
        raise http_error(exc) from exc
    return listing_view(listing)


@app.get("/listings", tags=["listings"])
async def list_listings(
    status_filter: str | None = Query(None, alias="status"),
    ledger: AuctionLedger = Depends(get_ledger),
) -> list[dict[str, Any]]:
    try:
        wanted = ListingStatus(status_filter) if status_filter else None
    except ValueError as exc:
        raise HTTPException(
            status_code=422,
            detail={"error": "validation_error", "message": f"unknown status {status_filter}"},
        ) from exc
    try:
        listings = await ledger.list_listings(wanted)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return [listing.to_summary() for listing in listings]


@app.get("/listings/{listing_id}", tags=["listings"])
async def get_listing(
    listing_id: str,
    ledger: AuctionLedger = Depends(get_ledger),
) -> dict[str, Any]:
    try:
        listing = await ledger.get_listing(listing_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return listing_view(listing)


@app.post("/listings/{listing_id}/bids", tags=["auction"], status_code=status.HTTP_201_CREATED)
async def submit_bid(
    listing_id: str,
    payload: dict[str, Any] = Body(...),
    actor: Actor = Depends(get_current_actor),
    ledger: AuctionLedger = Depends(get_ledger),
    schemas: SchemaRegistry = Depends(get_schema_service),
) -> dict[str, Any]:
    try:
        schemas.validate("bid_submission", payload)
    except SchemaValidationError as exc:
        raise schema_error(exc) from exc
    try:
        result = await ledger.submit_bid(listing_id, actor.id, payload["amount"])
    except LedgerError as exc:
        raise http_error(exc) from exc
    return result.to_payload()


@app.get("/listings/{listing_id}/bids", tags=["auction"])
async def bid_history(
    listing_id: str,
    order: str = Query("amount"),
    ledger: AuctionLedger = Depends(get_ledger),
) -> dict[str, Any]:
    try:
        bids = await ledger.bid_history(listing_id, order=order)
        highest = await ledger.current_highest(listing_id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return {
        "listing_id": listing_id,
        "order": order,
        "current_highest": str(highest),
        "bids": [bid.to_record() for bid in bids],
    }


@app.post("/listings/{listing_id}/close", tags=["auction"])
async def close_listing(
    listing_id: str,
    actor: Actor = Depends(get_current_actor),
    ledger: AuctionLedger = Depends(get_ledger),
) -> dict[str, Any]:
    try:
        listing = await ledger.close_listing(listing_id, actor.id)
    except LedgerError as exc:
        raise http_error(exc) from exc
    return listing_view(listing)
