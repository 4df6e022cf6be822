"""Request-scoped helpers shared by the API and admin routers."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from .identity.provider import Credentials, IdentityProvider, require_role
from .identity.registry import Actor
from .ledger.errors import LedgerError


def http_error(exc: LedgerError) -> HTTPException:
    headers = {"Retry-After": "1"} if exc.status_code == status.HTTP_503_SERVICE_UNAVAILABLE else None
    return HTTPException(status_code=exc.status_code, detail=exc.to_detail(), headers=headers)


async def get_current_actor(request: Request) -> Actor:
    identity: IdentityProvider = request.app.state.identity
    credentials = Credentials.from_headers(
        request.headers,
        method=request.method,
        path=request.url.path,
        body=await request.body(),
    )
    try:
        return await identity.current_actor(credentials)
    except LedgerError as exc:
        raise http_error(exc) from exc


async def get_admin_actor(request: Request) -> Actor:
    actor = await get_current_actor(request)
    try:
        require_role(actor, ["admin"])
    except LedgerError as exc:
        raise http_error(exc) from exc
    return actor
