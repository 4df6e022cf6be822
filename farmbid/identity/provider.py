"""Resolve the authenticated actor behind a request."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Mapping

from ..ledger.errors import Forbidden, Unauthenticated
from ..transport.timestamps import TimestampError, assert_within_skew, utc_now
from .nonces import NonceCache, NonceError
from .registry import Actor, ActorRegistry
from .signatures import SignatureError, request_envelope, verify_signature

logger = logging.getLogger(__name__)

ACTOR_HEADER = "x-actor-id"
TIMESTAMP_HEADER = "x-timestamp"
NONCE_HEADER = "x-nonce"
SIGNATURE_HEADER = "x-signature"


@dataclass(frozen=True)
class Credentials:
    actor_id: str | None
    method: str
    path: str
    timestamp: str | None = None
    nonce: str | None = None
    signature: str | None = None
    body: bytes = b""

    @classmethod
    def from_headers(
        cls, headers: Mapping[str, str], *, method: str, path: str, body: bytes = b""
    ) -> "Credentials":
        return cls(
            actor_id=headers.get(ACTOR_HEADER),
            method=method,
            path=path,
            timestamp=headers.get(TIMESTAMP_HEADER),
            nonce=headers.get(NONCE_HEADER),
            signature=headers.get(SIGNATURE_HEADER),
            body=body,
        )


class IdentityProvider:
    def __init__(
        self,
        registry: ActorRegistry,
        nonce_cache: NonceCache,
        *,
        mode: str,
        max_skew_ms: int,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._registry = registry
        self._nonces = nonce_cache
        self.mode = mode
        self._max_skew_ms = max_skew_ms
        self._clock = clock

    async def current_actor(self, credentials: Credentials) -> Actor:
        if not credentials.actor_id:
            raise Unauthenticated("missing actor identity")
        actor = self._registry.get(credentials.actor_id)
        if actor is None:
            raise Unauthenticated("unknown actor")
        if self.mode == "trusted_header":
            return actor
        if not (credentials.timestamp and credentials.nonce and credentials.signature):
            raise Unauthenticated("timestamp, nonce and signature headers are required")
        try:
            assert_within_skew(
                credentials.timestamp, max_skew_ms=self._max_skew_ms, now=self._clock()
            )
            envelope = request_envelope(
                actor_id=actor.id,
                method=credentials.method,
                path=credentials.path,
                timestamp=credentials.timestamp,
                nonce=credentials.nonce,
                body=credentials.body,
            )
            verify_signature(envelope, credentials.signature, actor.public_key)
            # Nonces are consumed only by requests that carry a valid signature.
            await self._nonces.assert_fresh(actor.id, credentials.nonce)
        except (TimestampError, SignatureError, NonceError) as exc:
            logger.info("rejected credentials for actor=%s: %s", actor.id, exc)
            raise Unauthenticated(str(exc)) from exc
        return actor


def require_role(actor: Actor, roles: Iterable[str]) -> Actor:
    allowed = tuple(roles)
    if not actor.has_role(allowed):
        raise Forbidden(f"role {actor.role} may not perform this action; requires {', '.join(allowed)}")
    return actor
