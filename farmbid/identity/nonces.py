"""Per-actor nonce cache used to reject replayed requests."""

from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Deque

from ..transport.timestamps import utc_now


class NonceError(ValueError):
    """Raised when a nonce is missing or reused."""


@dataclass
class _NonceEntry:
    value: str
    expires_at: datetime


class NonceCache:
    def __init__(self, ttl_seconds: int, clock: Callable[[], datetime] = utc_now) -> None:
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Deque[_NonceEntry] = deque()
        self._known: set[str] = set()
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._known)

    async def assert_fresh(self, actor_id: str, nonce: str) -> None:
        if not nonce:
            raise NonceError("nonce missing")
        key = f"{actor_id}:{nonce}"
        async with self._lock:
            now = self._clock()
            self._evict_expired(now)
            if key in self._known:
                raise NonceError("nonce already seen")
            self._entries.append(_NonceEntry(key, now + timedelta(seconds=self._ttl)))
            self._known.add(key)

    def _evict_expired(self, now: datetime) -> None:
        while self._entries and self._entries[0].expires_at <= now:
            expired = self._entries.popleft()
            self._known.discard(expired.value)
