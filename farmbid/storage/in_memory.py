"""In-memory storage backend for listings and their bids."""

from __future__ import annotations

import asyncio
from copy import deepcopy
from typing import Any


class InMemoryStorage:
    def __init__(self) -> None:
        self._listings: dict[str, dict[str, Any]] = {}
        self._lock = asyncio.Lock()

    async def create_listing(self, record: dict[str, Any]) -> dict[str, Any]:
        async with self._lock:
            if record["listing_id"] in self._listings:
                raise ValueError(f"listing {record['listing_id']} already exists")
            self._listings[record["listing_id"]] = deepcopy(record)
            return deepcopy(record)

    async def get_listing(self, listing_id: str) -> dict[str, Any]:
        async with self._lock:
            try:
                return deepcopy(self._listings[listing_id])
            except KeyError as exc:
                raise KeyError(f"listing {listing_id} not found") from exc

    async def list_listings(self) -> list[dict[str, Any]]:
        async with self._lock:
            return [deepcopy(record) for record in self._listings.values()]

    async def compare_and_set_listing(
        self, listing_id: str, expected_version: int, updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        async with self._lock:
            if listing_id not in self._listings:
                raise KeyError(listing_id)
            record = self._listings[listing_id]
            if record.get("version", 0) != expected_version:
                return None
            record.update(deepcopy(updates))
            record["version"] = expected_version + 1
            return deepcopy(record)

    async def close(self) -> None:
        return None
