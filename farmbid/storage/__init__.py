"""Storage backend factory."""

from __future__ import annotations

from typing import Protocol

from ..config import ServerConfig
from .in_memory import InMemoryStorage


class ListingStorage(Protocol):
    async def create_listing(self, record: dict) -> dict: ...

    async def get_listing(self, listing_id: str) -> dict: ...

    async def list_listings(self) -> list[dict]: ...

    async def compare_and_set_listing(
        self, listing_id: str, expected_version: int, updates: dict
    ) -> dict | None:
        """Apply ``updates`` and bump ``version`` only if it still equals ``expected_version``.

        Returns the stored record, or None when another writer got there first.
        Raises KeyError for unknown listings.
        """
        ...

    async def close(self) -> None: ...


def build_storage(config: ServerConfig) -> ListingStorage:
    backend = config.ledger.backend
    options = dict(config.ledger.options)
    if backend == "in_memory":
        return InMemoryStorage()
    # Database drivers are imported only when their backend is selected.
    if backend == "redis":
        from .redis import RedisStorage

        return RedisStorage(**options)
    if backend == "postgres":
        from .postgres import PostgresStorage

        return PostgresStorage(**options)
    if backend == "firestore":
        from .firestore import FirestoreStorage

        return FirestoreStorage(**options)
    raise ValueError(f"unknown storage backend {backend}")
