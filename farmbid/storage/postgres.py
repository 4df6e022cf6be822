"""Postgres storage backend leveraging asyncpg."""

from __future__ import annotations

from typing import Any

import asyncpg

from ..transport.canonical_json import canonical_dumps, canonical_loads


class PostgresStorage:
    def __init__(self, *, dsn: str | None = None, **connect_kwargs: Any) -> None:
        if not dsn and not connect_kwargs:
            raise ValueError("postgres connection details missing")
        self._dsn = dsn
        self._connect_kwargs = connect_kwargs
        self._pool: asyncpg.Pool | None = None

    def _encode(self, payload: dict[str, Any]) -> str:
        return canonical_dumps(payload).decode()

    def _decode(self, value: Any) -> dict[str, Any]:
        if isinstance(value, (bytes, bytearray, str)):
            return canonical_loads(value)
        return value

    async def _ensure_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            self._pool = await asyncpg.create_pool(dsn=self._dsn, **self._connect_kwargs)
            async with self._pool.acquire() as conn:
                await conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS listings (
                        listing_id TEXT PRIMARY KEY,
                        version INTEGER NOT NULL DEFAULT 0,
                        data JSONB NOT NULL,
                        created_at TIMESTAMP DEFAULT NOW(),
                        updated_at TIMESTAMP DEFAULT NOW()
                    );
                    CREATE INDEX IF NOT EXISTS idx_listings_status
                    ON listings ((data->>'status'));
                    """
                )
        return self._pool

    async def create_listing(self, record: dict[str, Any]) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            try:
                await conn.execute(
                    """INSERT INTO listings(listing_id, version, data) VALUES($1, $2, $3::jsonb)""",
                    record["listing_id"],
                    int(record.get("version", 0)),
                    self._encode(record),
                )
            except asyncpg.UniqueViolationError as exc:
                raise ValueError(f"listing {record['listing_id']} already exists") from exc
        return record

    async def get_listing(self, listing_id: str) -> dict[str, Any]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                """SELECT data FROM listings WHERE listing_id=$1""",
                listing_id,
            )
        if not row:
            raise KeyError(listing_id)
        return self._decode(row["data"])

    async def list_listings(self) -> list[dict[str, Any]]:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            rows = await conn.fetch("SELECT data FROM listings ORDER BY created_at, listing_id")
        return [self._decode(row["data"]) for row in rows]

    async def compare_and_set_listing(
        self, listing_id: str, expected_version: int, updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        pool = await self._ensure_pool()
        async with pool.acquire() as conn:
            # Single conditional statement: the version guard and the write commit together.
            row = await conn.fetchrow(
                """
                UPDATE listings
                SET version = version + 1,
                    data = data || $3::jsonb || jsonb_build_object('version', version + 1),
                    updated_at = NOW()
                WHERE listing_id = $1 AND version = $2
                RETURNING data
                """,
                listing_id,
                expected_version,
                self._encode(updates),
            )
            if row is not None:
                return self._decode(row["data"])
            exists = await conn.fetchval(
                """SELECT 1 FROM listings WHERE listing_id=$1""",
                listing_id,
            )
        if not exists:
            raise KeyError(listing_id)
        return None

    async def close(self) -> None:
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
