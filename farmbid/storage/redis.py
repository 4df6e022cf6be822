"""Redis storage backend using the redis-py asyncio client."""

from __future__ import annotations

from typing import Any

from redis import asyncio as aioredis
from redis.exceptions import WatchError

from ..transport.canonical_json import canonical_dumps, canonical_loads


class RedisStorage:
    def __init__(self, *, url: str, prefix: str = "farmbid:listings") -> None:
        if not url:
            raise ValueError("redis url missing")
        self._redis = aioredis.from_url(url)
        self._prefix = prefix.rstrip(":")

    def _listing_key(self, listing_id: str) -> str:
        return f"{self._prefix}:listing:{listing_id}"

    async def create_listing(self, record: dict[str, Any]) -> dict[str, Any]:
        key = self._listing_key(record["listing_id"])
        created = await self._redis.set(key, canonical_dumps(record), nx=True)
        if not created:
            raise ValueError(f"listing {record['listing_id']} already exists")
        return record

    async def get_listing(self, listing_id: str) -> dict[str, Any]:
        raw = await self._redis.get(self._listing_key(listing_id))
        if raw is None:
            raise KeyError(listing_id)
        return canonical_loads(raw)

    async def list_listings(self) -> list[dict[str, Any]]:
        pattern = self._listing_key("*")
        keys: list[str] = []
        cursor = 0
        while True:
            cursor, batch = await self._redis.scan(cursor=cursor, match=pattern, count=100)
            keys.extend(batch)
            if cursor == 0:
                break
        if not keys:
            return []
        values = await self._redis.mget(keys)
        records = [canonical_loads(value) for value in values if value]
        return sorted(records, key=lambda record: (record.get("created_at", ""), record["listing_id"]))

    async def compare_and_set_listing(
        self, listing_id: str, expected_version: int, updates: dict[str, Any]
    ) -> dict[str, Any] | None:
        key = self._listing_key(listing_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            try:
                await pipe.watch(key)
                raw = await pipe.get(key)
                if raw is None:
                    raise KeyError(listing_id)
                record = canonical_loads(raw)
                if record.get("version", 0) != expected_version:
                    await pipe.unwatch()
                    return None
                record.update(updates)
                record["version"] = expected_version + 1
                pipe.multi()
                pipe.set(key, canonical_dumps(record))
                await pipe.execute()
            except WatchError:
                return None
        return record

    async def close(self) -> None:
        await self._redis.aclose()
