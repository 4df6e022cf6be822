"""Compare-and-set semantics of the in-memory backend."""

from __future__ import annotations

import pytest

from farmbid.storage.in_memory import InMemoryStorage


@pytest.fixture
def record():
    return {"listing_id": "lst_1", "version": 0, "status": "open", "bids": []}


@pytest.mark.asyncio
async def test_compare_and_set_bumps_version(record):
    storage = InMemoryStorage()
    await storage.create_listing(record)

    updated = await storage.compare_and_set_listing("lst_1", 0, {"bids": [{"id": "bid_1"}]})

    assert updated["version"] == 1
    assert updated["bids"] == [{"id": "bid_1"}]


@pytest.mark.asyncio
async def test_stale_version_is_refused(record):
    storage = InMemoryStorage()
    await storage.create_listing(record)
    await storage.compare_and_set_listing("lst_1", 0, {"status": "closed"})

    assert await storage.compare_and_set_listing("lst_1", 0, {"status": "sold"}) is None
    assert (await storage.get_listing("lst_1"))["status"] == "closed"


@pytest.mark.asyncio
async def test_unknown_listing_raises_key_error():
    storage = InMemoryStorage()
    with pytest.raises(KeyError):
        await storage.compare_and_set_listing("lst_missing", 0, {})
    with pytest.raises(KeyError):
        await storage.get_listing("lst_missing")


@pytest.mark.asyncio
async def test_duplicate_listing_rejected(record):
    storage = InMemoryStorage()
    await storage.create_listing(record)
    with pytest.raises(ValueError):
        await storage.create_listing(record)


@pytest.mark.asyncio
async def test_returned_records_are_copies(record):
    storage = InMemoryStorage()
    await storage.create_listing(record)

    fetched = await storage.get_listing("lst_1")
    fetched["bids"].append({"id": "bid_x"})

    assert (await storage.get_listing("lst_1"))["bids"] == []
