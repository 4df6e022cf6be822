"""Shared fixtures for ledger, registry and API tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock

import pytest

from farmbid.ledger.apply import AuctionLedger
from farmbid.listings.registry import ListingRegistry
from farmbid.notifications.sink import Notification, NotificationSink
from farmbid.storage.in_memory import InMemoryStorage


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: Any) -> None:
        self.now = self.now + timedelta(**kwargs)


def listing_payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "title": "Alphonso mangoes",
        "description": "Tree-ripened Alphonso mangoes, export grade A",
        "image": "https://images.example.com/mango.jpg",
        "base_price": "100",
        "unit": "crate",
        "quantity": 20,
        "location": "Ratnagiri",
        "category": "fruit",
        "harvest_date": "2026-10-01",
    }
    payload.update(overrides)
    return payload


def published(sink: AsyncMock) -> list[Notification]:
    """Every notification handed to a mocked sink, in call order."""
    notifications: list[Notification] = []
    for call in sink.method_calls:
        name, args, _ = call
        if name == "publish":
            notifications.append(args[0])
        elif name == "publish_many":
            notifications.extend(args[0])
    return notifications


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def mock_sink() -> AsyncMock:
    return AsyncMock(spec=NotificationSink)


@pytest.fixture
def registry(storage, clock) -> ListingRegistry:
    return ListingRegistry(storage, clock=clock)


@pytest.fixture
def ledger(registry, storage, mock_sink, clock) -> AuctionLedger:
    return AuctionLedger(
        registry=registry,
        storage=storage,
        sink=mock_sink,
        max_attempts=5,
        storage_timeout_ms=1000,
        clock=clock,
    )
