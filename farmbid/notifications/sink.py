"""Fire-and-forget delivery of marketplace events."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

from ..transport.canonical_json import canonical_dumps
from ..transport.timestamps import format_timestamp, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_MS = 2000


class NotificationType(str, Enum):
    BID_ACCEPTED = "bid_accepted"
    BID_REJECTED = "bid_rejected"
    BID_OUTBID = "bid_outbid"
    LISTING_WON = "listing_won"
    LISTING_CLOSED = "listing_closed"


@dataclass(frozen=True)
class Notification:
    event_type: NotificationType
    recipient_id: str
    listing_id: str
    reference_id: str | None = None
    data: Mapping[str, Any] = field(default_factory=dict)
    occurred_at: str = field(default_factory=lambda: format_timestamp(utc_now()))

    def to_payload(self) -> dict[str, Any]:
        return {
            "event_type": self.event_type.value,
            "recipient_id": self.recipient_id,
            "listing_id": self.listing_id,
            "reference_id": self.reference_id,
            "data": dict(self.data),
            "occurred_at": self.occurred_at,
        }


class _PublisherProtocol:
    async def publish(self, notification: Notification) -> None:  # pragma: no cover - protocol
        raise NotImplementedError


class _LocalPublisher(_PublisherProtocol):
    async def publish(self, notification: Notification) -> None:
        logger.info(
            "[local-notify] %s recipient=%s listing=%s ref=%s",
            notification.event_type.value,
            notification.recipient_id,
            notification.listing_id,
            notification.reference_id,
        )


class _PubSubPublisher(_PublisherProtocol):
    def __init__(self, options: Mapping[str, Any], timeout_seconds: float) -> None:
        from google.cloud import pubsub_v1

        self._timeout_seconds = timeout_seconds
        self._project_id = options.get("project_id")
        if not self._project_id:
            raise ValueError("pubsub backend requires project_id")
        self._topic_prefix = options.get("topic_prefix", "farmbid-events")
        self._publisher = pubsub_v1.PublisherClient()

    def _topic_path(self, event_type: str) -> str:
        topic = f"{self._topic_prefix}-{event_type}"
        if topic.startswith("projects/"):
            return topic
        return self._publisher.topic_path(self._project_id, topic)

    async def publish(self, notification: Notification) -> None:
        message = canonical_dumps(notification.to_payload())
        topic = self._topic_path(notification.event_type.value)
        future = self._publisher.publish(
            topic,
            message,
            event_type=notification.event_type.value,
            listing_id=notification.listing_id,
        )
        await asyncio.to_thread(future.result, timeout=self._timeout_seconds)


class NotificationSink:
    """At-most-once sink: delivery failures are logged and never reach the caller.

    Each delivery is bounded by ``timeout_ms``; a delivery that overruns is dropped.
    """

    def __init__(self, backend: str = "local", options: Mapping[str, Any] | None = None) -> None:
        options = options or {}
        self.backend = backend
        self.timeout_ms = int(options.get("timeout_ms", DEFAULT_TIMEOUT_MS))
        if backend == "pubsub":
            self._publisher: _PublisherProtocol = _PubSubPublisher(
                options.get("pubsub", options), timeout_seconds=self.timeout_ms / 1000
            )
        elif backend == "local":
            self._publisher = _LocalPublisher()
        else:
            raise ValueError(f"unknown notification backend {backend}")

    async def publish(self, notification: Notification) -> None:
        try:
            await asyncio.wait_for(self._publisher.publish(notification), timeout=self.timeout_ms / 1000)
        except Exception:
            logger.warning(
                "dropping %s notification for listing=%s",
                notification.event_type.value,
                notification.listing_id,
                exc_info=True,
            )

    async def publish_many(self, notifications: list[Notification]) -> None:
        if notifications:
            await asyncio.gather(*(self.publish(item) for item in notifications))
