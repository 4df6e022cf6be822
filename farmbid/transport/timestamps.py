"""Timestamp helpers enforcing ISO-8601 formatting, skew checks and deadlines."""

from __future__ import annotations

from datetime import datetime, timezone


class TimestampError(ValueError):
    """Raised when timestamps are malformed or outside the permitted skew."""


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    if not value:
        raise TimestampError("timestamp missing")
    if not isinstance(value, str):
        raise TimestampError("timestamp must be a string")
    try:
        if value.endswith("Z"):
            value = value[:-1] + "+00:00"
        dt = datetime.fromisoformat(value)
    except ValueError as exc:
        raise TimestampError("timestamp is not ISO-8601 compatible") from exc
    if dt.tzinfo is None:
        raise TimestampError("timestamp must include timezone information")
    return dt.astimezone(timezone.utc)


def assert_within_skew(timestamp: str, *, max_skew_ms: int, now: datetime | None = None) -> datetime:
    """Validate a timestamp string and ensure it is within the configured skew."""
    dt = parse_timestamp(timestamp)
    ref = now or utc_now()
    delta_ms = abs((ref - dt).total_seconds() * 1000)
    if delta_ms > max_skew_ms:
        raise TimestampError(
            f"timestamp skew {delta_ms:.1f}ms exceeds max {max_skew_ms}ms"
        )
    return dt


def has_passed(deadline: str | None, *, now: datetime | None = None) -> bool:
    """True when an optional ISO-8601 deadline is at or before ``now``."""
    if not deadline:
        return False
    return parse_timestamp(deadline) <= (now or utc_now())
