"""Configuration helpers for the marketplace server."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Mapping

import yaml

_DEFAULT_SERVER_CONFIG = Path(__file__).resolve().parent / "server.yaml"
_DEFAULT_ACTOR_CONFIG = Path(__file__).resolve().parent / "actors.yaml"

IDENTITY_MODES = ("signed", "trusted_header")


@dataclass(frozen=True)
class TransportConfig:
    nonce_ttl_seconds: int
    max_clock_skew_ms: int


@dataclass(frozen=True)
class LedgerConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class AuctionConfig:
    max_cas_attempts: int
    storage_timeout_ms: int


@dataclass(frozen=True)
class IdentityConfig:
    mode: str
    listing_roles: tuple[str, ...]


@dataclass(frozen=True)
class NotificationConfig:
    backend: str
    options: Mapping[str, Any]


@dataclass(frozen=True)
class ServerConfig:
    listen: Mapping[str, Any]
    log_level: str
    transport: TransportConfig
    ledger: LedgerConfig
    auction: AuctionConfig
    identity: IdentityConfig
    notifications: NotificationConfig


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        raise FileNotFoundError(path)
    return yaml.safe_load(path.read_text()) or {}


def parse_server_config(data: Mapping[str, Any]) -> ServerConfig:
    transport = data.get("transport", {})
    ledger = data.get("ledger", {})
    auction = data.get("auction", {})
    identity = data.get("identity", {})
    notifications = data.get("notifications", {})
    mode = str(identity.get("mode", "signed"))
    if mode not in IDENTITY_MODES:
        raise ValueError(f"unknown identity mode {mode}")
    max_attempts = int(auction.get("max_cas_attempts", 5))
    if max_attempts < 1:
        raise ValueError("auction.max_cas_attempts must be at least 1")
    return ServerConfig(
        listen=data.get("listen", {}),
        log_level=str((data.get("logging") or {}).get("level", "INFO")).upper(),
        transport=TransportConfig(
            nonce_ttl_seconds=int(transport.get("nonce_ttl_seconds", 300)),
            max_clock_skew_ms=int(transport.get("max_clock_skew_ms", 30000)),
        ),
        ledger=LedgerConfig(
            backend=str(ledger.get("backend", "in_memory")),
            options=dict(ledger.get("options") or {}),
        ),
        auction=AuctionConfig(
            max_cas_attempts=max_attempts,
            storage_timeout_ms=int(auction.get("storage_timeout_ms", 2000)),
        ),
        identity=IdentityConfig(
            mode=mode,
            listing_roles=tuple(identity.get("listing_roles") or ("farmer", "admin")),
        ),
        notifications=NotificationConfig(
            backend=str(notifications.get("backend", "local")),
            options=dict(notifications.get("options") or {}),
        ),
    )


@lru_cache(maxsize=1)
def get_server_config() -> ServerConfig:
    path = Path(os.getenv("FARMBID_CONFIG_PATH", _DEFAULT_SERVER_CONFIG))
    return parse_server_config(_load_yaml(path))


def get_actor_config_path() -> Path:
    return Path(os.getenv("FARMBID_ACTORS_PATH", _DEFAULT_ACTOR_CONFIG))
