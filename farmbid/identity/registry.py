"""Actor registry backed by YAML configuration."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

import yaml

ROLES = ("farmer", "buyer", "admin")


@dataclass(frozen=True)
class Actor:
    id: str
    role: str
    public_key: str = ""
    display_name: str | None = None
    location: str | None = None

    def has_role(self, roles: Iterable[str]) -> bool:
        return self.role in set(roles)


class ActorRegistry:
    def __init__(self, config_path: Path) -> None:
        self._path = config_path
        self._actors: dict[str, Actor] = {}
        self.reload()

    def reload(self) -> None:
        data = yaml.safe_load(self._path.read_text()) or {}
        actors = {}
        for item in data.get("actors", []):
            role = str(item.get("role", "buyer"))
            if role not in ROLES:
                raise ValueError(f"actor {item.get('id')} has unknown role {role}")
            actor = Actor(
                id=str(item["id"]),
                role=role,
                public_key=item.get("public_key", "") or "",
                display_name=item.get("display_name"),
                location=item.get("location"),
            )
            actors[actor.id] = actor
        self._actors = actors

    def all(self) -> Iterable[Actor]:
        return self._actors.values()

    def get(self, actor_id: str) -> Actor | None:
        return self._actors.get(actor_id)

    def by_role(self, role: str) -> list[Actor]:
        return [actor for actor in self._actors.values() if actor.role == role]
