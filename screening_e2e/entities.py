"""Entity records shared by the tracker, the executor and the policies."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping


class EntityKind(str, Enum):
    """Remote record types created by tests and deleted by cleanup."""

    USER = "user"
    APPLICATION = "application"
    SESSION = "session"

    @property
    def plural(self) -> str:
        return f"{self.value}s"


# Sessions reference applications and users, so they go first.
DELETION_ORDER = (EntityKind.SESSION, EntityKind.APPLICATION, EntityKind.USER)


@dataclass
class TrackedEntity:
    """A remote record created by a test and registered for cleanup."""

    kind: EntityKind
    id: str
    display_label: str
    payload: Dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, kind: EntityKind, data: Mapping[str, Any]) -> "TrackedEntity":
        """Build from an API response body (the `data` object of a create call).

        A body without an id yields an entity with an empty `id`.
        """
        entity_id = "" if data.get("id") is None else str(data["id"])
        label = data.get("email") or data.get("name") or entity_id or "(unnamed)"
        return cls(kind=kind, id=entity_id, display_label=str(label), payload=dict(data))

    def __str__(self) -> str:
        if not self.id:
            return f"{self.kind.value} {self.display_label} (no id)"
        if self.display_label == self.id:
            return f"{self.kind.value} {self.id}"
        return f"{self.kind.value} {self.display_label} ({self.id})"


@dataclass(frozen=True)
class CleanupStatus:
    """Counts of tracked entities for one identifier."""

    users: int = 0
    applications: int = 0
    sessions: int = 0

    @property
    def total(self) -> int:
        return self.users + self.applications + self.sessions

    def as_dict(self) -> Dict[str, int]:
        return {
            "users": self.users,
            "applications": self.applications,
            "sessions": self.sessions,
        }
