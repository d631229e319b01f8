"""
Entity tracker for test-created data.

Records which remote users, applications and sessions belong to which
cleanup identifier (a per-test id or a `suite_<name>` id) so that the
cleanup executor can delete them later.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Union

from screening_e2e.entities import CleanupStatus, EntityKind, TrackedEntity

logger = logging.getLogger(__name__)

EntityLike = Union[TrackedEntity, Mapping[str, Any]]


class EntityTracker:
    """
    In-memory registry of tracked entities keyed by cleanup identifier.

    One instance lives for one pytest session (one worker process). Duplicate
    tracking of the same id is tolerated; the executor treats an
    already-deleted record as cleaned.

    Usage:
        tracker = EntityTracker()
        tracker.track_user('suite_Applicant flow', {'id': 'u1', 'email': 'a@b.c'})
        tracker.status('suite_Applicant flow').users  # 1
    """

    def __init__(self) -> None:
        self._entities: Dict[str, Dict[EntityKind, List[TrackedEntity]]] = {}

    def track(self, identifier: str, kind: EntityKind, entity: EntityLike) -> TrackedEntity:
        """Append an entity to the list for (identifier, kind). Never raises."""
        if not isinstance(entity, TrackedEntity):
            entity = TrackedEntity.from_payload(kind, entity)
        elif entity.kind is not kind:
            logger.warning(f"⚠️ Cleanup tracker: {entity} tracked as {kind.value}")
        if not entity.id:
            logger.warning(f"⚠️ Cleanup tracker: {entity} has no id, cleanup will not be able to delete it")

        per_kind = self._entities.setdefault(identifier, {})
        per_kind.setdefault(kind, []).append(entity)
        logger.info(f"📝 Cleanup tracker: Tracking {entity} for {identifier}")
        return entity

    def track_user(self, identifier: str, user: EntityLike) -> TrackedEntity:
        return self.track(identifier, EntityKind.USER, user)

    def track_application(self, identifier: str, application: EntityLike) -> TrackedEntity:
        return self.track(identifier, EntityKind.APPLICATION, application)

    def track_session(self, identifier: str, session: EntityLike) -> TrackedEntity:
        return self.track(identifier, EntityKind.SESSION, session)

    def entities(self, identifier: str, kind: EntityKind) -> List[TrackedEntity]:
        """Tracked entities of one kind, in tracking order (a copy)."""
        return list(self._entities.get(identifier, {}).get(kind, []))

    def status(self, identifier: str) -> CleanupStatus:
        """Counts of tracked users/applications/sessions for an identifier."""
        per_kind = self._entities.get(identifier, {})
        return CleanupStatus(
            users=len(per_kind.get(EntityKind.USER, [])),
            applications=len(per_kind.get(EntityKind.APPLICATION, [])),
            sessions=len(per_kind.get(EntityKind.SESSION, [])),
        )

    def all_entities(self) -> Dict[EntityKind, List[TrackedEntity]]:
        """Union of tracked entities across all identifiers."""
        union: Dict[EntityKind, List[TrackedEntity]] = {kind: [] for kind in EntityKind}
        for per_kind in self._entities.values():
            for kind, entities in per_kind.items():
                union[kind].extend(entities)
        return union

    def identifiers(self) -> List[str]:
        """Identifiers that still hold at least one tracked entity."""
        return [
            identifier
            for identifier, per_kind in self._entities.items()
            if any(per_kind.values())
        ]

    def clear(self, identifier: str) -> None:
        """Forget every entity tracked under an identifier."""
        self._entities.pop(identifier, None)
