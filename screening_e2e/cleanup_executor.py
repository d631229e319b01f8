"""
Cleanup executor for tracked test data.

Deletes every entity tracked under a cleanup identifier exactly once per
pytest session, tolerating records that are already gone and continuing past
individual failures.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Dict, List, Set

from screening_e2e.data_manager import CleanupDataManager
from screening_e2e.entities import DELETION_ORDER, EntityKind
from screening_e2e.entity_tracker import EntityTracker

logger = logging.getLogger(__name__)


def is_not_found(error: BaseException) -> bool:
    """True when a delete failed only because the record no longer exists."""
    status_code = getattr(error, "status_code", None)
    if status_code is not None:
        return status_code == 404
    message = str(error)
    return "404" in message or "Not Found" in message


@dataclass
class CleanupReport:
    """Outcome of one executor call."""

    identifier: str
    cleaned: int = 0
    already_gone: int = 0
    errors: List[str] = field(default_factory=list)
    skipped: bool = False
    aborted: bool = False

    @property
    def ok(self) -> bool:
        return not self.aborted and not self.errors


class CleanupExecutor:
    """
    Runs cleanup for an identifier against a data manager.

    - Already-completed identifiers are a no-op.
    - Without a token the executor first authenticates with the fallback
      credential; when that fails nothing is deleted.
    - Sessions are deleted before applications, users last.
    - A 404 counts as cleaned; other errors are collected and logged.
    - Afterwards the identifier's entities are forgotten and it is marked
      completed, even when some deletes failed.
    """

    def __init__(self, tracker: EntityTracker, fallback_email: str = "", fallback_password: str = "") -> None:
        self.tracker = tracker
        self.fallback_email = fallback_email
        self.fallback_password = fallback_password
        self.completed: Set[str] = set()
        self._in_progress: Set[str] = set()

    def is_completed(self, identifier: str) -> bool:
        return identifier in self.completed

    async def run(self, identifier: str, data_manager: CleanupDataManager) -> CleanupReport:
        report = CleanupReport(identifier=identifier)

        if identifier in self.completed:
            logger.info(f"ℹ️ Cleanup: Cleanup already completed for {identifier}, skipping")
            report.skipped = True
            return report
        if identifier in self._in_progress:
            logger.info(f"ℹ️ Cleanup: Cleanup already in progress for {identifier}, skipping")
            report.skipped = True
            return report

        self._in_progress.add(identifier)
        try:
            return await self._run(identifier, data_manager, report)
        finally:
            self._in_progress.discard(identifier)

    async def _run(self, identifier: str, data_manager: CleanupDataManager, report: CleanupReport) -> CleanupReport:
        logger.info(f"🧹 Cleanup: Starting cleanup for {identifier}")

        if not data_manager.auth_token:
            logger.info("🔐 Cleanup: Authenticating before cleanup...")
            authenticated = await data_manager.authenticate(self.fallback_email, self.fallback_password)
            if not authenticated:
                logger.error(f"❌ Cleanup: Authentication failed - cannot perform cleanup for {identifier}")
                report.aborted = True
                return report

        deleters: Dict[EntityKind, Callable[[str], Awaitable[None]]] = {
            EntityKind.SESSION: data_manager.delete_session,
            EntityKind.APPLICATION: data_manager.delete_application,
            EntityKind.USER: data_manager.delete_user,
        }

        for kind in DELETION_ORDER:
            for entity in self.tracker.entities(identifier, kind):
                if not entity.id:
                    report.errors.append(f"{entity}: no id to delete")
                    logger.warning(f"⚠️ Cleanup: Cannot delete {entity}, no id")
                    continue
                try:
                    await deleters[kind](entity.id)
                except Exception as exc:
                    if is_not_found(exc):
                        logger.info(f"ℹ️ Cleanup: {entity} already deleted")
                        report.cleaned += 1
                        report.already_gone += 1
                    else:
                        report.errors.append(f"{entity}: {exc}")
                        logger.warning(f"⚠️ Cleanup: Failed to delete {entity}: {exc}")
                else:
                    report.cleaned += 1
                    logger.info(f"✅ Cleanup: Deleted {entity}")

        self.tracker.clear(identifier)
        self.completed.add(identifier)

        logger.info(f"🧹 Cleanup: Completed cleanup for {identifier} - {report.cleaned} entities cleaned")
        if report.errors:
            logger.warning(f"⚠️ Cleanup: {len(report.errors)} cleanup errors: {report.errors}")
        return report
