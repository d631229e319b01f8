"""Per-worker cleanup state and run identity.

A `CleanupContext` is built once per pytest session (one worker process) and
handed to fixtures, so tracking and suite registration live exactly as long as
the worker and can be constructed fresh in unit tests.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from screening_e2e.cleanup_executor import CleanupExecutor, CleanupReport
from screening_e2e.data_manager import CleanupDataManager
from screening_e2e.entities import CleanupStatus, EntityKind, TrackedEntity
from screening_e2e.entity_tracker import EntityLike, EntityTracker
from screening_e2e.suite_tracker import SuitePositionTracker, SuiteRegistration

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RunInfo:
    """Identity of one test, stable across its retries."""

    title_path: Tuple[str, ...]
    test_name: str

    @classmethod
    def from_nodeid(cls, nodeid: str) -> "RunInfo":
        """`path/test_file.py::SuiteClass::test_name[param]` -> title path."""
        parts = tuple(nodeid.split("::"))
        return cls(title_path=parts, test_name=parts[-1])

    @property
    def test_id(self) -> str:
        return " > ".join(self.title_path)

    @property
    def suite_name(self) -> str:
        """The test class when there is one, else the test file."""
        if len(self.title_path) > 2 and self.title_path[1]:
            return self.title_path[1]
        return self.title_path[0]

    @property
    def suite_id(self) -> str:
        return suite_identifier(self.suite_name)


def suite_identifier(suite_name: str) -> str:
    return f"suite_{suite_name}"


class CleanupContext:
    """Entity tracker, suite tracker and executor for one worker."""

    def __init__(
        self,
        fallback_email: str = "",
        fallback_password: str = "",
        count_distinct_tests: bool = False,
    ) -> None:
        self.tracker = EntityTracker()
        self.suites = SuitePositionTracker(count_distinct_tests=count_distinct_tests)
        self.executor = CleanupExecutor(self.tracker, fallback_email, fallback_password)

    def register_test_suite(self, suite_name: str, total_tests: int) -> None:
        """Announce a suite. Logs only.

        The suite total is captured by the first `register_test` call for the
        suite, not here.
        """
        logger.info(f"📝 Suite tracker: Registering suite '{suite_name}' with {total_tests} tests")

    def register_test(self, suite_name: str, test_name: str, total_tests: int) -> SuiteRegistration:
        return self.suites.register_test(suite_name, test_name, total_tests)

    def residual_entities(self) -> Dict[str, List[TrackedEntity]]:
        """Entities still tracked (never cleaned), per identifier."""
        residual: Dict[str, List[TrackedEntity]] = {}
        for identifier in self.tracker.identifiers():
            residual[identifier] = [
                entity
                for kind in EntityKind
                for entity in self.tracker.entities(identifier, kind)
            ]
        return residual

    def clear_suites(self, suite_names: Sequence[str] | None = None) -> None:
        for suite_name in list(suite_names if suite_names is not None else self.suites.suite_names()):
            self.suites.clear_suite(suite_name)


class CleanupHelper:
    """Per-test handle for tracking entities and triggering cleanup by hand.

    Entities go under the per-test identifier unless `identifier` is given;
    suites sharing fixtures across tests pass `helper.suite_id`.
    """

    def __init__(self, context: CleanupContext, data_manager: CleanupDataManager, run: RunInfo) -> None:
        self.context = context
        self.data_manager = data_manager
        self.run = run

    @property
    def test_id(self) -> str:
        return self.run.test_id

    @property
    def suite_id(self) -> str:
        return self.run.suite_id

    def track_user(self, user: EntityLike, identifier: Optional[str] = None) -> TrackedEntity:
        return self.context.tracker.track_user(identifier or self.test_id, user)

    def track_application(self, application: EntityLike, identifier: Optional[str] = None) -> TrackedEntity:
        return self.context.tracker.track_application(identifier or self.test_id, application)

    def track_session(self, session: EntityLike, identifier: Optional[str] = None) -> TrackedEntity:
        return self.context.tracker.track_session(identifier or self.test_id, session)

    def get_cleanup_status(self, identifier: Optional[str] = None) -> CleanupStatus:
        return self.context.tracker.status(identifier or self.test_id)

    async def cleanup_now(self, identifier: Optional[str] = None) -> CleanupReport:
        return await self.context.executor.run(identifier or self.test_id, self.data_manager)
