"""
Suite position tracking.

Answers "is this the last expected test of its suite" so that shared suite
fixtures are only deleted once the final test has run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class SuiteRegistration:
    """Registered tests for one suite."""

    suite_name: str
    total_tests: int
    registered_test_names: List[str] = field(default_factory=list)
    current_count: int = 0


class SuitePositionTracker:
    """
    Registry of suites and the tests registered in them.

    `register_test` is called once per test execution, retries included.
    With the default `count_distinct_tests=False` every call is appended, so
    a retried test advances `current_count` again (see DESIGN.md). With
    `count_distinct_tests=True` the count reflects distinct test names.
    """

    def __init__(self, count_distinct_tests: bool = False) -> None:
        self.count_distinct_tests = count_distinct_tests
        self._suites: Dict[str, SuiteRegistration] = {}

    def register_test(self, suite_name: str, test_name: str, total_tests: int) -> SuiteRegistration:
        """Register a test execution; the first call for a suite fixes its total."""
        suite = self._suites.get(suite_name)
        if suite is None:
            suite = SuiteRegistration(suite_name=suite_name, total_tests=total_tests)
            self._suites[suite_name] = suite

        suite.registered_test_names.append(test_name)
        if self.count_distinct_tests:
            suite.current_count = len(set(suite.registered_test_names))
        else:
            suite.current_count = len(suite.registered_test_names)

        logger.info(
            f"📝 Suite tracker: Registered test {suite.current_count}/{suite.total_tests} "
            f"in suite '{suite_name}': {test_name}"
        )
        return suite

    def is_last_test(self, suite_name: str, test_name: str) -> bool:
        """True iff the suite's current count equals its declared total.

        Unregistered suites are never "last", so cleanup is deferred.
        """
        suite = self._suites.get(suite_name)
        if suite is None:
            logger.info(f"🔍 Suite tracker: Suite '{suite_name}' not registered, '{test_name}' is NOT LAST")
            return False

        is_last = suite.current_count == suite.total_tests
        logger.info(
            f"🔍 Suite tracker: Test '{test_name}' is {'LAST' if is_last else 'NOT LAST'} "
            f"in suite '{suite_name}' ({suite.current_count}/{suite.total_tests})"
        )
        return is_last

    def suite_info(self, suite_name: str) -> Optional[SuiteRegistration]:
        return self._suites.get(suite_name)

    def suite_names(self) -> List[str]:
        return list(self._suites)

    def clear_suite(self, suite_name: str) -> None:
        self._suites.pop(suite_name, None)
        logger.info(f"🧹 Suite tracker: Cleared suite '{suite_name}'")
