"""
Retry- and outcome-aware cleanup policies.

Each test execution (every retry included) ends with exactly one policy
decision: run the cleanup executor for the suite identifier now, or leave the
tracked data in place.

- `LastTestOrFailurePolicy` ("last-or-failure"): the last test of a suite
  always cleans up on its final attempt; any other test only cleans up when
  its final attempt failed.
- `PassOnlyPolicy` ("pass-only"): clean up only when the final attempt
  passed; on a final failure keep everything and log what was preserved.

Cleanup never changes a test result: executor exceptions are logged and
swallowed here.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional, Type

import pytest

from screening_e2e.cleanup_context import CleanupContext, RunInfo
from screening_e2e.cleanup_executor import CleanupReport
from screening_e2e.data_manager import CleanupDataManager
from screening_e2e.entities import CleanupStatus, EntityKind

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    """Outcome of one test attempt."""

    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timedOut"
    SKIPPED = "skipped"
    INTERRUPTED = "interrupted"


def normalize_max_retries(value: Any) -> int:
    """Retry ceiling as a non-negative int; anything unusable counts as 0."""
    if value is None or isinstance(value, bool):
        return 0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    if math.isnan(number) or math.isinf(number) or number < 0:
        return 0
    return int(number)


@dataclass(frozen=True)
class RunOutcome:
    """Runner metadata for one attempt (read-only input)."""

    retry_index: int
    max_retries: Any
    status: RunStatus

    @property
    def normalized_max_retries(self) -> int:
        return normalize_max_retries(self.max_retries)

    @property
    def is_final_retry(self) -> bool:
        return self.retry_index == self.normalized_max_retries

    @property
    def attempt_label(self) -> str:
        return f"{self.retry_index + 1}/{self.normalized_max_retries + 1}"


@dataclass
class CleanupDecision:
    """What the policy decided for one attempt, and what happened."""

    should_cleanup: bool
    reason: str
    is_final_retry: bool
    is_last_test: Optional[bool] = None
    preserved: Optional[CleanupStatus] = None
    report: Optional[CleanupReport] = None
    error: Optional[str] = None


class CleanupPolicy:
    """Base class: subclasses implement `decide`."""

    name = ""
    label = "Cleanup"

    def decide(self, outcome: RunOutcome, is_last_test: bool) -> CleanupDecision:
        raise NotImplementedError

    def needs_suite_position(self) -> bool:
        return False

    async def finalize(
        self,
        outcome: RunOutcome,
        run: RunInfo,
        context: CleanupContext,
        data_manager: CleanupDataManager,
    ) -> CleanupDecision:
        """Evaluate the policy for this attempt and run cleanup if it says so."""
        is_last_test = False
        if self.needs_suite_position():
            is_last_test = context.suites.is_last_test(run.suite_name, run.test_name)

        decision = self.decide(outcome, is_last_test)
        logger.info(
            f"🔍 {self.label}: Suite: {run.suite_name}, Test: {run.test_name}, "
            f"Last: {decision.is_last_test}, Final Retry: {decision.is_final_retry} "
            f"({outcome.attempt_label}), Status: {outcome.status.value}"
        )

        if decision.should_cleanup:
            try:
                decision.report = await context.executor.run(run.suite_id, data_manager)
                logger.info(f"🧹 {self.label}: Cleanup completed for test {run.test_name} ({decision.reason})")
            except Exception as exc:
                decision.error = str(exc)
                logger.error(f"❌ {self.label}: Failed to cleanup test {run.test_name}: {exc}")
        else:
            self.on_skip(outcome, run, context, decision)
        return decision

    def on_skip(self, outcome: RunOutcome, run: RunInfo, context: CleanupContext, decision: CleanupDecision) -> None:
        logger.info(f"ℹ️ {self.label}: Skipping cleanup for test {run.test_name} - {decision.reason}")


class LastTestOrFailurePolicy(CleanupPolicy):
    """Clean up on the last test's final attempt, or on a non-last test's final failure."""

    name = "last-or-failure"
    label = "Enhanced Cleanup"

    def needs_suite_position(self) -> bool:
        return True

    def decide(self, outcome: RunOutcome, is_last_test: bool) -> CleanupDecision:
        final = outcome.is_final_retry
        failed = outcome.status is RunStatus.FAILED
        if is_last_test and final:
            return CleanupDecision(True, "last test", final, is_last_test)
        if not is_last_test and final and failed:
            return CleanupDecision(True, "failed test", final, is_last_test)
        if not final:
            reason = f"retry {outcome.attempt_label}, another attempt may follow"
        else:
            reason = "not last test, deferring to suite end"
        return CleanupDecision(False, reason, final, is_last_test)


class PassOnlyPolicy(CleanupPolicy):
    """Clean up only when the final attempt passed; keep data of failed runs."""

    name = "pass-only"
    label = "Conditional Cleanup"

    def decide(self, outcome: RunOutcome, is_last_test: bool) -> CleanupDecision:
        final = outcome.is_final_retry
        if final and outcome.status is RunStatus.PASSED:
            return CleanupDecision(True, "test passed", final)
        if final:
            return CleanupDecision(False, f"test {outcome.status.value}, keeping resources for debugging", final)
        return CleanupDecision(False, f"retry {outcome.attempt_label}, another attempt may follow", final)

    def on_skip(self, outcome: RunOutcome, run: RunInfo, context: CleanupContext, decision: CleanupDecision) -> None:
        if not decision.is_final_retry:
            super().on_skip(outcome, run, context, decision)
            return

        logger.warning(f"⚠️ {self.label}: KEEPING resources for debugging (test {outcome.status.value})")
        logger.info(f"   🔑 Suite ID used for tracking: {run.suite_id}")
        preserved = context.tracker.status(run.suite_id)
        identifier = run.suite_id
        if preserved.total == 0:
            per_test = context.tracker.status(run.test_id)
            if per_test.total:
                preserved, identifier = per_test, run.test_id
        decision.preserved = preserved

        logger.info(f"   📊 Preserved {preserved.total} resource(s) for debugging under {identifier}: {preserved.as_dict()}")
        session_ids = [entity.id for entity in context.tracker.entities(identifier, EntityKind.SESSION)]
        if session_ids:
            logger.info(f"   📋 Session IDs preserved: {session_ids}")


POLICIES: Dict[str, Type[CleanupPolicy]] = {
    LastTestOrFailurePolicy.name: LastTestOrFailurePolicy,
    PassOnlyPolicy.name: PassOnlyPolicy,
}


def get_policy(name: str) -> CleanupPolicy:
    try:
        return POLICIES[name]()
    except KeyError:
        raise ValueError(f"Unknown cleanup policy {name!r}. Valid policies: {', '.join(POLICIES)}") from None


def status_from_exception(exc: Optional[BaseException]) -> RunStatus:
    """Map the exception a test body raised (or None) to a run status."""
    if exc is None:
        return RunStatus.PASSED
    if isinstance(exc, pytest.skip.Exception):
        return RunStatus.SKIPPED
    if isinstance(exc, (asyncio.CancelledError, KeyboardInterrupt)):
        return RunStatus.INTERRUPTED
    if isinstance(exc, TimeoutError) or type(exc).__name__ == "TimeoutError":
        return RunStatus.TIMED_OUT
    return RunStatus.FAILED


async def run_with_cleanup(
    test_fn: Callable[[], Awaitable[Any]],
    run: RunInfo,
    *,
    retry_index: int,
    max_retries: Any,
    context: CleanupContext,
    data_manager: CleanupDataManager,
    policy: CleanupPolicy,
) -> CleanupDecision:
    """Run a test body, then let the policy decide about cleanup.

    The body's exception, if any, is re-raised after the cleanup decision.
    """
    error: Optional[BaseException] = None
    try:
        await test_fn()
    except BaseException as exc:
        error = exc
        raise
    finally:
        outcome = RunOutcome(retry_index=retry_index, max_retries=max_retries, status=status_from_exception(error))
        decision = await policy.finalize(outcome, run, context, data_manager)
    return decision
