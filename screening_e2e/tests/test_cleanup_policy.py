"""Cleanup policies: decision tables, finalize and run_with_cleanup."""
import asyncio

import pytest

from screening_e2e.cleanup_context import RunInfo
from screening_e2e.cleanup_policy import (
    LastTestOrFailurePolicy,
    PassOnlyPolicy,
    RunOutcome,
    RunStatus,
    get_policy,
    normalize_max_retries,
    run_with_cleanup,
    status_from_exception,
)


def outcome(retry_index, max_retries, status=RunStatus.PASSED):
    return RunOutcome(retry_index=retry_index, max_retries=max_retries, status=status)


def run_in_suite(test_name, suite="Applicant flow"):
    return RunInfo(title_path=("tests/test_applicant.py", suite, test_name), test_name=test_name)


# ---- normalize_max_retries / RunOutcome ---------------------------------------

@pytest.mark.parametrize("value, expected", [
    (2, 2),
    (0, 0),
    ("3", 3),
    (None, 0),
    (float("nan"), 0),
    (float("inf"), 0),
    (-1, 0),
    ("abc", 0),
    (True, 0),
])
def test_normalize_max_retries(value, expected):
    assert normalize_max_retries(value) == expected


def test_unusable_retry_ceiling_makes_first_attempt_final():
    assert outcome(0, float("nan")).is_final_retry
    assert outcome(0, None).is_final_retry
    assert not outcome(1, float("nan")).is_final_retry


@pytest.mark.parametrize("max_retries", [float("nan"), None])
def test_unusable_retry_ceiling_in_both_policies(max_retries):
    assert LastTestOrFailurePolicy().decide(outcome(0, max_retries, RunStatus.FAILED), False).should_cleanup
    assert PassOnlyPolicy().decide(outcome(0, max_retries, RunStatus.PASSED), False).should_cleanup


def test_attempt_label():
    assert outcome(0, 2).attempt_label == "1/3"


# ---- decision tables ----------------------------------------------------------

@pytest.mark.parametrize("retry_index, max_retries, status, is_last, expected", [
    # last test, final attempt: always
    (2, 2, RunStatus.PASSED, True, True),
    (2, 2, RunStatus.FAILED, True, True),
    (0, 0, RunStatus.TIMED_OUT, True, True),
    # last test, earlier attempt: never
    (0, 2, RunStatus.FAILED, True, False),
    # other tests: only a final failure
    (0, 2, RunStatus.FAILED, False, False),
    (2, 2, RunStatus.FAILED, False, True),
    (2, 2, RunStatus.PASSED, False, False),
    (0, 0, RunStatus.TIMED_OUT, False, False),
    (0, 0, RunStatus.SKIPPED, False, False),
])
def test_last_or_failure_decisions(retry_index, max_retries, status, is_last, expected):
    decision = LastTestOrFailurePolicy().decide(outcome(retry_index, max_retries, status), is_last)

    assert decision.should_cleanup is expected
    assert decision.is_last_test is is_last


@pytest.mark.parametrize("retry_index, max_retries, status, expected", [
    (1, 1, RunStatus.PASSED, True),
    (0, 0, RunStatus.PASSED, True),
    (1, 1, RunStatus.FAILED, False),
    (1, 1, RunStatus.TIMED_OUT, False),
    (0, 1, RunStatus.PASSED, False),
    (0, 1, RunStatus.FAILED, False),
])
def test_pass_only_decisions(retry_index, max_retries, status, expected):
    decision = PassOnlyPolicy().decide(outcome(retry_index, max_retries, status), is_last_test=False)

    assert decision.should_cleanup is expected


def test_get_policy():
    assert isinstance(get_policy("last-or-failure"), LastTestOrFailurePolicy)
    assert isinstance(get_policy("pass-only"), PassOnlyPolicy)
    with pytest.raises(ValueError, match="Unknown cleanup policy"):
        get_policy("always")


def test_status_from_exception():
    assert status_from_exception(None) is RunStatus.PASSED
    assert status_from_exception(AssertionError("boom")) is RunStatus.FAILED
    assert status_from_exception(asyncio.TimeoutError()) is RunStatus.TIMED_OUT
    assert status_from_exception(asyncio.CancelledError()) is RunStatus.INTERRUPTED
    assert status_from_exception(KeyboardInterrupt()) is RunStatus.INTERRUPTED

    with pytest.raises(pytest.skip.Exception) as excinfo:
        pytest.skip("not applicable")
    assert status_from_exception(excinfo.value) is RunStatus.SKIPPED

    class TimeoutError(Exception):  # mirrors playwright's own TimeoutError
        pass

    assert status_from_exception(TimeoutError("locator")) is RunStatus.TIMED_OUT


# ---- finalize -----------------------------------------------------------------

@pytest.mark.asyncio
async def test_last_test_cleans_up_the_suite(context, recorder):
    policy = LastTestOrFailurePolicy()
    names = ("test_1", "test_2", "test_3")
    context.tracker.track_user("suite_Applicant flow", {"id": "u1"})
    context.tracker.track_session("suite_Applicant flow", {"id": "s1"})

    decisions = []
    for name in names:
        context.register_test("Applicant flow", name, len(names))
        decisions.append(await policy.finalize(outcome(0, 0), run_in_suite(name), context, recorder))

    assert [decision.should_cleanup for decision in decisions] == [False, False, True]
    assert recorder.calls == [("session", "s1"), ("user", "u1")]
    assert decisions[-1].report.cleaned == 2


@pytest.mark.asyncio
async def test_final_failure_of_middle_test_cleans_up_early(context, recorder):
    policy = LastTestOrFailurePolicy()
    context.tracker.track_user("suite_Applicant flow", {"id": "u1"})

    context.register_test("Applicant flow", "test_1", 3)
    decision = await policy.finalize(outcome(1, 1, RunStatus.FAILED), run_in_suite("test_1"), context, recorder)

    assert decision.should_cleanup
    assert recorder.deleted() == ["u1"]
    assert context.executor.is_completed("suite_Applicant flow")


@pytest.mark.asyncio
async def test_executor_errors_never_propagate(context, recorder, monkeypatch):
    async def broken_run(identifier, data_manager):
        raise RuntimeError("executor exploded")

    monkeypatch.setattr(context.executor, "run", broken_run)
    context.register_test("Applicant flow", "test_1", 1)

    decision = await LastTestOrFailurePolicy().finalize(outcome(0, 0), run_in_suite("test_1"), context, recorder)

    assert decision.should_cleanup
    assert decision.error == "executor exploded"
    assert decision.report is None


@pytest.mark.asyncio
async def test_pass_only_keeps_data_of_final_failure(context, recorder):
    context.tracker.track_user("suite_Applicant flow", {"id": "u1"})
    context.tracker.track_session("suite_Applicant flow", {"id": "s1"})

    decision = await PassOnlyPolicy().finalize(
        outcome(1, 1, RunStatus.FAILED), run_in_suite("test_1"), context, recorder
    )

    assert not decision.should_cleanup
    assert decision.preserved.as_dict() == {"users": 1, "applications": 0, "sessions": 1}
    assert recorder.calls == []
    assert context.tracker.status("suite_Applicant flow").total == 2


@pytest.mark.asyncio
async def test_pass_only_reports_per_test_data_when_suite_is_empty(context, recorder):
    run = run_in_suite("test_1")
    context.tracker.track_session(run.test_id, {"id": "s1"})

    decision = await PassOnlyPolicy().finalize(outcome(0, 0, RunStatus.FAILED), run, context, recorder)

    assert decision.preserved.sessions == 1


@pytest.mark.asyncio
async def test_pass_only_cleans_up_after_final_pass(context, recorder):
    context.tracker.track_user("suite_Applicant flow", {"id": "u1"})

    decision = await PassOnlyPolicy().finalize(outcome(1, 1), run_in_suite("test_1"), context, recorder)

    assert decision.should_cleanup
    assert recorder.deleted() == ["u1"]


@pytest.mark.asyncio
async def test_pass_only_waits_for_further_attempts(context, recorder):
    context.tracker.track_user("suite_Applicant flow", {"id": "u1"})

    decision = await PassOnlyPolicy().finalize(
        outcome(0, 2, RunStatus.FAILED), run_in_suite("test_1"), context, recorder
    )

    assert not decision.should_cleanup
    assert decision.preserved is None
    assert recorder.calls == []


# ---- run_with_cleanup ---------------------------------------------------------

@pytest.mark.asyncio
async def test_run_with_cleanup_passing_body(context, recorder):
    run = run_in_suite("test_1")

    async def body():
        context.tracker.track_user(run.suite_id, {"id": "u1"})

    decision = await run_with_cleanup(
        body, run, retry_index=0, max_retries=0, context=context, data_manager=recorder, policy=PassOnlyPolicy()
    )

    assert decision.should_cleanup
    assert recorder.deleted() == ["u1"]


@pytest.mark.asyncio
async def test_run_with_cleanup_reraises_and_preserves(context, recorder):
    run = run_in_suite("test_1")

    async def body():
        context.tracker.track_user(run.suite_id, {"id": "u1"})
        raise AssertionError("expected failure")

    with pytest.raises(AssertionError, match="expected failure"):
        await run_with_cleanup(
            body, run, retry_index=0, max_retries=0, context=context, data_manager=recorder, policy=PassOnlyPolicy()
        )

    assert recorder.calls == []
    assert context.tracker.status(run.suite_id).users == 1


@pytest.mark.asyncio
async def test_run_with_cleanup_failure_on_final_retry_cleans_up(context, recorder):
    run = run_in_suite("test_1")
    context.register_test(run.suite_name, run.test_name, 3)

    async def body():
        context.tracker.track_application(run.suite_id, {"id": "a1"})
        raise AssertionError("still failing")

    with pytest.raises(AssertionError):
        await run_with_cleanup(
            body, run, retry_index=2, max_retries=2, context=context, data_manager=recorder,
            policy=LastTestOrFailurePolicy(),
        )

    assert recorder.deleted() == ["a1"]


@pytest.mark.asyncio
async def test_run_with_cleanup_skipped_body_is_not_a_failure(context, recorder):
    run = run_in_suite("test_1")
    context.register_test(run.suite_name, run.test_name, 3)

    async def body():
        context.tracker.track_user(run.suite_id, {"id": "u1"})
        pytest.skip("precondition not met")

    with pytest.raises(pytest.skip.Exception):
        await run_with_cleanup(
            body, run, retry_index=0, max_retries=0, context=context, data_manager=recorder,
            policy=LastTestOrFailurePolicy(),
        )

    assert recorder.calls == []
    assert context.tracker.status(run.suite_id).users == 1
