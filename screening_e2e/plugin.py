"""pytest plugin wiring test-data cleanup into fixtures.

Suites opt in by requesting `suite_cleanup` (directly or through
`@pytest.mark.usefixtures("suite_cleanup")`). Each attempt of such a test

1. registers itself with the suite position tracker,
2. runs with a `CleanupHelper` for tracking created entities,
3. ends with one cleanup-policy decision based on the attempt index
   (pytest-rerunfailures), the retry ceiling and the call outcome.

Usage:
    @pytest.mark.cleanup_policy("pass-only")
    @pytest.mark.usefixtures("suite_cleanup")
    class TestApplicantFlow:
        @pytest.mark.asyncio
        async def test_create_session(self, data_manager, cleanup_helper):
            created = await data_manager.create_entities(sessions=[{...}])
            cleanup_helper.track_session(created["sessions"][0], cleanup_helper.suite_id)
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Dict, Tuple

import httpx
import pytest
import pytest_asyncio

from screening_e2e.cleanup_context import CleanupContext, CleanupHelper, RunInfo
from screening_e2e.cleanup_policy import CleanupPolicy, RunOutcome, RunStatus, get_policy, status_from_exception
from screening_e2e.config import CLEANUP_POLICIES, E2eTestConfig, settings
from screening_e2e.data_manager import ApiDataManager
from screening_e2e.playwright_client import PlaywrightClient

logger = logging.getLogger(__name__)

phase_report_key = pytest.StashKey[Dict[str, pytest.TestReport]]()
call_status_key = pytest.StashKey[RunStatus]()
suite_totals_key = pytest.StashKey[Dict[str, int]]()
cleanup_context_key = pytest.StashKey[CleanupContext]()


# ============================================================================
# Options, markers, session banner
# ============================================================================

def pytest_addoption(parser):
    group = parser.getgroup("screening-e2e", "screening E2E test data cleanup")
    group.addoption(
        "--cleanup-policy",
        choices=CLEANUP_POLICIES,
        default=None,
        help="Cleanup policy for suite_cleanup tests (default: CLEANUP_POLICY or last-or-failure)",
    )
    group.addoption(
        "--count-distinct-suite-tests",
        action="store_true",
        default=False,
        help="Count distinct test names per suite instead of every registration (retries included)",
    )


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "cleanup_policy(name): cleanup policy for this test/suite (last-or-failure, pass-only)"
    )
    config.addinivalue_line(
        "markers", "suite_tests(total): expected number of tests in this suite (default: collected count)"
    )


def pytest_sessionstart(session):
    settings.refresh()
    logger.info("╔════════════════════════════════════════════════════════════╗")
    logger.info("║           SCREENING E2E SESSION SETUP                      ║")
    logger.info("╚════════════════════════════════════════════════════════════╝")
    logger.info("📋 Environment:")
    logger.info(f"   APP_ENV: {settings.app_env}")
    logger.info(f"   API_URL: {settings.api_url or '(not set)'}")
    logger.info(f"   TEST_DATA_MODE: {settings.test_data_mode}")
    logger.info(f"   CLEANUP_POLICY: {session.config.getoption('cleanup_policy') or settings.cleanup_policy}")


def pytest_collection_finish(session):
    """Count collected `suite_cleanup` tests per suite; the count is the default suite total."""
    totals = Counter(
        RunInfo.from_nodeid(item.nodeid).suite_name
        for item in session.items
        if "suite_cleanup" in getattr(item, "fixturenames", ())
    )
    session.config.stash[suite_totals_key] = dict(totals)


# ============================================================================
# Per-attempt outcome tracking
# ============================================================================

@pytest.hookimpl(tryfirst=True)
def pytest_runtest_setup(item):
    item.stash[phase_report_key] = {}


@pytest.hookimpl(hookwrapper=True)
def pytest_runtest_makereport(item, call):
    outcome = yield
    report = outcome.get_result()
    item.stash.setdefault(phase_report_key, {})[report.when] = report
    if report.when == "call" and report.failed and call.excinfo is not None:
        item.stash[call_status_key] = status_from_exception(call.excinfo.value)


def attempt_status(item: pytest.Item) -> RunStatus:
    """Outcome of the current attempt, read while its fixtures tear down."""
    reports = item.stash.get(phase_report_key, {})
    call = reports.get("call")
    if call is None:
        setup = reports.get("setup")
        if setup is not None and setup.failed:
            return RunStatus.FAILED
        if setup is not None and setup.skipped:
            return RunStatus.SKIPPED
        return RunStatus.INTERRUPTED
    if call.failed:
        return item.stash.get(call_status_key, RunStatus.FAILED)
    if call.skipped:
        return RunStatus.SKIPPED
    return RunStatus.PASSED


def retry_info(item: pytest.Item) -> Tuple[int, Any]:
    """(attempt index, retry ceiling) as reported by pytest-rerunfailures."""
    retry_index = max(getattr(item, "execution_count", 1) - 1, 0)
    marker = item.get_closest_marker("flaky")
    if marker is not None:
        max_retries = marker.kwargs.get("reruns", marker.args[0] if marker.args else 0)
    else:
        max_retries = item.config.getoption("reruns", None)
    return retry_index, max_retries


def policy_for(item: pytest.Item) -> CleanupPolicy:
    marker = item.get_closest_marker("cleanup_policy")
    if marker is not None and marker.args:
        return get_policy(marker.args[0])
    return get_policy(item.config.getoption("cleanup_policy") or settings.cleanup_policy)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(scope="session")
def e2e_settings() -> E2eTestConfig:
    return settings


@pytest.fixture(scope="session")
def cleanup_context(request, e2e_settings) -> CleanupContext:
    """Tracker, suite registry and executor shared by every test of this worker."""
    context = CleanupContext(
        fallback_email=e2e_settings.admin.email,
        fallback_password=e2e_settings.admin.password,
        count_distinct_tests=request.config.getoption("count_distinct_suite_tests"),
    )
    request.config.stash[cleanup_context_key] = context
    return context


@pytest_asyncio.fixture()
async def data_manager(e2e_settings):
    """API data manager; records are not deleted automatically."""
    async with httpx.AsyncClient(timeout=e2e_settings.http_timeout) as client:
        yield ApiDataManager(client, api_url=e2e_settings.require_api_url())


@pytest.fixture()
def test_data() -> Dict[str, Any]:
    """Unique prefix plus default user/application payloads built from it."""
    prefix = ApiDataManager.unique_prefix()
    return {
        "prefix": prefix,
        "user": ApiDataManager.default_user_data(prefix),
        "application": ApiDataManager.default_application_data(prefix),
    }


@pytest.fixture()
def run_info(request) -> RunInfo:
    return RunInfo.from_nodeid(request.node.nodeid)


@pytest.fixture()
def cleanup_helper(cleanup_context, data_manager, run_info) -> CleanupHelper:
    return CleanupHelper(cleanup_context, data_manager, run_info)


@pytest_asyncio.fixture()
async def suite_cleanup(request, cleanup_context, data_manager, run_info, cleanup_helper):
    """Register the attempt in its suite and apply the cleanup policy at teardown."""
    item = request.node
    marker = item.get_closest_marker("suite_tests")
    if marker is not None and marker.args:
        total_tests = int(marker.args[0])
    else:
        total_tests = request.config.stash.get(suite_totals_key, {}).get(run_info.suite_name, 1)
    cleanup_context.register_test(run_info.suite_name, run_info.test_name, total_tests)

    yield cleanup_helper

    retry_index, max_retries = retry_info(item)
    outcome = RunOutcome(retry_index=retry_index, max_retries=max_retries, status=attempt_status(item))
    await policy_for(item).finalize(outcome, run_info, cleanup_context, data_manager)


@pytest_asyncio.fixture()
async def playwright_client(e2e_settings):
    """Playwright client with a default context and page."""
    async with PlaywrightClient(headless=e2e_settings.playwright_headless) as client:
        yield client


@pytest_asyncio.fixture()
async def page(playwright_client):
    return playwright_client.page


# ============================================================================
# Session summary
# ============================================================================

def pytest_terminal_summary(terminalreporter, exitstatus, config):
    context = config.stash.get(cleanup_context_key, None)
    if context is None:
        return
    residual = context.residual_entities()
    if not residual:
        return

    terminalreporter.section("screening e2e: tracked data not cleaned up")
    for identifier, entities in residual.items():
        terminalreporter.line(f"⚠️ {identifier}: {', '.join(str(entity) for entity in entities)}")
        logger.warning(f"⚠️ Residual test data for {identifier}: {[str(entity) for entity in entities]}")
