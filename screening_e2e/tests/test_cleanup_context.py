"""Run identity and the per-test cleanup helper."""
import pytest

from screening_e2e.cleanup_context import CleanupHelper, RunInfo


def test_run_info_from_class_nodeid():
    run = RunInfo.from_nodeid("tests/test_applicant.py::TestApplicantFlow::test_review[chromium]")

    assert run.test_name == "test_review[chromium]"
    assert run.suite_name == "TestApplicantFlow"
    assert run.suite_id == "suite_TestApplicantFlow"
    assert run.test_id == "tests/test_applicant.py > TestApplicantFlow > test_review[chromium]"


def test_module_level_test_uses_its_file_as_suite():
    run = RunInfo.from_nodeid("tests/test_applicant.py::test_review")

    assert run.suite_name == "tests/test_applicant.py"
    assert run.suite_id == "suite_tests/test_applicant.py"
    assert RunInfo(("tests/test_applicant.py",), "tests/test_applicant.py").suite_name == "tests/test_applicant.py"


def test_register_test_suite_does_not_register(context):
    context.register_test_suite("Applicant flow", 3)

    assert context.suites.suite_info("Applicant flow") is None


def test_residual_entities_and_clear_suites(context):
    context.tracker.track_user("suite_A", {"id": "u1"})
    context.tracker.track_session("suite_A", {"id": "s1"})
    context.register_test("A", "test_1", 2)
    context.register_test("B", "test_1", 1)

    residual = context.residual_entities()
    assert [str(entity) for entity in residual["suite_A"]] == ["user u1", "session s1"]

    context.clear_suites(["A"])
    assert context.suites.suite_names() == ["B"]
    context.clear_suites()
    assert context.suites.suite_names() == []


@pytest.mark.asyncio
async def test_helper_tracks_per_test_by_default(context, recorder):
    run = RunInfo.from_nodeid("tests/test_applicant.py::TestApplicantFlow::test_create")
    helper = CleanupHelper(context, recorder, run)

    helper.track_user({"id": "u1"})
    helper.track_session({"id": "s1"}, helper.suite_id)

    assert helper.get_cleanup_status().users == 1
    assert helper.get_cleanup_status(helper.suite_id).sessions == 1

    report = await helper.cleanup_now()

    assert report.cleaned == 1
    assert recorder.deleted() == ["u1"]
    assert helper.get_cleanup_status(helper.suite_id).sessions == 1
