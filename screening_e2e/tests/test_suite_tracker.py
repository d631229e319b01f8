"""Suite position tracker: last-test detection, retries, unregistered suites."""
from screening_e2e.suite_tracker import SuitePositionTracker


def test_only_the_last_registered_test_is_last():
    tracker = SuitePositionTracker()
    answers = []
    for name in ("test_1", "test_2", "test_3"):
        tracker.register_test("Applicant flow", name, 3)
        answers.append(tracker.is_last_test("Applicant flow", name))

    assert answers == [False, False, True]


def test_unregistered_suite_is_never_last():
    assert SuitePositionTracker().is_last_test("Unknown suite", "test_x") is False


def test_first_registration_fixes_the_total():
    tracker = SuitePositionTracker()
    tracker.register_test("Suite", "test_1", 2)
    tracker.register_test("Suite", "test_2", 5)

    info = tracker.suite_info("Suite")
    assert info.total_tests == 2
    assert tracker.is_last_test("Suite", "test_2") is True


def test_retry_registrations_advance_the_count():
    tracker = SuitePositionTracker()
    tracker.register_test("Suite", "test_1", 3)
    tracker.register_test("Suite", "test_1", 3)  # retry of test_1
    tracker.register_test("Suite", "test_2", 3)

    info = tracker.suite_info("Suite")
    assert info.registered_test_names == ["test_1", "test_1", "test_2"]
    assert info.current_count == 3
    # The retry made test_2 look like the last test.
    assert tracker.is_last_test("Suite", "test_2") is True


def test_distinct_counting_ignores_retries():
    tracker = SuitePositionTracker(count_distinct_tests=True)
    tracker.register_test("Suite", "test_1", 3)
    tracker.register_test("Suite", "test_1", 3)
    tracker.register_test("Suite", "test_2", 3)

    assert tracker.suite_info("Suite").current_count == 2
    assert tracker.is_last_test("Suite", "test_2") is False

    tracker.register_test("Suite", "test_3", 3)
    assert tracker.is_last_test("Suite", "test_3") is True


def test_count_past_total_is_not_last():
    tracker = SuitePositionTracker()
    for name in ("test_1", "test_2", "test_2"):
        tracker.register_test("Suite", name, 2)

    assert tracker.is_last_test("Suite", "test_2") is False


def test_clear_suite():
    tracker = SuitePositionTracker()
    tracker.register_test("Suite", "test_1", 1)
    tracker.register_test("Other", "test_1", 1)

    tracker.clear_suite("Suite")

    assert tracker.suite_names() == ["Other"]
    assert tracker.suite_info("Suite") is None
    assert tracker.is_last_test("Suite", "test_1") is False
