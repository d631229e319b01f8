"""End-to-end test support for the applicant screening product.

The package carries the pieces shared by every browser/API suite: the test
data lifecycle (tracking, suite position, cleanup policy and execution), the
REST data manager and the pytest plugin wiring them into fixtures.
"""

__version__ = "1.0.0"
