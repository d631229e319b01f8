"""Root conftest: load the screening E2E plugin and pytester for plugin tests."""

pytest_plugins = ["pytester", "screening_e2e.plugin"]
