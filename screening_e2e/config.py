"""Shared configuration for the screening E2E suites.

Configuration is read from the process environment with `.env.defaults`
(repository root) as the fallback layer:
- API_URL: product REST API base URL (required for API-backed fixtures)
- APP_URL: web application base URL used by browser pages
- ADMIN_EMAIL / ADMIN_PASSWORD: credential the cleanup falls back to when a
  data manager has no token yet
- TEST_DATA_MODE: AUTO, DYNAMIC or SNAPSHOT (consumed by the data bootstrap)

Call `settings.refresh()` after changing environment variables in-process.
"""
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal, cast
from urllib.parse import urljoin

from screening_e2e.env_defaults import get_env_default

TestDataMode = Literal["AUTO", "DYNAMIC", "SNAPSHOT"]
TEST_DATA_MODES = ("AUTO", "DYNAMIC", "SNAPSHOT")

CLEANUP_POLICIES = ("last-or-failure", "pass-only")


def _env(key: str, default: str | None = None) -> str | None:
    """Environment value > .env.defaults value > default."""
    value = os.getenv(key)
    if value:
        return value
    value = get_env_default(key)
    if value:
        return value
    return default


@dataclass
class AdminCredentials:
    """Credential used by cleanup when a data manager is not authenticated."""

    email: str
    password: str


class E2eTestConfig:
    """Configuration loaded from the environment.

    All values are re-read by `refresh()`, which the plugin calls once per
    session so that `monkeypatch.setenv` in the suite's own tests is honoured.
    """

    def __init__(self) -> None:
        self.refresh()

    def refresh(self) -> None:
        self.api_url: str = (_env("API_URL") or "").rstrip("/")
        self.app_url: str = (_env("APP_URL") or "").rstrip("/")
        self.app_env: str = _env("APP_ENV", "development") or "development"

        self.admin = AdminCredentials(
            email=_env("ADMIN_EMAIL", "") or "",
            password=_env("ADMIN_PASSWORD", "") or "",
        )

        headless_str = _env("PLAYWRIGHT_HEADLESS", "true") or "true"
        self.playwright_headless: bool = headless_str.lower() in {"true", "1"}
        self.playwright_browser: str = _env("PLAYWRIGHT_BROWSER", "chromium") or "chromium"

        timeout_str = _env("E2E_HTTP_TIMEOUT", "30") or "30"
        try:
            self.http_timeout: float = float(timeout_str)
        except ValueError:
            raise ValueError(f"E2E_HTTP_TIMEOUT must be a number of seconds, got {timeout_str!r}")

        mode = (_env("TEST_DATA_MODE", "AUTO") or "AUTO").upper()
        if mode not in TEST_DATA_MODES:
            raise ValueError(
                f"TEST_DATA_MODE={mode!r} is not supported. "
                f"Valid modes: {', '.join(TEST_DATA_MODES)}"
            )
        self.test_data_mode: TestDataMode = cast(TestDataMode, mode)

        policy = _env("CLEANUP_POLICY", "last-or-failure") or "last-or-failure"
        if policy not in CLEANUP_POLICIES:
            raise ValueError(
                f"CLEANUP_POLICY={policy!r} is not supported. "
                f"Valid policies: {', '.join(CLEANUP_POLICIES)}"
            )
        self.cleanup_policy: str = policy

    # ---- helpers ----------------------------------------------------------------
    def require_api_url(self) -> str:
        if not self.api_url:
            raise RuntimeError(
                "API_URL is not configured.\n"
                "Export API_URL or add it to .env.defaults / .env at the repository root."
            )
        return self.api_url

    def url(self, path: str) -> str:
        """Return an absolute API URL for the provided path."""
        return urljoin(self.require_api_url() + "/", path.lstrip("/"))

    def app_page(self, path: str) -> str:
        """Return an absolute web application URL for the provided path."""
        return urljoin(self.app_url + "/", path.lstrip("/"))


# Singleton instance - initialized on first import
settings = E2eTestConfig()
