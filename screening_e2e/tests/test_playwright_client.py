"""PlaywrightClient argument handling (no browser is launched)."""
import pytest

from screening_e2e.playwright_client import PlaywrightClient


def test_rejects_unknown_browser():
    with pytest.raises(ValueError, match="Unsupported browser"):
        PlaywrightClient(browser_type="netscape")


def test_explicit_arguments_win():
    client = PlaywrightClient(browser_type="firefox", headless=False, base_url="https://app.example.test")

    assert client.browser_type == "firefox"
    assert client.headless is False
    assert client.base_url == "https://app.example.test"


def test_properties_require_connection():
    client = PlaywrightClient(browser_type="chromium")

    for name in ("browser", "context", "page"):
        with pytest.raises(RuntimeError, match="not connected"):
            getattr(client, name)


@pytest.mark.asyncio
async def test_pages_and_contexts_require_connection():
    client = PlaywrightClient(browser_type="chromium")

    with pytest.raises(RuntimeError, match="not connected"):
        await client.new_page()
    with pytest.raises(RuntimeError, match="not connected"):
        await client.new_context()


@pytest.mark.asyncio
async def test_close_without_connect_is_harmless():
    client = PlaywrightClient(browser_type="chromium")

    await client.close()
