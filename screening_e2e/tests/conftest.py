"""Pytest fixtures for the cleanup tests: a mock screening API and fresh state."""
import threading

import httpx
import pytest
import pytest_asyncio
from werkzeug.serving import make_server

from screening_e2e.cleanup_context import CleanupContext
from screening_e2e.data_manager import ApiDataManager
from screening_e2e.mock_data_manager import RecordingDataManager
from screening_e2e.mock_screening_api import (
    MOCK_ADMIN_EMAIL,
    MOCK_ADMIN_PASSWORD,
    create_mock_api_app,
    reset_mock_state,
    seed_reference_data,
)


class MockScreeningAPIServer:
    """Wrapper for running the mock screening API in a background thread."""

    def __init__(self, host='127.0.0.1', port=0):
        self.host = host
        self.port = port
        self.app = create_mock_api_app()
        self.server = None
        self.thread = None

    def start(self):
        """Start the mock API server; port 0 picks a free port."""
        self.server = make_server(self.host, self.port, self.app, threaded=True)
        self.port = self.server.server_port
        self.thread = threading.Thread(target=self.server.serve_forever, daemon=True)
        self.thread.start()

    def stop(self):
        if self.server:
            self.server.shutdown()
            self.thread.join(timeout=5)

    @property
    def url(self):
        return f"http://{self.host}:{self.port}"


@pytest.fixture(scope='function')
def mock_api_server():
    """Running mock screening API with seeded reference data."""
    reset_mock_state()
    seed_reference_data()
    server = MockScreeningAPIServer()
    server.start()

    yield server

    server.stop()
    reset_mock_state()


@pytest_asyncio.fixture()
async def api_manager(mock_api_server):
    """Unauthenticated ApiDataManager talking to the mock API."""
    async with httpx.AsyncClient(timeout=5) as client:
        yield ApiDataManager(client, api_url=mock_api_server.url)


@pytest_asyncio.fixture()
async def admin_manager(api_manager):
    """ApiDataManager authenticated as the mock admin."""
    assert await api_manager.authenticate(MOCK_ADMIN_EMAIL, MOCK_ADMIN_PASSWORD)
    return api_manager


@pytest.fixture()
def context():
    return CleanupContext(fallback_email=MOCK_ADMIN_EMAIL, fallback_password=MOCK_ADMIN_PASSWORD)


@pytest.fixture()
def recorder():
    return RecordingDataManager()
