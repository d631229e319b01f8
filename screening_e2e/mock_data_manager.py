"""
In-memory data manager for exercising cleanup without a product API.

Implements the `CleanupDataManager` surface and records every call, so tests
can assert on delete counts and ordering. Individual deletes can be made to
fail with an arbitrary exception.
"""
import logging
from typing import Dict, List, Optional, Tuple

from screening_e2e.data_manager import ApiRequestError

logger = logging.getLogger(__name__)


class RecordingDataManager:
    """Mock data manager recording authenticate/delete calls"""

    def __init__(self, auth_token: Optional[str] = "mock-token", accept_credentials: bool = True):
        self.auth_token = auth_token
        self.accept_credentials = accept_credentials
        self.auth_calls: List[Tuple[str, str]] = []
        self.calls: List[Tuple[str, str]] = []  # (kind, id) in call order
        self._failures: Dict[Tuple[str, str], BaseException] = {}
        logger.debug(f"🎭 RecordingDataManager initialized (token={'set' if auth_token else 'none'})")

    def fail_delete(self, kind: str, entity_id: str, error: Optional[BaseException] = None) -> None:
        """Make the next delete of (kind, id) raise `error` (default: HTTP 500)."""
        if error is None:
            error = ApiRequestError("DELETE", f"/{kind}s/{entity_id}", 500, "Internal Server Error")
        self._failures[(kind, entity_id)] = error

    def fail_delete_not_found(self, kind: str, entity_id: str) -> None:
        self.fail_delete(kind, entity_id, ApiRequestError("DELETE", f"/{kind}s/{entity_id}", 404, "Not Found"))

    async def authenticate(self, email: str, password: str) -> bool:
        self.auth_calls.append((email, password))
        if not self.accept_credentials:
            return False
        self.auth_token = f"mock-token-for-{email}"
        return True

    def get_headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def _delete(self, kind: str, entity_id: str) -> None:
        self.calls.append((kind, entity_id))
        error = self._failures.pop((kind, entity_id), None)
        if error is not None:
            raise error

    async def delete_user(self, user_id: str) -> None:
        await self._delete("user", user_id)

    async def delete_application(self, application_id: str) -> None:
        await self._delete("application", application_id)

    async def delete_session(self, session_id: str) -> None:
        await self._delete("session", session_id)

    def deleted(self, kind: Optional[str] = None) -> List[str]:
        """Ids passed to delete calls, optionally filtered by kind"""
        return [entity_id for call_kind, entity_id in self.calls if kind is None or call_kind == kind]
