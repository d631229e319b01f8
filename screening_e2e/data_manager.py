"""API-backed test data manager.

Creates and deletes product records (users, applications, sessions) over the
REST API so tests can set up fixtures without clicking through the UI.

Usage:
    async with httpx.AsyncClient(timeout=settings.http_timeout) as client:
        manager = ApiDataManager(client, api_url=settings.api_url)
        await manager.authenticate(settings.admin.email, settings.admin.password)
        created = await manager.create_entities(users=[{"first_name": "Ada"}])
        await manager.delete_user(created["users"][0]["id"])
"""
from __future__ import annotations

import copy
import json
import logging
import random
import time
import uuid
from typing import Any, Dict, Iterable, List, Mapping, Optional, Protocol, runtime_checkable

import httpx

logger = logging.getLogger(__name__)

# Reference records seeded in every environment
DEFAULT_ORGANIZATION_ID = "01971d42-96b6-7003-bcc9-e54006284a7e"
DEFAULT_ROLE_ID = "0196f6c9-da56-7358-84bc-56f0f80b4c19"
DEFAULT_FLAG_COLLECTION_ID = "0196f6c9-e940-7043-b044-14bf92101dd6"
DEFAULT_INCOME_SOURCE_TEMPLATE_ID = "0196f6c9-f62a-715e-adfc-2cd8157e6dee"


class ApiRequestError(Exception):
    """Raised when the product API answers with a non-2xx status."""

    def __init__(self, method: str, url: str, status_code: int, reason: str = "", body: str = "") -> None:
        self.method = method
        self.url = url
        self.status_code = status_code
        self.reason = reason
        self.body = body
        super().__init__(f"{method} {url} failed: {status_code} {reason} {body[:300]}".rstrip())


@runtime_checkable
class CleanupDataManager(Protocol):
    """The part of the data manager the cleanup executor relies on."""

    auth_token: Optional[str]

    async def authenticate(self, email: str, password: str) -> bool: ...

    async def delete_user(self, user_id: str) -> None: ...

    async def delete_application(self, application_id: str) -> None: ...

    async def delete_session(self, session_id: str) -> None: ...

    def get_headers(self) -> Dict[str, str]: ...


class ApiDataManager:
    """Creates/deletes product records and remembers what it created."""

    def __init__(self, client: httpx.AsyncClient, api_url: str) -> None:
        if not api_url:
            raise ValueError("api_url is required (configure API_URL)")
        self.client = client
        self.api_url = api_url.rstrip("/")
        self.auth_token: Optional[str] = None
        self.created: Dict[str, List[Dict[str, Any]]] = {
            "users": [],
            "applications": [],
            "sessions": [],
        }

    # ---- default payloads -------------------------------------------------------
    @staticmethod
    def default_application_settings() -> Dict[str, Any]:
        return {
            "settings.applications.applicant_types": [],
            "settings.applications.pms.pdf.components": [],
            "settings.applications.fast_entry": False,
            "settings.applications.income.ratio.type": "gross",
            "settings.applications.income.ratio.target": 300,
            "settings.applications.income.ratio.target.conditional": 300,
            "settings.applications.income.ratio.guarantor": 500,
            "settings.applications.income.source_template": DEFAULT_INCOME_SOURCE_TEMPLATE_ID,
            "settings.applications.target.enabled": True,
            "settings.applications.target.range.min": 500,
            "settings.applications.target.range.max": 10000,
            "settings.applications.target.required": True,
        }

    @classmethod
    def default_application_data(cls, prefix: str) -> Dict[str, Any]:
        return {
            "name": f"{prefix} Application",
            "enable_verisync_integration": False,
            "organization": DEFAULT_ORGANIZATION_ID,
            "flag_collection": DEFAULT_FLAG_COLLECTION_ID,
            "settings": cls.default_application_settings(),
        }

    @staticmethod
    def default_user_data(prefix: str) -> Dict[str, Any]:
        return {
            "email": f"{prefix}@example.test",
            "first_name": "Auto",
            "last_name": "User",
            "password": "password",
            "password_confirmation": "password",
            "enable_mfa": False,
            "sso_enabled": False,
            "organization": DEFAULT_ORGANIZATION_ID,
            "role": DEFAULT_ROLE_ID,
        }

    @staticmethod
    def merge_with_defaults(defaults: Mapping[str, Any], overrides: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
        """Merge overrides into defaults; nested dicts are merged one level deep."""
        merged = copy.deepcopy(dict(defaults))
        if not overrides:
            return merged
        for key, value in overrides.items():
            if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
                merged[key] = {**merged[key], **value}
            else:
                merged[key] = value
        return merged

    @classmethod
    def create_user_data(cls, prefix: str, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return cls.merge_with_defaults(cls.default_user_data(prefix), overrides)

    @classmethod
    def create_application_data(cls, prefix: str, overrides: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        return cls.merge_with_defaults(cls.default_application_data(prefix), overrides)

    @staticmethod
    def unique_prefix() -> str:
        """Unique prefix for names and emails of created records."""
        return f"autotest-{int(time.time() * 1000)}-{random.randint(0, 999)}"

    # ---- authentication ---------------------------------------------------------
    def set_auth_token(self, token: Optional[str]) -> None:
        self.auth_token = token

    def get_headers(self) -> Dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.auth_token:
            headers["Authorization"] = f"Bearer {self.auth_token}"
        return headers

    async def authenticate(self, email: str, password: str) -> bool:
        """Obtain a bearer token; returns False instead of raising on failure."""
        url = f"{self.api_url}/auth"
        payload = {"email": email, "password": password, "os": "web", "uuid": str(uuid.uuid4())}
        logger.info(f"🔐 Authenticating {email} against {url}")
        try:
            response = await self.client.post(
                url,
                json=payload,
                headers={"Content-Type": "application/json", "Accept": "application/json"},
            )
        except httpx.HTTPError as exc:
            logger.error(f"❌ Authentication error: {exc}")
            return False

        if not response.is_success:
            logger.error(f"❌ Authentication failed: {response.status_code} {response.text[:300]}")
            return False

        try:
            body = response.json()
        except json.JSONDecodeError:
            logger.error("❌ Authentication response is not JSON")
            return False

        token = body.get("token") or body.get("access_token") or (body.get("data") or {}).get("token")
        if not token:
            logger.error("❌ Authentication response carries no token")
            return False

        self.auth_token = token
        logger.info("✅ Authentication successful, token obtained")
        return True

    # ---- low level --------------------------------------------------------------
    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.api_url}{path}"
        response = await self.client.request(method, url, headers=self.get_headers(), **kwargs)
        if not response.is_success:
            raise ApiRequestError(method, url, response.status_code, response.reason_phrase, response.text)
        return response

    async def _create(self, endpoint: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        logger.debug(f"Creating {endpoint} with data: {json.dumps(payload, indent=2, default=str)}")
        response = await self._request("POST", endpoint, json=payload)
        data = response.json().get("data") or {}
        logger.info(f"✅ Created {endpoint.strip('/')} {data.get('id')}")
        return data

    # ---- create -----------------------------------------------------------------
    async def create_entities(
        self,
        users: Optional[Iterable[Mapping[str, Any]]] = None,
        applications: Optional[Iterable[Mapping[str, Any]]] = None,
        sessions: Optional[Iterable[Mapping[str, Any]]] = None,
    ) -> Dict[str, List[Dict[str, Any]]]:
        """Create records in dependency order and return everything created so far."""
        for user in users or []:
            payload = self.create_user_data(self.unique_prefix(), user)
            self.created["users"].append(await self._create("/users", payload))

        for application in applications or []:
            payload = self.create_application_data(self.unique_prefix(), application)
            self.created["applications"].append(await self._create("/applications", payload))

        for session in sessions or []:
            self.created["sessions"].append(await self._create("/sessions", dict(session)))

        return self.created

    # ---- read -------------------------------------------------------------------
    async def get_session(self, session_id: str, fields: Optional[str] = None) -> Dict[str, Any]:
        params = {"fields[session]": fields} if fields else None
        response = await self._request("GET", f"/sessions/{session_id}", params=params)
        return response.json().get("data") or {}

    async def list_entities(self, endpoint: str, params: Optional[Mapping[str, Any]] = None) -> List[Dict[str, Any]]:
        response = await self._request("GET", endpoint, params=params)
        return response.json().get("data") or []

    async def get_roles(self) -> List[Dict[str, Any]]:
        if not self.auth_token:
            raise RuntimeError("Authentication required. Call authenticate() first.")
        roles = await self.list_entities("/roles")
        logger.info(f"✅ Fetched {len(roles)} roles")
        return roles

    async def get_role_by_name(self, role_name: str) -> Optional[Dict[str, Any]]:
        roles = await self.get_roles()
        for role in roles:
            if role.get("name") == role_name:
                logger.info(f"✅ Found role \"{role_name}\" with ID: {role.get('id')}")
                return role
        logger.warning(f"⚠️ Role \"{role_name}\" not found")
        return None

    def get_created(self) -> Dict[str, List[Dict[str, Any]]]:
        return self.created

    def get_entity(self, kind: str, index: int = 0) -> Optional[Dict[str, Any]]:
        entities = self.created.get(kind) or []
        return entities[index] if 0 <= index < len(entities) else None

    # ---- delete -----------------------------------------------------------------
    async def delete_user(self, user_id: str) -> None:
        await self._request("DELETE", f"/users/{user_id}")

    async def delete_application(self, application_id: str) -> None:
        await self._request("DELETE", f"/applications/{application_id}")

    async def delete_session(self, session_id: str) -> None:
        await self._request("DELETE", f"/sessions/{session_id}")

    async def cleanup_all(self) -> None:
        """Best-effort delete of everything this manager created."""
        deleters = (
            ("sessions", self.delete_session),
            ("applications", self.delete_application),
            ("users", self.delete_user),
        )
        for kind, delete in deleters:
            for entity in self.created[kind]:
                try:
                    await delete(entity["id"])
                except (ApiRequestError, httpx.HTTPError) as exc:
                    logger.warning(f"⚠️ Cleanup failed for {kind}/{entity.get('id')}: {exc}")

        self.created = {"users": [], "applications": [], "sessions": []}
