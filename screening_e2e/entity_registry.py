"""Entity registry for test data lookups.

Resolves reference records (organizations, roles, applications, workflows,
flag collections) by name so suites never hardcode UUIDs.

Usage:
    registry = EntityRegistry()
    await registry.initialize(data_manager)
    role_id = registry.get_id("role", "Centralized Leasing")
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from screening_e2e.data_manager import ApiDataManager, ApiRequestError

logger = logging.getLogger(__name__)

# cache key -> (endpoint, query params)
ENDPOINTS: Dict[str, tuple[str, Dict[str, Any]]] = {
    "organizations": ("/organizations", {"all": "true", "limit": 500}),
    "roles": ("/roles", {"limit": 500}),
    "applications": ("/applications", {"all": "true", "limit": 500}),
    "workflows": ("/workflows", {"limit": 500}),
    "flagCollections": ("/flag-collections", {"limit": 500}),
}

TYPE_ALIASES = {
    "organization": "organizations",
    "organizations": "organizations",
    "role": "roles",
    "roles": "roles",
    "application": "applications",
    "applications": "applications",
    "workflow": "workflows",
    "workflows": "workflows",
    "flagcollection": "flagCollections",
    "flagcollections": "flagCollections",
    "flag-collection": "flagCollections",
    "flag_collection": "flagCollections",
}


class EntityRegistry:
    """Cached name -> entity lookup, loaded once per auth token."""

    def __init__(self) -> None:
        self._cache: Dict[str, List[Dict[str, Any]]] = {}
        self._auth_token: Optional[str] = None
        self.initialized = False

    @property
    def is_initialized(self) -> bool:
        return self.initialized

    async def initialize(self, data_manager: ApiDataManager) -> None:
        """Fetch all entity types concurrently; failed fetches yield empty lists."""
        if self.initialized and self._auth_token == data_manager.auth_token:
            logger.info("📋 Entity registry already initialized")
            return

        logger.info("📋 Initializing entity registry...")
        started = time.monotonic()

        keys = list(ENDPOINTS)
        results = await asyncio.gather(
            *(self._fetch(data_manager, *ENDPOINTS[key]) for key in keys)
        )
        self._cache = dict(zip(keys, results))
        self._auth_token = data_manager.auth_token
        self.initialized = True

        logger.info(f"✅ Entity registry initialized in {time.monotonic() - started:.2f}s")
        for key in keys:
            logger.info(f"   {key}: {len(self._cache[key])}")

    @staticmethod
    async def _fetch(data_manager: ApiDataManager, endpoint: str, params: Dict[str, Any]) -> List[Dict[str, Any]]:
        try:
            return await data_manager.list_entities(endpoint, params)
        except (ApiRequestError, httpx.HTTPError) as exc:
            logger.warning(f"⚠️ Failed to fetch {endpoint}: {exc}")
            return []

    def _resolve_type(self, entity_type: str) -> str:
        key = TYPE_ALIASES.get(entity_type.lower())
        if key is None:
            raise LookupError(
                f"Unknown entity type: {entity_type}. Valid types: {', '.join(sorted(TYPE_ALIASES))}"
            )
        return key

    def _require_initialized(self) -> None:
        if not self.initialized:
            raise RuntimeError("Entity registry not initialized. Call initialize() first.")

    def get(self, entity_type: str, name: str) -> Dict[str, Any]:
        """Entity by type and (case-insensitive) name."""
        self._require_initialized()
        entities = self._cache.get(self._resolve_type(entity_type), [])

        wanted = name.lower()
        for entity in entities:
            entity_name = entity.get("name")
            if entity_name == name or (entity_name or "").lower() == wanted:
                return entity

        available = ", ".join(str(entity.get("name")) for entity in entities[:10])
        more = "..." if len(entities) > 10 else ""
        raise LookupError(f'Entity not found: {entity_type}/"{name}"\nAvailable (first 10): {available}{more}')

    def get_id(self, entity_type: str, name: str) -> str:
        return self.get(entity_type, name)["id"]

    def get_all(self, entity_type: str) -> List[Dict[str, Any]]:
        self._require_initialized()
        return list(self._cache.get(self._resolve_type(entity_type), []))

    def search(self, entity_type: str, term: str) -> List[Dict[str, Any]]:
        """Entities whose name contains `term` (case-insensitive)."""
        needle = term.lower()
        return [entity for entity in self.get_all(entity_type) if needle in (entity.get("name") or "").lower()]

    def stats(self) -> Dict[str, Any]:
        return {
            "initialized": self.initialized,
            "counts": {key: len(self._cache.get(key, [])) for key in ENDPOINTS},
        }

    def clear(self) -> None:
        self._cache = {}
        self._auth_token = None
        self.initialized = False
        logger.info("🧹 Entity registry cleared")
