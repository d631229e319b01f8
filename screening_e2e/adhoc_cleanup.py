"""
Explicit cleanup helpers for suites that manage their own teardown.

Used from module/class-scoped fixtures (the `afterAll` of a suite) when the
suite creates a session or user outside the tracked-entity flow:

    @pytest_asyncio.fixture(scope="module")
    async def applicant_session(...):
        ...
        yield session
        await cleanup_session(data_manager, session["id"], all_tests_passed)

None of these helpers raise; they return True when everything was removed
and log "manual cleanup required" otherwise.
"""
from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx
from playwright.async_api import BrowserContext

from screening_e2e.config import settings
from screening_e2e.data_manager import ApiDataManager, ApiRequestError

logger = logging.getLogger(__name__)


async def authenticate_admin(data_manager: ApiDataManager) -> bool:
    """Authenticate the data manager with the configured admin, unless it has a token."""
    if data_manager.auth_token:
        return True
    return await data_manager.authenticate(settings.admin.email, settings.admin.password)


async def _delete_co_applicants(data_manager: ApiDataManager, session_id: str) -> bool:
    try:
        session = await data_manager.get_session(session_id, fields="id,children")
    except (ApiRequestError, httpx.HTTPError):
        # No details means no known children; the primary delete decides.
        return True

    for child in session.get("children") or []:
        try:
            await data_manager.delete_session(child["id"])
        except (ApiRequestError, httpx.HTTPError) as exc:
            logger.warning(f"⚠️ Failed to delete co-applicant {child['id']}: {exc}")
            return False
    return True


async def _delete_session(data_manager: ApiDataManager, session_id: str) -> bool:
    if not await _delete_co_applicants(data_manager, session_id):
        logger.warning("⚠️ Failed to delete co-applicants")
        return False
    try:
        await data_manager.delete_session(session_id)
    except (ApiRequestError, httpx.HTTPError) as exc:
        logger.warning(f"⚠️ Failed to delete session: {exc}")
        return False
    logger.info("✅ Session deleted")
    return True


async def cleanup_session(data_manager: ApiDataManager, session_id: Optional[str], all_tests_passed: bool = True) -> bool:
    """Delete a session (co-applicants first) if the suite passed; keep it otherwise."""
    if not session_id:
        return True
    if not all_tests_passed:
        logger.info(f"⚠️ Keeping session for debugging: {session_id}")
        return False

    if not await authenticate_admin(data_manager):
        logger.warning(f"⚠️ Manual cleanup required - Session: {session_id}")
        return False
    if not await _delete_session(data_manager, session_id):
        logger.warning(f"⚠️ Manual cleanup required - Session: {session_id}")
        return False
    return True


async def cleanup_application(data_manager: ApiDataManager, application_id: Optional[str], all_tests_passed: bool = True) -> bool:
    """Delete an application if the suite passed; keep it otherwise."""
    if not application_id:
        return True
    if not all_tests_passed:
        logger.info(f"⚠️ Keeping application for debugging: {application_id}")
        return False

    if not await authenticate_admin(data_manager):
        logger.warning(f"⚠️ Manual cleanup required - Application: {application_id}")
        return False
    try:
        await data_manager.delete_application(application_id)
    except (ApiRequestError, httpx.HTTPError) as exc:
        logger.warning(f"⚠️ Failed to delete application: {exc}")
        logger.warning(f"⚠️ Manual cleanup required - Application: {application_id}")
        return False
    logger.info("✅ Application deleted")
    return True


async def cleanup_user(data_manager: Optional[ApiDataManager], user: Optional[Mapping[str, Any]], all_tests_passed: bool = True) -> bool:
    """Delete everything the data manager created (the user included) if the suite passed."""
    if data_manager is None:
        return True
    if not all_tests_passed:
        logger.info(f"⚠️ Keeping user for debugging: {(user or {}).get('email')}")
        return False

    await data_manager.cleanup_all()
    logger.info("✅ User deleted")
    return True


async def close_contexts(*contexts: Optional[BrowserContext]) -> None:
    """Close browser contexts, ignoring ones that are already closed."""
    for context in contexts:
        if context is None:
            continue
        try:
            await context.close()
        except Exception as exc:
            logger.debug(f"Ignoring context close error: {exc}")


async def cleanup_session_and_contexts(
    data_manager: ApiDataManager,
    session_id: Optional[str],
    applicant_context: Optional[BrowserContext] = None,
    admin_context: Optional[BrowserContext] = None,
    all_tests_passed: bool = True,
) -> bool:
    """Session cleanup plus closing the browser contexts of a permission suite."""
    deleted = await cleanup_session(data_manager, session_id, all_tests_passed)
    await close_contexts(applicant_context, admin_context)
    return deleted


async def cleanup_permission_test(
    data_manager: ApiDataManager,
    session_id: Optional[str],
    applicant_context: Optional[BrowserContext] = None,
    admin_context: Optional[BrowserContext] = None,
    user: Optional[Mapping[str, Any]] = None,
    all_tests_passed: bool = True,
) -> bool:
    """Complete cleanup for permission suites.

    The user is always deleted, even when tests failed, so no orphaned users
    keep permissions around. The session follows `all_tests_passed`.
    """
    logger.info("🧹 Starting cleanup...")
    logger.info(f"   Session ID: {session_id}")
    logger.info(f"   User: {(user or {}).get('email') or 'none'}")
    logger.info(f"   All tests passed: {all_tests_passed}")

    user_deleted = True
    if user and user.get("id"):
        user_deleted = False
        manual = f"⚠️ Manual cleanup required - User: {user.get('email')} (ID: {user['id']})"
        if await authenticate_admin(data_manager):
            try:
                await data_manager.delete_user(user["id"])
                user_deleted = True
                logger.info("✅ User deleted")
            except (ApiRequestError, httpx.HTTPError) as exc:
                logger.warning(f"⚠️ Failed to delete user: {exc}")
                logger.warning(manual)
        else:
            logger.warning(manual)

    session_deleted = await cleanup_session_and_contexts(
        data_manager, session_id, applicant_context, admin_context, all_tests_passed
    )
    return user_deleted and session_deleted
