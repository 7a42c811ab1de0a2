"""Dependency injection utilities for FastAPI"""

import logging
from datetime import timedelta

from fastapi import Depends, HTTPException, Request
from shared.database import DatabaseManager
from shared.repositories import (
    AccessTokenRepository,
    ActionLogRepository,
    ImageRepository,
    OAuthSessionRepository,
    UserRepository,
)

from core.config import Settings, get_settings
from core.database import get_database_manager
from core.user_context import ANONYMOUS, UserContext, extract_bearer
from services import (
    ActionLogger,
    AuthService,
    IdProvider,
    ImageService,
    MemorySessionStore,
    OAuthService,
    PostgresSessionStore,
    SessionStore,
    build_provider_configs,
)

logger = logging.getLogger(__name__)


# ============================================
# Infrastructure
# ============================================


def get_db() -> DatabaseManager:
    db_manager = get_database_manager()
    if not db_manager.is_connected:
        raise HTTPException(status_code=503, detail="Database not ready")
    return db_manager


_oauth_service: OAuthService | None = None


def get_oauth_service(settings: Settings = Depends(get_settings)) -> OAuthService:
    """Get shared OAuthService singleton (connection reuse)."""
    global _oauth_service
    if _oauth_service is None:
        _oauth_service = OAuthService(
            build_provider_configs(settings),
            timeout=settings.oauth_timeout,
            avatar_max_bytes=settings.avatar_max_bytes,
        )
    return _oauth_service


async def close_oauth_service() -> None:
    """Close the shared OAuthService. Call on app shutdown."""
    global _oauth_service
    if _oauth_service is not None:
        await _oauth_service.close()
        _oauth_service = None


_memory_sessions: MemorySessionStore | None = None


def get_session_store(settings: Settings = Depends(get_settings)) -> SessionStore:
    """Pending-login store. The memory backend is one per process."""
    global _memory_sessions
    if settings.session_backend == "postgres":
        return PostgresSessionStore(
            OAuthSessionRepository(get_db().pool), ttl_seconds=settings.session_ttl_seconds
        )
    if _memory_sessions is None:
        _memory_sessions = MemorySessionStore(ttl_seconds=settings.session_ttl_seconds)
    return _memory_sessions


# ============================================
# Service Dependencies
# ============================================


def get_auth_service(
    settings: Settings = Depends(get_settings),
    db: DatabaseManager = Depends(get_db),
    oauth: OAuthService = Depends(get_oauth_service),
    sessions: SessionStore = Depends(get_session_store),
) -> AuthService:
    """Get AuthService instance (dependency injection)"""
    id_provider = IdProvider(max_attempts=settings.id_max_attempts)
    return AuthService(
        db=db,
        users=UserRepository(db.pool),
        access_tokens=AccessTokenRepository(db.pool),
        oauth=oauth,
        sessions=sessions,
        images=ImageService(ImageRepository(db.pool), id_provider),
        action_logger=ActionLogger(ActionLogRepository(db.pool)),
        id_provider=id_provider,
        client_url=settings.client_url,
        secret_key=settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
        registration_ttl=timedelta(minutes=settings.registration_expire_minutes),
    )


# ============================================
# Authentication Dependencies
# ============================================


def get_presented_token(request: Request, settings: Settings = Depends(get_settings)) -> str | None:
    """Access token from the cookie, else from the Bearer header."""
    cookie = request.cookies.get(settings.access_cookie_name)
    if cookie is not None:
        return cookie
    return extract_bearer(request.headers.get("Authorization"))


async def get_user_context(
    token: str | None = Depends(get_presented_token),
    auth_service: AuthService = Depends(get_auth_service),
) -> UserContext:
    """Resolve the caller. Missing or invalid tokens resolve to anonymous."""
    if token is None:
        return ANONYMOUS
    return await auth_service.resolve_context(token)
