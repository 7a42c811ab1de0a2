"""Services layer - Business logic

This module provides service classes for handling business logic.
Services are initialized with their dependencies and accessed through dependency injection.
"""

from .action_logger import ActionLogger
from .auth_service import (
    AuthService,
    CallbackResult,
    IssuedAccessToken,
    RegistrationClaims,
    RegistrationResult,
    TokenValidation,
)
from .id_provider import IdProvider
from .image_service import ImageService
from .oauth_service import OAuthProviderConfig, OAuthService, ProviderUser, build_provider_configs
from .session_store import MemorySessionStore, PostgresSessionStore, SessionStore

__all__ = [
    "ActionLogger",
    "AuthService",
    "CallbackResult",
    "IdProvider",
    "ImageService",
    "IssuedAccessToken",
    "MemorySessionStore",
    "OAuthProviderConfig",
    "OAuthService",
    "PostgresSessionStore",
    "ProviderUser",
    "RegistrationClaims",
    "RegistrationResult",
    "SessionStore",
    "TokenValidation",
    "build_provider_configs",
]
