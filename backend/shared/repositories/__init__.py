"""Shared repository layer for the paste service backend."""

from .access_token import AccessTokenRepository
from .action_log import ActionLogRepository
from .image import ImageRepository
from .oauth_session import OAuthSessionRepository
from .user import UserRepository

__all__ = [
    "AccessTokenRepository",
    "ActionLogRepository",
    "ImageRepository",
    "OAuthSessionRepository",
    "UserRepository",
]
