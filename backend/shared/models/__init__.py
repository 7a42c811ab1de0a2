"""Shared data models for the paste service backend."""

from .access_token import LOGIN_SCOPES, AccessToken, ExpiresIn, Scope, expand_scopes
from .action_log import ActionLog, ActionLogKind
from .image import Image
from .user import User, default_user_settings

__all__ = [
    "LOGIN_SCOPES",
    "AccessToken",
    "ActionLog",
    "ActionLogKind",
    "ExpiresIn",
    "Image",
    "Scope",
    "User",
    "default_user_settings",
    "expand_scopes",
]
