"""Data model for the users table."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


def default_user_settings() -> dict[str, Any]:
    """Settings stored for a freshly registered user."""
    return {
        "default_language": "Text",
        "default_indentation": "spaces",
        "default_indentation_width": 4,
        "show_all_pastes_on_profile": False,
        "public_profile": True,
    }


@dataclass
class User:
    """Registered account, bound to exactly one external OAuth identity."""

    id: str
    username: str
    provider_name: str
    provider_external_id: str
    avatar_id: str | None = None
    settings: dict[str, Any] = field(default_factory=default_user_settings)
    created_at: datetime | None = None
