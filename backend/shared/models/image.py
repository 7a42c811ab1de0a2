"""Stored image asset (user avatars)."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


@dataclass
class Image:
    id: str
    content: bytes
    content_type: str
    created_at: datetime | None = None
