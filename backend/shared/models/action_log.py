"""Audit log model."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum


class ActionLogKind(StrEnum):
    USER_CREATED = "user_created"
    ACCESS_TOKEN_CREATED = "access_token_created"
    ACCESS_TOKEN_DELETED = "access_token_deleted"


@dataclass
class ActionLog:
    id: int
    kind: ActionLogKind
    subject_id: str
    created_at: datetime | None = None
