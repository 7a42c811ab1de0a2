"""Persistence-level exceptions raised by the repositories.

Repositories translate ``asyncpg.UniqueViolationError`` into these so that
callers can tell a primary-key collision (retry with a fresh id) apart from a
natural-key conflict (username or provider identity already registered).
"""

from __future__ import annotations


class IdCollisionError(Exception):
    """The generated primary key is already in use."""

    def __init__(self, table: str, record_id: str) -> None:
        super().__init__(f"id collision on {table}")
        self.table = table
        self.record_id = record_id


class DuplicateRecordError(Exception):
    """A natural unique key (not the primary key) is already taken."""

    def __init__(self, table: str, field: str) -> None:
        super().__init__(f"duplicate {field} on {table}")
        self.table = table
        self.field = field
