"""Repository for the users table."""

from __future__ import annotations

import json
import logging

import asyncpg

from shared.database import use_connection
from shared.errors import DuplicateRecordError, IdCollisionError
from shared.models.user import User

logger = logging.getLogger(__name__)

_COLUMNS = "id, username, provider_name, provider_external_id, avatar_id, settings, created_at"

# Unique constraint / index names from 000_initial_schema.sql
_CONSTRAINT_FIELDS = {
    "users_username_lower_idx": "username",
    "users_provider_identity_key": "provider_identity",
}


def _row_to_user(row: asyncpg.Record) -> User:
    data = dict(row)
    settings = data.get("settings")
    if isinstance(settings, str):
        data["settings"] = json.loads(settings)
    return User(**data)


class UserRepository:
    """Pure SQL operations for users."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get_by_id(self, user_id: str) -> User | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(f"SELECT {_COLUMNS} FROM users WHERE id = $1", user_id)
            return _row_to_user(row) if row else None

    async def get_by_provider(self, provider_name: str, external_id: str) -> User | None:
        """Find the user bound to an external OAuth identity."""
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM users "
                "WHERE provider_name = $1 AND provider_external_id = $2",
                provider_name,
                external_id,
            )
            return _row_to_user(row) if row else None

    async def exists_by_id(self, user_id: str) -> bool:
        async with self.pool.acquire() as conn:
            return bool(
                await conn.fetchval("SELECT EXISTS(SELECT 1 FROM users WHERE id = $1)", user_id)
            )

    async def exists_by_username(self, username: str) -> bool:
        """Case-insensitive username lookup."""
        async with self.pool.acquire() as conn:
            return bool(
                await conn.fetchval(
                    "SELECT EXISTS(SELECT 1 FROM users WHERE lower(username) = lower($1))",
                    username,
                )
            )

    async def insert(self, user: User, conn: asyncpg.Connection | None = None) -> User:
        """Insert a user.

        Raises ``IdCollisionError`` if the id is taken and
        ``DuplicateRecordError`` if the username or provider identity is.
        """
        async with use_connection(self.pool, conn) as c:
            try:
                # Nested transaction = savepoint, keeps an outer transaction usable
                async with c.transaction():
                    row = await c.fetchrow(
                        f"""
                        INSERT INTO users (id, username, provider_name, provider_external_id,
                                           avatar_id, settings, created_at)
                        VALUES ($1, $2, $3, $4, $5, $6::jsonb, COALESCE($7, NOW()))
                        RETURNING {_COLUMNS}
                        """,
                        user.id,
                        user.username,
                        user.provider_name,
                        user.provider_external_id,
                        user.avatar_id,
                        json.dumps(user.settings),
                        user.created_at,
                    )
            except asyncpg.UniqueViolationError as e:
                field = _CONSTRAINT_FIELDS.get(e.constraint_name or "")
                if field is None:
                    raise IdCollisionError("users", user.id) from e
                raise DuplicateRecordError("users", field) from e

        logger.debug(f"Inserted user {user.id} ({user.provider_name})")
        return _row_to_user(row)
