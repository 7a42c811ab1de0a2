"""Repository for the access_tokens table."""

from __future__ import annotations

import logging

import asyncpg

from shared.database import use_connection
from shared.errors import IdCollisionError
from shared.models.access_token import AccessToken, Scope

logger = logging.getLogger(__name__)

_COLUMNS = "id, token_hash, owner_id, scopes, hidden, description, created_at, expires_at"


def _row_to_token(row: asyncpg.Record) -> AccessToken:
    data = dict(row)
    data["scopes"] = frozenset(Scope(s) for s in data["scopes"] or ())
    return AccessToken(**data)


class AccessTokenRepository:
    """Pure SQL operations for access tokens. Rows hold hashes, never secrets."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def get(self, token_id: str) -> AccessToken | None:
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_COLUMNS} FROM access_tokens WHERE id = $1", token_id
            )
            return _row_to_token(row) if row else None

    async def exists(self, token_id: str) -> bool:
        async with self.pool.acquire() as conn:
            return bool(
                await conn.fetchval(
                    "SELECT EXISTS(SELECT 1 FROM access_tokens WHERE id = $1)", token_id
                )
            )

    async def insert(
        self, token: AccessToken, conn: asyncpg.Connection | None = None
    ) -> AccessToken:
        """Insert a token. Raises ``IdCollisionError`` if the id is taken."""
        async with use_connection(self.pool, conn) as c:
            try:
                async with c.transaction():
                    row = await c.fetchrow(
                        f"""
                        INSERT INTO access_tokens (id, token_hash, owner_id, scopes, hidden,
                                                   description, created_at, expires_at)
                        VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                        RETURNING {_COLUMNS}
                        """,
                        token.id,
                        token.token_hash,
                        token.owner_id,
                        sorted(str(s) for s in token.scopes),
                        token.hidden,
                        token.description,
                        token.created_at,
                        token.expires_at,
                    )
            except asyncpg.UniqueViolationError as e:
                raise IdCollisionError("access_tokens", token.id) from e
        return _row_to_token(row)

    async def delete(self, token_id: str, conn: asyncpg.Connection | None = None) -> bool:
        """Delete a token. Deleting a missing token is a no-op returning False."""
        async with use_connection(self.pool, conn) as c:
            result = await c.execute("DELETE FROM access_tokens WHERE id = $1", token_id)
            return result == "DELETE 1"

    async def list_visible_for_owner(self, owner_id: str) -> list[AccessToken]:
        """Return the owner's self-service tokens (hidden login tokens excluded)."""
        async with self.pool.acquire() as conn:
            rows = await conn.fetch(
                f"SELECT {_COLUMNS} FROM access_tokens "
                "WHERE owner_id = $1 AND hidden = FALSE ORDER BY created_at",
                owner_id,
            )
            return [_row_to_token(r) for r in rows]
