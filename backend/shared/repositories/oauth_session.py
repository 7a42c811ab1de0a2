"""Repository for the oauth_sessions table (pending login state values)."""

from __future__ import annotations

import asyncpg


class OAuthSessionRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def put_state(self, session_id: str, state: str, ttl_seconds: int) -> None:
        """Store the state for a session, replacing any pending one.

        Rows older than *ttl_seconds* are purged on the way.
        """
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                await conn.execute(
                    "DELETE FROM oauth_sessions "
                    "WHERE created_at < NOW() - make_interval(secs => $1)",
                    float(ttl_seconds),
                )
                await conn.execute(
                    """
                    INSERT INTO oauth_sessions (session_id, state)
                    VALUES ($1, $2)
                    ON CONFLICT (session_id) DO UPDATE SET
                        state      = EXCLUDED.state,
                        created_at = NOW()
                    """,
                    session_id,
                    state,
                )

    async def take_state(self, session_id: str, ttl_seconds: int) -> str | None:
        """Atomically read and delete the session's state.

        A second caller racing on the same session always gets ``None``.
        """
        async with self.pool.acquire() as conn:
            row = await conn.fetchrow(
                "DELETE FROM oauth_sessions WHERE session_id = $1 "
                "RETURNING state, created_at >= NOW() - make_interval(secs => $2) AS fresh",
                session_id,
                float(ttl_seconds),
            )
            if row is None or not row["fresh"]:
                return None
            return row["state"]
