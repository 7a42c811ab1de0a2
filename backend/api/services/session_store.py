"""Pending OAuth login state, keyed by an explicit session id.

The only operation the callback needs is ``take_state``: read and clear in a
single step, so two callbacks racing on one session cannot both see the
state.
"""

import logging
from typing import Protocol, runtime_checkable

from cachetools import TTLCache  # type: ignore[import-untyped]
from shared.repositories.oauth_session import OAuthSessionRepository

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionStore(Protocol):
    async def put_state(self, session_id: str, state: str) -> None: ...

    async def take_state(self, session_id: str) -> str | None: ...


class MemorySessionStore:
    """In-process store. Only valid for a single worker process."""

    def __init__(self, ttl_seconds: int = 600, maxsize: int = 10_000) -> None:
        self._states: TTLCache = TTLCache(maxsize=maxsize, ttl=ttl_seconds)

    async def put_state(self, session_id: str, state: str) -> None:
        self._states[session_id] = state

    async def take_state(self, session_id: str) -> str | None:
        # No await between lookup and removal, so this is atomic on the event loop
        return self._states.pop(session_id, None)


class PostgresSessionStore:
    """Store shared by every worker, backed by the oauth_sessions table."""

    def __init__(self, repo: OAuthSessionRepository, ttl_seconds: int = 600) -> None:
        self.repo = repo
        self.ttl_seconds = ttl_seconds

    async def put_state(self, session_id: str, state: str) -> None:
        await self.repo.put_state(session_id, state, self.ttl_seconds)

    async def take_state(self, session_id: str) -> str | None:
        return await self.repo.take_state(session_id, self.ttl_seconds)
