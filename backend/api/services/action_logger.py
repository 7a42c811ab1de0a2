"""Audit log of account and token lifecycle events."""

import logging

import asyncpg
from shared.models.action_log import ActionLogKind
from shared.repositories.action_log import ActionLogRepository

logger = logging.getLogger(__name__)


class ActionLogger:
    def __init__(self, repo: ActionLogRepository) -> None:
        self.repo = repo

    async def log(
        self,
        kind: ActionLogKind,
        subject_id: str,
        conn: asyncpg.Connection | None = None,
    ) -> None:
        """Record *kind* for *subject_id*, inside the caller's transaction if given."""
        await self.repo.insert(kind, subject_id, conn=conn)
        logger.info(f"Action {kind} for {subject_id}")
