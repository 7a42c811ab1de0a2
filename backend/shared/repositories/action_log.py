"""Repository for the action_logs audit table."""

from __future__ import annotations

import asyncpg

from shared.database import use_connection
from shared.models.action_log import ActionLog, ActionLogKind


class ActionLogRepository:
    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def insert(
        self,
        kind: ActionLogKind,
        subject_id: str,
        conn: asyncpg.Connection | None = None,
    ) -> ActionLog:
        async with use_connection(self.pool, conn) as c:
            row = await c.fetchrow(
                "INSERT INTO action_logs (kind, subject_id) VALUES ($1, $2) "
                "RETURNING id, kind, subject_id, created_at",
                str(kind),
                subject_id,
            )
        return ActionLog(
            id=row["id"],
            kind=ActionLogKind(row["kind"]),
            subject_id=row["subject_id"],
            created_at=row["created_at"],
        )
