"""Lightweight migration runner with tracking table."""

from __future__ import annotations

import logging
from pathlib import Path

import asyncpg

logger = logging.getLogger(__name__)

# Default directory for migration SQL files
VERSIONS_DIR = Path(__file__).resolve().parent / "versions"

# Arbitrary key for pg_advisory_lock; serializes runners started by parallel workers
_ADVISORY_LOCK_KEY = 0x7061_7374


class MigrationRunner:
    """Execute and track database migrations.

    Migrations are plain SQL files stored in ``versions/`` named
    ``NNN_description.sql``. Applied versions are recorded in the
    ``schema_migrations`` table so they are never re-applied.
    """

    TRACKING_TABLE = "schema_migrations"

    def __init__(self, pool: asyncpg.Pool) -> None:
        self.pool = pool

    async def ensure_table(self, conn: asyncpg.Connection) -> None:
        """Create the tracking table if it does not exist."""
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.TRACKING_TABLE} (
                version    TEXT PRIMARY KEY,
                name       TEXT NOT NULL,
                applied_at TIMESTAMPTZ DEFAULT NOW()
            )
            """
        )

    async def get_applied(self, conn: asyncpg.Connection) -> set[str]:
        """Return the set of already-applied migration versions."""
        rows = await conn.fetch(f"SELECT version FROM {self.TRACKING_TABLE}")  # noqa: S608
        return {row["version"] for row in rows}

    async def run_pending(self, migrations_dir: Path | None = None) -> list[str]:
        """Apply all pending migrations in filename order.

        Returns the list of newly-applied version strings.
        """
        migrations_dir = migrations_dir or VERSIONS_DIR
        sql_files = sorted(migrations_dir.glob("*.sql"))
        if not sql_files:
            logger.info("No migration files found in %s", migrations_dir)
            return []

        newly_applied: list[str] = []
        async with self.pool.acquire() as conn:
            await conn.execute("SELECT pg_advisory_lock($1)", _ADVISORY_LOCK_KEY)
            try:
                await self.ensure_table(conn)
                applied = await self.get_applied(conn)
                for sql_path in sql_files:
                    version = sql_path.stem
                    if version in applied:
                        logger.debug("Migration %s already applied, skipping", version)
                        continue
                    await self._apply_one(conn, version, sql_path)
                    newly_applied.append(version)
            finally:
                await conn.execute("SELECT pg_advisory_unlock($1)", _ADVISORY_LOCK_KEY)

        if newly_applied:
            logger.info(
                "Applied %d migration(s): %s", len(newly_applied), ", ".join(newly_applied)
            )
        else:
            logger.info("Database is up to date, no pending migrations")
        return newly_applied

    async def _apply_one(self, conn: asyncpg.Connection, version: str, sql_path: Path) -> None:
        """Execute a single migration inside a transaction."""
        logger.info("Applying migration: %s", version)
        sql = sql_path.read_text(encoding="utf-8")
        async with conn.transaction():
            await conn.execute(sql)
            await conn.execute(
                f"INSERT INTO {self.TRACKING_TABLE} (version, name) VALUES ($1, $2)",
                version,
                sql_path.name,
            )
        logger.info("Migration %s applied successfully", version)
