"""Apply the paste auth schema migrations.

Usage:
    python db_migrate.py          # Apply all pending migrations
    python db_migrate.py --dry    # List pending migrations without applying
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

# Ensure backend/ is on sys.path so shared.* is importable
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from dotenv import load_dotenv

from shared.database import DatabaseManager, PoolConfig
from shared.migrations.runner import VERSIONS_DIR, MigrationRunner

# DATABASE_URL lives in the API's .env
load_dotenv(Path(__file__).resolve().parent.parent / "api" / ".env")

logging.basicConfig(level=logging.INFO, format="%(levelname)s: %(message)s")


async def _pending(runner: MigrationRunner) -> list[str]:
    async with runner.pool.acquire() as conn:
        await runner.ensure_table(conn)
        applied = await runner.get_applied(conn)
    return [f.stem for f in sorted(VERSIONS_DIR.glob("*.sql")) if f.stem not in applied]


async def main() -> None:
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        print("ERROR: DATABASE_URL not set. Check api/.env or environment variables.")
        sys.exit(1)

    db = DatabaseManager(
        database_url,
        PoolConfig.for_service("scripts", ssl=os.getenv("DATABASE_SSL", "prefer")),
    )
    await db.connect()

    try:
        runner = MigrationRunner(db.pool)

        if "--dry" in sys.argv:
            pending = await _pending(runner)
            print(f"Pending: {len(pending)}")
            for version in pending:
                print(f"  -> {version}")
            if not pending:
                print("Database is up to date.")
        else:
            newly_applied = await runner.run_pending()
            if not newly_applied:
                print("No pending migrations.")
            else:
                print(f"Applied {len(newly_applied)} migration(s).")
    finally:
        await db.disconnect()


if __name__ == "__main__":
    asyncio.run(main())
