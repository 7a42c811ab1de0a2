"""Process-wide database manager for the API."""

import logging

from shared.database import DatabaseManager, PoolConfig

logger = logging.getLogger(__name__)

# Global database manager instance
_db_manager: DatabaseManager | None = None


def get_database_manager() -> DatabaseManager:
    """Get the global database manager instance"""
    if _db_manager is None:
        raise RuntimeError("Database manager not initialized")
    return _db_manager


def init_database_manager(database_url: str, ssl: str = "prefer") -> DatabaseManager:
    """Initialize the global database manager with the API pool preset"""
    global _db_manager
    _db_manager = DatabaseManager(database_url, PoolConfig.for_service("api", ssl=ssl))
    return _db_manager


def reset_database_manager() -> None:
    global _db_manager
    _db_manager = None
