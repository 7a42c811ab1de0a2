"""PostgreSQL pool management shared by the API and the maintenance scripts.

Two deployment shapes are supported and told apart by port:
  - direct / session pooling (5432): prepared statements and session settings work
  - PgBouncer transaction pooling (6543): no statement cache, no idle connections
"""

from __future__ import annotations

import asyncio
import logging
import socket
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, fields
from typing import Any, ClassVar
from urllib.parse import urlparse

import asyncpg

logger = logging.getLogger(__name__)

TRANSACTION_POOLER_PORT = 6543


@dataclass
class PoolConfig:
    """Pool sizing, timeouts and retry policy."""

    min_size: int = 1
    max_size: int = 5
    timeout: float = 5.0
    command_timeout: float = 15.0
    max_inactive_connection_lifetime: float = 30.0
    max_retries: int = 3
    retry_delay: float = 3.0
    ssl: str = "prefer"

    _PRESETS: ClassVar[dict[str, dict[str, Any]]] = {
        "api": {"min_size": 0, "max_size": 10},
        "scripts": {"min_size": 1, "max_size": 1, "max_retries": 1},
    }

    @classmethod
    def for_service(cls, service: str, **overrides: Any) -> PoolConfig:
        """Preset for *service* with *overrides* applied; unknown keys are dropped."""
        allowed = {f.name for f in fields(cls)}
        values = {**cls._PRESETS.get(service, {}), **overrides}
        return cls(**{k: v for k, v in values.items() if k in allowed})


@asynccontextmanager
async def use_connection(
    pool: asyncpg.Pool, conn: asyncpg.Connection | None = None
) -> AsyncIterator[asyncpg.Connection]:
    """Yield *conn* when the caller already holds one, else borrow from *pool*.

    Lets repository methods join a transaction opened by a service.
    """
    if conn is not None:
        yield conn
        return
    async with pool.acquire() as acquired:
        yield acquired


def log_connection_diagnostics(database_url: str) -> None:
    """Log DNS resolution and TCP reachability of the database host."""
    parsed = urlparse(database_url)
    host = parsed.hostname or "localhost"
    port = parsed.port or 5432

    try:
        addresses = socket.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except socket.gaierror as e:
        logger.error(f"[DB diag] cannot resolve {host}: {e}")
        return
    logger.info(f"[DB diag] {host} resolves to {sorted({a[4][0] for a in addresses})}")

    family, _, _, _, address = addresses[0]
    try:
        with socket.socket(family, socket.SOCK_STREAM) as sock:
            sock.settimeout(5)
            sock.connect(address)
        logger.info(f"[DB diag] TCP connect to {address[0]}:{port} OK")
    except OSError as e:
        logger.error(f"[DB diag] TCP connect to {address[0]}:{port} failed: {e}")


class DatabaseManager:
    """Owns one asyncpg pool: connect with retry, health check, transactions."""

    def __init__(self, database_url: str, config: PoolConfig | None = None):
        self.database_url = database_url
        self.config = config or PoolConfig()
        self._pool: asyncpg.Pool | None = None
        self.transaction_pooler = urlparse(database_url).port == TRANSACTION_POOLER_PORT

    async def _init_connection(self, conn: asyncpg.Connection) -> None:
        timeout_ms = int(self.config.command_timeout * 1000)
        await conn.execute(f"SET statement_timeout = {timeout_ms}")

    def pool_kwargs(self) -> dict[str, Any]:
        """Keyword arguments for ``asyncpg.create_pool``."""
        cfg = self.config
        kwargs: dict[str, Any] = {
            "dsn": self.database_url,
            "min_size": cfg.min_size,
            "max_size": cfg.max_size,
            "timeout": cfg.timeout,
            "command_timeout": cfg.command_timeout,
            "ssl": cfg.ssl,
            "max_inactive_connection_lifetime": cfg.max_inactive_connection_lifetime,
            "statement_cache_size": 100,
            "init": self._init_connection,
        }
        if self.transaction_pooler:
            # PgBouncer drops session state between transactions
            kwargs.update(
                min_size=0,
                max_inactive_connection_lifetime=0,
                statement_cache_size=0,
                init=None,
            )
        return kwargs

    async def connect(self) -> None:
        """Create the pool, retrying with exponential backoff."""
        if self._pool is not None:
            logger.warning("Database pool already initialized")
            return

        cfg = self.config
        mode = "transaction pooler" if self.transaction_pooler else "session"
        for attempt in range(1, cfg.max_retries + 1):
            try:
                self._pool = await asyncpg.create_pool(**self.pool_kwargs())
                async with self._pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")
                logger.info(f"Database pool ready ({mode}, max_size={cfg.max_size})")
                return
            except (OSError, asyncpg.PostgresError, asyncpg.InterfaceError, TimeoutError) as e:
                if self._pool is not None:
                    await self._pool.close()
                    self._pool = None
                if attempt == cfg.max_retries:
                    logger.error(
                        f"Database connection failed after {attempt} attempts: "
                        f"{type(e).__name__}: {e}"
                    )
                    raise
                delay = cfg.retry_delay * 2 ** (attempt - 1)
                logger.warning(
                    f"Database connection attempt {attempt}/{cfg.max_retries} failed: "
                    f"{type(e).__name__}: {e}, retrying in {delay}s"
                )
                if attempt == 1:
                    log_connection_diagnostics(self.database_url)
                await asyncio.sleep(delay)

    async def disconnect(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()
        logger.info("Database pool closed")

    async def check_health(self) -> bool:
        """True when the pool can run a trivial query."""
        if self._pool is None:
            return False
        try:
            async with self._pool.acquire(timeout=2.0) as conn:
                await conn.fetchval("SELECT 1")
            return True
        except (asyncpg.PostgresError, OSError, TimeoutError):
            return False

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    @property
    def pool(self) -> asyncpg.Pool:
        """The live pool. Raises if ``connect`` has not succeeded."""
        if self._pool is None:
            raise RuntimeError("Database pool not initialized. Call connect() first.")
        return self._pool

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[asyncpg.Connection]:
        """Yield a connection inside a transaction; rolls back on any exception."""
        async with self.pool.acquire() as conn:
            async with conn.transaction():
                yield conn
