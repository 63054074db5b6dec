# =============================================================================
# File: bidroom/infra/persistence/pg_client.py
# =============================================================================
# AsyncPG pool helper. One PostgresClient instance is built at startup and
# passed to the record store, project directory and change feed.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
import pathlib
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional

import asyncpg
from asyncpg.exceptions import PostgresError, UniqueViolationError

from bidroom.common.exceptions.exceptions import ConflictError, InfrastructureError
from bidroom.config.pg_client_config import PostgresConfig, get_postgres_config

log = logging.getLogger("bidroom.infra.pg_client")

# Errors raised when the server or the connection is gone
CONNECTION_ERRORS = (
    PostgresError,
    asyncpg.InterfaceError,
    ConnectionError,
    OSError,
    asyncio.TimeoutError,
)


class PostgresClient:
    """Owns one asyncpg pool and translates driver errors to platform errors."""

    def __init__(self, config: Optional[PostgresConfig] = None, slow_query_threshold_ms: float = 1000.0):
        self._config = config or get_postgres_config()
        self._pool: Optional[asyncpg.Pool] = None
        self._lock = asyncio.Lock()
        self._slow_query_threshold_ms = slow_query_threshold_ms

    @property
    def config(self) -> PostgresConfig:
        return self._config

    @property
    def is_ready(self) -> bool:
        return self._pool is not None and not self._pool.is_closing()

    async def init(self) -> asyncpg.Pool:
        """Create the pool (once) and verify it with a test query."""
        async with self._lock:
            if self.is_ready:
                return self._pool  # type: ignore[return-value]

            async def init_connection(conn):
                """Initialize connection with JSONB codec for automatic dict<->JSONB conversion"""
                await conn.set_type_codec('jsonb', encoder=json.dumps, decoder=json.loads, schema='pg_catalog')

            params = self._config.to_asyncpg_params()
            dsn = params.pop("dsn")
            log.info(f"Initializing PostgreSQL pool (hidden DSN): {dsn.split('@')[-1]}")

            try:
                pool = await asyncpg.create_pool(dsn=dsn, init=init_connection, **params)
                async with pool.acquire() as conn:
                    await conn.fetchval("SELECT 1")
            except CONNECTION_ERRORS as e:
                log.critical(f"Failed to init PostgreSQL pool: {e}", exc_info=True)
                raise InfrastructureError(f"PostgreSQL pool init error: {e}") from e

            self._pool = pool
            log.info(f"PostgreSQL pool ready. Min/Max size: {self._config.min_size}/{self._config.max_size}")
            return pool

    async def close(self) -> None:
        async with self._lock:
            pool, self._pool = self._pool, None
            if pool and not pool.is_closing():
                log.info("Closing PostgreSQL pool...")
                await pool.close()
                log.info("PostgreSQL pool closed.")

    async def _get_pool(self) -> asyncpg.Pool:
        if not self.is_ready:
            await self.init()
        return self._pool  # type: ignore[return-value]

    @asynccontextmanager
    async def acquire(self) -> AsyncIterator[asyncpg.Connection]:
        pool = await self._get_pool()
        try:
            conn = await pool.acquire()
        except CONNECTION_ERRORS as e:
            log.error(f"Connection acquisition failed: {e}")
            raise InfrastructureError(f"PostgreSQL connection error: {e}") from e
        try:
            yield conn
        finally:
            await pool.release(conn)

    @asynccontextmanager
    async def _operation(self, name: str, query: str) -> AsyncIterator[None]:
        start = time.time()
        try:
            yield
        except UniqueViolationError as e:
            raise ConflictError(f"{name}: {e.detail or e}") from e
        except CONNECTION_ERRORS as e:
            log.warning(f"PostgreSQL operation '{name}' failed: {e}")
            raise InfrastructureError(f"PostgreSQL {name} failed: {e}") from e
        finally:
            elapsed_ms = (time.time() - start) * 1000
            if elapsed_ms > self._slow_query_threshold_ms:
                log.warning(f"[SLOW QUERY] {name} took {elapsed_ms:.0f}ms: {query[:120]}")

    async def fetch(self, query: str, *args: Any, timeout: Optional[float] = None) -> List[asyncpg.Record]:
        """Execute the query and return all rows."""
        async with self._operation("fetch", query):
            async with self.acquire() as conn:
                return await conn.fetch(query, *args, timeout=timeout)

    async def fetchrow(self, query: str, *args: Any, timeout: Optional[float] = None) -> Optional[asyncpg.Record]:
        """Execute the query and return the first row (or None)."""
        async with self._operation("fetchrow", query):
            async with self.acquire() as conn:
                return await conn.fetchrow(query, *args, timeout=timeout)

    async def execute(self, query: str, *args: Any, timeout: Optional[float] = None) -> str:
        """Execute the query and return the status string ("UPDATE 1", ...)."""
        async with self._operation("execute", query):
            async with self.acquire() as conn:
                return await conn.execute(query, *args, timeout=timeout)

    async def connect_listener(self) -> asyncpg.Connection:
        """Dedicated connection (outside the pool) for LISTEN."""
        try:
            return await asyncpg.connect(dsn=self._config.get_dsn())
        except CONNECTION_ERRORS as e:
            raise InfrastructureError(f"PostgreSQL listener connection failed: {e}") from e

    async def run_schema_from_file(self, file_path_str: Optional[str] = None) -> None:
        """Execute DDL statements from a SQL file."""
        file_path_str = file_path_str or self._config.schema_file
        path = pathlib.Path(file_path_str)
        if not path.is_file():
            raise FileNotFoundError(f"Schema file not found: {file_path_str}")

        sql = path.read_text(encoding="utf-8").strip()
        if not sql:
            log.warning(f"Schema file {file_path_str} is empty")
            return

        await self.execute(sql)
        log.info(f"Schema applied from {file_path_str}")

    async def health_check(self) -> dict:
        try:
            start = time.time()
            await self.fetchrow("SELECT 1")
            return {"healthy": True, "latency_ms": round((time.time() - start) * 1000, 1)}
        except InfrastructureError as e:
            return {"healthy": False, "error": str(e)}
