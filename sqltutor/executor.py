"""
Query execution against Postgres.

One asyncpg pool is kept per database name, created on first use and
closed when the registry is drained. Statement failures are captured
in the returned QueryOutcome instead of being raised, so every query a
user submits ends up in the transcript as either a Result or an Error.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

import asyncpg

from sqltutor.runtime import RuntimeConfig

logger = logging.getLogger(__name__)

PoolFactory = Callable[[str], Awaitable[asyncpg.Pool]]

LIST_DATABASES_SQL = (
    "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname;"
)

# Server error for more than one statement in a prepared statement
MULTIPLE_COMMANDS_MESSAGE = "cannot insert multiple commands into a prepared statement"

_EXECUTION_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError)


# =============================================================================
# Pool Registry
# =============================================================================


class PoolRegistry:
    """
    Connection pools keyed by database name.

    get() creates a pool the first time a database is asked for and
    returns the same pool afterwards. The owner must call close_all()
    on shutdown.

    Args:
        factory: Coroutine function creating a pool for a database name
    """

    def __init__(self, factory: PoolFactory):
        self._factory = factory
        self._pools: dict[str, asyncpg.Pool] = {}
        self._lock = asyncio.Lock()

    async def get(self, database: str) -> asyncpg.Pool:
        """Get the pool for a database, creating it if needed."""
        async with self._lock:
            pool = self._pools.get(database)
            if pool is None:
                pool = await self._factory(database)
                self._pools[database] = pool
                logger.info("Opened connection pool for %s", database)
            return pool

    def is_registered(self, database: str) -> bool:
        return database in self._pools

    async def close(self, database: str) -> None:
        """Close and forget one database's pool. Unknown names are ignored."""
        async with self._lock:
            pool = self._pools.pop(database, None)
        if pool is not None:
            await pool.close()
            logger.info("Closed connection pool for %s", database)

    async def close_all(self) -> None:
        """Close every pool."""
        async with self._lock:
            pools = list(self._pools.items())
            self._pools.clear()
        for database, pool in pools:
            await pool.close()
            logger.info("Closed connection pool for %s", database)


def make_pool_factory(config: RuntimeConfig) -> PoolFactory:
    """Pool factory using the Postgres settings of a runtime config."""

    async def create(database: str) -> asyncpg.Pool:
        return await asyncpg.create_pool(
            host=config.pg_host,
            port=config.pg_port,
            user=config.pg_user,
            password=config.pg_password,
            database=database,
            min_size=1,
            max_size=5,
        )

    return create


# =============================================================================
# Execution
# =============================================================================


@dataclass
class QueryOutcome:
    """Outcome of running one statement."""

    rows: list[dict[str, Any]] = field(default_factory=list)
    row_count: int = 0
    status: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class QueryExecutor:
    """
    Runs user SQL in the database bound to a session.

    Args:
        registry: Pools to run statements on
        default_database: Database used to list databases
        timeout: Seconds a statement may run
    """

    def __init__(self, registry: PoolRegistry, *, default_database: str, timeout: float = 30.0):
        self.registry = registry
        self.default_database = default_database
        self.timeout = timeout

    async def execute(self, sql: str, database: str) -> QueryOutcome:
        """
        Run SQL and collect its rows and row count.

        Several statements separated by semicolons can't be prepared; they
        run through the simple query protocol instead and report only the
        status of the last one.

        Never raises for database or connection failures; those come back
        as an outcome with error set.
        """
        try:
            pool = await self.registry.get(database)
            async with pool.acquire() as conn:
                try:
                    stmt = await conn.prepare(sql, timeout=self.timeout)
                except asyncpg.PostgresSyntaxError as e:
                    if MULTIPLE_COMMANDS_MESSAGE not in str(e):
                        raise
                    logger.debug("Running multi-statement SQL on %s", database)
                    records = []
                    status = await conn.execute(sql, timeout=self.timeout)
                else:
                    records = await stmt.fetch(timeout=self.timeout)
                    status = stmt.get_statusmsg()
        except _EXECUTION_ERRORS as e:
            message = str(e) or type(e).__name__
            logger.warning("Query failed on %s: %s", database, message)
            return QueryOutcome(error=message)

        rows = [dict(record.items()) for record in records]
        return QueryOutcome(
            rows=rows,
            row_count=len(rows) if rows else _status_row_count(status),
            status=status,
        )

    async def list_databases(self) -> list[str]:
        """Names of the non-template databases on the server."""
        pool = await self.registry.get(self.default_database)
        async with pool.acquire() as conn:
            records = await conn.fetch(LIST_DATABASES_SQL, timeout=self.timeout)
        return [record["datname"] for record in records]


def _status_row_count(status: str | None) -> int:
    """Row count from a command tag such as "INSERT 0 3" or "UPDATE 2"."""
    if not status:
        return 0
    last = status.rsplit(" ", 1)[-1]
    return int(last) if last.isdigit() else 0


# =============================================================================
# Rendering
# =============================================================================


def format_table(rows: list[dict[str, Any]]) -> str:
    """
    Render rows as a markdown table.

    Columns come from the first row. NULLs render as "NULL", JSON-like
    values are serialized, and pipes are escaped.
    """
    if not rows:
        return "_No results_"

    columns = list(rows[0].keys())
    header = f"| {' | '.join(columns)} |"
    separator = f"| {' | '.join('---' for _ in columns)} |"
    body = [
        f"| {' | '.join(_format_cell(row.get(col)) for col in columns)} |"
        for row in rows
    ]
    return "\n".join([header, separator, *body])


def _format_cell(value: Any) -> str:
    if value is None:
        return "NULL"
    if isinstance(value, bytes):
        text = bytea_text(value)
    elif isinstance(value, (dict, list)):
        text = json.dumps(value, default=str)
    else:
        text = str(value)
    return text.replace("|", "\\|")


def render_outcome(outcome: QueryOutcome) -> str:
    """Transcript text for a successful statement."""
    if outcome.rows:
        return format_table(outcome.rows)
    return f"_Query executed successfully. Rows affected: {outcome.row_count}_"


def bytea_text(value: bytes) -> str:
    """Render bytea the way psql prints it, e.g. "\\xff00"."""
    return "\\x" + value.hex()
