"""Unit tests for the query executor, pool registry and result rendering."""

import asyncio
import datetime

import asyncpg
import pytest

from sqltutor.executor import (
    MULTIPLE_COMMANDS_MESSAGE,
    PoolRegistry,
    QueryExecutor,
    QueryOutcome,
    format_table,
    render_outcome,
)


class FakeStatement:
    def __init__(self, rows, status, error=None):
        self._rows = rows
        self._status = status
        self._error = error

    async def fetch(self, timeout=None):
        if self._error is not None:
            raise self._error
        return self._rows

    def get_statusmsg(self):
        return self._status


class FakeConnection:
    def __init__(self, pool):
        self._pool = pool

    async def prepare(self, sql, timeout=None):
        self._pool.statements.append(sql)
        if self._pool.prepare_error is not None:
            raise self._pool.prepare_error
        return FakeStatement(self._pool.rows, self._pool.status, self._pool.error)

    async def fetch(self, sql, timeout=None):
        self._pool.statements.append(sql)
        return self._pool.rows

    async def execute(self, sql, timeout=None):
        self._pool.executed.append(sql)
        return self._pool.status


class _Acquire:
    def __init__(self, pool):
        self._pool = pool

    async def __aenter__(self):
        return FakeConnection(self._pool)

    async def __aexit__(self, *exc):
        return False


class FakePool:
    def __init__(self, database, rows=None, status="SELECT 0", error=None, prepare_error=None):
        self.database = database
        self.rows = rows or []
        self.status = status
        self.error = error
        self.prepare_error = prepare_error
        self.statements = []
        self.executed = []
        self.closed = False

    def acquire(self):
        return _Acquire(self)

    async def close(self):
        self.closed = True


def _registry(**pool_kwargs):
    created = []

    async def factory(database):
        pool = FakePool(database, **pool_kwargs)
        created.append(pool)
        return pool

    return PoolRegistry(factory), created


# -----------------------------------------------------------------------------
# Registry
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_registry_creates_one_pool_per_database():
    registry, created = _registry()

    first = await registry.get("learning_db")
    again = await registry.get("learning_db")
    other = await registry.get("shop")

    assert first is again
    assert other is not first
    assert [p.database for p in created] == ["learning_db", "shop"]
    assert registry.is_registered("shop")


@pytest.mark.asyncio
async def test_registry_concurrent_lookups_share_pool():
    registry, created = _registry()

    pools = await asyncio.gather(*(registry.get("learning_db") for _ in range(5)))

    assert len(created) == 1
    assert all(p is pools[0] for p in pools)


@pytest.mark.asyncio
async def test_registry_close_all_drains_pools():
    registry, created = _registry()
    await registry.get("a")
    await registry.get("b")

    await registry.close_all()

    assert all(p.closed for p in created)
    assert not registry.is_registered("a")


@pytest.mark.asyncio
async def test_registry_close_one():
    registry, created = _registry()
    await registry.get("a")

    await registry.close("a")
    await registry.close("never-opened")

    assert created[0].closed
    assert not registry.is_registered("a")


# -----------------------------------------------------------------------------
# Execution
# -----------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_execute_returns_rows():
    registry, created = _registry(rows=[{"id": 1, "name": "ada"}], status="SELECT 1")
    executor = QueryExecutor(registry, default_database="learning_db")

    outcome = await executor.execute("SELECT id, name FROM users", "shop")

    assert outcome.ok
    assert outcome.rows == [{"id": 1, "name": "ada"}]
    assert outcome.row_count == 1
    assert created[0].database == "shop"
    assert created[0].statements == ["SELECT id, name FROM users"]


@pytest.mark.asyncio
async def test_execute_reads_row_count_from_status():
    registry, _ = _registry(status="INSERT 0 3")
    executor = QueryExecutor(registry, default_database="learning_db")

    outcome = await executor.execute("INSERT INTO t SELECT generate_series(1, 3)", "learning_db")

    assert outcome.ok
    assert outcome.rows == []
    assert outcome.row_count == 3
    assert outcome.status == "INSERT 0 3"


@pytest.mark.asyncio
async def test_execute_ddl_has_zero_row_count():
    registry, _ = _registry(status="CREATE TABLE")
    executor = QueryExecutor(registry, default_database="learning_db")

    outcome = await executor.execute("CREATE TABLE t (id int)", "learning_db")

    assert outcome.row_count == 0


@pytest.mark.asyncio
async def test_execute_captures_statement_failure():
    registry, _ = _registry(error=asyncio.TimeoutError())
    executor = QueryExecutor(registry, default_database="learning_db", timeout=0.5)

    outcome = await executor.execute("SELECT pg_sleep(10)", "learning_db")

    assert not outcome.ok
    assert outcome.error == "TimeoutError"


@pytest.mark.asyncio
async def test_execute_captures_connection_failure():
    async def factory(database):
        raise ConnectionRefusedError("connection refused")

    executor = QueryExecutor(PoolRegistry(factory), default_database="learning_db")

    outcome = await executor.execute("SELECT 1", "learning_db")

    assert outcome.error == "connection refused"


@pytest.mark.asyncio
async def test_execute_runs_multiple_statements_unprepared():
    sql = "CREATE TABLE t (a int); INSERT INTO t VALUES (1), (2);"
    registry, created = _registry(
        status="INSERT 0 2",
        prepare_error=asyncpg.PostgresSyntaxError(MULTIPLE_COMMANDS_MESSAGE),
    )
    executor = QueryExecutor(registry, default_database="learning_db")

    outcome = await executor.execute(sql, "learning_db")

    assert outcome.ok
    assert outcome.rows == []
    assert outcome.row_count == 2
    assert created[0].executed == [sql]
    assert render_outcome(outcome) == "_Query executed successfully. Rows affected: 2_"


@pytest.mark.asyncio
async def test_execute_reports_other_syntax_errors():
    registry, created = _registry(
        prepare_error=asyncpg.PostgresSyntaxError('syntax error at or near "SELEC"'),
    )
    executor = QueryExecutor(registry, default_database="learning_db")

    outcome = await executor.execute("SELEC 1", "learning_db")

    assert outcome.error == 'syntax error at or near "SELEC"'
    assert created[0].executed == []


@pytest.mark.asyncio
async def test_list_databases_uses_default_database():
    registry, created = _registry(rows=[{"datname": "learning_db"}, {"datname": "shop"}])
    executor = QueryExecutor(registry, default_database="learning_db")

    assert await executor.list_databases() == ["learning_db", "shop"]
    assert created[0].database == "learning_db"


# -----------------------------------------------------------------------------
# Rendering
# -----------------------------------------------------------------------------


def test_format_table():
    rows = [{"id": 1, "name": "ada"}, {"id": 2, "name": None}]

    assert format_table(rows) == (
        "| id | name |\n"
        "| --- | --- |\n"
        "| 1 | ada |\n"
        "| 2 | NULL |"
    )


def test_format_table_serializes_json_and_escapes_pipes():
    rows = [{"doc": {"a": [1, 2]}, "text": "a|b", "day": datetime.date(2024, 1, 2)}]

    table = format_table(rows)

    assert table.splitlines()[2] == '| {"a": [1, 2]} | a\\|b | 2024-01-02 |'


def test_format_table_renders_bytea_as_hex():
    assert format_table([{"b": b"\xff\x00"}]).splitlines()[2] == "| \\xff00 |"


def test_format_table_empty():
    assert format_table([]) == "_No results_"


def test_render_outcome():
    assert render_outcome(QueryOutcome(rows=[{"n": 1}], row_count=1)) == "| n |\n| --- |\n| 1 |"
    assert render_outcome(QueryOutcome(row_count=4)) == (
        "_Query executed successfully. Rows affected: 4_"
    )
