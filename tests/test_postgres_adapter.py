"""Postgres adapter over a mocked psycopg2 connection pool."""

from types import SimpleNamespace
from unittest.mock import call, patch

import pytest

from polydb.adapters.postgres import PostgresAdapter
from polydb.policy.gate import PolicyMode
from polydb.tools.dispatcher import Dispatcher


@pytest.fixture
def pool():
    with patch("polydb.adapters.postgres.ThreadedConnectionPool") as pool_cls:
        yield pool_cls


@pytest.fixture
def adapter(pool):
    return PostgresAdapter("postgresql://app:secret@db/shop", max_connections=4)


@pytest.fixture
def conn(pool):
    return pool.return_value.getconn.return_value


@pytest.fixture
def cur(conn):
    cur = conn.cursor.return_value.__enter__.return_value
    cur.description = None
    cur.fetchall.return_value = []
    return cur


class TestStatements:
    def test_pool_created_from_dsn(self, adapter, pool):
        pool.assert_called_once_with(minconn=1, maxconn=4, dsn="postgresql://app:secret@db/shop")

    def test_query_runs_in_read_only_transaction(self, adapter, pool, conn, cur):
        cur.description = [SimpleNamespace(name="n", type_code=23)]
        cur.fetchall.return_value = [{"n": 1}, {"n": 2}]
        result = adapter.query("SELECT n FROM t")
        assert cur.execute.call_args_list == [call("SET TRANSACTION READ ONLY"), call("SELECT n FROM t")]
        assert result.rows == [{"n": 1}, {"n": 2}]
        assert result.row_count == 2
        assert [(f.name, f.data_type_id) for f in result.fields] == [("n", 23)]
        conn.commit.assert_called_once()
        pool.return_value.putconn.assert_called_once_with(conn)

    def test_explain_runs_in_read_only_transaction(self, adapter, cur):
        cur.description = [SimpleNamespace(name="QUERY PLAN", type_code=114)]
        cur.fetchall.return_value = [{"QUERY PLAN": [{"Plan": {"Node Type": "Seq Scan"}}]}]
        result = adapter.explain_query("SELECT 1")
        assert cur.execute.call_args_list == [
            call("SET TRANSACTION READ ONLY"),
            call("EXPLAIN (FORMAT JSON) SELECT 1", None),
        ]
        assert result.plan == [{"Plan": {"Node Type": "Seq Scan"}}]
        assert result.query == "SELECT 1"

    def test_execute_reads_status_message(self, adapter, cur):
        cur.statusmessage = "DELETE 3"
        cur.rowcount = 3
        result = adapter.execute("DELETE FROM t WHERE a > 1")
        assert (result.command, result.row_count, result.rows) == ("DELETE", 3, None)
        assert cur.execute.call_args_list == [call("DELETE FROM t WHERE a > 1", None)]

    def test_execute_ddl_reports_zero_rows(self, adapter, cur):
        cur.statusmessage = "CREATE TABLE"
        cur.rowcount = -1
        result = adapter.execute("CREATE TABLE t (a int)")
        assert (result.command, result.row_count) == ("CREATE TABLE", 0)

    def test_failure_rolls_back_and_returns_connection(self, adapter, pool, conn, cur):
        cur.execute.side_effect = RuntimeError('relation "t" does not exist')
        with pytest.raises(RuntimeError):
            adapter.execute("DELETE FROM t")
        conn.rollback.assert_called_once()
        conn.commit.assert_not_called()
        pool.return_value.putconn.assert_called_once_with(conn)

    def test_driver_message_reaches_envelope(self, adapter, cur):
        cur.execute.side_effect = RuntimeError('relation "t" does not exist')
        response = Dispatcher(adapter, policy=PolicyMode.READ_WRITE).dispatch("execute", {"statement": "DELETE FROM t"})
        assert response.is_error
        assert response.text == 'Error: relation "t" does not exist'

    @pytest.mark.parametrize("statement", [
        "SELECT E'x\\'' ; DELETE FROM t; -- '",
        "SELECT $a1$'$a1$; DELETE FROM t; --'",
    ])
    def test_smuggled_delete_never_sent(self, adapter, cur, statement):
        response = Dispatcher(adapter, policy=PolicyMode.READ_WRITE).dispatch("query", {"statement": statement})
        assert response.is_error
        cur.execute.assert_not_called()


class TestMetadata:
    def test_missing_table_size_defaults(self, adapter, cur):
        cur.description = [SimpleNamespace(name="rows", type_code=20)]
        size = adapter.get_entity_size("ghost")
        assert (size.schema, size.size, size.size_bytes, size.rows) == ("public", "0 bytes", 0, 0)
        stats = adapter.get_entity_stats("ghost", "sales")
        assert stats.schema == "sales"
        assert (stats.row_count, stats.total_size, stats.table_size, stats.indexes_size) == (
            0, "0 bytes", "0 bytes", "0 bytes",
        )

    def test_size_row(self, adapter, cur):
        cur.description = [SimpleNamespace(name="rows", type_code=20)]
        cur.fetchall.return_value = [
            {"rows": 12, "size_bytes": 16384, "total_size": "16 kB", "table_size": "8192 bytes", "indexes_size": "8192 bytes"},
        ]
        size = adapter.get_entity_size("items")
        assert (size.size, size.size_bytes, size.rows) == ("16 kB", 16384, 12)
        assert cur.execute.call_args.args[1] == ["public", "items"]

    def test_list_tables_uses_scope(self, adapter, cur):
        cur.description = [SimpleNamespace(name="table_name", type_code=25)]
        cur.fetchall.return_value = [{"table_name": "items"}]
        assert adapter.list_entities() == ["items"]
        assert cur.execute.call_args.args[1] == ["public"]
        adapter.list_entities("sales")
        assert cur.execute.call_args.args[1] == ["sales"]

    def test_close(self, adapter, pool):
        adapter.close()
        pool.return_value.closeall.assert_called_once()
