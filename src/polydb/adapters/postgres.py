from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

from psycopg2.extras import RealDictCursor
from psycopg2.pool import ThreadedConnectionPool

from polydb.adapters.base import (
    BackendAdapter,
    BackendKind,
    ColumnInfo,
    ExecuteResult,
    ExplainResult,
    FieldInfo,
    ForeignKeyInfo,
    IndexInfo,
    QueryResult,
    TableSchema,
    TableSizeInfo,
    TableStats,
    ViewInfo,
)
from polydb.logging.logger import get_logger

log = get_logger("adapters.postgres")

_LIST_TABLES = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = %s AND table_type = 'BASE TABLE'
    ORDER BY table_name
"""

_DESCRIBE_TABLE = """
    SELECT column_name, data_type, character_maximum_length, is_nullable, column_default
    FROM information_schema.columns
    WHERE table_schema = %s AND table_name = %s
    ORDER BY ordinal_position
"""

_LIST_SCHEMAS = """
    SELECT schema_name
    FROM information_schema.schemata
    WHERE schema_name NOT IN ('pg_catalog', 'information_schema', 'pg_toast')
    ORDER BY schema_name
"""

_INDEXES = """
    SELECT
      i.relname AS index_name,
      am.amname AS index_type,
      ix.indisunique AS is_unique,
      array_agg(a.attname ORDER BY array_position(ix.indkey, a.attnum)) AS columns
    FROM pg_index ix
    JOIN pg_class t ON t.oid = ix.indrelid
    JOIN pg_class i ON i.oid = ix.indexrelid
    JOIN pg_am am ON i.relam = am.oid
    JOIN pg_namespace n ON n.oid = t.relnamespace
    LEFT JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey)
    WHERE n.nspname = %s AND t.relname = %s
    GROUP BY i.relname, am.amname, ix.indisunique
    ORDER BY i.relname
"""

_FOREIGN_KEYS = """
    SELECT
      tc.constraint_name,
      kcu.column_name,
      ccu.table_schema AS foreign_table_schema,
      ccu.table_name AS foreign_table_name,
      ccu.column_name AS foreign_column_name
    FROM information_schema.table_constraints AS tc
    JOIN information_schema.key_column_usage AS kcu
      ON tc.constraint_name = kcu.constraint_name AND tc.table_schema = kcu.table_schema
    JOIN information_schema.constraint_column_usage AS ccu
      ON ccu.constraint_name = tc.constraint_name AND ccu.table_schema = tc.table_schema
    WHERE tc.constraint_type = 'FOREIGN KEY' AND tc.table_schema = %s AND tc.table_name = %s
"""

# pg_stat_user_tables.relid avoids rebuilding a qualified name from text.
_SIZE_STATS = """
    SELECT
      n_live_tup AS rows,
      pg_total_relation_size(relid) AS size_bytes,
      pg_size_pretty(pg_total_relation_size(relid)) AS total_size,
      pg_size_pretty(pg_relation_size(relid)) AS table_size,
      pg_size_pretty(pg_total_relation_size(relid) - pg_relation_size(relid)) AS indexes_size
    FROM pg_stat_user_tables
    WHERE schemaname = %s AND relname = %s
"""

_LIST_VIEWS = """
    SELECT table_name
    FROM information_schema.views
    WHERE table_schema = %s
    ORDER BY table_name
"""

_DESCRIBE_VIEW = """
    SELECT view_definition
    FROM information_schema.views
    WHERE table_schema = %s AND table_name = %s
"""

_SEARCH_TABLES = """
    SELECT table_name
    FROM information_schema.tables
    WHERE table_schema = %s AND table_type = 'BASE TABLE' AND table_name ILIKE %s
    ORDER BY table_name
"""


class PostgresAdapter(BackendAdapter):
    kind = BackendKind.RELATIONAL
    engine = "postgres"

    def __init__(self, connection_string: str, max_connections: int = 10):
        self.pool = ThreadedConnectionPool(minconn=1, maxconn=max_connections, dsn=connection_string)
        log.info("Postgres pool created", extra={"maxconn": max_connections})

    @contextmanager
    def _cursor(self, read_only: bool = False) -> Iterator[RealDictCursor]:
        conn = self.pool.getconn()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                if read_only:
                    # must be the first statement of the transaction
                    cur.execute("SET TRANSACTION READ ONLY")
                yield cur
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            self.pool.putconn(conn)

    def _rows(
        self, sql: str, params: Optional[Sequence[Any]] = None, read_only: bool = False
    ) -> List[Dict[str, Any]]:
        with self._cursor(read_only) as cur:
            cur.execute(sql, params)
            return [dict(r) for r in cur.fetchall()] if cur.description else []

    def default_scope(self) -> str:
        return "public"

    def _scope(self, scope: Optional[str]) -> str:
        return scope or "public"

    # -----------------------------
    # statements
    # -----------------------------
    def query(self, statement: str) -> QueryResult:
        with self._cursor(read_only=True) as cur:
            cur.execute(statement)
            rows = [dict(r) for r in cur.fetchall()] if cur.description else []
            fields = [FieldInfo(name=d.name, data_type_id=d.type_code) for d in (cur.description or [])]
        return QueryResult(rows=rows, row_count=len(rows), fields=fields)

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        with self._cursor() as cur:
            cur.execute(statement, params)
            rows = [dict(r) for r in cur.fetchall()] if cur.description else None
            # statusmessage is e.g. "DELETE 3" / "CREATE TABLE"
            status = cur.statusmessage or ""
            command = " ".join(t for t in status.split() if not t.isdigit()) or status
            affected = max(cur.rowcount, 0)
        return ExecuteResult(command=command, row_count=affected, rows=rows)

    def explain_query(self, statement: str) -> ExplainResult:
        rows = self._rows(f"EXPLAIN (FORMAT JSON) {statement}", read_only=True)
        plan: Any = rows[0].get("QUERY PLAN", rows[0]) if rows else rows
        return ExplainResult(plan=plan if isinstance(plan, list) else [plan], query=statement)

    # -----------------------------
    # entities
    # -----------------------------
    def list_entities(self, scope: Optional[str] = None) -> List[str]:
        return [r["table_name"] for r in self._rows(_LIST_TABLES, [self._scope(scope)])]

    def describe_entity(self, name: str, scope: Optional[str] = None) -> TableSchema:
        s = self._scope(scope)
        columns = [ColumnInfo(**r) for r in self._rows(_DESCRIBE_TABLE, [s, name])]
        return TableSchema(table=name, schema=s, columns=columns)

    def list_scopes(self) -> List[str]:
        return [r["schema_name"] for r in self._rows(_LIST_SCHEMAS)]

    def search_entities(self, pattern: str, scope: Optional[str] = None) -> List[str]:
        return [r["table_name"] for r in self._rows(_SEARCH_TABLES, [self._scope(scope), f"%{pattern}%"])]

    # -----------------------------
    # refinements
    # -----------------------------
    def get_indexes(self, name: str, scope: Optional[str] = None) -> List[IndexInfo]:
        return [
            IndexInfo(
                index_name=r["index_name"],
                index_type=r["index_type"],
                is_unique=bool(r["is_unique"]),
                columns=[c for c in (r["columns"] or []) if c],
            )
            for r in self._rows(_INDEXES, [self._scope(scope), name])
        ]

    def get_foreign_keys(self, name: str, scope: Optional[str] = None) -> List[ForeignKeyInfo]:
        return [ForeignKeyInfo(**r) for r in self._rows(_FOREIGN_KEYS, [self._scope(scope), name])]

    def _size_row(self, name: str, scope: str) -> Dict[str, Any]:
        rows = self._rows(_SIZE_STATS, [scope, name])
        return rows[0] if rows else {}

    def get_entity_size(self, name: str, scope: Optional[str] = None) -> TableSizeInfo:
        s = self._scope(scope)
        row = self._size_row(name, s)
        return TableSizeInfo(
            table=name,
            schema=s,
            size=row.get("total_size") or "0 bytes",
            size_bytes=int(row.get("size_bytes") or 0),
            rows=int(row.get("rows") or 0),
        )

    def get_entity_stats(self, name: str, scope: Optional[str] = None) -> TableStats:
        s = self._scope(scope)
        row = self._size_row(name, s)
        return TableStats(
            table=name,
            schema=s,
            row_count=int(row.get("rows") or 0),
            total_size=row.get("total_size") or "0 bytes",
            table_size=row.get("table_size") or "0 bytes",
            indexes_size=row.get("indexes_size") or "0 bytes",
        )

    def list_views(self, scope: Optional[str] = None) -> List[str]:
        return [r["table_name"] for r in self._rows(_LIST_VIEWS, [self._scope(scope)])]

    def describe_view(self, name: str, scope: Optional[str] = None) -> ViewInfo:
        s = self._scope(scope)
        rows = self._rows(_DESCRIBE_VIEW, [s, name])
        return ViewInfo(view=name, schema=s, definition=(rows[0]["view_definition"] if rows else "") or "")

    def close(self) -> None:
        self.pool.closeall()
