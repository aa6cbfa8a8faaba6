from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional, Sequence

import pymysql
from pymysql.cursors import DictCursor

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
from polydb.adapters.utils import format_bytes, parse_mysql_dsn
from polydb.logging.logger import get_logger

log = get_logger("adapters.mysql")

# information_schema column names come back upper-case on MySQL 8; alias everything.
_LIST_TABLES = (
    "SELECT table_name AS table_name FROM information_schema.tables "
    "WHERE table_schema = %s AND table_type = 'BASE TABLE' ORDER BY table_name"
)

_DESCRIBE_TABLE = """
    SELECT
      column_name AS column_name,
      data_type AS data_type,
      character_maximum_length AS character_maximum_length,
      is_nullable AS is_nullable,
      column_default AS column_default
    FROM information_schema.columns
    WHERE table_schema = %s AND table_name = %s
    ORDER BY ordinal_position
"""

_LIST_SCHEMAS = (
    "SELECT schema_name AS schema_name FROM information_schema.schemata "
    "WHERE schema_name NOT IN ('information_schema', 'mysql', 'performance_schema', 'sys') "
    "ORDER BY schema_name"
)

_INDEXES = """
    SELECT
      s.index_name AS index_name,
      s.index_type AS index_type,
      s.non_unique = 0 AS is_unique,
      GROUP_CONCAT(s.column_name ORDER BY s.seq_in_index) AS columns
    FROM information_schema.statistics s
    WHERE s.table_schema = %s AND s.table_name = %s
    GROUP BY s.index_name, s.index_type, s.non_unique
    ORDER BY s.index_name
"""

_FOREIGN_KEYS = """
    SELECT
      k.constraint_name AS constraint_name,
      k.column_name AS column_name,
      k.referenced_table_schema AS foreign_table_schema,
      k.referenced_table_name AS foreign_table_name,
      k.referenced_column_name AS foreign_column_name
    FROM information_schema.key_column_usage k
    WHERE k.table_schema = %s AND k.table_name = %s AND k.referenced_table_name IS NOT NULL
"""

_SIZE_STATS = """
    SELECT
      table_rows AS row_count,
      data_length AS data_bytes,
      index_length AS index_bytes
    FROM information_schema.tables
    WHERE table_schema = %s AND table_name = %s
"""

_LIST_VIEWS = (
    "SELECT table_name AS table_name FROM information_schema.views "
    "WHERE table_schema = %s ORDER BY table_name"
)

_DESCRIBE_VIEW = (
    "SELECT view_definition AS view_definition FROM information_schema.views "
    "WHERE table_schema = %s AND table_name = %s"
)

_SEARCH_TABLES = (
    "SELECT table_name AS table_name FROM information_schema.tables "
    "WHERE table_schema = %s AND table_type = 'BASE TABLE' AND table_name LIKE %s "
    "ORDER BY table_name"
)

# pymysql.constants.FIELD_TYPE, reversed for readable field metadata
_TYPE_NAMES = {
    0: "DECIMAL", 1: "TINY", 2: "SHORT", 3: "LONG", 4: "FLOAT", 5: "DOUBLE", 6: "NULL",
    7: "TIMESTAMP", 8: "LONGLONG", 9: "INT24", 10: "DATE", 11: "TIME", 12: "DATETIME",
    13: "YEAR", 14: "NEWDATE", 15: "VARCHAR", 16: "BIT", 245: "JSON", 246: "NEWDECIMAL",
    247: "ENUM", 248: "SET", 249: "TINY_BLOB", 250: "MEDIUM_BLOB", 251: "LONG_BLOB",
    252: "BLOB", 253: "VAR_STRING", 254: "STRING", 255: "GEOMETRY",
}


class MySQLAdapter(BackendAdapter):
    """MySQL / MariaDB via PyMySQL.

    A short-lived connection is opened per call; scope defaults to the
    database named in the connection string.
    """

    kind = BackendKind.RELATIONAL
    engine = "mysql"

    def __init__(self, connection_string: str, connect_timeout: int = 10):
        self.config = parse_mysql_dsn(connection_string)
        self.connect_timeout = connect_timeout
        self.default_database: str = self.config.get("database", "")
        log.info(
            "MySQL adapter configured",
            extra={"host": self.config.get("host"), "database": self.default_database},
        )

    @contextmanager
    def _cursor(self, read_only: bool = False) -> Iterator[DictCursor]:
        conn = pymysql.connect(
            cursorclass=DictCursor,
            autocommit=True,
            connect_timeout=self.connect_timeout,
            **self.config,
        )
        try:
            with conn.cursor() as cur:
                if read_only:
                    cur.execute("START TRANSACTION READ ONLY")
                yield cur
            if read_only:
                conn.rollback()
        finally:
            conn.close()

    def _rows(
        self, sql: str, params: Optional[Sequence[Any]] = None, read_only: bool = False
    ) -> List[Dict[str, Any]]:
        with self._cursor(read_only) as cur:
            cur.execute(sql, params)
            return list(cur.fetchall()) if cur.description else []

    def default_scope(self) -> str:
        return self.default_database

    def _scope(self, scope: Optional[str]) -> str:
        return scope or self.default_database

    # -----------------------------
    # statements
    # -----------------------------
    def query(self, statement: str) -> QueryResult:
        with self._cursor(read_only=True) as cur:
            cur.execute(statement)
            rows = list(cur.fetchall()) if cur.description else []
            fields = [
                FieldInfo(name=d[0], data_type=_TYPE_NAMES.get(d[1], "UNKNOWN"), data_type_id=d[1])
                for d in (cur.description or [])
            ]
        return QueryResult(rows=rows, row_count=len(rows), fields=fields)

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        command = (statement.strip().split(None, 1) or [""])[0].upper()
        with self._cursor() as cur:
            affected = cur.execute(statement, params)
            if cur.description:
                rows = list(cur.fetchall())
                return ExecuteResult(command=command, row_count=len(rows), rows=rows)
        return ExecuteResult(command=command, row_count=max(int(affected or 0), 0))

    def explain_query(self, statement: str) -> ExplainResult:
        return ExplainResult(plan=self._rows(f"EXPLAIN {statement}", read_only=True), query=statement)

    # -----------------------------
    # entities
    # -----------------------------
    def list_entities(self, scope: Optional[str] = None) -> List[str]:
        db = self._scope(scope)
        if not db:
            return [next(iter(r.values())) for r in self._rows("SHOW TABLES")]
        return [r["table_name"] for r in self._rows(_LIST_TABLES, [db])]

    def describe_entity(self, name: str, scope: Optional[str] = None) -> TableSchema:
        db = self._scope(scope)
        columns = [ColumnInfo(**r) for r in self._rows(_DESCRIBE_TABLE, [db, name])]
        return TableSchema(table=name, schema=db, columns=columns)

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
                columns=r["columns"].split(",") if r["columns"] else [],
            )
            for r in self._rows(_INDEXES, [self._scope(scope), name])
        ]

    def get_foreign_keys(self, name: str, scope: Optional[str] = None) -> List[ForeignKeyInfo]:
        return [ForeignKeyInfo(**r) for r in self._rows(_FOREIGN_KEYS, [self._scope(scope), name])]

    def _size_row(self, name: str, db: str) -> Dict[str, int]:
        rows = self._rows(_SIZE_STATS, [db, name])
        row = rows[0] if rows else {}
        return {k: int(row.get(k) or 0) for k in ("row_count", "data_bytes", "index_bytes")}

    def get_entity_size(self, name: str, scope: Optional[str] = None) -> TableSizeInfo:
        db = self._scope(scope)
        row = self._size_row(name, db)
        size_bytes = row["data_bytes"] + row["index_bytes"]
        return TableSizeInfo(
            table=name,
            schema=db,
            size=format_bytes(size_bytes),
            size_bytes=size_bytes,
            rows=row["row_count"],
        )

    def get_entity_stats(self, name: str, scope: Optional[str] = None) -> TableStats:
        db = self._scope(scope)
        row = self._size_row(name, db)
        return TableStats(
            table=name,
            schema=db,
            row_count=row["row_count"],
            total_size=format_bytes(row["data_bytes"] + row["index_bytes"]),
            table_size=format_bytes(row["data_bytes"]),
            indexes_size=format_bytes(row["index_bytes"]),
        )

    def list_views(self, scope: Optional[str] = None) -> List[str]:
        return [r["table_name"] for r in self._rows(_LIST_VIEWS, [self._scope(scope)])]

    def describe_view(self, name: str, scope: Optional[str] = None) -> ViewInfo:
        db = self._scope(scope)
        rows = self._rows(_DESCRIBE_VIEW, [db, name])
        return ViewInfo(view=name, schema=db, definition=(rows[0]["view_definition"] if rows else "") or "")
