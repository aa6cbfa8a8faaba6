from __future__ import annotations

from typing import Any, List, Optional, Sequence
import os
import sqlite3
import threading

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
from polydb.adapters.utils import dialect_for, format_bytes, strip_scheme
from polydb.logging.logger import get_logger

log = get_logger("adapters.sqlite")


class SQLiteAdapter(BackendAdapter):
    """SQLite through the stdlib driver.

    Under read-only policy the file is opened with mode=ro and query_only so
    the engine itself refuses writes as well. One connection is shared across
    worker threads, serialized by a lock.
    """

    kind = BackendKind.RELATIONAL
    engine = "sqlite"

    def __init__(self, connection_string: str, read_only: bool = True):
        self.path = strip_scheme(connection_string, "sqlite")
        self.read_only = read_only
        self.dialect = dialect_for(self.engine)
        self._lock = threading.Lock()

        if read_only and self.path != ":memory:":
            if not os.path.exists(self.path):
                raise sqlite3.OperationalError(f"Database not found and read-only open requested: {self.path}")
            self.conn = sqlite3.connect(f"file:{self.path}?mode=ro", uri=True, check_same_thread=False)
        else:
            self.conn = sqlite3.connect(self.path, check_same_thread=False, isolation_level=None)
        self.conn.row_factory = sqlite3.Row
        if read_only:
            self.conn.execute("PRAGMA query_only=ON")
        log.info("SQLite opened", extra={"path": self.path, "read_only": read_only})

    # -----------------------------
    # helpers
    # -----------------------------
    def _all(self, sql: str, params: Sequence[Any] = ()) -> List[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, tuple(params)).fetchall()

    def _one(self, sql: str, params: Sequence[Any] = ()) -> Optional[sqlite3.Row]:
        with self._lock:
            return self.conn.execute(sql, tuple(params)).fetchone()

    def default_scope(self) -> str:
        return "main"

    def _scope(self, scope: Optional[str]) -> str:
        # "public" is the cross-engine default the catalog advertises; sqlite calls it main.
        if not scope or scope == "public":
            return "main"
        return scope

    def _master(self, scope: str) -> str:
        if scope == "temp":
            return "sqlite_temp_master"
        return f"{self.dialect.ident(scope)}.sqlite_master"

    # -----------------------------
    # statements
    # -----------------------------
    def query(self, statement: str) -> QueryResult:
        with self._lock:
            cur = self.conn.execute(statement)
            rows = [dict(r) for r in cur.fetchall()]
            fields = [FieldInfo(name=d[0]) for d in (cur.description or [])]
        return QueryResult(rows=rows, row_count=len(rows), fields=fields)

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        command = (statement.strip().split(None, 1) or [""])[0].upper()
        with self._lock:
            cur = self.conn.execute(statement, tuple(params or ()))
            rows = [dict(r) for r in cur.fetchall()] if cur.description else None
            affected = cur.rowcount if cur.rowcount and cur.rowcount > 0 else 0
        return ExecuteResult(command=command, row_count=affected, rows=rows)

    def explain_query(self, statement: str) -> ExplainResult:
        rows = self._all(f"EXPLAIN QUERY PLAN {statement}")
        return ExplainResult(plan=[dict(r) for r in rows], query=statement)

    # -----------------------------
    # entities
    # -----------------------------
    def list_entities(self, scope: Optional[str] = None) -> List[str]:
        s = self._scope(scope)
        rows = self._all(
            f"SELECT name FROM {self._master(s)} "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [r["name"] for r in rows]

    def describe_entity(self, name: str, scope: Optional[str] = None) -> TableSchema:
        s = self._scope(scope)
        rows = self._all(f"PRAGMA {self.dialect.ident(s)}.table_info({self.dialect.ident(name)})")
        columns = [
            ColumnInfo(
                column_name=r["name"],
                data_type=r["type"] or "TEXT",
                is_nullable="NO" if r["notnull"] else "YES",
                character_maximum_length=None,
                column_default=r["dflt_value"],
            )
            for r in rows
        ]
        return TableSchema(table=name, schema=s, columns=columns)

    def list_scopes(self) -> List[str]:
        return [r["name"] or "main" for r in self._all("PRAGMA database_list")]

    def search_entities(self, pattern: str, scope: Optional[str] = None) -> List[str]:
        s = self._scope(scope)
        rows = self._all(
            f"SELECT name FROM {self._master(s)} "
            "WHERE type = 'table' AND name NOT LIKE 'sqlite_%' AND name LIKE ? ORDER BY name",
            (f"%{pattern}%",),
        )
        return [r["name"] for r in rows]

    # -----------------------------
    # refinements
    # -----------------------------
    def get_indexes(self, name: str, scope: Optional[str] = None) -> List[IndexInfo]:
        s = self._scope(scope)
        q = self.dialect.ident(s)
        out: List[IndexInfo] = []
        for idx in self._all(f"PRAGMA {q}.index_list({self.dialect.ident(name)})"):
            if idx["name"].startswith("sqlite_"):
                continue
            cols = self._all(f"PRAGMA {q}.index_info({self.dialect.ident(idx['name'])})")
            unique = bool(idx["unique"])
            out.append(
                IndexInfo(
                    index_name=idx["name"],
                    index_type="UNIQUE" if unique else "BTREE",
                    is_unique=unique,
                    columns=[c["name"] for c in cols],
                )
            )
        return out

    def get_foreign_keys(self, name: str, scope: Optional[str] = None) -> List[ForeignKeyInfo]:
        s = self._scope(scope)
        rows = self._all(f"PRAGMA {self.dialect.ident(s)}.foreign_key_list({self.dialect.ident(name)})")
        return [
            ForeignKeyInfo(
                constraint_name=f"fk_{name}_{r['from']}",
                column_name=r["from"],
                foreign_table_schema="",
                foreign_table_name=r["table"] or "",
                foreign_column_name=r["to"] or "",
            )
            for r in rows
        ]

    def _row_count(self, name: str, scope: str) -> int:
        row = self._one(f"SELECT COUNT(*) AS n FROM {self.dialect.qualified(scope, name)}")
        return int(row["n"]) if row else 0

    def _database_bytes(self, scope: str) -> int:
        q = self.dialect.ident(scope)
        page_size = self._one(f"PRAGMA {q}.page_size")
        page_count = self._one(f"PRAGMA {q}.page_count")
        return int(page_size[0] if page_size else 4096) * int(page_count[0] if page_count else 0)

    def get_entity_size(self, name: str, scope: Optional[str] = None) -> TableSizeInfo:
        # SQLite has no per-table size without dbstat; report the database file size.
        s = self._scope(scope)
        size_bytes = self._database_bytes(s)
        return TableSizeInfo(
            table=name,
            schema=s,
            size=format_bytes(size_bytes),
            size_bytes=size_bytes,
            rows=self._row_count(name, s),
        )

    def get_entity_stats(self, name: str, scope: Optional[str] = None) -> TableStats:
        s = self._scope(scope)
        size = format_bytes(self._database_bytes(s))
        return TableStats(
            table=name,
            schema=s,
            row_count=self._row_count(name, s),
            total_size=size,
            table_size=size,
            indexes_size="0 bytes",
        )

    def list_views(self, scope: Optional[str] = None) -> List[str]:
        s = self._scope(scope)
        rows = self._all(f"SELECT name FROM {self._master(s)} WHERE type = 'view' ORDER BY name")
        return [r["name"] for r in rows]

    def describe_view(self, name: str, scope: Optional[str] = None) -> ViewInfo:
        s = self._scope(scope)
        row = self._one(f"SELECT sql FROM {self._master(s)} WHERE type = 'view' AND name = ?", (name,))
        return ViewInfo(view=name, schema=s, definition=(row["sql"] if row else "") or "")

    def close(self) -> None:
        with self._lock:
            self.conn.close()
