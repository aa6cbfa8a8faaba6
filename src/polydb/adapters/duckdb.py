from __future__ import annotations

from typing import Any, List, Optional, Sequence
import re

import duckdb
import pandas as pd

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
from polydb.adapters.utils import dialect_for, format_bytes, frame_to_records, strip_scheme
from polydb.exceptions.errors import InvalidStatementClass
from polydb.logging.logger import get_logger

log = get_logger("adapters.duckdb")

_INDEX_COLS_RE = re.compile(r"\(([^()]*)\)\s*;?\s*$")


class DuckDBAdapter(BackendAdapter):
    """Local DuckDB database (file or :memory:).

    Every call runs on its own cursor (a per-thread duplicate of the shared
    connection), which is how DuckDB expects concurrent use.
    """

    kind = BackendKind.RELATIONAL
    engine = "duckdb"

    def __init__(self, connection_string: str, read_only: bool = True):
        path = strip_scheme(connection_string, "duckdb") or ":memory:"
        self.path = path
        self.dialect = dialect_for(self.engine)
        file_backed = path != ":memory:"
        self.con = duckdb.connect(database=path, read_only=bool(read_only and file_backed))
        log.info("DuckDB opened", extra={"path": path, "read_only": read_only and file_backed})

    def _frame(self, sql: str, params: Optional[Sequence[Any]] = None) -> pd.DataFrame:
        cur = self.con.cursor()
        try:
            if params:
                return cur.execute(sql, list(params)).df()
            return cur.execute(sql).df()
        finally:
            cur.close()

    def default_scope(self) -> str:
        return "main"

    def _scope(self, scope: Optional[str]) -> str:
        if not scope or scope == "public":
            return "main"
        return scope

    # -----------------------------
    # statements
    # -----------------------------
    def _single_select(self, statement: str) -> None:
        statements = self.con.extract_statements(statement)
        if len(statements) != 1 or statements[0].type != duckdb.StatementType.SELECT:
            raise InvalidStatementClass("Query tool only supports a single SELECT statement.")

    def query(self, statement: str) -> QueryResult:
        self._single_select(statement)
        df = self._frame(statement)
        fields = [FieldInfo(name=str(c), data_type=str(t)) for c, t in df.dtypes.items()]
        rows = frame_to_records(df)
        return QueryResult(rows=rows, row_count=len(rows), fields=fields)

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        command = (statement.strip().split(None, 1) or [""])[0].upper()
        cur = self.con.cursor()
        try:
            cur.execute(statement, list(params) if params else None)
            if cur.description is None:
                return ExecuteResult(command=command, row_count=0)
            df = cur.df()
        finally:
            cur.close()
        # DML in DuckDB reports a single "Count" column holding the affected rows.
        if list(df.columns) == ["Count"] and len(df) == 1:
            return ExecuteResult(command=command, row_count=int(df.iloc[0, 0]))
        rows = frame_to_records(df)
        return ExecuteResult(command=command, row_count=len(rows), rows=rows)

    def explain_query(self, statement: str) -> ExplainResult:
        self._single_select(statement)
        df = self._frame(f"EXPLAIN {statement}")
        return ExplainResult(plan=frame_to_records(df), query=statement)

    # -----------------------------
    # entities
    # -----------------------------
    def list_entities(self, scope: Optional[str] = None) -> List[str]:
        df = self._frame(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = ? AND table_type = 'BASE TABLE' ORDER BY table_name",
            [self._scope(scope)],
        )
        return df["table_name"].tolist()

    def describe_entity(self, name: str, scope: Optional[str] = None) -> TableSchema:
        s = self._scope(scope)
        df = self._frame(
            "SELECT column_name, data_type, character_maximum_length, is_nullable, column_default "
            "FROM information_schema.columns WHERE table_schema = ? AND table_name = ? "
            "ORDER BY ordinal_position",
            [s, name],
        )
        columns = [
            ColumnInfo(
                column_name=r["column_name"],
                data_type=r["data_type"],
                is_nullable=r["is_nullable"],
                character_maximum_length=r["character_maximum_length"],
                column_default=r["column_default"],
            )
            for r in frame_to_records(df)
        ]
        return TableSchema(table=name, schema=s, columns=columns)

    def list_scopes(self) -> List[str]:
        df = self._frame(
            "SELECT DISTINCT schema_name FROM information_schema.schemata "
            "WHERE schema_name NOT IN ('information_schema', 'pg_catalog') ORDER BY schema_name"
        )
        return df["schema_name"].tolist()

    def search_entities(self, pattern: str, scope: Optional[str] = None) -> List[str]:
        df = self._frame(
            "SELECT table_name FROM information_schema.tables "
            "WHERE table_schema = ? AND table_type = 'BASE TABLE' AND table_name ILIKE ? "
            "ORDER BY table_name",
            [self._scope(scope), f"%{pattern}%"],
        )
        return df["table_name"].tolist()

    # -----------------------------
    # refinements
    # -----------------------------
    def get_indexes(self, name: str, scope: Optional[str] = None) -> List[IndexInfo]:
        df = self._frame(
            "SELECT index_name, is_unique, sql FROM duckdb_indexes() "
            "WHERE schema_name = ? AND table_name = ? ORDER BY index_name",
            [self._scope(scope), name],
        )
        out: List[IndexInfo] = []
        for r in frame_to_records(df):
            m = _INDEX_COLS_RE.search(r.get("sql") or "")
            cols = [c.strip().strip('"') for c in m.group(1).split(",")] if m else []
            unique = bool(r["is_unique"])
            out.append(
                IndexInfo(
                    index_name=r["index_name"],
                    index_type="UNIQUE" if unique else "ART",
                    is_unique=unique,
                    columns=cols,
                )
            )
        return out

    def get_foreign_keys(self, name: str, scope: Optional[str] = None) -> List[ForeignKeyInfo]:
        s = self._scope(scope)
        df = self._frame(
            "SELECT constraint_name, constraint_column_names, referenced_table, referenced_column_names "
            "FROM duckdb_constraints() "
            "WHERE constraint_type = 'FOREIGN KEY' AND schema_name = ? AND table_name = ?",
            [s, name],
        )
        out: List[ForeignKeyInfo] = []
        for r in frame_to_records(df):
            for col, ref_col in zip(r["constraint_column_names"] or [], r["referenced_column_names"] or []):
                out.append(
                    ForeignKeyInfo(
                        constraint_name=r["constraint_name"] or f"fk_{name}_{col}",
                        column_name=col,
                        foreign_table_schema=s,
                        foreign_table_name=r["referenced_table"] or "",
                        foreign_column_name=ref_col,
                    )
                )
        return out

    def _row_count(self, name: str, scope: str) -> int:
        df = self._frame(f"SELECT COUNT(*) AS n FROM {self.dialect.qualified(scope, name)}")
        return int(df.iloc[0, 0])

    def _database_bytes(self) -> int:
        df = self._frame(
            "SELECT block_size, used_blocks FROM pragma_database_size() "
            "WHERE database_name = current_database()"
        )
        if df.empty:
            return 0
        return int(df.iloc[0]["block_size"]) * int(df.iloc[0]["used_blocks"])

    def get_entity_size(self, name: str, scope: Optional[str] = None) -> TableSizeInfo:
        s = self._scope(scope)
        size_bytes = self._database_bytes()
        return TableSizeInfo(
            table=name,
            schema=s,
            size=format_bytes(size_bytes),
            size_bytes=size_bytes,
            rows=self._row_count(name, s),
        )

    def get_entity_stats(self, name: str, scope: Optional[str] = None) -> TableStats:
        s = self._scope(scope)
        size = format_bytes(self._database_bytes())
        return TableStats(
            table=name,
            schema=s,
            row_count=self._row_count(name, s),
            total_size=size,
            table_size=size,
            indexes_size="0 bytes",
        )

    def list_views(self, scope: Optional[str] = None) -> List[str]:
        df = self._frame(
            "SELECT view_name FROM duckdb_views() WHERE NOT internal AND schema_name = ? ORDER BY view_name",
            [self._scope(scope)],
        )
        return df["view_name"].tolist()

    def describe_view(self, name: str, scope: Optional[str] = None) -> ViewInfo:
        s = self._scope(scope)
        df = self._frame(
            "SELECT sql FROM duckdb_views() WHERE NOT internal AND schema_name = ? AND view_name = ?",
            [s, name],
        )
        definition = "" if df.empty else (df.iloc[0]["sql"] or "")
        return ViewInfo(view=name, schema=s, definition=definition)

    def close(self) -> None:
        self.con.close()
