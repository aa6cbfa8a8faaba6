"""Capability contract shared by every backend adapter.

Each adapter is constructed once at startup, tagged with the BackendKind it
serves, and then shared by every invocation for the life of the process.
The dispatcher only ever talks to adapters through the methods below plus
the backend-native methods its catalog entries name.

Optional refinements (indexes, foreign keys, views, stats) return empty
results when the backend lacks the concept. Operations that make no sense
for a backend (SQL statements against a key-value store) raise
UnsupportedOperation instead.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from polydb.exceptions.errors import UnsupportedOperation


class BackendKind(str, Enum):
    RELATIONAL = "relational"
    KEY_VALUE = "key_value"
    DOCUMENT = "document"
    DIRECTORY = "directory"


@dataclass(frozen=True)
class FieldInfo:
    name: str
    data_type: Optional[str] = None
    data_type_id: Optional[int] = None


@dataclass(frozen=True)
class QueryResult:
    rows: List[Dict[str, Any]]
    row_count: int
    fields: List[FieldInfo] = field(default_factory=list)


@dataclass(frozen=True)
class ExecuteResult:
    command: str
    row_count: int
    rows: Optional[List[Dict[str, Any]]] = None


@dataclass(frozen=True)
class ColumnInfo:
    column_name: str
    data_type: str
    is_nullable: str
    character_maximum_length: Optional[int] = None
    column_default: Optional[str] = None


@dataclass(frozen=True)
class TableSchema:
    table: str
    schema: str
    columns: List[ColumnInfo]


@dataclass(frozen=True)
class ExplainResult:
    plan: List[Any]
    query: str


@dataclass(frozen=True)
class IndexInfo:
    index_name: str
    index_type: str
    is_unique: bool
    columns: List[str]


@dataclass(frozen=True)
class ForeignKeyInfo:
    constraint_name: str
    column_name: str
    foreign_table_schema: str
    foreign_table_name: str
    foreign_column_name: str


@dataclass(frozen=True)
class TableSizeInfo:
    table: str
    schema: str
    size: str
    size_bytes: int
    rows: int


@dataclass(frozen=True)
class ViewInfo:
    view: str
    schema: str
    definition: str


@dataclass(frozen=True)
class TableStats:
    table: str
    schema: str
    row_count: int
    total_size: str
    table_size: str
    indexes_size: str


class BackendAdapter:
    """Base class for adapters.

    Subclasses set `kind` and `engine` and override what their backend
    supports. The defaults encode the empty-vs-unsupported contract.
    """

    kind: BackendKind
    engine: str = ""

    # ---- statements -------------------------------------------------------
    def query(self, statement: str) -> QueryResult:
        raise UnsupportedOperation(f"{self.engine} does not support SQL queries.")

    def execute(self, statement: str, params: Optional[Sequence[Any]] = None) -> ExecuteResult:
        raise UnsupportedOperation(f"{self.engine} does not support SQL execution.")

    def explain_query(self, statement: str) -> ExplainResult:
        raise UnsupportedOperation(f"{self.engine} does not support EXPLAIN queries.")

    # ---- entities ---------------------------------------------------------
    def list_entities(self, scope: Optional[str] = None) -> List[str]:
        raise NotImplementedError

    def describe_entity(self, name: str, scope: Optional[str] = None) -> Any:
        raise NotImplementedError

    def list_scopes(self) -> List[str]:
        return []

    def search_entities(self, pattern: str, scope: Optional[str] = None) -> List[str]:
        return []

    # ---- refinements ------------------------------------------------------
    def get_indexes(self, name: str, scope: Optional[str] = None) -> List[Any]:
        return []

    def get_foreign_keys(self, name: str, scope: Optional[str] = None) -> List[Any]:
        return []

    def get_entity_size(self, name: str, scope: Optional[str] = None) -> Any:
        raise UnsupportedOperation(f"{self.engine} does not report entity sizes.")

    def get_entity_stats(self, name: str, scope: Optional[str] = None) -> Any:
        raise UnsupportedOperation(f"{self.engine} does not report entity statistics.")

    def list_views(self, scope: Optional[str] = None) -> List[str]:
        return []

    def describe_view(self, name: str, scope: Optional[str] = None) -> ViewInfo:
        raise UnsupportedOperation(f"{self.engine} does not support views.")

    def default_scope(self) -> str:
        return ""

    def close(self) -> None:
        pass
