"""Generic operations over the adapter interface.

These are offered for relational backends only. Every handler passes the
caller's scope through untouched (None when omitted) and lets the adapter
apply its own default namespace.
"""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from polydb.adapters.base import BackendAdapter, BackendKind
from polydb.policy.statements import classify_statement, dialect_for_engine
from polydb.tools.registry import Operation, object_schema, string

APPLIES_TO = frozenset({BackendKind.RELATIONAL})

_STATEMENT = string("SQL statement")
_NAME = string("Table or view name")
_SCOPE = string("Schema name (default: 'public'; engines without schemas use their main namespace)", default="public")
_PATTERN = string("Substring to match against table names")


def _scope(args: Dict[str, Any]) -> Optional[str]:
    return args.get("scope") or None


def _shown_scope(adapter: BackendAdapter, scope: Optional[str]) -> str:
    return scope or adapter.default_scope()


def _check_statement(adapter: BackendAdapter, args: Dict[str, Any]) -> None:
    classify_statement(args["statement"], dialect_for_engine(adapter.engine))


# -----------------------------
# handlers
# -----------------------------
def query(adapter: BackendAdapter, args: Dict[str, Any]) -> Any:
    return adapter.query(args["statement"])


def execute(adapter: BackendAdapter, args: Dict[str, Any]) -> Any:
    return adapter.execute(args["statement"])


def list_tables(adapter: BackendAdapter, args: Dict[str, Any]) -> Dict[str, Any]:
    scope = _scope(args)
    return {"tables": adapter.list_entities(scope), "schema": _shown_scope(adapter, scope)}


def describe_table(adapter: BackendAdapter, args: Dict[str, Any]) -> Any:
    return adapter.describe_entity(args["name"], _scope(args))


def list_schemas(adapter: BackendAdapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"schemas": adapter.list_scopes()}


def explain_query(adapter: BackendAdapter, args: Dict[str, Any]) -> Any:
    return adapter.explain_query(args["statement"])


def get_indexes(adapter: BackendAdapter, args: Dict[str, Any]) -> Dict[str, Any]:
    scope = _scope(args)
    return {
        "table": args["name"],
        "schema": _shown_scope(adapter, scope),
        "indexes": adapter.get_indexes(args["name"], scope),
    }


def get_foreign_keys(adapter: BackendAdapter, args: Dict[str, Any]) -> Dict[str, Any]:
    scope = _scope(args)
    return {
        "table": args["name"],
        "schema": _shown_scope(adapter, scope),
        "foreign_keys": adapter.get_foreign_keys(args["name"], scope),
    }


def get_table_size(adapter: BackendAdapter, args: Dict[str, Any]) -> Any:
    return adapter.get_entity_size(args["name"], _scope(args))


def list_views(adapter: BackendAdapter, args: Dict[str, Any]) -> Dict[str, Any]:
    scope = _scope(args)
    return {"views": adapter.list_views(scope), "schema": _shown_scope(adapter, scope)}


def describe_view(adapter: BackendAdapter, args: Dict[str, Any]) -> Any:
    return adapter.describe_view(args["name"], _scope(args))


def search_tables(adapter: BackendAdapter, args: Dict[str, Any]) -> Dict[str, Any]:
    scope = _scope(args)
    return {
        "tables": adapter.search_entities(args["pattern"], scope),
        "pattern": args["pattern"],
        "schema": _shown_scope(adapter, scope),
    }


def get_table_stats(adapter: BackendAdapter, args: Dict[str, Any]) -> Any:
    return adapter.get_entity_stats(args["name"], _scope(args))


def _op(name: str, description: str, schema: Dict[str, Any], handler, **extra: Any) -> Operation:
    return Operation(
        name=name,
        description=description,
        parameter_schema=schema,
        applies_to=APPLIES_TO,
        handler=handler,
        **extra,
    )


GENERIC_OPERATIONS: List[Operation] = [
    _op(
        "query", "Execute a read-only SELECT (or WITH ... SELECT) query and return rows",
        object_schema({"statement": _STATEMENT}, ["statement"]), query, check=_check_statement,
    ),
    _op(
        "execute", "Execute any SQL command (INSERT, UPDATE, DELETE, CREATE, etc.)",
        object_schema({"statement": _STATEMENT}, ["statement"]), execute, mutating=True,
    ),
    _op("list_tables", "List all tables in a schema", object_schema({"scope": _SCOPE}), list_tables),
    _op(
        "describe_table", "Get column information for a table",
        object_schema({"name": _NAME, "scope": _SCOPE}, ["name"]), describe_table,
    ),
    _op("list_schemas", "List all schemas (namespaces) in the database", object_schema({}), list_schemas),
    _op(
        "explain_query", "Show the execution plan for a read-only query",
        object_schema({"statement": _STATEMENT}, ["statement"]), explain_query, check=_check_statement,
    ),
    _op(
        "get_indexes", "List the indexes defined on a table",
        object_schema({"name": _NAME, "scope": _SCOPE}, ["name"]), get_indexes,
    ),
    _op(
        "get_foreign_keys", "List the foreign keys defined on a table",
        object_schema({"name": _NAME, "scope": _SCOPE}, ["name"]), get_foreign_keys,
    ),
    _op(
        "get_table_size", "Get the storage size and row count of a table",
        object_schema({"name": _NAME, "scope": _SCOPE}, ["name"]), get_table_size,
    ),
    _op("list_views", "List all views in a schema", object_schema({"scope": _SCOPE}), list_views),
    _op(
        "describe_view", "Get the definition of a view",
        object_schema({"name": _NAME, "scope": _SCOPE}, ["name"]), describe_view,
    ),
    _op(
        "search_tables", "Search tables whose name contains a pattern",
        object_schema({"pattern": _PATTERN, "scope": _SCOPE}, ["pattern"]), search_tables,
    ),
    _op(
        "get_table_stats", "Get row count and size statistics for a table",
        object_schema({"name": _NAME, "scope": _SCOPE}, ["name"]), get_table_stats,
    ),
]
