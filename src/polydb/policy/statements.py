"""Statement classification for the retrieval-class operations.

`query` and `explain_query` must stay read-only whatever the server's
policy mode. Statements are parsed with sqlglot in the engine's dialect;
exactly one SELECT (or set operation / WITH ... SELECT) is accepted and
nothing in its tree may write.
"""
from __future__ import annotations

from typing import Any, Iterable, List, Optional

import sqlglot
from sqlglot import expressions as exp
from sqlglot.errors import SqlglotError

from polydb.exceptions.errors import InvalidStatementClass

# engine name -> sqlglot dialect (None = sqlglot's generic dialect)
SQL_DIALECTS = {
    "postgres": "postgres",
    "mysql": "mysql",
    "sqlite": "sqlite",
    "duckdb": "duckdb",
}

RETRIEVAL_ROOTS = frozenset({"select", "union", "intersect", "except", "subquery"})

_WRITE_NODE_NAMES = (
    "Insert", "Update", "Delete", "Merge", "Create", "Drop", "Alter", "AlterTable",
    "TruncateTable", "Copy", "Command", "Into", "Pragma", "Set", "Use", "Transaction",
    "Commit", "Rollback",
)
_WRITE_NODES = tuple(c for c in (getattr(exp, n, None) for n in _WRITE_NODE_NAMES) if c is not None)

# Stages that make an aggregation pipeline write a collection.
MUTATING_PIPELINE_STAGES = frozenset({"$out", "$merge"})


def dialect_for_engine(engine: Optional[str]) -> Optional[str]:
    return SQL_DIALECTS.get((engine or "").strip().lower())


def _body(statement: str) -> str:
    body = (statement or "").strip()
    while body.endswith(";"):
        body = body[:-1].rstrip()
    return body


def classify_statement(statement: str, dialect: Optional[str] = None) -> str:
    """Return "SELECT" or "WITH" for a pure retrieval, else raise InvalidStatementClass."""
    body = _body(statement)
    if not body:
        raise InvalidStatementClass("Query tool only supports SELECT statements (empty statement).")
    # Engines disagree on literal boundaries (E'' escapes, $tag$ quoting), so a
    # semicolon anywhere but at the end is refused outright.
    if ";" in body:
        raise InvalidStatementClass("Query tool only supports a single statement.")

    try:
        parsed = [e for e in sqlglot.parse(body, read=dialect) if e is not None]
    except SqlglotError as e:
        raise InvalidStatementClass(f"Query tool could not parse the statement: {e}") from e

    if not parsed:
        raise InvalidStatementClass("Query tool only supports SELECT statements (empty statement).")
    if len(parsed) > 1:
        raise InvalidStatementClass("Query tool only supports a single statement.")

    root = parsed[0]
    if root.key not in RETRIEVAL_ROOTS:
        raise InvalidStatementClass(
            f"Query tool only supports SELECT statements (got {root.key.upper()})."
        )

    bad = sorted({node.key.upper() for node in root.find_all(*_WRITE_NODES)})
    if bad:
        raise InvalidStatementClass(
            f"Query tool only supports read-only statements (found {', '.join(bad)})."
        )
    return "WITH" if root.find(exp.With) is not None else "SELECT"


def _stage_names(pipeline: Iterable[Any]) -> List[str]:
    names: List[str] = []
    for stage in pipeline or []:
        if isinstance(stage, dict):
            names.extend(str(k) for k in stage.keys())
    return names


def check_pipeline(pipeline: Iterable[Any]) -> None:
    """Reject aggregation pipelines that write ($out / $merge)."""
    bad = sorted(set(_stage_names(pipeline)) & MUTATING_PIPELINE_STAGES)
    if bad:
        raise InvalidStatementClass(
            f"Aggregation pipelines may not write to collections (found {', '.join(bad)})."
        )
