"""Shared fixtures: spy adapter, fake Redis client, temporary SQLite database."""

import fnmatch
import sqlite3
from pathlib import Path
from typing import Any

import pytest

from polydb.adapters.base import BackendAdapter, BackendKind, ExecuteResult, QueryResult, TableSchema


# =============================================================================
# Spy adapter
# =============================================================================


class SpyAdapter(BackendAdapter):
    """Records every backend call; returns canned results."""

    engine = "spy"

    def __init__(self, kind: BackendKind = BackendKind.RELATIONAL, fail_with: Exception | None = None):
        self.kind = kind
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.fail_with = fail_with

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.fail_with is not None:
            raise self.fail_with

    def query(self, statement):
        self._record("query", statement)
        return QueryResult(rows=[{"n": 1}], row_count=1)

    def execute(self, statement, params=None):
        self._record("execute", statement)
        return ExecuteResult(command=statement.split()[0].upper(), row_count=0)

    def explain_query(self, statement):
        self._record("explain_query", statement)
        return {"plan": [], "query": statement}

    def list_entities(self, scope=None):
        self._record("list_entities", scope)
        return ["t"]

    def describe_entity(self, name, scope=None):
        self._record("describe_entity", name, scope)
        return TableSchema(table=name, schema=scope or "main", columns=[])

    def list_scopes(self):
        self._record("list_scopes")
        return ["main"]

    def default_scope(self):
        return "main"

    # key-value natives, so the spy can stand in for Redis too
    def get(self, key):
        self._record("get", key)
        return None

    def set(self, key, value, ttl=None):
        self._record("set", key, value, ttl)

    def delete(self, key):
        self._record("delete", key)
        return 1


@pytest.fixture
def spy() -> SpyAdapter:
    return SpyAdapter()


@pytest.fixture
def kv_spy() -> SpyAdapter:
    return SpyAdapter(kind=BackendKind.KEY_VALUE)


# =============================================================================
# Fake Redis client
# =============================================================================


class FakeRedis:
    """Just enough of redis.Redis (decode_responses=True) for adapter tests."""

    def __init__(self):
        self.data: dict[str, Any] = {}
        self.ttls: dict[str, int] = {}
        self.closed = False

    def get(self, key):
        value = self.data.get(key)
        return value if isinstance(value, str) else None

    def set(self, key, value):
        self.data[key] = value
        self.ttls.pop(key, None)
        return True

    def setex(self, key, ttl, value):
        self.data[key] = value
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        n = 0
        for k in keys:
            if k in self.data:
                del self.data[k]
                self.ttls.pop(k, None)
                n += 1
        return n

    def keys(self, pattern="*"):
        return sorted(k for k in self.data if fnmatch.fnmatchcase(k, pattern))

    def exists(self, *keys):
        return sum(1 for k in keys if k in self.data)

    def ttl(self, key):
        if key not in self.data:
            return -2
        return self.ttls.get(key, -1)

    def expire(self, key, seconds):
        if key not in self.data:
            return False
        self.ttls[key] = seconds
        return True

    def type(self, key):
        value = self.data.get(key)
        if value is None:
            return "none"
        if isinstance(value, ZSet):
            return "zset"
        if isinstance(value, str):
            return "string"
        if isinstance(value, dict):
            return "hash"
        if isinstance(value, list):
            return "list"
        if isinstance(value, set):
            return "set"
        return "zset"

    def dbsize(self):
        return len(self.data)

    def info(self, section=None):
        return {"used_memory": 1024, "section": section or "all"}

    def hget(self, key, field):
        return self.data.get(key, {}).get(field)

    def hset(self, key, field, value):
        h = self.data.setdefault(key, {})
        new = field not in h
        h[field] = value
        return int(new)

    def hgetall(self, key):
        return dict(self.data.get(key, {}))

    def lrange(self, key, start, stop):
        items = self.data.get(key, [])
        stop = len(items) if stop == -1 else stop + 1
        return items[start:stop]

    def smembers(self, key):
        return set(self.data.get(key, set()))

    def zrange(self, key, start, stop, withscores=False):
        pairs = sorted(self.data.get(key, {}).items(), key=lambda kv: kv[1])
        stop = len(pairs) if stop == -1 else stop + 1
        pairs = pairs[start:stop]
        if withscores:
            return [(m, float(s)) for m, s in pairs]
        return [m for m, _ in pairs]

    def close(self):
        self.closed = True


class ZSet(dict):
    """Marker type so FakeRedis.type() reports 'zset'."""


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def zset():
    return ZSet


# =============================================================================
# SQLite
# =============================================================================


@pytest.fixture
def sqlite_path(tmp_path: Path) -> Path:
    """A small database: customers <- orders (FK), an index and a view."""
    path = tmp_path / "shop.sqlite"
    conn = sqlite3.connect(path)
    conn.executescript(
        """
        CREATE TABLE customers (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            email TEXT DEFAULT 'n/a'
        );
        CREATE TABLE orders (
            id INTEGER PRIMARY KEY,
            customer_id INTEGER REFERENCES customers(id),
            total REAL
        );
        CREATE INDEX idx_orders_customer ON orders(customer_id);
        CREATE UNIQUE INDEX idx_customers_email ON customers(email);
        CREATE VIEW big_orders AS SELECT * FROM orders WHERE total > 100;
        INSERT INTO customers (id, name, email) VALUES (1, 'Ada', 'ada@example.com'), (2, 'Linus', 'linus@example.com');
        INSERT INTO orders (id, customer_id, total) VALUES (1, 1, 50.0), (2, 1, 150.0), (3, 2, 20.0);
        """
    )
    conn.commit()
    conn.close()
    return path


@pytest.fixture
def sqlite_url(sqlite_path: Path) -> str:
    return f"sqlite://{sqlite_path}"


def count_rows(path: Path, table: str) -> int:
    conn = sqlite3.connect(path)
    try:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
    finally:
        conn.close()


@pytest.fixture
def row_count():
    return count_rows
