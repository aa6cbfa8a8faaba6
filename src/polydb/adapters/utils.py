from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import unquote, urlparse
import json

import pandas as pd


@dataclass(frozen=True)
class SqlDialect:
    """Identifier quoting for the relational engines.

    Only used where an identifier has to be spliced into SQL text (PRAGMA,
    COUNT(*) FROM ...). Everything else goes through driver parameters.
    """

    ident_quote: str  # either '"' or '`'

    def ident(self, name: str) -> str:
        q = self.ident_quote
        if q == '"':
            return '"' + name.replace('"', '""') + '"'
        return '`' + name.replace('`', '``') + '`'

    def qualified(self, scope: Optional[str], name: str) -> str:
        if scope:
            return f"{self.ident(scope)}.{self.ident(name)}"
        return self.ident(name)


def dialect_for(engine: str) -> SqlDialect:
    if (engine or "").strip().lower() == "mysql":
        return SqlDialect(ident_quote="`")
    # postgres / sqlite / duckdb
    return SqlDialect(ident_quote='"')


def format_bytes(num: int) -> str:
    """Human readable size: 0 -> '0 bytes', 1536 -> '1.5 KB'."""
    if not num:
        return "0 bytes"
    units = ["bytes", "KB", "MB", "GB", "TB"]
    i = 0
    value = float(num)
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    value = round(value, 2)
    if value.is_integer():
        return f"{int(value)} {units[i]}"
    return f"{value} {units[i]}"


def frame_to_records(df: pd.DataFrame) -> List[Dict[str, Any]]:
    """DataFrame -> JSON-native list of dicts (numpy scalars, NaN and timestamps normalized)."""
    if df.empty:
        return []
    return json.loads(df.to_json(orient="records", date_format="iso"))


def strip_scheme(conn: str, *schemes: str) -> str:
    """sqlite://./db.sqlite -> ./db.sqlite ; file://x -> x ; plain paths untouched."""
    out = conn
    for s in schemes:
        if out.startswith(f"{s}://"):
            out = out[len(s) + 3:]
            break
        if out.startswith(f"{s}:"):
            out = out[len(s) + 1:]
            break
    if out.startswith("file://"):
        out = out[len("file://"):]
    return out


def parse_mysql_dsn(conn: str) -> Dict[str, Any]:
    """Accept mysql://user:pw@host:3306/db or 'host=..;user=..;database=..'."""
    if "://" in conn:
        u = urlparse(conn)
        cfg: Dict[str, Any] = {"host": u.hostname or "localhost", "port": u.port or 3306}
        if u.username:
            cfg["user"] = unquote(u.username)
        if u.password:
            cfg["password"] = unquote(u.password)
        db = (u.path or "").lstrip("/")
        if db:
            cfg["database"] = db
        return cfg

    aliases = {
        "host": "host", "server": "host",
        "port": "port",
        "user": "user", "uid": "user", "username": "user",
        "password": "password", "pwd": "password",
        "database": "database", "db": "database", "databasename": "database",
    }
    cfg = {}
    for part in conn.split(";"):
        if "=" not in part:
            continue
        key, value = (s.strip() for s in part.split("=", 1))
        target = aliases.get(key.lower())
        if target and value:
            cfg[target] = int(value) if target == "port" else value
    return cfg
