from __future__ import annotations
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple
import yaml
from dotenv import load_dotenv

from polydb.adapters.base import BackendKind
from polydb.exceptions.errors import ConfigurationError
from polydb.policy.gate import PolicyMode

load_dotenv()


@dataclass(frozen=True)
class EngineSpec:
    engine: str
    kind: BackendKind
    connection_keys: Tuple[str, ...]
    default_connection: str


ENGINES: Dict[str, EngineSpec] = {
    "postgres": EngineSpec(
        "postgres", BackendKind.RELATIONAL,
        ("POSTGRES_CONNECTION_STRING", "DATABASE_URL"),
        "postgresql://localhost:5432/postgres",
    ),
    "mysql": EngineSpec(
        "mysql", BackendKind.RELATIONAL,
        ("MYSQL_CONNECTION_STRING", "MYSQL_URL", "DATABASE_URL"),
        "mysql://localhost:3306",
    ),
    "sqlite": EngineSpec(
        "sqlite", BackendKind.RELATIONAL,
        ("SQLITE_CONNECTION_STRING", "SQLITE_URL", "DATABASE_URL"),
        "sqlite://./database.sqlite",
    ),
    "duckdb": EngineSpec(
        "duckdb", BackendKind.RELATIONAL,
        ("DUCKDB_CONNECTION_STRING", "DUCKDB_PATH", "DATABASE_URL"),
        "duckdb://:memory:",
    ),
    "redis": EngineSpec(
        "redis", BackendKind.KEY_VALUE,
        ("REDIS_CONNECTION_STRING", "REDIS_URL"),
        "redis://localhost:6379",
    ),
    "mongo": EngineSpec(
        "mongo", BackendKind.DOCUMENT,
        ("MONGODB_CONNECTION_STRING", "MONGODB_URL"),
        "mongodb://localhost:27017",
    ),
    "ldap": EngineSpec(
        "ldap", BackendKind.DIRECTORY,
        ("LDAP_CONNECTION_STRING", "LDAP_URL"),
        "ldap://localhost:389",
    ),
}

# DB_TYPE spellings accepted on top of the engine names themselves
ENGINE_ALIASES = {
    "postgresql": "postgres",
    "mysql2": "mysql",
    "mongodb": "mongo",
}


def _env(key: str, default: Optional[str] = None) -> Optional[str]:
    return os.environ.get(key, default)

def _env_int(key: str, default: int) -> int:
    val = os.environ.get(key)
    if val is None or not val.strip():
        return default
    return int(val)


def resolve_engine(db_type: Optional[str]) -> EngineSpec:
    token = (db_type or "postgres").strip().lower()
    token = ENGINE_ALIASES.get(token, token)
    if token not in ENGINES:
        supported = sorted(set(ENGINES) | set(ENGINE_ALIASES))
        raise ConfigurationError(f"Unsupported DB_TYPE: {db_type}. Supported: {', '.join(supported)}")
    return ENGINES[token]


def resolve_connection_string(spec: EngineSpec, env: Optional[Mapping[str, str]] = None) -> str:
    """First non-empty key in the engine's fallback order, else the engine default."""
    env = os.environ if env is None else env
    for key in spec.connection_keys:
        val = env.get(key)
        if val:
            return val
    return spec.default_connection


def resolve_policy_mode(raw: Optional[str]) -> PolicyMode:
    """READ_ONLY_MODE -> PolicyMode.

    Writes are enabled only by an explicit "false" or "0" (case-insensitive,
    no trimming). Unset, empty, or anything else keeps the server read-only.
    """
    if raw is not None and raw.lower() in ("false", "0"):
        return PolicyMode.READ_WRITE
    return PolicyMode.READ_ONLY


@dataclass(frozen=True)
class Settings:
    env: str
    log_level: str
    log_file: str

    # ------------------------------------------------------------------
    # Backend selection
    # ------------------------------------------------------------------
    db_type: str
    backend_kind: BackendKind
    connection_string: str

    # Never taken from YAML: only the READ_ONLY_MODE variable can relax it.
    policy_mode: PolicyMode

    # LDAP bind resolution
    ldap_bind_dn: str
    ldap_password: str
    ldap_login: str
    ldap_base_dn: str
    ldap_root_domain: str

    # Driver tuning
    postgres_pool_max: int
    mongo_default_limit: int


def _load_yaml(app_env: str) -> Dict[str, Any]:
    explicit = _env("POLYDB_CONFIG")
    cfg_path = Path(explicit) if explicit else Path("config") / f"{app_env}.yaml"
    if not cfg_path.exists():
        if explicit:
            raise ConfigurationError(f"Config not found: {cfg_path}")
        # env-only deployments (e.g. an MCP client launching the server) carry no config dir
        return {}
    cfg = yaml.safe_load(cfg_path.read_text(encoding="utf-8")) or {}
    if not isinstance(cfg, dict):
        raise ConfigurationError(f"Config must be a mapping: {cfg_path}")
    return cfg


def load_settings() -> Settings:
    app_env = _env("APP_ENV", "dev")
    cfg = _load_yaml(app_env)

    app_cfg = cfg.get("app") or {}
    log_level = _env("LOG_LEVEL", str(app_cfg.get("log_level", "INFO")))
    log_file = _env("LOG_FILE", str(app_cfg.get("log_file", "logs/polydb.log")))

    # ------------------------------ Database ------------------------------
    db_cfg = cfg.get("database") or {}
    spec = resolve_engine(_env("DB_TYPE", str(db_cfg.get("db_type", "postgres"))))

    connection_string = resolve_connection_string(spec)
    if connection_string == spec.default_connection and db_cfg.get("connection_string"):
        connection_string = str(db_cfg["connection_string"])

    ldap_cfg = db_cfg.get("ldap") or {}
    ldap_bind_dn = _env("LDAP_BIND_DN", str(ldap_cfg.get("bind_dn", ""))) or ""
    ldap_password = _env("LDAP_PASSWORD", _env("LDAP_BIND_PASSWORD", "")) or ""
    ldap_login = _env("LDAP_LOGIN", str(ldap_cfg.get("login", ""))) or ""
    ldap_base_dn = _env("LDAP_BASE_DN", str(ldap_cfg.get("base_dn", ""))) or ""
    ldap_root_domain = _env("LDAP_ROOT_DOMAIN", str(ldap_cfg.get("root_domain", ""))) or ""

    postgres_pool_max = _env_int("POSTGRES_POOL_MAX", int((db_cfg.get("postgres") or {}).get("pool_max", 10)))
    mongo_default_limit = _env_int("MONGO_DEFAULT_LIMIT", int((db_cfg.get("mongo") or {}).get("default_limit", 100)))

    return Settings(
        env=app_env,
        log_level=log_level,
        log_file=log_file,
        db_type=spec.engine,
        backend_kind=spec.kind,
        connection_string=connection_string,
        policy_mode=resolve_policy_mode(_env("READ_ONLY_MODE")),
        ldap_bind_dn=ldap_bind_dn,
        ldap_password=ldap_password,
        ldap_login=ldap_login,
        ldap_base_dn=ldap_base_dn,
        ldap_root_domain=ldap_root_domain,
        postgres_pool_max=postgres_pool_max,
        mongo_default_limit=mongo_default_limit,
    )


def supported_db_types() -> List[str]:
    return sorted(set(ENGINES) | set(ENGINE_ALIASES))
