"""Startup wiring: settings -> adapter -> dispatcher.

Drivers are imported lazily so a deployment only loads the client library
of the engine it actually talks to.
"""
from __future__ import annotations

from typing import Callable, Dict, List, Optional, Tuple

from polydb.adapters.base import BackendAdapter
from polydb.config.settings import Settings
from polydb.exceptions.errors import ConfigurationError
from polydb.logging.logger import get_logger
from polydb.policy.gate import PolicyMode
from polydb.tools.dispatcher import Dispatcher

log = get_logger("bootstrap")


def domain_from_base_dn(base_dn: str) -> str:
    """'DC=corp,DC=example,DC=com' -> 'corp.example.com'."""
    parts = []
    for rdn in (base_dn or "").split(","):
        key, _, value = rdn.strip().partition("=")
        if key.strip().lower() == "dc" and value.strip():
            parts.append(value.strip())
    return ".".join(parts)


def ldap_bind_candidates(login: str, base_dn: str, root_domain: str = "") -> List[str]:
    """Bind identities tried, in order, when only a login and base DN are known (AD first)."""
    domain = root_domain or domain_from_base_dn(base_dn)
    return [
        f"CN={login},CN=Users,{base_dn}",
        f"{login}@{domain}" if domain else "",
        f"CN={login},{base_dn}",
        f"CN={login},OU=Users,{base_dn}",
        login,
    ]


def bind_ldap(adapter, settings: Settings) -> Optional[str]:
    """Bind the LDAP adapter per settings; returns the DN used (None for anonymous)."""
    password = settings.ldap_password
    login = settings.ldap_login

    if settings.ldap_bind_dn:
        if password:
            adapter.connect(settings.ldap_bind_dn, password)
        else:
            adapter.connect()
        return settings.ldap_bind_dn

    if login and settings.ldap_base_dn:
        if not password:
            raise ConfigurationError("LDAP_LOGIN and LDAP_BASE_DN are set but LDAP_PASSWORD is missing.")
        formats = [f for f in ldap_bind_candidates(login, settings.ldap_base_dn, settings.ldap_root_domain) if f]
        last_error: Optional[Exception] = None
        for candidate in formats:
            try:
                adapter.connect(candidate, password)
            except Exception as e:
                last_error = e
                log.warning("LDAP bind failed", extra={"bind_dn": candidate, "error": str(e)})
                continue
            log.info("LDAP bind successful", extra={"bind_dn": candidate})
            return candidate
        raise ConfigurationError(
            f"LDAP bind failed with all attempted formats. Last error: {last_error}. "
            f"Tried formats: {', '.join(formats)}. Please check credentials or set LDAP_BIND_DN explicitly."
        )

    if login:
        bind_dn = f"{login}@{settings.ldap_root_domain}" if settings.ldap_root_domain else login
        if password:
            adapter.connect(bind_dn, password)
            return bind_dn

    # anonymous bind; fine for public directories
    adapter.connect()
    return None


def _postgres(settings: Settings) -> BackendAdapter:
    from polydb.adapters.postgres import PostgresAdapter
    return PostgresAdapter(settings.connection_string, max_connections=settings.postgres_pool_max)


def _mysql(settings: Settings) -> BackendAdapter:
    from polydb.adapters.mysql import MySQLAdapter
    return MySQLAdapter(settings.connection_string)


def _sqlite(settings: Settings) -> BackendAdapter:
    from polydb.adapters.sqlite import SQLiteAdapter
    return SQLiteAdapter(settings.connection_string, read_only=settings.policy_mode is PolicyMode.READ_ONLY)


def _duckdb(settings: Settings) -> BackendAdapter:
    from polydb.adapters.duckdb import DuckDBAdapter
    return DuckDBAdapter(settings.connection_string, read_only=settings.policy_mode is PolicyMode.READ_ONLY)


def _redis(settings: Settings) -> BackendAdapter:
    from polydb.adapters.redis import RedisAdapter
    return RedisAdapter(settings.connection_string)


def _mongo(settings: Settings) -> BackendAdapter:
    from polydb.adapters.mongo import MongoAdapter
    return MongoAdapter(settings.connection_string, default_limit=settings.mongo_default_limit)


def _ldap(settings: Settings) -> BackendAdapter:
    from polydb.adapters.ldap import LDAPAdapter
    adapter = LDAPAdapter(settings.connection_string)
    bind_ldap(adapter, settings)
    return adapter


FACTORIES: Dict[str, Callable[[Settings], BackendAdapter]] = {
    "postgres": _postgres,
    "mysql": _mysql,
    "sqlite": _sqlite,
    "duckdb": _duckdb,
    "redis": _redis,
    "mongo": _mongo,
    "ldap": _ldap,
}


def create_adapter(settings: Settings) -> BackendAdapter:
    factory = FACTORIES.get(settings.db_type)
    if factory is None:
        raise ConfigurationError(f"Unsupported database type: {settings.db_type}")
    adapter = factory(settings)
    if adapter.kind is not settings.backend_kind:
        raise ConfigurationError(
            f"{settings.db_type} adapter serves {adapter.kind.value}, expected {settings.backend_kind.value}"
        )
    log.info(
        "Adapter ready",
        extra={"db_type": settings.db_type, "kind": adapter.kind.value, "policy": settings.policy_mode.value},
    )
    return adapter


def create_dispatcher(settings: Settings) -> Tuple[BackendAdapter, Dispatcher]:
    adapter = create_adapter(settings)
    return adapter, Dispatcher(adapter, policy=settings.policy_mode)
