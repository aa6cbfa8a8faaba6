from __future__ import annotations

from typing import Any, Dict, List, Optional
import threading

from ldap3 import BASE, LEVEL, SUBTREE, Connection, Server
from ldap3 import MODIFY_ADD, MODIFY_DELETE, MODIFY_REPLACE
from ldap3.core.exceptions import LDAPException
from ldap3.utils.conv import escape_filter_chars
from ldap3.utils.dn import parse_dn

from polydb.adapters.base import BackendAdapter, BackendKind
from polydb.exceptions.errors import InvalidArguments
from polydb.logging.logger import get_logger

log = get_logger("adapters.ldap")

SEARCH_SCOPES = {"base": BASE, "one": LEVEL, "sub": SUBTREE}

MODIFY_OPERATIONS = {"add": MODIFY_ADD, "delete": MODIFY_DELETE, "replace": MODIFY_REPLACE}

FOLDER_CLASSES = ("organizationalUnit", "container", "domain", "organization", "builtinDomain")
FOLDER_FILTER = "(|" + "".join(f"(objectClass={c})" for c in FOLDER_CLASSES) + ")"


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


def folder_type(object_classes: Any) -> str:
    lowered = {str(c).lower() for c in _as_list(object_classes)}
    for c in FOLDER_CLASSES:
        if c.lower() in lowered:
            return c
    return "unknown"


def rdn_value(dn: str) -> str:
    """'OU=Sales,DC=corp,DC=local' -> 'Sales'."""
    if not dn:
        return ""
    try:
        return parse_dn(dn)[0][1]
    except LDAPException:
        return dn.split(",", 1)[0].split("=", 1)[-1]


def normalize_changes(change: Dict[str, Any]) -> Dict[str, List[Any]]:
    """Turn the tool-level change object into ldap3's modify format.

    Accepts either {attr: value} (replace) or
    {attr: {"operation": "add"|"delete"|"replace", "values": [...]}}.
    """
    if not isinstance(change, dict) or not change:
        raise InvalidArguments("change must be a non-empty object of attribute modifications")
    out: Dict[str, List[Any]] = {}
    for attr, spec in change.items():
        if isinstance(spec, dict):
            op_name = str(spec.get("operation", "replace")).lower()
            if op_name not in MODIFY_OPERATIONS:
                raise InvalidArguments(f"Unsupported modify operation for {attr}: {op_name}")
            out[attr] = [(MODIFY_OPERATIONS[op_name], _as_list(spec.get("values")))]
        else:
            out[attr] = [(MODIFY_REPLACE, _as_list(spec))]
    return out


class LDAPAdapter(BackendAdapter):
    """Directory backend over ldap3.

    DNs play the role of entities. One bound connection is shared and
    serialized by a lock; authentication checks use a throwaway connection
    so the service bind is never disturbed.
    """

    kind = BackendKind.DIRECTORY
    engine = "ldap"

    def __init__(self, connection_string: str, connection: Optional[Connection] = None, timeout: int = 10):
        self.url = connection_string
        self.timeout = timeout
        self.server = Server(connection_string, connect_timeout=timeout)
        self.conn: Optional[Connection] = connection
        self._lock = threading.Lock()

    def connect(self, bind_dn: Optional[str] = None, password: Optional[str] = None) -> None:
        """Bind (or bind anonymously when no credentials are given). Raises LDAPException on failure."""
        conn = Connection(
            self.server,
            user=bind_dn or None,
            password=password or None,
            auto_bind=True,
            raise_exceptions=True,
            receive_timeout=self.timeout,
        )
        if self.conn is not None:
            self.conn.unbind()
        self.conn = conn
        log.info("LDAP bound", extra={"url": self.url, "bind_dn": bind_dn or "anonymous"})

    def _connection(self) -> Connection:
        if self.conn is None:
            self.connect()
        return self.conn

    # -----------------------------
    # native operations
    # -----------------------------
    def search(
        self,
        base: str,
        filter: str,
        scope: str = "sub",
        attributes: Optional[List[str]] = None,
    ) -> List[Dict[str, Any]]:
        if scope not in SEARCH_SCOPES:
            raise InvalidArguments(f"scope must be one of base, one, sub (got {scope!r})")
        with self._lock:
            conn = self._connection()
            conn.search(
                search_base=base,
                search_filter=filter,
                search_scope=SEARCH_SCOPES[scope],
                attributes=attributes or ["*"],
            )
            response = list(conn.response or [])
        return [
            {"dn": e.get("dn", ""), "attributes": dict(e.get("attributes") or {})}
            for e in response
            if e.get("type", "searchResEntry") == "searchResEntry"
        ]

    def authenticate(self, dn: str, password: str) -> bool:
        trial = Connection(self.server, user=dn, password=password, receive_timeout=self.timeout)
        try:
            return bool(trial.bind())
        except LDAPException as e:
            log.info("LDAP authentication failed", extra={"dn": dn, "error": str(e)})
            return False
        finally:
            trial.unbind()

    def add(self, dn: str, attributes: Dict[str, Any]) -> None:
        attrs = dict(attributes)
        object_class = attrs.pop("objectClass", None)
        with self._lock:
            self._connection().add(dn, object_class=object_class, attributes=attrs)

    def modify(self, dn: str, change: Dict[str, Any]) -> None:
        changes = normalize_changes(change)
        with self._lock:
            self._connection().modify(dn, changes)

    def delete(self, dn: str) -> None:
        with self._lock:
            self._connection().delete(dn)

    def compare(self, dn: str, attribute: str, value: str) -> bool:
        with self._lock:
            return bool(self._connection().compare(dn, attribute, value))

    def list_folders(self, base: str = "") -> List[Dict[str, Any]]:
        entries = self.search(base, FOLDER_FILTER, scope="sub", attributes=["objectClass"])
        return [
            {"dn": e["dn"], "name": rdn_value(e["dn"]), "type": folder_type(e["attributes"].get("objectClass"))}
            for e in entries
        ]

    def search_folder_structure(self, base: str = "", depth: int = 10, include_entries: bool = False) -> Dict[str, Any]:
        """Walk folders one level at a time, at most `depth` levels below base."""
        attributes = ["*"] if include_entries else ["objectClass"]
        total = 0

        def walk(parent: str, level: int) -> List[Dict[str, Any]]:
            nonlocal total
            if level >= depth:
                return []
            nodes = []
            for e in self.search(parent, FOLDER_FILTER, scope="one", attributes=attributes):
                total += 1
                node: Dict[str, Any] = {
                    "dn": e["dn"],
                    "name": rdn_value(e["dn"]),
                    "type": folder_type(e["attributes"].get("objectClass")),
                }
                if include_entries:
                    node["attributes"] = e["attributes"]
                node["children"] = walk(e["dn"], level + 1)
                nodes.append(node)
            return nodes

        structure = walk(base, 0)
        return {"base": base or "root", "depth": depth, "structure": structure, "total_folders": total}

    # -----------------------------
    # generic interface
    # -----------------------------
    def list_entities(self, scope: Optional[str] = None) -> List[str]:
        entries = self.search(scope or "", "(objectClass=*)", scope="one", attributes=["ou", "cn", "dc"])
        return [e["dn"] for e in entries]

    def describe_entity(self, name: str, scope: Optional[str] = None) -> Optional[Dict[str, Any]]:
        entries = self.search(name, "(objectClass=*)", scope="base", attributes=["*"])
        return entries[0] if entries else None

    def search_entities(self, pattern: str, scope: Optional[str] = None) -> List[str]:
        p = escape_filter_chars(pattern)
        flt = f"(|(cn=*{p}*)(ou=*{p}*)(dc=*{p}*))"
        return [e["dn"] for e in self.search(scope or "", flt, scope="sub", attributes=["1.1"])]

    def get_entity_size(self, name: str, scope: Optional[str] = None) -> Dict[str, Any]:
        return {"dn": name, "size": "N/A", "size_bytes": 0, "rows": 0}

    def get_entity_stats(self, name: str, scope: Optional[str] = None) -> Dict[str, Any]:
        entries = self.search(name, "(objectClass=*)", scope="sub", attributes=["1.1"])
        return {
            "dn": name,
            "row_count": len(entries),
            "total_size": "N/A",
            "table_size": "N/A",
            "indexes_size": "N/A",
        }

    def close(self) -> None:
        with self._lock:
            if self.conn is not None:
                self.conn.unbind()
                self.conn = None
