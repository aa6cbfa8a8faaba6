from __future__ import annotations

from typing import Any, Dict, List

from polydb.adapters.base import BackendKind
from polydb.tools.registry import Operation, array, integer, obj, object_schema, operations_for, string

_DN = string("Distinguished Name (e.g. 'cn=user,dc=example,dc=com')")
_BASE = string("Base DN (e.g. 'dc=example,dc=com'). Empty string searches from root.", default="")


def ldap_search(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    base, flt = args["base"], args["filter"]
    scope = args.get("scope", "sub")
    attributes = args.get("attributes") or ["*"]
    entries = adapter.search(base, flt, scope=scope, attributes=attributes)
    return {"base": base, "filter": flt, "scope": scope, "attributes": attributes, "entries": entries, "count": len(entries)}


def ldap_authenticate(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"dn": args["dn"], "authenticated": adapter.authenticate(args["dn"], args["password"])}


def ldap_add(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    adapter.add(args["dn"], args["attributes"])
    return {"dn": args["dn"], "attributes": args["attributes"], "status": "OK"}


def ldap_modify(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    adapter.modify(args["dn"], args["change"])
    return {"dn": args["dn"], "change": args["change"], "status": "OK"}


def ldap_delete(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    adapter.delete(args["dn"])
    return {"dn": args["dn"], "status": "OK"}


def ldap_compare(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    matched = adapter.compare(args["dn"], args["attribute"], args["value"])
    return {"dn": args["dn"], "attribute": args["attribute"], "value": args["value"], "matched": matched}


def ldap_search_folder_structure(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return adapter.search_folder_structure(
        args.get("base", ""),
        depth=args.get("depth", 10),
        include_entries=bool(args.get("include_entries", False)),
    )


def ldap_list_folders(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    base = args.get("base", "")
    folders = adapter.list_folders(base)
    return {"base": base or "root", "folders": folders, "count": len(folders)}


DIRECTORY_OPERATIONS: List[Operation] = operations_for(BackendKind.DIRECTORY, [
    dict(name="ldap_search", description="Search LDAP directory entries",
         parameter_schema=object_schema(
             {
                 "base": string("Base DN for search (e.g. 'dc=example,dc=com')"),
                 "filter": string("LDAP filter (e.g. '(cn=John Doe)')"),
                 "scope": string("Search scope (default: 'sub')", enum=["base", "one", "sub"], default="sub"),
                 "attributes": array("Attributes to return (default: all)", {"type": "string"}),
             },
             ["base", "filter"],
         ),
         handler=ldap_search),
    dict(name="ldap_authenticate", description="Check a DN and password by binding with them",
         parameter_schema=object_schema({"dn": _DN, "password": string("Password")}, ["dn", "password"]),
         handler=ldap_authenticate),
    dict(name="ldap_add", description="Add a new LDAP entry",
         parameter_schema=object_schema(
             {"dn": _DN, "attributes": obj("Entry attributes (e.g. {\"cn\": \"John\", \"objectClass\": [\"person\"]})")},
             ["dn", "attributes"],
         ),
         handler=ldap_add, mutating=True),
    dict(name="ldap_modify", description="Modify an LDAP entry",
         parameter_schema=object_schema(
             {
                 "dn": _DN,
                 "change": obj(
                     "Attribute changes: {attr: value} replaces, "
                     "{attr: {\"operation\": \"add|delete|replace\", \"values\": [...]}} for explicit operations"
                 ),
             },
             ["dn", "change"],
         ),
         handler=ldap_modify, mutating=True),
    dict(name="ldap_delete", description="Delete an LDAP entry",
         parameter_schema=object_schema({"dn": _DN}, ["dn"]), handler=ldap_delete, mutating=True),
    dict(name="ldap_compare", description="Compare an attribute value of an LDAP entry",
         parameter_schema=object_schema(
             {"dn": _DN, "attribute": string("Attribute name"), "value": string("Value to compare")},
             ["dn", "attribute", "value"],
         ),
         handler=ldap_compare),
    dict(name="ldap_search_folder_structure",
         description="Hierarchical tree of folders (organizational units, containers, domains) below a base DN",
         parameter_schema=object_schema(
             {
                 "base": _BASE,
                 "depth": integer("Maximum depth to traverse (default: 10)", minimum=1, default=10),
                 "include_entries": {
                     "type": "boolean",
                     "description": "Include full entry attributes in the result",
                     "default": False,
                 },
             }
         ),
         handler=ldap_search_folder_structure),
    dict(name="ldap_list_folders", description="Flat list of all folders (OUs, containers, domains) below a base DN",
         parameter_schema=object_schema({"base": _BASE}), handler=ldap_list_folders),
])
