from __future__ import annotations

from typing import Any, Dict, List

from polydb.adapters.base import BackendKind
from polydb.tools.registry import Operation, integer, object_schema, operations_for, string

_KEY = string("Key name")
_FIELD = string("Hash field")


def redis_get(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"key": args["key"], "value": adapter.get(args["key"])}


def redis_set(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    ttl = args.get("ttl")
    adapter.set(args["key"], args["value"], ttl)
    return {"key": args["key"], "value": args["value"], "ttl": ttl or None, "status": "OK"}


def redis_del(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"key": args["key"], "deleted": adapter.delete(args["key"])}


def redis_keys(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    pattern = args.get("pattern") or "*"
    keys = adapter.search_entities(pattern)
    return {"pattern": pattern, "keys": keys, "count": len(keys)}


def redis_exists(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"key": args["key"], "exists": adapter.exists(args["key"])}


def redis_ttl(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"key": args["key"], "ttl": adapter.ttl(args["key"])}


def redis_expire(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    result = adapter.expire(args["key"], args["seconds"])
    return {"key": args["key"], "seconds": args["seconds"], "result": result}


def redis_type(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"key": args["key"], "type": adapter.type(args["key"])}


def redis_dbsize(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"dbsize": adapter.dbsize()}


def redis_info(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    section = args.get("section")
    return {"section": section or "all", "info": adapter.info(section)}


def redis_hget(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"key": args["key"], "field": args["field"], "value": adapter.hget(args["key"], args["field"])}


def redis_hset(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    result = adapter.hset(args["key"], args["field"], args["value"])
    return {"key": args["key"], "field": args["field"], "value": args["value"], "result": result}


def redis_hgetall(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"key": args["key"], "hash": adapter.hgetall(args["key"])}


def redis_lrange(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    start, stop = args.get("start", 0), args.get("stop", -1)
    return {"key": args["key"], "start": start, "stop": stop, "list": adapter.lrange(args["key"], start, stop)}


def redis_smembers(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"key": args["key"], "members": adapter.smembers(args["key"])}


def redis_zrange(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    start, stop = args.get("start", 0), args.get("stop", -1)
    with_scores = bool(args.get("with_scores", False))
    members = adapter.zrange(args["key"], start, stop, with_scores=with_scores)
    return {"key": args["key"], "start": start, "stop": stop, "with_scores": with_scores, "members": members}


_RANGE = {
    "key": _KEY,
    "start": integer("Start index", default=0),
    "stop": integer("Stop index, inclusive (-1 for end)", default=-1),
}

KEY_VALUE_OPERATIONS: List[Operation] = operations_for(BackendKind.KEY_VALUE, [
    dict(name="redis_get", description="Get the string value of a key",
         parameter_schema=object_schema({"key": _KEY}, ["key"]), handler=redis_get),
    dict(name="redis_set", description="Set a string value, optionally with a TTL in seconds",
         parameter_schema=object_schema(
             {"key": _KEY, "value": string("Value to store"), "ttl": integer("Time to live in seconds", minimum=1)},
             ["key", "value"],
         ),
         handler=redis_set, mutating=True),
    dict(name="redis_del", description="Delete a key",
         parameter_schema=object_schema({"key": _KEY}, ["key"]), handler=redis_del, mutating=True),
    dict(name="redis_keys", description="Find keys matching a glob pattern",
         parameter_schema=object_schema({"pattern": string("Glob pattern (e.g. 'user:*')", default="*")}),
         handler=redis_keys),
    dict(name="redis_exists", description="Check whether a key exists",
         parameter_schema=object_schema({"key": _KEY}, ["key"]), handler=redis_exists),
    dict(name="redis_ttl", description="Get the remaining time to live of a key",
         parameter_schema=object_schema({"key": _KEY}, ["key"]), handler=redis_ttl),
    dict(name="redis_expire", description="Set a timeout on a key",
         parameter_schema=object_schema({"key": _KEY, "seconds": integer("Timeout in seconds")}, ["key", "seconds"]),
         handler=redis_expire, mutating=True),
    dict(name="redis_type", description="Get the type stored at a key",
         parameter_schema=object_schema({"key": _KEY}, ["key"]), handler=redis_type),
    dict(name="redis_dbsize", description="Number of keys in the current database",
         parameter_schema=object_schema({}), handler=redis_dbsize),
    dict(name="redis_info", description="Server information and statistics",
         parameter_schema=object_schema({"section": string("Info section (e.g. 'memory', 'stats')")}),
         handler=redis_info),
    dict(name="redis_hget", description="Get the value of a hash field",
         parameter_schema=object_schema({"key": _KEY, "field": _FIELD}, ["key", "field"]), handler=redis_hget),
    dict(name="redis_hset", description="Set the value of a hash field",
         parameter_schema=object_schema(
             {"key": _KEY, "field": _FIELD, "value": string("Value to store")}, ["key", "field", "value"]
         ),
         handler=redis_hset, mutating=True),
    dict(name="redis_hgetall", description="Get all fields and values of a hash",
         parameter_schema=object_schema({"key": _KEY}, ["key"]), handler=redis_hgetall),
    dict(name="redis_lrange", description="Get a range of elements from a list",
         parameter_schema=object_schema(_RANGE, ["key"]), handler=redis_lrange),
    dict(name="redis_smembers", description="Get all members of a set",
         parameter_schema=object_schema({"key": _KEY}, ["key"]), handler=redis_smembers),
    dict(name="redis_zrange", description="Get a range of members from a sorted set",
         parameter_schema=object_schema(
             {**_RANGE, "with_scores": {"type": "boolean", "description": "Include scores", "default": False}},
             ["key"],
         ),
         handler=redis_zrange),
])
