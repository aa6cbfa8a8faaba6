from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import redis

from polydb.adapters.base import BackendAdapter, BackendKind
from polydb.logging.logger import get_logger

log = get_logger("adapters.redis")


class RedisAdapter(BackendAdapter):
    """Key-value backend. Keys play the role of entities.

    The client is created from the URL with decode_responses=True so every
    value that reaches the envelope is already a str. Tests inject their own
    client object.
    """

    kind = BackendKind.KEY_VALUE
    engine = "redis"

    def __init__(self, connection_string: str = "", client: Optional[redis.Redis] = None):
        self.client = client if client is not None else redis.from_url(connection_string, decode_responses=True)
        log.info("Redis client created", extra={"injected": client is not None})

    # -----------------------------
    # native commands
    # -----------------------------
    def get(self, key: str) -> Optional[str]:
        return self.client.get(key)

    def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        if ttl:
            self.client.setex(key, ttl, value)
        else:
            self.client.set(key, value)

    def delete(self, key: str) -> int:
        return int(self.client.delete(key))

    def keys(self, pattern: str = "*") -> List[str]:
        return list(self.client.keys(pattern))

    def exists(self, key: str) -> bool:
        return int(self.client.exists(key)) > 0

    def ttl(self, key: str) -> int:
        return int(self.client.ttl(key))

    def expire(self, key: str, seconds: int) -> bool:
        return bool(self.client.expire(key, seconds))

    def type(self, key: str) -> str:
        return self.client.type(key)

    def dbsize(self) -> int:
        return int(self.client.dbsize())

    def info(self, section: Optional[str] = None) -> Dict[str, Any]:
        if section:
            return self.client.info(section)
        return self.client.info()

    def hget(self, key: str, field: str) -> Optional[str]:
        return self.client.hget(key, field)

    def hset(self, key: str, field: str, value: str) -> int:
        return int(self.client.hset(key, field, value))

    def hgetall(self, key: str) -> Dict[str, str]:
        return dict(self.client.hgetall(key))

    def lrange(self, key: str, start: int, stop: int) -> List[str]:
        return list(self.client.lrange(key, start, stop))

    def smembers(self, key: str) -> List[str]:
        return sorted(self.client.smembers(key))

    def zrange(self, key: str, start: int, stop: int, with_scores: bool = False) -> List[str]:
        if with_scores:
            return [f"{member}:{score:g}" for member, score in self.client.zrange(key, start, stop, withscores=True)]
        return list(self.client.zrange(key, start, stop))

    # -----------------------------
    # generic interface
    # -----------------------------
    def list_entities(self, scope: Optional[str] = None) -> List[str]:
        return self.keys("*")

    def describe_entity(self, name: str, scope: Optional[str] = None) -> Dict[str, Any]:
        kind = self.type(name)
        exists = self.exists(name)
        value: Union[str, Dict[str, str], List[str], None] = None
        if exists:
            if kind == "string":
                value = self.get(name)
            elif kind == "hash":
                value = self.hgetall(name)
            elif kind == "list":
                value = self.lrange(name, 0, -1)
            elif kind == "set":
                value = self.smembers(name)
            elif kind == "zset":
                value = self.zrange(name, 0, -1, with_scores=True)
        return {"key": name, "type": kind, "ttl": self.ttl(name), "exists": exists, "value": value}

    def search_entities(self, pattern: str, scope: Optional[str] = None) -> List[str]:
        return self.keys(pattern)

    def get_entity_size(self, name: str, scope: Optional[str] = None) -> Dict[str, Any]:
        return {"key": name, "info": self.info("memory")}

    def get_entity_stats(self, name: str, scope: Optional[str] = None) -> Dict[str, Any]:
        return {"key": name, "type": self.type(name), "ttl": self.ttl(name), "exists": self.exists(name)}

    def close(self) -> None:
        self.client.close()
