from __future__ import annotations

from typing import Any, Dict, List, Optional
import re

from pymongo import MongoClient
from pymongo.database import Database

from polydb.adapters.base import BackendAdapter, BackendKind
from polydb.adapters.utils import format_bytes
from polydb.logging.logger import get_logger

log = get_logger("adapters.mongo")


class MongoAdapter(BackendAdapter):
    """Document backend. Collections play the role of entities."""

    kind = BackendKind.DOCUMENT
    engine = "mongo"

    def __init__(self, connection_string: str = "", db: Optional[Database] = None, default_limit: int = 100):
        self.default_limit = default_limit
        self.client: Optional[MongoClient] = None
        if db is None:
            self.client = MongoClient(connection_string)
            db = self.client.get_default_database(default="test")
        self.db = db
        self.database_name: str = getattr(db, "name", "test")
        log.info("MongoDB database selected", extra={"database": self.database_name})

    # -----------------------------
    # native commands
    # -----------------------------
    def find(
        self,
        collection: str,
        filter: Optional[Dict[str, Any]] = None,
        limit: int = 100,
        skip: int = 0,
    ) -> List[Dict[str, Any]]:
        cursor = self.db[collection].find(filter or {}).skip(skip).limit(limit)
        return list(cursor)

    def find_one(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> Optional[Dict[str, Any]]:
        return self.db[collection].find_one(filter or {})

    def insert_one(self, collection: str, document: Dict[str, Any]) -> str:
        return str(self.db[collection].insert_one(document).inserted_id)

    def insert_many(self, collection: str, documents: List[Dict[str, Any]]) -> List[str]:
        return [str(i) for i in self.db[collection].insert_many(documents).inserted_ids]

    # update payloads are field assignments; they are always wrapped in $set
    def update_one(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        return self.db[collection].update_one(filter, {"$set": update}).modified_count

    def update_many(self, collection: str, filter: Dict[str, Any], update: Dict[str, Any]) -> int:
        return self.db[collection].update_many(filter, {"$set": update}).modified_count

    def delete_one(self, collection: str, filter: Dict[str, Any]) -> int:
        return self.db[collection].delete_one(filter).deleted_count

    def delete_many(self, collection: str, filter: Dict[str, Any]) -> int:
        return self.db[collection].delete_many(filter).deleted_count

    def count(self, collection: str, filter: Optional[Dict[str, Any]] = None) -> int:
        return int(self.db[collection].count_documents(filter or {}))

    def aggregate(self, collection: str, pipeline: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return list(self.db[collection].aggregate(pipeline))

    def list_collections(self) -> List[str]:
        return sorted(self.db.list_collection_names())

    def get_collection_stats(self, collection: str) -> Dict[str, Any]:
        stats = self.db.command("collStats", collection)
        return {
            "collection": collection,
            "count": stats.get("count", 0),
            "size": stats.get("size", 0),
            "storageSize": stats.get("storageSize", 0),
            "indexes": stats.get("nindexes", 0),
            "indexSize": stats.get("totalIndexSize", 0),
        }

    def get_collection_indexes(self, collection: str) -> List[Dict[str, Any]]:
        info = self.db[collection].index_information()
        return [
            {"name": name, "keys": dict(spec.get("key", [])), "unique": bool(spec.get("unique", False))}
            for name, spec in info.items()
        ]

    def create_index(self, collection: str, keys: Dict[str, Any], options: Optional[Dict[str, Any]] = None) -> str:
        return self.db[collection].create_index(list(keys.items()), **(options or {}))

    def get_database_stats(self) -> Dict[str, Any]:
        stats = self.db.command("dbStats")
        return {
            "database": self.database_name,
            "collections": stats.get("collections", 0),
            "dataSize": stats.get("dataSize", 0),
            "storageSize": stats.get("storageSize", 0),
            "indexes": stats.get("indexes", 0),
            "indexSize": stats.get("indexSize", 0),
        }

    # -----------------------------
    # generic interface
    # -----------------------------
    def list_entities(self, scope: Optional[str] = None) -> List[str]:
        return self.list_collections()

    def describe_entity(self, name: str, scope: Optional[str] = None) -> Dict[str, Any]:
        # field types inferred from a single sample document
        sample = self.find_one(name)
        fields = {k: type(v).__name__ for k, v in (sample or {}).items()}
        return {
            "collection": name,
            "schema": fields,
            "stats": self.get_collection_stats(name),
            "indexes": self.get_collection_indexes(name),
        }

    def list_scopes(self) -> List[str]:
        return [self.database_name]

    def search_entities(self, pattern: str, scope: Optional[str] = None) -> List[str]:
        rx = re.compile(pattern, re.IGNORECASE)
        return [c for c in self.list_collections() if rx.search(c)]

    def get_indexes(self, name: str, scope: Optional[str] = None) -> List[Dict[str, Any]]:
        return self.get_collection_indexes(name)

    def get_entity_size(self, name: str, scope: Optional[str] = None) -> Dict[str, Any]:
        stats = self.get_collection_stats(name)
        return {
            "collection": name,
            "size": format_bytes(stats["size"]),
            "size_bytes": stats["size"],
            "rows": stats["count"],
        }

    def get_entity_stats(self, name: str, scope: Optional[str] = None) -> Dict[str, Any]:
        stats = self.get_collection_stats(name)
        return {
            "collection": name,
            "row_count": stats["count"],
            "total_size": format_bytes(stats["size"] + stats["indexSize"]),
            "table_size": format_bytes(stats["size"]),
            "indexes_size": format_bytes(stats["indexSize"]),
        }

    def default_scope(self) -> str:
        return self.database_name

    def close(self) -> None:
        if self.client is not None:
            self.client.close()
