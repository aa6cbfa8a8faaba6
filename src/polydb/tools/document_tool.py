from __future__ import annotations

from typing import Any, Dict, List

from polydb.adapters.base import BackendKind
from polydb.exceptions.errors import InvalidArguments
from polydb.policy.statements import check_pipeline
from polydb.tools.registry import Operation, array, integer, obj, object_schema, operations_for, string

_COLLECTION = string("Collection name")
_FILTER = obj("Query filter (e.g. {\"status\": \"active\"})")


def mongo_find(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    collection = args["collection"]
    flt = args.get("filter") or {}
    limit = args.get("limit", getattr(adapter, "default_limit", 100))
    skip = args.get("skip", 0)
    documents = adapter.find(collection, flt, limit=limit, skip=skip)
    return {
        "collection": collection,
        "filter": flt,
        "limit": limit,
        "skip": skip,
        "documents": documents,
        "count": len(documents),
    }


def mongo_find_one(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    flt = args.get("filter") or {}
    return {"collection": args["collection"], "filter": flt, "document": adapter.find_one(args["collection"], flt)}


def mongo_insert_one(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    # the driver adds _id to the dict it is given; echo the caller's document
    document = dict(args["document"])
    inserted_id = adapter.insert_one(args["collection"], dict(document))
    return {"collection": args["collection"], "document": document, "inserted_id": inserted_id}


def mongo_insert_many(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    documents = [dict(d) for d in args["documents"]]
    ids = adapter.insert_many(args["collection"], [dict(d) for d in documents])
    return {"collection": args["collection"], "documents": documents, "inserted_ids": ids, "count": len(ids)}


def mongo_update_one(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    modified = adapter.update_one(args["collection"], args["filter"], args["update"])
    return {"collection": args["collection"], "filter": args["filter"], "update": args["update"], "modified_count": modified}


def mongo_update_many(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    modified = adapter.update_many(args["collection"], args["filter"], args["update"])
    return {"collection": args["collection"], "filter": args["filter"], "update": args["update"], "modified_count": modified}


def mongo_delete_one(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    deleted = adapter.delete_one(args["collection"], args["filter"])
    return {"collection": args["collection"], "filter": args["filter"], "deleted_count": deleted}


def mongo_delete_many(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    deleted = adapter.delete_many(args["collection"], args["filter"])
    return {"collection": args["collection"], "filter": args["filter"], "deleted_count": deleted}


def mongo_count(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    flt = args.get("filter") or {}
    return {"collection": args["collection"], "filter": flt, "count": adapter.count(args["collection"], flt)}


def mongo_aggregate(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    results = adapter.aggregate(args["collection"], args["pipeline"])
    return {"collection": args["collection"], "pipeline": args["pipeline"], "results": results, "count": len(results)}


def mongo_list_collections(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    collections = adapter.list_entities()
    return {"collections": collections, "count": len(collections)}


def mongo_get_collection_stats(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return adapter.get_collection_stats(args["collection"])


def mongo_get_indexes(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return {"collection": args["collection"], "indexes": adapter.get_indexes(args["collection"])}


def mongo_create_index(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    options = args.get("options") or {}
    index_name = adapter.create_index(args["collection"], args["keys"], options)
    return {"collection": args["collection"], "keys": args["keys"], "options": options, "index_name": index_name}


def mongo_get_database_stats(adapter, args: Dict[str, Any]) -> Dict[str, Any]:
    return adapter.get_database_stats()


def _check_pipeline(adapter, args: Dict[str, Any]) -> None:
    check_pipeline(args["pipeline"])


def _check_update(adapter, args: Dict[str, Any]) -> None:
    # updates are applied with $set; operator documents would nest under it
    bad = sorted(k for k in args["update"] if str(k).startswith("$"))
    if bad:
        raise InvalidArguments(f"update must be a plain field mapping (found {', '.join(bad)})")


_UPDATE_SCHEMA = object_schema(
    {"collection": _COLLECTION, "filter": _FILTER, "update": obj("Fields to set")},
    ["collection", "filter", "update"],
)
_DELETE_SCHEMA = object_schema({"collection": _COLLECTION, "filter": _FILTER}, ["collection", "filter"])

DOCUMENT_OPERATIONS: List[Operation] = operations_for(BackendKind.DOCUMENT, [
    dict(name="mongo_find", description="Find documents in a collection",
         parameter_schema=object_schema(
             {
                 "collection": _COLLECTION,
                 "filter": _FILTER,
                 "limit": integer("Maximum number of documents", minimum=0, default=100),
                 "skip": integer("Number of documents to skip", minimum=0, default=0),
             },
             ["collection"],
         ),
         handler=mongo_find),
    dict(name="mongo_find_one", description="Find a single document",
         parameter_schema=object_schema({"collection": _COLLECTION, "filter": _FILTER}, ["collection"]),
         handler=mongo_find_one),
    dict(name="mongo_insert_one", description="Insert a document",
         parameter_schema=object_schema(
             {"collection": _COLLECTION, "document": obj("Document to insert")}, ["collection", "document"]
         ),
         handler=mongo_insert_one, mutating=True),
    dict(name="mongo_insert_many", description="Insert several documents",
         parameter_schema=object_schema(
             {"collection": _COLLECTION, "documents": array("Documents to insert", {"type": "object"})},
             ["collection", "documents"],
         ),
         handler=mongo_insert_many, mutating=True),
    dict(name="mongo_update_one", description="Set fields on the first matching document",
         parameter_schema=_UPDATE_SCHEMA, handler=mongo_update_one, mutating=True, check=_check_update),
    dict(name="mongo_update_many", description="Set fields on every matching document",
         parameter_schema=_UPDATE_SCHEMA, handler=mongo_update_many, mutating=True, check=_check_update),
    dict(name="mongo_delete_one", description="Delete the first matching document",
         parameter_schema=_DELETE_SCHEMA, handler=mongo_delete_one, mutating=True),
    dict(name="mongo_delete_many", description="Delete every matching document",
         parameter_schema=_DELETE_SCHEMA, handler=mongo_delete_many, mutating=True),
    dict(name="mongo_count", description="Count documents matching a filter",
         parameter_schema=object_schema({"collection": _COLLECTION, "filter": _FILTER}, ["collection"]),
         handler=mongo_count),
    dict(name="mongo_aggregate", description="Run a read-only aggregation pipeline",
         parameter_schema=object_schema(
             {"collection": _COLLECTION, "pipeline": array("Aggregation stages", {"type": "object"})},
             ["collection", "pipeline"],
         ),
         handler=mongo_aggregate, check=_check_pipeline),
    dict(name="mongo_list_collections", description="List all collections in the database",
         parameter_schema=object_schema({}), handler=mongo_list_collections),
    dict(name="mongo_get_collection_stats", description="Document count and storage statistics for a collection",
         parameter_schema=object_schema({"collection": _COLLECTION}, ["collection"]),
         handler=mongo_get_collection_stats),
    dict(name="mongo_get_indexes", description="List the indexes of a collection",
         parameter_schema=object_schema({"collection": _COLLECTION}, ["collection"]), handler=mongo_get_indexes),
    dict(name="mongo_create_index", description="Create an index on a collection",
         parameter_schema=object_schema(
             {
                 "collection": _COLLECTION,
                 "keys": obj("Index keys (e.g. {\"email\": 1})"),
                 "options": obj("Index options (e.g. {\"unique\": true})"),
             },
             ["collection", "keys"],
         ),
         handler=mongo_create_index, mutating=True),
    dict(name="mongo_get_database_stats", description="Storage statistics for the database",
         parameter_schema=object_schema({}), handler=mongo_get_database_stats),
])
