"""Tests for the catalog builder."""

import pytest

from polydb.adapters.base import BackendKind
from polydb.exceptions.errors import ConfigurationError
from polydb.tools.catalog import NATIVE_REGISTRIES, build_catalog
from polydb.tools.generic_tool import GENERIC_OPERATIONS
from polydb.tools.registry import Operation, object_schema


GENERIC_NAMES = [
    "query",
    "execute",
    "list_tables",
    "describe_table",
    "list_schemas",
    "explain_query",
    "get_indexes",
    "get_foreign_keys",
    "get_table_size",
    "list_views",
    "describe_view",
    "search_tables",
    "get_table_stats",
]


def _noop(adapter, args):
    return None


class TestBuildCatalog:
    @pytest.mark.parametrize("kind", list(BackendKind))
    def test_no_duplicate_names(self, kind):
        names = build_catalog(kind).names()
        assert len(names) == len(set(names))

    @pytest.mark.parametrize("kind", list(BackendKind))
    def test_every_operation_applies_to_kind(self, kind):
        for op in build_catalog(kind):
            assert kind in op.applies_to

    @pytest.mark.parametrize("kind", list(BackendKind))
    def test_listing_is_deterministic(self, kind):
        assert build_catalog(kind).listing() == build_catalog(kind).listing()
        catalog = build_catalog(kind)
        assert catalog.listing() == catalog.listing()

    def test_relational_catalog_is_generic_set_in_order(self):
        assert build_catalog(BackendKind.RELATIONAL).names() == GENERIC_NAMES

    @pytest.mark.parametrize("kind, prefix", [
        (BackendKind.KEY_VALUE, "redis_"),
        (BackendKind.DOCUMENT, "mongo_"),
        (BackendKind.DIRECTORY, "ldap_"),
    ])
    def test_non_relational_catalogs_are_native_only(self, kind, prefix):
        names = build_catalog(kind).names()
        assert names
        assert all(n.startswith(prefix) for n in names)
        assert "query" not in names

    def test_listing_shape(self):
        entry = build_catalog(BackendKind.RELATIONAL).listing()[0]
        assert set(entry) == {"name", "description", "inputSchema"}
        assert entry["inputSchema"]["type"] == "object"

    def test_mutating_flags(self):
        mutating = {op.name for kind in BackendKind for op in build_catalog(kind) if op.mutating}
        assert mutating == {
            "execute",
            "redis_set", "redis_del", "redis_expire", "redis_hset",
            "mongo_insert_one", "mongo_insert_many", "mongo_update_one", "mongo_update_many",
            "mongo_delete_one", "mongo_delete_many", "mongo_create_index",
            "ldap_add", "ldap_modify", "ldap_delete",
        }

    def test_duplicate_across_registries_is_configuration_error(self):
        clash = Operation(
            name="query",
            description="shadows the generic query",
            parameter_schema=object_schema({}),
            applies_to=frozenset({BackendKind.KEY_VALUE}),
            handler=_noop,
        )
        native = {**NATIVE_REGISTRIES, BackendKind.KEY_VALUE: [clash]}
        with pytest.raises(ConfigurationError, match="query"):
            build_catalog(BackendKind.KEY_VALUE, native=native)
        # the clash is detected even when building for another kind
        with pytest.raises(ConfigurationError):
            build_catalog(BackendKind.DIRECTORY, native=native)

    def test_applies_to_filters_generic_operations(self):
        relational_only = GENERIC_OPERATIONS[0]
        catalog = build_catalog(BackendKind.DOCUMENT, generic=[relational_only], native={})
        assert len(catalog) == 0

    def test_lookup(self):
        catalog = build_catalog(BackendKind.KEY_VALUE)
        assert catalog.get("redis_get").name == "redis_get"
        assert catalog.get("query") is None
        assert "redis_get" in catalog
