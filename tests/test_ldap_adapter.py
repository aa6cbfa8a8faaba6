"""LDAP adapter helpers and directory operations over a mocked ldap3 connection."""

from unittest.mock import MagicMock, patch

import pytest
from ldap3 import MODIFY_ADD, MODIFY_REPLACE, SUBTREE
from ldap3.core.exceptions import LDAPSocketOpenError

from polydb.adapters.ldap import (
    FOLDER_FILTER,
    LDAPAdapter,
    folder_type,
    normalize_changes,
    rdn_value,
)
from polydb.exceptions.errors import InvalidArguments, PolicyViolation
from polydb.policy.gate import PolicyMode
from polydb.tools.dispatcher import Dispatcher

BASE_DN = "dc=corp,dc=local"

# parent DN -> immediate child folders
TREE = {
    BASE_DN: [("ou=Sales,dc=corp,dc=local", ["top", "organizationalUnit"]),
              ("cn=Users,dc=corp,dc=local", ["top", "container"])],
    "ou=Sales,dc=corp,dc=local": [("ou=EMEA,ou=Sales,dc=corp,dc=local", ["organizationalUnit"])],
    "ou=EMEA,ou=Sales,dc=corp,dc=local": [("ou=Paris,ou=EMEA,ou=Sales,dc=corp,dc=local", ["organizationalUnit"])],
}


def _entry(dn, object_classes):
    return {"type": "searchResEntry", "dn": dn, "attributes": {"objectClass": object_classes}}


@pytest.fixture
def conn():
    conn = MagicMock()
    conn.response = []
    return conn


@pytest.fixture
def adapter(conn):
    return LDAPAdapter("ldap://localhost:389", connection=conn)


@pytest.fixture
def tree_conn(conn):
    def search(search_base, search_filter, search_scope, attributes):
        children = TREE.get(search_base, []) if search_filter == FOLDER_FILTER else []
        if search_scope == SUBTREE:
            children = [c for kids in TREE.values() for c in kids]
        conn.response = [_entry(dn, oc) for dn, oc in children] + [{"type": "searchResRef", "uri": ["ldap://x"]}]
        return True

    conn.search.side_effect = search
    return conn


class TestHelpers:
    def test_rdn_value(self):
        assert rdn_value("OU=Sales,DC=corp,DC=local") == "Sales"
        assert rdn_value("") == ""

    def test_folder_type(self):
        assert folder_type(["top", "organizationalUnit"]) == "organizationalUnit"
        assert folder_type("CONTAINER") == "container"
        assert folder_type(["person"]) == "unknown"

    def test_normalize_plain_value_is_replace(self):
        assert normalize_changes({"sn": "Lovelace"}) == {"sn": [(MODIFY_REPLACE, ["Lovelace"])]}

    def test_normalize_explicit_operation(self):
        changes = normalize_changes({"mail": {"operation": "add", "values": ["a@x", "b@x"]}})
        assert changes == {"mail": [(MODIFY_ADD, ["a@x", "b@x"])]}

    @pytest.mark.parametrize("change", [{}, {"mail": {"operation": "increment", "values": [1]}}])
    def test_normalize_rejects_bad_changes(self, change):
        with pytest.raises(InvalidArguments):
            normalize_changes(change)


class TestSearch:
    def test_search_filters_references(self, adapter, tree_conn):
        payload = Dispatcher(adapter).invoke("ldap_search", {"base": BASE_DN, "filter": FOLDER_FILTER, "scope": "one"})
        assert payload["count"] == 2
        assert payload["attributes"] == ["*"]
        assert payload["entries"][0] == {
            "dn": "ou=Sales,dc=corp,dc=local",
            "attributes": {"objectClass": ["top", "organizationalUnit"]},
        }

    def test_invalid_scope_rejected_by_schema(self, adapter, conn):
        response = Dispatcher(adapter).dispatch("ldap_search", {"base": BASE_DN, "filter": "(cn=*)", "scope": "tree"})
        assert response.is_error
        conn.search.assert_not_called()

    def test_list_folders(self, adapter, tree_conn):
        payload = Dispatcher(adapter).invoke("ldap_list_folders", {})
        assert payload["base"] == "root"
        assert payload["count"] == 4
        assert {"dn": "cn=Users,dc=corp,dc=local", "name": "Users", "type": "container"} in payload["folders"]

    def test_folder_structure_respects_depth(self, adapter, tree_conn):
        result = adapter.search_folder_structure(BASE_DN, depth=2)
        assert result["base"] == BASE_DN
        assert result["total_folders"] == 3
        sales = result["structure"][0]
        assert sales["name"] == "Sales"
        assert sales["children"][0]["name"] == "EMEA"
        # third level is beyond the requested depth
        assert sales["children"][0]["children"] == []

    def test_folder_structure_full_tree(self, adapter, tree_conn):
        payload = Dispatcher(adapter).invoke("ldap_search_folder_structure", {"base": BASE_DN})
        assert payload["total_folders"] == 4
        assert payload["depth"] == 10

    def test_describe_missing_entry(self, adapter, conn):
        assert adapter.describe_entity("cn=nobody,dc=corp,dc=local") is None

    def test_search_entities_escapes_pattern(self, adapter, conn):
        conn.response = [{"type": "searchResEntry", "dn": "cn=a*b(,dc=corp,dc=local", "attributes": {}}]
        assert adapter.search_entities("a*b(\\", BASE_DN) == ["cn=a*b(,dc=corp,dc=local"]
        kwargs = conn.search.call_args.kwargs
        assert kwargs["search_filter"] == r"(|(cn=*a\2ab\28\5c*)(ou=*a\2ab\28\5c*)(dc=*a\2ab\28\5c*))"
        assert kwargs["search_scope"] == SUBTREE
        assert kwargs["search_base"] == BASE_DN


class TestAuthenticate:
    def test_success(self, adapter):
        with patch("polydb.adapters.ldap.Connection") as connection_cls:
            connection_cls.return_value.bind.return_value = True
            payload = Dispatcher(adapter).invoke("ldap_authenticate", {"dn": "cn=ada", "password": "pw"})
        assert payload == {"dn": "cn=ada", "authenticated": True}
        connection_cls.return_value.unbind.assert_called_once()

    def test_wrong_password(self, adapter):
        with patch("polydb.adapters.ldap.Connection") as connection_cls:
            connection_cls.return_value.bind.return_value = False
            assert adapter.authenticate("cn=ada", "nope") is False

    def test_unreachable_server(self, adapter):
        with patch("polydb.adapters.ldap.Connection") as connection_cls:
            connection_cls.return_value.bind.side_effect = LDAPSocketOpenError("down")
            assert adapter.authenticate("cn=ada", "pw") is False


class TestWrites:
    def test_blocked_under_read_only(self, adapter, conn):
        with pytest.raises(PolicyViolation):
            Dispatcher(adapter).invoke("ldap_delete", {"dn": "cn=ada,dc=corp,dc=local"})
        conn.delete.assert_not_called()

    def test_add_splits_object_class(self, adapter, conn):
        Dispatcher(adapter, policy=PolicyMode.READ_WRITE).invoke(
            "ldap_add", {"dn": "cn=ada,dc=corp,dc=local", "attributes": {"cn": "ada", "objectClass": ["person"]}}
        )
        conn.add.assert_called_once_with("cn=ada,dc=corp,dc=local", object_class=["person"], attributes={"cn": "ada"})

    def test_modify(self, adapter, conn):
        Dispatcher(adapter, policy=PolicyMode.READ_WRITE).invoke(
            "ldap_modify", {"dn": "cn=ada,dc=corp,dc=local", "change": {"sn": "Lovelace"}}
        )
        conn.modify.assert_called_once_with("cn=ada,dc=corp,dc=local", {"sn": [(MODIFY_REPLACE, ["Lovelace"])]})

    def test_compare(self, adapter, conn):
        conn.compare.return_value = True
        payload = Dispatcher(adapter).invoke(
            "ldap_compare", {"dn": "cn=ada,dc=corp,dc=local", "attribute": "sn", "value": "Lovelace"}
        )
        assert payload["matched"] is True

    def test_close_unbinds(self, adapter, conn):
        adapter.close()
        conn.unbind.assert_called_once()
        assert adapter.conn is None
