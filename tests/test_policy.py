"""Tests for policy mode resolution, the read-only gate and statement classification."""

import pytest

from polydb.config.settings import resolve_policy_mode
from polydb.exceptions.errors import InvalidStatementClass, PolicyViolation, READ_ONLY_MESSAGE
from polydb.policy.gate import PolicyGate, PolicyMode
from polydb.policy.statements import check_pipeline, classify_statement, dialect_for_engine
from polydb.tools.catalog import build_catalog
from polydb.adapters.base import BackendKind


# =============================================================================
# Mode resolution
# =============================================================================


class TestResolvePolicyMode:
    @pytest.mark.parametrize("raw", ["false", "FALSE", "False", "0"])
    def test_explicit_false_tokens_enable_writes(self, raw):
        assert resolve_policy_mode(raw) is PolicyMode.READ_WRITE

    @pytest.mark.parametrize("raw", [None, "", "true", "yes", "1", "no", "off", " false", "false "])
    def test_everything_else_is_read_only(self, raw):
        assert resolve_policy_mode(raw) is PolicyMode.READ_ONLY


# =============================================================================
# Gate
# =============================================================================


class TestPolicyGate:
    @pytest.fixture
    def catalog(self):
        return build_catalog(BackendKind.RELATIONAL)

    def test_read_only_blocks_mutating(self, catalog):
        gate = PolicyGate(PolicyMode.READ_ONLY)
        with pytest.raises(PolicyViolation) as exc:
            gate.check_allowed(catalog.get("execute"))
        assert str(exc.value) == READ_ONLY_MESSAGE

    def test_read_only_allows_non_mutating(self, catalog):
        gate = PolicyGate(PolicyMode.READ_ONLY)
        for name in ("query", "list_tables", "describe_table"):
            gate.check_allowed(catalog.get(name))

    def test_read_write_allows_everything(self, catalog):
        gate = PolicyGate(PolicyMode.READ_WRITE)
        for op in catalog:
            gate.check_allowed(op)

    def test_default_mode_is_read_only(self):
        assert PolicyGate().read_only


# =============================================================================
# Statement classification
# =============================================================================


class TestClassifyStatement:
    @pytest.mark.parametrize(
        "statement, dialect",
        [
            ("SELECT 1", None),
            ("select * from t;", None),
            ("  SELECT a FROM t WHERE name = 'DELETE ME'", None),
            ('SELECT "update" FROM t', "postgres"),
            ("WITH x AS (SELECT 1 AS n) SELECT n FROM x", None),
            ("SELECT 1 -- drop table t", None),
            ("/* insert */ SELECT 2", "sqlite"),
            ("SELECT `drop` FROM t", "mysql"),
            ("SELECT a FROM t UNION SELECT b FROM u", "duckdb"),
            ("SELECT replace(name, 'a', 'b') FROM t", "postgres"),
        ],
    )
    def test_retrievals_pass(self, statement, dialect):
        assert classify_statement(statement, dialect) in {"SELECT", "WITH"}

    def test_with_reported(self):
        assert classify_statement("WITH x AS (SELECT 1 AS n) SELECT n FROM x") == "WITH"
        assert classify_statement("SELECT 1", "postgres") == "SELECT"

    @pytest.mark.parametrize(
        "statement",
        [
            "",
            "   ",
            ";",
            "-- just a comment",
            "DELETE FROM t",
            "UPDATE t SET a = 1",
            "EXPLAIN SELECT 1",
            "SELECT 1; DROP TABLE t",
            "SELECT * INTO backup FROM t",
            "WITH gone AS (DELETE FROM t RETURNING *) SELECT * FROM gone",
            "PRAGMA writable_schema = ON",
            "SELECT (1",
        ],
    )
    def test_non_retrievals_rejected(self, statement):
        with pytest.raises(InvalidStatementClass):
            classify_statement(statement, "postgres")

    @pytest.mark.parametrize("dialect", [None, "postgres", "duckdb", "sqlite", "mysql"])
    @pytest.mark.parametrize(
        "statement",
        [
            # escape-string literal: a lexer that treats '' as the only escape ends the literal early
            "SELECT E'x\\'' ; DELETE FROM t; -- '",
            # dollar-quoted tag with a digit in its name
            "SELECT $a1$'$a1$; DELETE FROM t; --'",
            "SELECT 'a' ; DELETE FROM t",
        ],
    )
    def test_statement_after_literal_rejected(self, statement, dialect):
        with pytest.raises(InvalidStatementClass):
            classify_statement(statement, dialect)

    def test_dialect_for_engine(self):
        assert dialect_for_engine("postgres") == "postgres"
        assert dialect_for_engine("DuckDB") == "duckdb"
        assert dialect_for_engine("spy") is None
        assert dialect_for_engine(None) is None


class TestCheckPipeline:
    def test_read_only_pipeline_passes(self):
        check_pipeline([{"$match": {"a": 1}}, {"$group": {"_id": "$a"}}])

    @pytest.mark.parametrize("stage", ["$out", "$merge"])
    def test_writing_stage_rejected(self, stage):
        with pytest.raises(InvalidStatementClass):
            check_pipeline([{"$match": {}}, {stage: "target"}])
