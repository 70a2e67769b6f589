"""
Unit tests for the rule, difference and result model.
"""

from datetime import timedelta

import pytest

from fieldcompare.errors import ConfigurationError
from fieldcompare.models import (
    ComparisonResult,
    ComparisonRule,
    Difference,
    DifferenceType,
    ExecutionStatus,
    TableRef,
)


def _difference(key, kind=DifferenceType.VALUE_MISMATCH, source=None, target=None):
    return Difference(key=key, kind=kind, field_name="email", source_value=source, target_value=target)


class TestTableRef:
    """Tests for TableRef"""

    def test_qualified_name_with_schema(self):
        assert TableRef("db", "customers", "sales").qualified_name == "sales.customers"

    def test_qualified_name_without_schema(self):
        assert TableRef("db", "customers").qualified_name == "customers"

    def test_blank_schema_is_ignored(self):
        assert TableRef("db", "customers", "  ").qualified_name == "customers"

    @pytest.mark.parametrize("connection,table", [("", "t"), ("db", ""), ("  ", "t")])
    def test_missing_names_rejected(self, connection, table):
        with pytest.raises(ConfigurationError):
            TableRef(connection, table)


class TestComparisonRule:
    """Tests for ComparisonRule validation"""

    def _rule(self, **kwargs):
        values = {
            "name": "emails",
            "source_table": TableRef("src", "customers"),
            "target_table": TableRef("tgt", "customers"),
            "key_field": "id",
            "compare_field": "email",
        }
        values.update(kwargs)
        return ComparisonRule(**values)

    def test_defaults(self):
        rule = self._rule()
        assert rule.enabled is True
        assert rule.predicate is None
        assert rule.has_predicate is False

    def test_has_predicate(self):
        assert self._rule(predicate="active = 1").has_predicate is True
        assert self._rule(predicate="   ").has_predicate is False

    @pytest.mark.parametrize("field", ["name", "key_field", "compare_field"])
    def test_empty_fields_rejected(self, field):
        with pytest.raises(ConfigurationError):
            self._rule(**{field: ""})

    def test_to_info(self):
        info = self._rule(description="Customer emails").to_info()
        assert info["name"] == "emails"
        assert info["source_table"] == "customers"
        assert info["source_connection"] == "src"
        assert info["target_connection"] == "tgt"
        assert info["description"] == "Customer emails"


class TestDifference:
    """Tests for Difference identity"""

    def test_identity_ignores_values(self):
        first = _difference(1, source="a", target="b")
        second = _difference(1, source="x", target="y")
        assert first == second
        assert hash(first) == hash(second)

    def test_kind_is_part_of_identity(self):
        assert _difference(1, DifferenceType.SOURCE_ONLY) != _difference(1, DifferenceType.TARGET_ONLY)

    def test_to_dict(self):
        data = _difference(7, DifferenceType.SOURCE_ONLY, source="a").to_dict()
        assert data == {
            "key": 7,
            "kind": "SOURCE_ONLY",
            "field_name": "email",
            "source_value": "a",
            "target_value": None,
        }


class TestComparisonResult:
    """Tests for ComparisonResult lifecycle and derived counts"""

    def test_initial_state(self):
        result = ComparisonResult(rule_name="emails")
        assert result.status == ExecutionStatus.SUCCESS
        assert result.end_time is None
        assert result.execution_time is None
        assert result.execution_time_ms == 0
        assert result.finalized is False

    def test_complete_derives_counts(self):
        result = ComparisonResult(rule_name="emails")
        result.complete(
            [
                _difference(1, DifferenceType.SOURCE_ONLY),
                _difference(2, DifferenceType.TARGET_ONLY),
                _difference(3, DifferenceType.TARGET_ONLY),
                _difference(4),
            ],
            source_count=10,
            target_count=12,
            strategy="direct",
        )

        assert result.succeeded
        assert result.difference_count == 4
        assert result.source_only_count == 1
        assert result.target_only_count == 2
        assert result.value_mismatch_count == 1
        assert result.total_records == 12
        assert result.strategy == "direct"
        assert result.end_time is not None
        assert result.execution_time >= timedelta(0)

    def test_total_records_counts_distinct_keys(self):
        result = ComparisonResult(rule_name="emails")
        result.complete(
            [
                _difference(1, DifferenceType.SOURCE_ONLY),
                _difference(3),
                _difference(4, DifferenceType.TARGET_ONLY),
            ],
            source_count=3,
            target_count=3,
        )
        assert result.total_records == 4
        assert result.total_records > max(result.source_count, result.target_count)

    def test_fail_clears_differences(self):
        result = ComparisonResult(rule_name="emails")
        result.fail("Connection refused")

        assert result.status == ExecutionStatus.FAILED
        assert result.error_message == "Connection refused"
        assert result.differences == ()
        assert result.difference_count == 0
        assert result.end_time is not None
        assert not result.succeeded

    def test_partial_status_set_by_caller(self):
        result = ComparisonResult(rule_name="emails", status=ExecutionStatus.PARTIAL)

        assert not result.succeeded
        assert result.to_dict()["status"] == "PARTIAL"

    def test_finalize_only_once(self):
        result = ComparisonResult(rule_name="emails")
        result.complete([], 0, 0)
        with pytest.raises(RuntimeError):
            result.fail("late failure")
        with pytest.raises(RuntimeError):
            result.complete([], 1, 1)

    def test_to_dict(self):
        result = ComparisonResult(rule_name="emails", rule_description="desc")
        result.complete([_difference(1)], 3, 3, "batched")

        data = result.to_dict()
        assert data["rule_name"] == "emails"
        assert data["status"] == "SUCCESS"
        assert data["strategy"] == "batched"
        assert data["total_records"] == 3
        assert data["value_mismatch_count"] == 1
        assert len(data["differences"]) == 1
        assert "differences" not in result.to_dict(include_differences=False)

    def test_str(self):
        result = ComparisonResult(rule_name="emails")
        result.complete([], 5, 4)
        text = str(result)
        assert "emails" in text
        assert "total_records=5" in text
