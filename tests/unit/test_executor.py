"""
Unit tests for RuleExecutor.

Rules run end to end against SQLite files; schema validation for real
dialects uses mocked collaborators.
"""

from unittest.mock import Mock

import pytest

from fieldcompare.compare.executor import RuleExecutor, RuleState
from fieldcompare.compare.fetcher import CancellationToken, DataFetcher
from fieldcompare.config import ComparatorSettings
from fieldcompare.models import DifferenceType, ExecutionStatus
from fieldcompare.sql.dialect import Dialect


@pytest.fixture
def fetcher(provider):
    return DataFetcher(provider, max_retries=0, retry_base_delay=0.0)


@pytest.fixture
def states():
    return []


@pytest.fixture
def executor(provider, fetcher, settings, states):
    return RuleExecutor(
        provider, fetcher, settings,
        state_listener=lambda name, state: states.append((name, state)),
    )


class TestSuccessfulExecution:
    """Tests for rules that complete"""

    def test_state_sequence(self, executor, states, create_table, make_rule):
        create_table("source", "customers", {1: "a"})
        create_table("target", "customers", {1: "a"})

        executor.execute(make_rule(name="r1"))

        assert states == [
            ("r1", RuleState.PENDING),
            ("r1", RuleState.VALIDATING),
            ("r1", RuleState.COUNTING),
            ("r1", RuleState.COMPARING),
            ("r1", RuleState.FINALIZING),
            ("r1", RuleState.SUCCEEDED),
        ]

    def test_mixed_example_counts(self, executor, create_table, make_rule):
        create_table("source", "customers", {1: "a", 2: "b", 3: "c"})
        create_table("target", "customers", {2: "b", 3: "X", 4: "d"})

        result = executor.execute(make_rule(description="values"))

        assert result.status == ExecutionStatus.SUCCESS
        assert result.rule_description == "values"
        assert result.strategy == "direct"
        assert (result.source_count, result.target_count) == (3, 3)
        assert result.source_only_count == 1
        assert result.target_only_count == 1
        assert result.value_mismatch_count == 1
        assert result.total_records == 4
        assert result.end_time is not None

    def test_identical_tables(self, executor, create_table, make_rule):
        rows = {i: f"v{i}" for i in range(20)}
        create_table("source", "customers", rows)
        create_table("target", "customers", rows)

        result = executor.execute(make_rule())

        assert result.succeeded
        assert result.difference_count == 0
        assert result.total_records == 20

    def test_large_target_uses_batched_strategy(self, provider, fetcher, create_table, make_rule):
        create_table("source", "customers", {})
        create_table("target", "customers", {i: str(i) for i in range(1000)})
        settings = ComparatorSettings(
            batch_size=100, batch_threshold=100, max_retries=0, retry_base_delay=0.0
        )

        result = RuleExecutor(provider, fetcher, settings).execute(make_rule())

        assert result.succeeded
        assert result.strategy == "batched"
        assert result.target_only_count == 1000
        assert result.difference_count == 1000
        assert {d.kind for d in result.differences} == {DifferenceType.TARGET_ONLY}

    def test_predicate_limits_counts(self, executor, create_table, make_rule):
        create_table("source", "customers", {1: "a", 2: "b", 3: "c"})
        create_table("target", "customers", {1: "a", 2: "b", 3: "c"})

        result = executor.execute(make_rule(predicate="id > 1"))

        assert (result.source_count, result.target_count) == (2, 2)
        assert result.difference_count == 0

    def test_listener_errors_do_not_fail_rule(self, provider, fetcher, settings, create_table, make_rule):
        create_table("source", "customers", {1: "a"})
        create_table("target", "customers", {1: "b"})

        def broken_listener(name, state):
            raise RuntimeError("listener down")

        result = RuleExecutor(provider, fetcher, settings, broken_listener).execute(make_rule())

        assert result.succeeded
        assert result.value_mismatch_count == 1

    def test_schema_validation_skipped_without_catalog(self, provider, fetcher, create_table, make_rule):
        create_table("source", "customers", {1: "a"})
        create_table("target", "customers", {1: "a"})
        settings = ComparatorSettings(validate_schema=True, max_retries=0, retry_base_delay=0.0)

        result = RuleExecutor(provider, fetcher, settings).execute(make_rule())

        assert result.succeeded


class TestFailedExecution:
    """Tests for rules that fail"""

    def test_unreachable_target(self, executor, states, create_table, make_rule):
        create_table("source", "customers", {1: "a"})

        result = executor.execute(make_rule(target_connection="broken"))

        assert result.status == ExecutionStatus.FAILED
        assert result.error_message
        assert result.differences == ()
        assert states[-1] == ("customer_val", RuleState.FAILED)
        assert ("customer_val", RuleState.COMPARING) not in states

    def test_missing_table(self, executor, create_table, make_rule):
        create_table("source", "customers", {1: "a"})
        create_table("target", "other", {1: "a"})

        result = executor.execute(make_rule())

        assert result.status == ExecutionStatus.FAILED
        assert "customers" in result.error_message

    def test_unknown_connection(self, executor, states, make_rule):
        result = executor.execute(make_rule(source_connection="nowhere"))

        assert result.status == ExecutionStatus.FAILED
        assert result.error_message == "Connection not configured: nowhere"
        assert states[-2:] == [
            ("customer_val", RuleState.VALIDATING),
            ("customer_val", RuleState.FAILED),
        ]

    def test_cancelled_before_start(self, executor, create_table, make_rule):
        create_table("source", "customers", {1: "a"})
        create_table("target", "customers", {1: "a"})
        token = CancellationToken()
        token.cancel("Rule timed out after 5s")

        result = executor.execute(make_rule(), token)

        assert result.status == ExecutionStatus.FAILED
        assert result.error_message == "Rule timed out after 5s"

    def test_missing_table_reported_by_schema_validation(self, make_rule):
        provider = Mock()
        provider.has_connection.return_value = True
        provider.dialect_for.return_value = Dialect.POSTGRESQL
        fetcher = Mock()
        fetcher.exists.return_value = False
        settings = ComparatorSettings(validate_schema=True)

        result = RuleExecutor(provider, fetcher, settings).execute(make_rule())

        assert result.status == ExecutionStatus.FAILED
        assert "not found" in result.error_message
        fetcher.count.assert_not_called()

    def test_missing_column_reported_by_schema_validation(self, make_rule):
        provider = Mock()
        provider.has_connection.return_value = True
        provider.dialect_for.return_value = Dialect.SQLSERVER
        fetcher = Mock()
        # table exists, key column exists, compare column missing
        fetcher.exists.side_effect = [True, True, False]
        settings = ComparatorSettings(validate_schema=True)

        result = RuleExecutor(provider, fetcher, settings).execute(make_rule())

        assert result.status == ExecutionStatus.FAILED
        assert result.error_message.startswith("Column val not found")
