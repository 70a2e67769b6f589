"""
Unit tests for DataFetcher.

Queries run against SQLite files through the shared provider fixture.
"""

import logging
import sqlite3
from contextlib import contextmanager
from unittest.mock import Mock

import pytest

from fieldcompare.compare.fetcher import CancellationToken, DataFetcher, check_cancelled
from fieldcompare.errors import (
    ComparisonCancelledError,
    ConfigurationError,
    ConnectivityError,
    DataError,
)
from fieldcompare.sql.dialect import Dialect


@pytest.fixture
def fetcher(provider):
    return DataFetcher(provider, max_retries=0, retry_base_delay=0.0, fetch_size=2)


class FlakyPool:
    """Pool stand-in whose first acquisitions fail with a transient error."""

    dialect = Dialect.UNKNOWN

    def __init__(self, conn, failures, error=None):
        self.conn = conn
        self.failures = failures
        self.error = error or ConnectionError("connection reset by peer")
        self.attempts = 0

    @contextmanager
    def acquire(self):
        self.attempts += 1
        if self.failures:
            self.failures -= 1
            raise self.error
        yield self.conn

    def open_cursor(self, conn):
        return conn.cursor()


def _memory_db():
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    conn.execute("CREATE TABLE t (id INTEGER, val TEXT)")
    conn.executemany("INSERT INTO t VALUES (?, ?)", [(1, "a"), (2, "b")])
    return conn


class TestCancellationToken:
    """Tests for CancellationToken and check_cancelled"""

    def test_default_reason(self):
        token = CancellationToken()
        token.cancel()
        assert token.is_set()
        assert token.reason == "Comparison cancelled"

    def test_first_reason_wins(self):
        token = CancellationToken()
        token.cancel("Rule timed out after 5s")
        token.cancel("Rule 'x' was cancelled")
        assert token.reason == "Rule timed out after 5s"

    def test_check_cancelled(self):
        check_cancelled(None)
        token = CancellationToken()
        check_cancelled(token)
        token.cancel("stop")
        with pytest.raises(ComparisonCancelledError, match="stop"):
            check_cancelled(token)

    def test_plain_event(self):
        import threading

        event = threading.Event()
        event.set()
        with pytest.raises(ComparisonCancelledError):
            check_cancelled(event)


class TestFetch:
    """Tests for fetch, fetch_page and fetch_keys"""

    def test_fetch_mapping(self, fetcher, create_table):
        create_table("source", "customers", {1: "a", 2: None, 3: "c"})
        result = fetcher.fetch("source", "SELECT id, val FROM customers")
        assert result == {1: "a", 2: None, 3: "c"}

    def test_fetch_with_params(self, fetcher, create_table):
        create_table("source", "customers", {1: "a", 2: "b", 3: "c"})
        result = fetcher.fetch("source", "SELECT id, val FROM customers WHERE id IN (?, ?)", [1, 3])
        assert result == {1: "a", 3: "c"}

    def test_fetch_empty(self, fetcher, create_table):
        create_table("source", "customers", {})
        assert fetcher.fetch("source", "SELECT id, val FROM customers") == {}

    def test_duplicate_keys_last_wins_and_warns(self, fetcher, create_table, caplog):
        create_table("source", "customers", [(1, "first"), (2, "x"), (1, "second")])

        with caplog.at_level(logging.WARNING, logger="fieldcompare.compare.fetcher"):
            mapping, rows = fetcher.fetch_page("source", "SELECT id, val FROM customers ORDER BY rowid")

        assert mapping == {1: "second", 2: "x"}
        assert rows == 3
        assert any("duplicate key" in r.message for r in caplog.records)

    def test_fetch_keys(self, fetcher, create_table):
        create_table("source", "customers", {1: "a", 5: "b"})
        assert fetcher.fetch_keys("source", "SELECT id FROM customers") == {1, 5}

    def test_single_column_is_data_error(self, fetcher, create_table):
        create_table("source", "customers", {1: "a"})
        with pytest.raises(DataError) as exc_info:
            fetcher.fetch("source", "SELECT id FROM customers")
        assert exc_info.value.connection_name == "source"

    def test_data_error_is_connectivity_error(self):
        assert issubclass(DataError, ConnectivityError)


class TestCountAndExists:
    """Tests for count and exists"""

    def test_count(self, fetcher, create_table):
        create_table("source", "customers", {i: str(i) for i in range(7)})
        assert fetcher.count("source", "SELECT COUNT(*) FROM customers") == 7

    def test_count_null_is_data_error(self, fetcher):
        with pytest.raises(DataError):
            fetcher.count("source", "SELECT NULL")

    def test_count_not_numeric_is_data_error(self, fetcher):
        with pytest.raises(DataError):
            fetcher.count("source", "SELECT 'many'")

    def test_exists(self, fetcher, create_table):
        create_table("source", "customers", {1: "a"})
        assert fetcher.exists("source", "SELECT 1 FROM customers WHERE id = ?", [1]) is True
        assert fetcher.exists("source", "SELECT 1 FROM customers WHERE id = ?", [2]) is False


class TestErrors:
    """Tests for error translation, retry and cancellation"""

    def test_bad_sql_is_connectivity_error(self, fetcher):
        with pytest.raises(ConnectivityError, match="Query failed on 'source'"):
            fetcher.fetch("source", "SELECT id, val FROM no_such_table")

    def test_unreachable_database(self, fetcher):
        with pytest.raises(ConnectivityError) as exc_info:
            fetcher.count("broken", "SELECT COUNT(*) FROM customers")
        assert exc_info.value.connection_name == "broken"
        assert not isinstance(exc_info.value, DataError)

    def test_unknown_connection(self, fetcher):
        with pytest.raises(ConfigurationError):
            fetcher.fetch("nowhere", "SELECT 1, 2")

    def test_cancelled_before_query(self, fetcher, create_table):
        create_table("source", "customers", {1: "a"})
        token = CancellationToken()
        token.cancel("Rule timed out after 1s")
        with pytest.raises(ComparisonCancelledError, match="timed out"):
            fetcher.fetch("source", "SELECT id, val FROM customers", cancel_event=token)

    def test_transient_error_retried(self):
        pool = FlakyPool(_memory_db(), failures=2)
        provider = Mock()
        provider.get_pool.return_value = pool
        fetcher = DataFetcher(provider, max_retries=3, retry_base_delay=0.0)

        assert fetcher.fetch("db", "SELECT id, val FROM t") == {1: "a", 2: "b"}
        assert pool.attempts == 3

    def test_retries_exhausted(self):
        pool = FlakyPool(_memory_db(), failures=5)
        provider = Mock()
        provider.get_pool.return_value = pool
        fetcher = DataFetcher(provider, max_retries=1, retry_base_delay=0.0)

        with pytest.raises(ConnectivityError):
            fetcher.fetch("db", "SELECT id, val FROM t")
        assert pool.attempts == 2

    def test_non_transient_error_not_retried(self):
        pool = FlakyPool(_memory_db(), failures=1, error=ValueError("bad value"))
        provider = Mock()
        provider.get_pool.return_value = pool
        fetcher = DataFetcher(provider, max_retries=3, retry_base_delay=0.0)

        with pytest.raises(ConnectivityError, match="bad value"):
            fetcher.fetch("db", "SELECT id, val FROM t")
        assert pool.attempts == 1

    def test_data_error_not_retried(self):
        pool = FlakyPool(_memory_db(), failures=0)
        provider = Mock()
        provider.get_pool.return_value = pool
        fetcher = DataFetcher(provider, max_retries=3, retry_base_delay=0.0)

        with pytest.raises(DataError):
            fetcher.fetch("db", "SELECT id FROM t")
        assert pool.attempts == 1
