"""
Property-based tests for the batched comparator using Hypothesis.

For any table contents and any page size, the two-phase batched comparison
reports the same set of differences as loading both sides in full,
including for a NULL key.
Both tables live in one in-memory SQLite database.
"""

import sqlite3
from contextlib import contextmanager
from unittest.mock import Mock

from hypothesis import given, settings, strategies as st

from fieldcompare.compare.batched import BatchedComparator
from fieldcompare.compare.diff import diff
from fieldcompare.compare.fetcher import DataFetcher
from fieldcompare.compare.strategy import DirectComparator
from fieldcompare.models import ComparisonRule, TableRef
from fieldcompare.sql.dialect import Dialect

RULE = ComparisonRule(
    name="prop",
    source_table=TableRef("db", "src"),
    target_table=TableRef("db", "tgt"),
    key_field="id",
    compare_field="val",
)

values = st.one_of(st.none(), st.integers(min_value=0, max_value=3), st.sampled_from(["a", "b"]))
keys = st.one_of(st.none(), st.integers(min_value=0, max_value=200))
tables = st.dictionaries(keys, values, max_size=40)


class SharedConnectionPool:
    """Lends the same in-memory connection to every caller."""

    dialect = Dialect.UNKNOWN

    def __init__(self, conn):
        self.conn = conn

    @contextmanager
    def acquire(self):
        yield self.conn

    def open_cursor(self, conn):
        return conn.cursor()


def _fetcher(source, target):
    conn = sqlite3.connect(":memory:")
    for name, rows in (("src", source), ("tgt", target)):
        conn.execute(f"CREATE TABLE {name} (id INTEGER, val)")
        conn.executemany(f"INSERT INTO {name} VALUES (?, ?)", list(rows.items()))
    conn.commit()

    provider = Mock()
    provider.get_pool.return_value = SharedConnectionPool(conn)
    return DataFetcher(provider, max_retries=0, retry_base_delay=0.0, fetch_size=7), conn


def _identities(differences):
    return {(d.key, d.kind) for d in differences}


@settings(max_examples=60, deadline=None)
@given(source=tables, target=tables, batch_size=st.integers(min_value=1, max_value=12))
def test_batched_equals_direct(source, target, batch_size):
    """Page size never changes which differences are found."""
    fetcher, conn = _fetcher(source, target)
    try:
        batched = BatchedComparator(fetcher, batch_size).compare(RULE, Dialect.UNKNOWN, Dialect.UNKNOWN)
        direct = DirectComparator(fetcher).compare(RULE)
    finally:
        conn.close()

    assert _identities(batched) == _identities(direct)
    assert _identities(batched) == _identities(diff(source, target, "val"))
    assert len(batched) == len(_identities(batched))


@settings(max_examples=30, deadline=None)
@given(source=tables, batch_size=st.integers(min_value=1, max_value=12))
def test_identical_tables_have_no_differences(source, batch_size):
    fetcher, conn = _fetcher(source, source)
    try:
        result = BatchedComparator(fetcher, batch_size).compare(RULE, Dialect.UNKNOWN, Dialect.UNKNOWN)
    finally:
        conn.close()

    assert result == []
