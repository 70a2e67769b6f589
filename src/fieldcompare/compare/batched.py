"""
Memory-bounded two-phase comparison for large tables.

Phase 1 pages through the source in key order and looks up each page's keys
on the target, which finds source-only keys and value mismatches. It cannot
see target rows whose keys never occur on the source, so phase 2 loads the
source key set (one column) and pages through the target to find them.

Peak memory is one page per side plus the source key set. Pagination is
offset based and assumes key order is stable while the comparison runs;
rows inserted or deleted mid-run can be skipped or seen twice.
"""

import logging
import threading

from ..models import ComparisonRule, Difference
from ..sql.builder import (
    build_keyed_select,
    build_null_key_select,
    build_paged_select,
    build_select,
    chunk_keys,
)
from ..sql.dialect import Dialect
from ..utils.metrics import PAGES_FETCHED
from ..utils.tracing import add_span_event
from .diff import deduplicate, diff, target_only
from .fetcher import DataFetcher, KeyValueMap

logger = logging.getLogger(__name__)


class BatchedComparator:
    """
    Args:
        fetcher: Query runner
        batch_size: Rows per page on either side
    """

    def __init__(self, fetcher: DataFetcher, batch_size: int):
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.fetcher = fetcher
        self.batch_size = batch_size

    def compare(
        self,
        rule: ComparisonRule,
        source_dialect: Dialect,
        target_dialect: Dialect,
        cancel_event: threading.Event | None = None,
    ) -> list[Difference]:
        """
        Run both phases and return their differences without duplicates,
        in first-seen order.
        """
        differences = self.compare_source_pages(rule, source_dialect, target_dialect, cancel_event)
        differences.extend(self.find_target_only(rule, target_dialect, cancel_event))
        return deduplicate(differences)

    def compare_source_pages(
        self,
        rule: ComparisonRule,
        source_dialect: Dialect,
        target_dialect: Dialect,
        cancel_event: threading.Event | None = None,
    ) -> list[Difference]:
        """Phase 1: diff each source page against the same keys on the target."""
        fields = [rule.key_field, rule.compare_field]
        differences: list[Difference] = []
        offset = 0
        pages = 0

        while True:
            sql = build_paged_select(
                rule.source_table, fields, rule.predicate, rule.key_field,
                offset, self.batch_size, source_dialect,
            )
            source_page, rows = self.fetcher.fetch_page(
                rule.source_table.connection_name, sql, cancel_event=cancel_event
            )
            PAGES_FETCHED.labels(phase="source").inc()
            pages += 1

            if source_page:
                target_page = self._fetch_target_keys(
                    rule, list(source_page), target_dialect, cancel_event
                )
                differences.extend(diff(source_page, target_page, rule.compare_field))

            if rows < self.batch_size:
                break
            offset += self.batch_size

        add_span_event("phase1_complete", pages=pages, differences=len(differences))
        logger.debug(
            f"Rule '{rule.name}': phase 1 read {pages} source page(s), "
            f"{len(differences)} difference(s)"
        )
        return differences

    def _fetch_target_keys(
        self,
        rule: ComparisonRule,
        keys: list,
        dialect: Dialect,
        cancel_event: threading.Event | None,
    ) -> KeyValueMap:
        fields = [rule.key_field, rule.compare_field]
        found: KeyValueMap = {}
        bound = [key for key in keys if key is not None]

        for chunk in chunk_keys(bound, dialect):
            sql = build_keyed_select(
                rule.target_table, fields, rule.key_field, len(chunk), rule.predicate, dialect
            )
            found.update(self.fetcher.fetch(
                rule.target_table.connection_name, sql, chunk, cancel_event=cancel_event
            ))

        if len(bound) < len(keys):
            sql = build_null_key_select(
                rule.target_table, fields, rule.key_field, rule.predicate
            )
            found.update(self.fetcher.fetch(
                rule.target_table.connection_name, sql, cancel_event=cancel_event
            ))

        return found

    def find_target_only(
        self,
        rule: ComparisonRule,
        target_dialect: Dialect,
        cancel_event: threading.Event | None = None,
    ) -> list[Difference]:
        """Phase 2: report target rows whose key is absent from the source."""
        source_keys = self.fetcher.fetch_keys(
            rule.source_table.connection_name,
            build_select(rule.source_table, [rule.key_field], rule.predicate),
            cancel_event=cancel_event,
        )

        fields = [rule.key_field, rule.compare_field]
        differences: list[Difference] = []
        offset = 0
        pages = 0

        while True:
            sql = build_paged_select(
                rule.target_table, fields, rule.predicate, rule.key_field,
                offset, self.batch_size, target_dialect,
            )
            target_page, rows = self.fetcher.fetch_page(
                rule.target_table.connection_name, sql, cancel_event=cancel_event
            )
            PAGES_FETCHED.labels(phase="target").inc()
            pages += 1

            differences.extend(target_only(source_keys, target_page, rule.compare_field))

            if rows < self.batch_size:
                break
            offset += self.batch_size

        add_span_event("phase2_complete", pages=pages, differences=len(differences))
        logger.debug(
            f"Rule '{rule.name}': phase 2 checked {pages} target page(s) against "
            f"{len(source_keys)} source key(s), {len(differences)} target-only"
        )
        return differences
