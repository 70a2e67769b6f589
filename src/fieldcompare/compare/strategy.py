"""
Choosing between direct and batched comparison, and the direct comparator.
"""

import logging
import threading
from enum import Enum

from ..models import ComparisonRule, Difference
from ..sql.builder import build_select
from .diff import diff
from .fetcher import DataFetcher

logger = logging.getLogger(__name__)


class Strategy(str, Enum):
    DIRECT = "direct"
    BATCHED = "batched"


def select_strategy(source_count: int, target_count: int, batch_threshold: int) -> Strategy:
    """
    Direct when both sides fit under the threshold, batched otherwise.

    Args:
        source_count: Rows matching the rule on the source table
        target_count: Rows matching the rule on the target table
        batch_threshold: Largest row count loaded fully into memory

    Returns:
        The selected Strategy
    """
    if source_count <= batch_threshold and target_count <= batch_threshold:
        return Strategy.DIRECT
    return Strategy.BATCHED


class DirectComparator:
    """Loads both sides completely and diffs them once."""

    def __init__(self, fetcher: DataFetcher):
        self.fetcher = fetcher

    def compare(
        self, rule: ComparisonRule, cancel_event: threading.Event | None = None
    ) -> list[Difference]:
        fields = [rule.key_field, rule.compare_field]

        source = self.fetcher.fetch(
            rule.source_table.connection_name,
            build_select(rule.source_table, fields, rule.predicate),
            cancel_event=cancel_event,
        )
        target = self.fetcher.fetch(
            rule.target_table.connection_name,
            build_select(rule.target_table, fields, rule.predicate),
            cancel_event=cancel_event,
        )

        logger.debug(
            f"Rule '{rule.name}': direct diff of {len(source)} source "
            f"and {len(target)} target keys"
        )
        return diff(source, target, rule.compare_field)
