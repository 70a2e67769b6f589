"""
Comparison engine.

This subpackage provides:
- diff: classification of keys into source-only, target-only and mismatches
- DataFetcher: streamed, retried query execution against named connections
- select_strategy / DirectComparator: in-memory comparison for small tables
- BatchedComparator: two-phase paged comparison for large tables
- RuleExecutor: the per-rule state machine
"""

from .batched import BatchedComparator
from .diff import deduplicate, diff, target_only, values_equal
from .executor import RuleExecutor, RuleState
from .fetcher import CancellationToken, DataFetcher, check_cancelled
from .strategy import DirectComparator, Strategy, select_strategy

__all__ = [
    'diff',
    'target_only',
    'values_equal',
    'deduplicate',
    'DataFetcher',
    'CancellationToken',
    'check_cancelled',
    'Strategy',
    'select_strategy',
    'DirectComparator',
    'BatchedComparator',
    'RuleExecutor',
    'RuleState',
]
