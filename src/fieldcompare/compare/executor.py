"""
End-to-end execution of one comparison rule.

A rule moves through PENDING -> VALIDATING -> COUNTING -> COMPARING ->
FINALIZING -> SUCCEEDED. An exception in any working state moves it straight
to FAILED; the result then carries the error message and no differences.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable

from opentelemetry import trace

from ..config import ComparatorSettings
from ..connections.provider import ConnectionProvider
from ..errors import ComparisonCancelledError, ConfigurationError
from ..models import ComparisonResult, ComparisonRule, TableRef
from ..sql.builder import build_column_exists, build_count, build_table_exists
from ..sql.dialect import Dialect
from ..utils.logging import ContextLogger
from ..utils.metrics import ACTIVE_RULES, DIFFERENCES_FOUND, RULE_DURATION, RULES_EXECUTED
from ..utils.tracing import trace_operation
from .batched import BatchedComparator
from .fetcher import DataFetcher
from .strategy import DirectComparator, Strategy, select_strategy

logger = logging.getLogger(__name__)


class RuleState(str, Enum):
    PENDING = "PENDING"
    VALIDATING = "VALIDATING"
    COUNTING = "COUNTING"
    COMPARING = "COMPARING"
    FINALIZING = "FINALIZING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


StateListener = Callable[[str, RuleState], None]


class RuleExecutor:
    """
    Executes single rules. Stateless between calls and safe to share across
    threads; each execute() call owns its own result object.

    Args:
        provider: Named connection pools
        fetcher: Query runner bound to the same provider
        settings: Batch threshold, batch size and schema validation switch
        state_listener: Optional callback receiving (rule_name, state) on
            every transition
    """

    def __init__(
        self,
        provider: ConnectionProvider,
        fetcher: DataFetcher,
        settings: ComparatorSettings,
        state_listener: StateListener | None = None,
    ):
        self.provider = provider
        self.fetcher = fetcher
        self.settings = settings
        self.state_listener = state_listener
        self.direct = DirectComparator(fetcher)
        self.batched = BatchedComparator(fetcher, settings.batch_size)

    def _transition(self, rule: ComparisonRule, state: RuleState, log: ContextLogger) -> None:
        log.debug(f"Rule '{rule.name}' -> {state.value}", state=state.value)
        if self.state_listener is None:
            return
        try:
            self.state_listener(rule.name, state)
        except Exception:
            log.error(f"State listener failed for rule '{rule.name}'", exc_info=True)

    def execute(
        self,
        rule: ComparisonRule,
        cancel_event: threading.Event | None = None,
    ) -> ComparisonResult:
        """
        Run a rule to completion.

        Never raises for failures inside the rule: they are reported on the
        returned result with status FAILED.
        """
        log = ContextLogger(__name__, rule_name=rule.name)
        result = ComparisonResult(rule_name=rule.name, rule_description=rule.description)
        started = time.monotonic()

        ACTIVE_RULES.inc()
        self._transition(rule, RuleState.PENDING, log)
        try:
            with trace_operation(
                "fieldcompare.rule",
                kind=trace.SpanKind.INTERNAL,
                rule=rule.name,
                source=rule.source_table.qualified_name,
                target=rule.target_table.qualified_name,
            ) as span:
                self._transition(rule, RuleState.VALIDATING, log)
                source_dialect, target_dialect = self._validate(rule, cancel_event)

                self._transition(rule, RuleState.COUNTING, log)
                source_count = self._count(rule.source_table, rule.predicate, cancel_event)
                target_count = self._count(rule.target_table, rule.predicate, cancel_event)
                span.set_attribute("source_count", source_count)
                span.set_attribute("target_count", target_count)

                self._transition(rule, RuleState.COMPARING, log)
                strategy = select_strategy(
                    source_count, target_count, self.settings.batch_threshold
                )
                span.set_attribute("strategy", strategy.value)
                log.info(
                    f"Comparing '{rule.compare_field}' of {rule.source_table.qualified_name} "
                    f"({source_count} rows) with {rule.target_table.qualified_name} "
                    f"({target_count} rows) using {strategy.value} strategy"
                )
                if strategy == Strategy.DIRECT:
                    differences = self.direct.compare(rule, cancel_event)
                else:
                    differences = self.batched.compare(
                        rule, source_dialect, target_dialect, cancel_event
                    )

                self._transition(rule, RuleState.FINALIZING, log)
                result.complete(differences, source_count, target_count, strategy.value)
                span.set_attribute("differences", result.difference_count)

            self._transition(rule, RuleState.SUCCEEDED, log)
            log.info(
                f"Rule '{rule.name}' finished: {result.difference_count} difference(s) "
                f"(source_only={result.source_only_count}, "
                f"target_only={result.target_only_count}, "
                f"value_mismatch={result.value_mismatch_count}) "
                f"in {result.execution_time_ms}ms"
            )
            for kind, count in (
                ("source_only", result.source_only_count),
                ("target_only", result.target_only_count),
                ("value_mismatch", result.value_mismatch_count),
            ):
                if count:
                    DIFFERENCES_FOUND.labels(rule=rule.name, kind=kind).inc(count)

        except Exception as e:
            message = self._describe_failure(e, cancel_event)
            result.fail(message)
            self._transition(rule, RuleState.FAILED, log)
            log.error(f"Rule '{rule.name}' failed: {message}")

        finally:
            ACTIVE_RULES.dec()

        RULES_EXECUTED.labels(status=result.status.value).inc()
        RULE_DURATION.labels(rule=rule.name, strategy=result.strategy or "none").observe(
            time.monotonic() - started
        )
        return result

    @staticmethod
    def _describe_failure(exc: Exception, cancel_event: threading.Event | None) -> str:
        if isinstance(exc, ComparisonCancelledError):
            return str(exc)
        if cancel_event is not None and cancel_event.is_set():
            return getattr(cancel_event, "reason", "Comparison cancelled")
        return str(exc) or type(exc).__name__

    def _validate(
        self, rule: ComparisonRule, cancel_event: threading.Event | None
    ) -> tuple[Dialect, Dialect]:
        """
        Resolve both connections and, when enabled, check that the tables
        and columns exist.

        Raises:
            ConfigurationError: For an unknown connection or a missing table/column
        """
        for table in (rule.source_table, rule.target_table):
            if not self.provider.has_connection(table.connection_name):
                raise ConfigurationError(
                    f"Connection not configured: {table.connection_name}"
                )

        source_dialect = self.provider.dialect_for(rule.source_table.connection_name)
        target_dialect = self.provider.dialect_for(rule.target_table.connection_name)

        if self.settings.validate_schema:
            self._check_schema(rule, rule.source_table, source_dialect, cancel_event)
            self._check_schema(rule, rule.target_table, target_dialect, cancel_event)

        return source_dialect, target_dialect

    def _check_schema(
        self,
        rule: ComparisonRule,
        table: TableRef,
        dialect: Dialect,
        cancel_event: threading.Event | None,
    ) -> None:
        table_query = build_table_exists(table, dialect)
        if table_query is None:
            logger.debug(
                f"No catalog query for dialect {dialect.value}; "
                f"skipping existence check of {table.qualified_name}"
            )
            return

        sql, params = table_query
        if not self.fetcher.exists(table.connection_name, sql, params, cancel_event):
            raise ConfigurationError(
                f"Table {table.qualified_name} not found on connection "
                f"'{table.connection_name}'"
            )

        for column in (rule.key_field, rule.compare_field):
            sql, params = build_column_exists(table, column, dialect)
            if not self.fetcher.exists(table.connection_name, sql, params, cancel_event):
                raise ConfigurationError(
                    f"Column {column} not found on {table.qualified_name} "
                    f"(connection '{table.connection_name}')"
                )

    def _count(
        self, table: TableRef, predicate: str | None, cancel_event: threading.Event | None
    ) -> int:
        return self.fetcher.count(
            table.connection_name, build_count(table, predicate), cancel_event=cancel_event
        )
