"""
Running sets of comparison rules.

ComparisonOrchestrator is the entry point for callers (CLI, scheduler, an
HTTP layer). It runs rules sequentially on the caller's thread or in
parallel on a bounded thread pool, returns results in input order and never
raises on behalf of a failed rule: failures are reported as FAILED results.
The only exceptions it raises are RuleNotFoundError from run() and
configuration errors raised before any rule starts.
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Any, Iterable

from opentelemetry import trace

from .compare.executor import RuleExecutor, StateListener
from .compare.fetcher import CancellationToken, DataFetcher
from .config import ComparatorConfig, load_config
from .connections.provider import ConnectionProvider
from .errors import ConfigurationError
from .models import ComparisonResult, ComparisonRule
from .utils.metrics import RUN_DURATION
from .utils.tracing import trace_operation

logger = logging.getLogger(__name__)


class ComparisonOrchestrator:
    """
    Executes comparison rules and exposes rule and connection introspection.

    Args:
        config: Validated configuration
        provider: Connection provider; one is built from the configuration
            when omitted. The orchestrator closes it in close().
        state_listener: Optional (rule_name, state) callback for every
            executor state transition
    """

    def __init__(
        self,
        config: ComparatorConfig,
        provider: ConnectionProvider | None = None,
        state_listener: StateListener | None = None,
    ):
        self.config = config
        self.settings = config.settings
        self.provider = provider or ConnectionProvider(config.connections)
        self.fetcher = DataFetcher(
            self.provider,
            max_retries=self.settings.max_retries,
            retry_base_delay=self.settings.retry_base_delay,
            fetch_size=min(self.settings.batch_size, 1000),
        )
        self.executor = RuleExecutor(
            self.provider, self.fetcher, self.settings, state_listener
        )

        self._cancellation_tokens: dict[str, list[CancellationToken]] = {}
        self._lock = threading.Lock()
        self._background: ThreadPoolExecutor | None = None

        logger.info(
            f"ComparisonOrchestrator initialized: {len(config.rules)} rules, "
            f"mode={'parallel' if self.settings.parallel else 'sequential'}, "
            f"thread_pool_size={self.settings.thread_pool_size}, "
            f"batch_threshold={self.settings.batch_threshold}"
        )

    @classmethod
    def from_config_file(cls, path: str | Path, **kwargs: Any) -> "ComparisonOrchestrator":
        return cls(load_config(path), **kwargs)

    def __enter__(self) -> "ComparisonOrchestrator":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def run_all(self) -> list[ComparisonResult]:
        """Run every enabled rule."""
        rules = self.config.enabled_rules()
        skipped = len(self.config.rules) - len(rules)
        if skipped:
            logger.info(f"Skipping {skipped} disabled rule(s)")
        return self.run_rules(rules)

    def run(self, rule_name: str) -> ComparisonResult:
        """
        Run one rule by name, even if it is disabled.

        Raises:
            RuleNotFoundError: If no rule has this name
        """
        rule = self.config.get_rule(rule_name)
        if not rule.enabled:
            logger.info(f"Running disabled rule '{rule_name}' on explicit request")
        return self.run_rules([rule])[0]

    def run_many(self, rule_names: Iterable[str]) -> list[ComparisonResult]:
        """
        Run the named rules in the given order.

        Unknown names are skipped with a warning. Disabled rules named here
        are run.
        """
        rules = []
        for name in rule_names:
            if self.config.has_rule(name):
                rules.append(self.config.get_rule(name))
            else:
                logger.warning(f"Unknown rule '{name}' skipped")
        return self.run_rules(rules)

    def run_all_async(self) -> Future:
        """
        Start run_all() in the background.

        Returns:
            Future whose result is the list run_all() returns
        """
        with self._lock:
            if self._background is None:
                self._background = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="fieldcompare-async"
                )
            return self._background.submit(self.run_all)

    def run_rules(self, rules: list[ComparisonRule]) -> list[ComparisonResult]:
        """
        Execute rules and return one result per rule, in input order.
        """
        if not rules:
            logger.warning("No rules to run")
            return []

        mode = "parallel" if self.settings.parallel and len(rules) > 1 else "sequential"
        with trace_operation(
            "fieldcompare.run",
            kind=trace.SpanKind.INTERNAL,
            rule_count=len(rules),
            mode=mode,
        ), RUN_DURATION.labels(mode=mode).time():
            logger.info(f"Running {len(rules)} rule(s) in {mode} mode")

            if mode == "parallel":
                results = self._run_parallel(rules)
            else:
                results = [self._execute_one(rule) for rule in rules]

        failed = sum(1 for r in results if not r.succeeded)
        with_differences = sum(1 for r in results if r.succeeded and r.difference_count)
        logger.info(
            f"Run complete: {len(results) - failed} succeeded "
            f"({with_differences} with differences), {failed} failed"
        )
        return results

    def _run_parallel(self, rules: list[ComparisonRule]) -> list[ComparisonResult]:
        workers = min(self.settings.thread_pool_size, len(rules))
        with ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="fieldcompare"
        ) as pool:
            futures = [pool.submit(self._execute_one, rule) for rule in rules]

            results = []
            for rule, future in zip(rules, futures):
                try:
                    results.append(future.result())
                except Exception as e:
                    logger.error(f"Rule '{rule.name}' task failed: {e}", exc_info=True)
                    results.append(self._failed_result(rule, e))
            return results

    def _execute_one(self, rule: ComparisonRule) -> ComparisonResult:
        token = CancellationToken()
        self._register_token(rule.name, token)

        timer = None
        timeout = self.settings.rule_timeout
        if timeout:
            timer = threading.Timer(
                timeout, token.cancel, args=(f"Rule timed out after {timeout}s",)
            )
            timer.daemon = True
            timer.start()

        try:
            return self.executor.execute(rule, token)
        except Exception as e:
            logger.error(f"Unexpected error executing rule '{rule.name}': {e}", exc_info=True)
            return self._failed_result(rule, e)
        finally:
            if timer is not None:
                timer.cancel()
            self._unregister_token(rule.name, token)

    @staticmethod
    def _failed_result(rule: ComparisonRule, exc: Exception) -> ComparisonResult:
        result = ComparisonResult(rule_name=rule.name, rule_description=rule.description)
        result.fail(str(exc) or type(exc).__name__)
        return result

    def _register_token(self, rule_name: str, token: CancellationToken) -> None:
        with self._lock:
            self._cancellation_tokens.setdefault(rule_name, []).append(token)

    def _unregister_token(self, rule_name: str, token: CancellationToken) -> None:
        with self._lock:
            tokens = self._cancellation_tokens.get(rule_name, [])
            if token in tokens:
                tokens.remove(token)
            if not tokens:
                self._cancellation_tokens.pop(rule_name, None)

    def cancel(self, rule_name: str) -> bool:
        """
        Cancel in-flight executions of a rule. The rule stops at its next
        query boundary and reports FAILED.

        Returns:
            True if an execution was running
        """
        with self._lock:
            tokens = list(self._cancellation_tokens.get(rule_name, []))

        for token in tokens:
            token.cancel(f"Rule '{rule_name}' was cancelled")

        if tokens:
            logger.info(f"Cancellation requested for rule '{rule_name}'")
        return bool(tokens)

    def list_rules(self) -> list[dict[str, Any]]:
        """Name, description, enabled flag, tables and fields of every rule."""
        return [rule.to_info() for rule in self.config.rules]

    def validate_connections(self) -> dict[str, bool]:
        """Health-check every configured connection."""
        return {
            name: self.provider.test_connection(name)
            for name in self.provider.connection_names()
        }

    def database_statistics(self, connection_name: str | None = None) -> dict[str, dict[str, Any]]:
        """
        Server version and time per connection, keyed by connection name.

        Args:
            connection_name: Limit the report to one connection; every
                configured connection when omitted

        Raises:
            ConfigurationError: If connection_name is not configured
        """
        if connection_name is None:
            names = self.provider.connection_names()
        elif self.provider.has_connection(connection_name):
            names = [connection_name]
        else:
            raise ConfigurationError(f"Connection not configured: {connection_name}")

        return {name: self.provider.statistics(name) for name in names}

    def close(self) -> None:
        """Wait for background runs and close all connection pools."""
        with self._lock:
            background, self._background = self._background, None
        if background is not None:
            background.shutdown(wait=True)
        self.provider.close()
