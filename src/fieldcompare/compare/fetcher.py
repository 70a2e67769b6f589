"""
Query execution against named connections.

Every read goes through DataFetcher, which borrows a pooled connection,
streams the result with fetchmany, retries transient driver failures and
translates everything else into the comparator's error types:

- driver and pool failures become ConnectivityError
- result sets with the wrong shape become DataError
- a set cancellation event becomes ComparisonCancelledError
"""

import logging
import threading
from typing import Any, Callable, Hashable, Iterator, Sequence

from opentelemetry import trace

from ..connections.base import ConnectionPoolError
from ..connections.provider import ConnectionProvider
from ..errors import ComparatorError, ComparisonCancelledError, ConnectivityError, DataError
from ..utils.metrics import DUPLICATE_KEYS
from ..utils.retry import is_retryable_db_exception, retry_database_operation
from ..utils.tracing import trace_operation

logger = logging.getLogger(__name__)

KeyValueMap = dict[Hashable, Any]


def _is_transient(exc: Exception) -> bool:
    if isinstance(exc, ComparatorError):
        return False
    return is_retryable_db_exception(exc)


class CancellationToken(threading.Event):
    """An Event that remembers why it was set."""

    def __init__(self) -> None:
        super().__init__()
        self.reason = "Comparison cancelled"

    def cancel(self, reason: str | None = None) -> None:
        if reason and not self.is_set():
            self.reason = reason
        self.set()


def check_cancelled(cancel_event: threading.Event | None) -> None:
    """
    Raises:
        ComparisonCancelledError: If the event is set
    """
    if cancel_event is not None and cancel_event.is_set():
        raise ComparisonCancelledError(
            getattr(cancel_event, "reason", "Comparison cancelled")
        )


class DataFetcher:
    """
    Runs built queries and materializes their rows.

    Args:
        provider: Source of pooled connections
        max_retries: Retries for transient failures per query
        retry_base_delay: First backoff delay in seconds
        fetch_size: Rows requested per fetchmany call
    """

    def __init__(
        self,
        provider: ConnectionProvider,
        max_retries: int = 3,
        retry_base_delay: float = 1.0,
        fetch_size: int = 1000,
    ):
        self.provider = provider
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.fetch_size = fetch_size

    def _execute(
        self,
        connection_name: str,
        sql: str,
        params: Sequence[Any],
        consume: Callable[[Iterator[Sequence[Any]]], Any],
        cancel_event: threading.Event | None,
        operation: str,
    ) -> Any:
        """
        Execute one statement and hand the streamed rows to `consume`.

        The whole attempt (acquire, execute, consume) is retried on transient
        failures, so `consume` must build its result from scratch each time.
        """
        check_cancelled(cancel_event)
        pool = self.provider.get_pool(connection_name)

        def attempt() -> Any:
            with pool.acquire() as conn:
                cursor = pool.open_cursor(conn)
                try:
                    if params:
                        cursor.execute(sql, tuple(params))
                    else:
                        cursor.execute(sql)
                    return consume(self._stream(cursor, cancel_event))
                finally:
                    cursor.close()

        attempt.__name__ = f"{operation}@{connection_name}"
        runner = retry_database_operation(
            max_retries=self.max_retries,
            base_delay=self.retry_base_delay,
            cancel_event=cancel_event,
            is_retryable=_is_transient,
        )(attempt)

        with trace_operation(
            f"fieldcompare.{operation}",
            kind=trace.SpanKind.CLIENT,
            connection=connection_name,
        ):
            try:
                return runner()
            except ComparatorError:
                raise
            except ConnectionPoolError as e:
                check_cancelled(cancel_event)
                raise ConnectivityError(
                    f"Connection '{connection_name}' unavailable: {e}", connection_name
                ) from e
            except Exception as e:
                check_cancelled(cancel_event)
                logger.debug(f"{operation} failed on '{connection_name}': {sql}")
                raise ConnectivityError(
                    f"Query failed on '{connection_name}': {type(e).__name__}: {e}",
                    connection_name,
                ) from e

    def _stream(
        self, cursor: Any, cancel_event: threading.Event | None
    ) -> Iterator[Sequence[Any]]:
        while True:
            rows = cursor.fetchmany(self.fetch_size)
            if not rows:
                return
            check_cancelled(cancel_event)
            yield from rows

    def _to_mapping(
        self, connection_name: str, rows: Iterator[Sequence[Any]]
    ) -> tuple[KeyValueMap, int]:
        mapping: KeyValueMap = {}
        row_count = 0
        duplicates = 0

        for row in rows:
            if len(row) < 2:
                raise DataError(
                    f"Expected key and value columns from '{connection_name}', "
                    f"got {len(row)} column(s)",
                    connection_name,
                )
            key = row[0]
            try:
                if key in mapping:
                    duplicates += 1
            except TypeError as e:
                raise DataError(
                    f"Unhashable key {key!r} from '{connection_name}'", connection_name
                ) from e
            mapping[key] = row[1]
            row_count += 1

        if duplicates:
            DUPLICATE_KEYS.labels(connection=connection_name).inc(duplicates)
            logger.warning(
                f"{duplicates} duplicate key(s) in result from '{connection_name}'; "
                "the last row for each key was kept"
            )

        return mapping, row_count

    def fetch(
        self,
        connection_name: str,
        sql: str,
        params: Sequence[Any] = (),
        cancel_event: threading.Event | None = None,
    ) -> KeyValueMap:
        """
        Read (key, value) rows into a mapping.

        Duplicate keys keep the last row and are reported as a warning.

        Raises:
            ConnectivityError: If the query fails
            DataError: If rows have fewer than two columns
        """
        return self.fetch_page(connection_name, sql, params, cancel_event)[0]

    def fetch_page(
        self,
        connection_name: str,
        sql: str,
        params: Sequence[Any] = (),
        cancel_event: threading.Event | None = None,
    ) -> tuple[KeyValueMap, int]:
        """
        Like fetch, but also return the number of rows read.

        Pagination must stop on rows read, not on distinct keys, so callers
        paging through a table use this form.
        """
        return self._execute(
            connection_name,
            sql,
            params,
            lambda rows: self._to_mapping(connection_name, rows),
            cancel_event,
            "fetch",
        )

    def fetch_keys(
        self,
        connection_name: str,
        sql: str,
        params: Sequence[Any] = (),
        cancel_event: threading.Event | None = None,
    ) -> set:
        """Read the first column of every row into a set."""
        def consume(rows: Iterator[Sequence[Any]]) -> set:
            keys = set()
            for row in rows:
                if len(row) < 1:
                    raise DataError(
                        f"Empty row in key query on '{connection_name}'", connection_name
                    )
                keys.add(row[0])
            return keys

        return self._execute(connection_name, sql, params, consume, cancel_event, "fetch_keys")

    def count(
        self,
        connection_name: str,
        sql: str,
        params: Sequence[Any] = (),
        cancel_event: threading.Event | None = None,
    ) -> int:
        """
        Run a COUNT query.

        Raises:
            DataError: If the result is not a single countable value
        """
        def consume(rows: Iterator[Sequence[Any]]) -> int:
            first = next(rows, None)
            if first is None or len(first) < 1 or first[0] is None:
                raise DataError(
                    f"Count query on '{connection_name}' returned no value", connection_name
                )
            try:
                return int(first[0])
            except (TypeError, ValueError) as e:
                raise DataError(
                    f"Count query on '{connection_name}' returned {first[0]!r}",
                    connection_name,
                ) from e

        return self._execute(connection_name, sql, params, consume, cancel_event, "count")

    def exists(
        self,
        connection_name: str,
        sql: str,
        params: Sequence[Any] = (),
        cancel_event: threading.Event | None = None,
    ) -> bool:
        """True if the query returns at least one row."""
        return self._execute(
            connection_name,
            sql,
            params,
            lambda rows: next(rows, None) is not None,
            cancel_event,
            "exists",
        )
