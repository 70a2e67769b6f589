"""
Thread-safe pooling of DB-API connections.

One pool exists per configured connection name. Rule executors running in
parallel acquire connections from the same pool; the pool is the only
shared mutable state they touch.
"""

import logging
import threading
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from queue import Empty, Queue
from typing import Any

from opentelemetry import trace
from prometheus_client import Counter, Gauge, Histogram

from ..sql.dialect import Dialect
from ..utils.metrics import get_or_create_metric
from ..utils.tracing import trace_operation

logger = logging.getLogger(__name__)


CONNECTION_POOL_SIZE = get_or_create_metric(
    lambda: Gauge(
        "fieldcompare_pool_size",
        "Connections currently owned by the pool",
        ["dialect", "pool_name"],
    ),
    "fieldcompare_pool_size",
)

CONNECTION_POOL_ACTIVE = get_or_create_metric(
    lambda: Gauge(
        "fieldcompare_pool_active",
        "Connections currently lent out",
        ["dialect", "pool_name"],
    ),
    "fieldcompare_pool_active",
)

CONNECTION_POOL_IDLE = get_or_create_metric(
    lambda: Gauge(
        "fieldcompare_pool_idle",
        "Connections waiting in the pool",
        ["dialect", "pool_name"],
    ),
    "fieldcompare_pool_idle",
)

CONNECTION_POOL_ERRORS = get_or_create_metric(
    lambda: Counter(
        "fieldcompare_pool_errors_total",
        "Connection pool errors",
        ["dialect", "pool_name", "error_type"],
    ),
    "fieldcompare_pool_errors_total",
)

CONNECTION_ACQUIRE_TIME = get_or_create_metric(
    lambda: Histogram(
        "fieldcompare_pool_acquire_seconds",
        "Time to acquire a connection from the pool",
        ["dialect", "pool_name"],
        buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
    ),
    "fieldcompare_pool_acquire_seconds",
)


def _now() -> datetime:
    return datetime.now(UTC)


@dataclass
class PooledConnection:
    """A pooled DB-API connection with bookkeeping."""

    connection: Any
    created_at: datetime = field(default_factory=_now)
    last_used: datetime = field(default_factory=_now)
    use_count: int = 0

    def mark_used(self) -> None:
        self.last_used = _now()
        self.use_count += 1


class ConnectionPoolError(Exception):
    """Base exception for connection pool errors."""

    pass


class PoolExhaustedError(ConnectionPoolError):
    """Raised when no connection becomes available within the acquire timeout."""

    pass


class PoolClosedError(ConnectionPoolError):
    """Raised when attempting to use a closed pool."""

    pass


class BaseConnectionPool:
    """
    Base class for database connection pools.

    Subclasses set `dialect` and implement `_create_connection`. The health
    check runs the dialect's `SELECT 1` statement; closing and resetting use
    the DB-API `close()` and `rollback()`.
    """

    dialect: Dialect = Dialect.UNKNOWN

    def __init__(
        self,
        min_size: int = 1,
        max_size: int = 10,
        max_idle_time: int = 300,
        max_lifetime: int = 3600,
        health_check_interval: int = 60,
        validation_interval: float = 30.0,
        acquire_timeout: float = 30.0,
        pool_name: str = "default",
    ):
        """
        Initialize connection pool.

        Args:
            min_size: Connections opened up front and kept open
            max_size: Maximum number of connections allowed
            max_idle_time: Idle seconds before a connection is recycled
            max_lifetime: Seconds after which a connection is recycled
            health_check_interval: Seconds between background health sweeps
            validation_interval: A connection used more recently than this
                is lent out without running the health query
            acquire_timeout: Seconds to wait for a free connection
            pool_name: Connection name, used in logs and metric labels
        """
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        if min_size > max_size:
            raise ValueError("min_size must not exceed max_size")

        self.min_size = min_size
        self.max_size = max_size
        self.max_idle_time = timedelta(seconds=max_idle_time)
        self.max_lifetime = timedelta(seconds=max_lifetime)
        self.health_check_interval = health_check_interval
        self.validation_interval = timedelta(seconds=validation_interval)
        self.acquire_timeout = acquire_timeout
        self.pool_name = pool_name

        self._pool: Queue[PooledConnection] = Queue(maxsize=max_size)
        self._all_connections: list[PooledConnection] = []
        self._lock = threading.RLock()
        self._closed = threading.Event()

        self._fill_to_minimum()

        self._health_check_thread = threading.Thread(
            target=self._health_check_worker,
            name=f"pool-health-{pool_name}",
            daemon=True,
        )
        self._health_check_thread.start()

        logger.info(
            f"Initialized {self.__class__.__name__} '{pool_name}' "
            f"(min={min_size}, max={max_size})"
        )

    @property
    def _labels(self) -> dict[str, str]:
        return {"dialect": self.dialect.value, "pool_name": self.pool_name}

    def _create_connection(self) -> Any:
        """Open a new DB-API connection. Must be implemented by subclasses."""
        raise NotImplementedError

    def _is_connection_healthy(self, conn: Any) -> bool:
        cursor = conn.cursor()
        try:
            cursor.execute(self.dialect.health_check_query)
            return cursor.fetchone() is not None
        finally:
            cursor.close()

    def _close_connection(self, conn: Any) -> None:
        conn.close()

    def open_cursor(self, conn: Any) -> Any:
        """Open a cursor for a streamed read. Engines override this to stream server-side."""
        return conn.cursor()

    def _reset_connection(self, conn: Any) -> None:
        """End any transaction a read left open before the connection is reused."""
        conn.rollback()

    def _new_pooled_connection(self, error_type: str) -> PooledConnection | None:
        try:
            conn = self._create_connection()
        except Exception as e:
            logger.error(f"Pool '{self.pool_name}': failed to open connection: {e}")
            CONNECTION_POOL_ERRORS.labels(**self._labels, error_type=error_type).inc()
            return None

        pooled_conn = PooledConnection(connection=conn)
        self._all_connections.append(pooled_conn)
        return pooled_conn

    def _fill_to_minimum(self) -> None:
        with self._lock:
            while len(self._all_connections) < self.min_size:
                pooled_conn = self._new_pooled_connection("initialization")
                if pooled_conn is None:
                    break
                self._pool.put_nowait(pooled_conn)
            self._update_metrics()

    def _check_connection_health(self, pooled_conn: PooledConnection, force: bool = False) -> bool:
        """
        Decide whether a connection may be lent out.

        Lifetime and idle limits are always enforced. The health query runs
        when forced or when the connection has not been used recently.
        """
        now = _now()

        if now - pooled_conn.created_at > self.max_lifetime:
            logger.debug(f"Pool '{self.pool_name}': connection exceeded max lifetime")
            return False

        if now - pooled_conn.last_used > self.max_idle_time:
            logger.debug(f"Pool '{self.pool_name}': connection exceeded max idle time")
            return False

        if not force and now - pooled_conn.last_used < self.validation_interval:
            return True

        try:
            return self._is_connection_healthy(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Pool '{self.pool_name}': health check failed: {e}")
            CONNECTION_POOL_ERRORS.labels(**self._labels, error_type="health_check").inc()
            return False

    def _recycle_connection(self, pooled_conn: PooledConnection) -> None:
        """Close and forget a connection."""
        try:
            self._close_connection(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Pool '{self.pool_name}': error closing connection: {e}")
        finally:
            with self._lock:
                if pooled_conn in self._all_connections:
                    self._all_connections.remove(pooled_conn)

    def _health_check_worker(self) -> None:
        while not self._closed.wait(self.health_check_interval):
            try:
                self._perform_health_checks()
            except Exception as e:
                logger.error(f"Pool '{self.pool_name}': health check worker error: {e}")

    def _perform_health_checks(self) -> None:
        """Check every idle connection, recycle failures and top up to min_size."""
        idle = []
        while True:
            try:
                idle.append(self._pool.get_nowait())
            except Empty:
                break

        recycled = 0
        for pooled_conn in idle:
            if self._check_connection_health(pooled_conn, force=True):
                self._pool.put_nowait(pooled_conn)
            else:
                self._recycle_connection(pooled_conn)
                recycled += 1

        if recycled:
            logger.info(f"Pool '{self.pool_name}': recycled {recycled} unhealthy connections")

        if not self._closed.is_set():
            self._fill_to_minimum()

    def _update_metrics(self) -> None:
        with self._lock:
            total_size = len(self._all_connections)
            idle_size = self._pool.qsize()

        CONNECTION_POOL_SIZE.labels(**self._labels).set(total_size)
        CONNECTION_POOL_ACTIVE.labels(**self._labels).set(total_size - idle_size)
        CONNECTION_POOL_IDLE.labels(**self._labels).set(idle_size)

    def _checkout(self) -> PooledConnection:
        """
        Take a healthy connection, opening one if below max_size.

        Raises:
            ConnectionPoolError: If the pool owns no connection and cannot open one
            PoolExhaustedError: If none becomes free within acquire_timeout
        """
        deadline = time.monotonic() + self.acquire_timeout

        while True:
            pooled_conn = None
            fresh = False
            try:
                pooled_conn = self._pool.get_nowait()
            except Empty:
                with self._lock:
                    if len(self._all_connections) < self.max_size:
                        pooled_conn = self._new_pooled_connection("creation")
                        if pooled_conn is None and not self._all_connections:
                            raise ConnectionPoolError(
                                f"Cannot open a connection for '{self.pool_name}'"
                            )
                        fresh = pooled_conn is not None

            if pooled_conn is None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise PoolExhaustedError(
                        f"No connection available for '{self.pool_name}' "
                        f"within {self.acquire_timeout}s"
                    )
                try:
                    pooled_conn = self._pool.get(timeout=min(remaining, 0.5))
                except Empty:
                    continue

            if fresh or self._check_connection_health(pooled_conn):
                return pooled_conn

            logger.info(f"Pool '{self.pool_name}': connection unhealthy, recycling")
            self._recycle_connection(pooled_conn)

    @contextmanager
    def acquire(self) -> Iterator[Any]:
        """
        Borrow a connection for the duration of the block.

        Yields:
            DB-API connection

        Raises:
            PoolClosedError: If pool is closed
            ConnectionPoolError: If the database cannot be reached
            PoolExhaustedError: If no connection is available within timeout
        """
        if self._closed.is_set():
            raise PoolClosedError(f"Connection pool '{self.pool_name}' is closed")

        start_time = time.monotonic()
        with trace_operation(
            "db_pool_acquire",
            kind=trace.SpanKind.CLIENT,
            dialect=self.dialect.value,
            pool_name=self.pool_name,
        ):
            pooled_conn = self._checkout()

        pooled_conn.mark_used()
        self._update_metrics()
        CONNECTION_ACQUIRE_TIME.labels(**self._labels).observe(time.monotonic() - start_time)

        try:
            yield pooled_conn.connection
        finally:
            self._release(pooled_conn)

    def _release(self, pooled_conn: PooledConnection) -> None:
        if self._closed.is_set():
            self._recycle_connection(pooled_conn)
            return

        try:
            self._reset_connection(pooled_conn.connection)
        except Exception as e:
            logger.warning(f"Pool '{self.pool_name}': reset failed, recycling: {e}")
            self._recycle_connection(pooled_conn)
        else:
            self._pool.put_nowait(pooled_conn)
        self._update_metrics()

    def close(self) -> None:
        """Close all connections and shutdown the pool."""
        if self._closed.is_set():
            return

        logger.info(f"Closing connection pool '{self.pool_name}'")
        self._closed.set()

        with self._lock:
            for pooled_conn in self._all_connections:
                try:
                    self._close_connection(pooled_conn.connection)
                except Exception as e:
                    logger.warning(f"Pool '{self.pool_name}': error closing connection: {e}")
            self._all_connections.clear()

            while True:
                try:
                    self._pool.get_nowait()
                except Empty:
                    break

        self._update_metrics()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def get_stats(self) -> dict[str, Any]:
        """Get pool statistics."""
        with self._lock:
            total_size = len(self._all_connections)
            idle_size = self._pool.qsize()

        return {
            "pool_name": self.pool_name,
            "dialect": self.dialect.value,
            "total_connections": total_size,
            "idle_connections": idle_size,
            "active_connections": total_size - idle_size,
            "min_size": self.min_size,
            "max_size": self.max_size,
            "closed": self.closed,
        }
