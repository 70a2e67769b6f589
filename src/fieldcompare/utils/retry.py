"""
Retry with exponential backoff for database queries

Only transient failures (lost connections, timeouts, deadlocks) are retried;
anything else, including SQL errors, fails on the first attempt.

Usage:
    from fieldcompare.utils.retry import retry_database_operation

    run_query = retry_database_operation(max_retries=3, base_delay=1.0)(run_query)
"""

import logging
import random
import threading
import time
from functools import wraps
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

# Substrings of exception messages or class names that mark a transient failure
RETRYABLE_PATTERNS = (
    "connection",
    "timeout",
    "timed out",
    "deadlock",
    "lock wait timeout",
    "lost connection",
    "server has gone away",
    "can't connect",
    "unable to connect",
    "connection refused",
    "connection reset",
    "broken pipe",
    "network error",
    "communication link failure",
    "ora-03113",
    "ora-03114",
    "ora-12170",
    "ora-12541",
)

RETRYABLE_EXCEPTION_NAMES = (
    "connectionerror",
    "timeouterror",
    "operationalerror",
    "interfaceerror",
)


def is_retryable_db_exception(exception: Exception) -> bool:
    """
    Determine if a database exception is transient

    Args:
        exception: The exception to check

    Returns:
        True if the exception is retryable, False otherwise
    """
    exception_str = str(exception).lower()
    exception_type = type(exception).__name__.lower()

    if exception_type in RETRYABLE_EXCEPTION_NAMES:
        return True

    return any(
        pattern in exception_str or pattern in exception_type
        for pattern in RETRYABLE_PATTERNS
    )


def compute_backoff(attempt: int, base_delay: float, max_delay: float = 60.0) -> float:
    """Exponential delay for a 0-based attempt with +/-25% jitter."""
    delay = min(base_delay * (2.0 ** attempt), max_delay)
    jitter_amount = delay * 0.25
    return max(0.0, delay + random.uniform(-jitter_amount, jitter_amount))


def retry_database_operation(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    on_retry: Optional[Callable[[int, Exception, float], None]] = None,
    cancel_event: Optional[threading.Event] = None,
    is_retryable: Callable[[Exception], bool] = is_retryable_db_exception,
):
    """
    Decorator for database operations with transient-error filtering

    Args:
        max_retries: Maximum number of retry attempts (default: 3)
        base_delay: Initial delay in seconds (default: 1.0)
        max_delay: Upper bound on a single delay in seconds
        on_retry: Callback function(attempt, exception, delay) called on each retry
        cancel_event: When set, stops waiting and re-raises the last error
        is_retryable: Predicate deciding whether an exception is transient

    Example:
        @retry_database_operation(max_retries=5)
        def execute_query(cursor, query):
            cursor.execute(query)
            return cursor.fetchall()
    """
    def decorator(func: Callable) -> Callable:
        func_name = getattr(func, '__name__', 'function')

        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)

                except Exception as e:
                    if not is_retryable(e):
                        logger.debug(
                            f"Non-retryable database error in {func_name}: "
                            f"{type(e).__name__}: {e}"
                        )
                        raise

                    if attempt == max_retries:
                        if max_retries:
                            logger.error(
                                f"Max retries ({max_retries}) exceeded for {func_name}: "
                                f"{type(e).__name__}: {e}"
                            )
                        raise

                    delay = compute_backoff(attempt, base_delay, max_delay)
                    logger.warning(
                        f"Retryable database error in {func_name} "
                        f"(attempt {attempt + 1}/{max_retries}): "
                        f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                    )

                    if on_retry:
                        on_retry(attempt + 1, e, delay)

                    if cancel_event is not None:
                        if cancel_event.wait(delay):
                            raise
                    else:
                        time.sleep(delay)

            raise RuntimeError(f"Unexpected exit from retry loop in {func_name}")

        return wrapper
    return decorator
