"""
Unit tests for retry logic with exponential backoff

Tests verify:
- Transient error classification
- Backoff calculation and jitter bounds
- Retry and give-up behaviour
- Cancellation while waiting
"""

import threading
from unittest.mock import Mock, patch

import pytest

from fieldcompare.utils.retry import (
    compute_backoff,
    is_retryable_db_exception,
    retry_database_operation,
)


class OperationalError(Exception):
    """Stand-in named like the DB-API transient error class."""


class TestIsRetryableDbException:
    """Test transient error classification"""

    @pytest.mark.parametrize("exc", [
        ConnectionError("boom"),
        TimeoutError("slow"),
        OperationalError("anything"),
        Exception("Deadlock found when trying to get lock"),
        Exception("server has gone away"),
        Exception("ORA-03113: end-of-file on communication channel"),
        Exception("[08S01] Communication link failure"),
    ])
    def test_transient(self, exc):
        assert is_retryable_db_exception(exc) is True

    @pytest.mark.parametrize("exc", [
        ValueError("invalid literal"),
        Exception("syntax error at or near SELECT"),
        KeyError("id"),
    ])
    def test_permanent(self, exc):
        assert is_retryable_db_exception(exc) is False


class TestComputeBackoff:
    """Test backoff delays"""

    def test_within_jitter_bounds(self):
        for attempt, expected in [(0, 1.0), (1, 2.0), (2, 4.0)]:
            delay = compute_backoff(attempt, base_delay=1.0)
            assert expected * 0.75 <= delay <= expected * 1.25

    def test_capped_at_max_delay(self):
        assert compute_backoff(10, base_delay=1.0, max_delay=5.0) <= 5.0 * 1.25

    def test_zero_base_delay(self):
        assert compute_backoff(3, base_delay=0.0) == 0.0


class TestRetryDatabaseOperation:
    """Test retry_database_operation decorator"""

    def test_success_on_first_attempt(self):
        """Function succeeds without retries"""
        mock_func = Mock(return_value="rows")
        decorated = retry_database_operation(max_retries=3, base_delay=0.0)(mock_func)

        assert decorated() == "rows"
        assert mock_func.call_count == 1

    def test_success_after_transient_failures(self):
        """Transient failures are retried until success"""
        mock_func = Mock(side_effect=[
            ConnectionError("Connection reset"),
            TimeoutError("timed out"),
            "rows",
        ])

        with patch("fieldcompare.utils.retry.time.sleep") as mock_sleep:
            decorated = retry_database_operation(max_retries=3, base_delay=1.0)(mock_func)
            assert decorated() == "rows"

        assert mock_func.call_count == 3
        assert mock_sleep.call_count == 2

    def test_max_retries_exceeded(self):
        """Last transient error propagates after max_retries"""
        mock_func = Mock(side_effect=ConnectionError("Persistent"))
        decorated = retry_database_operation(max_retries=2, base_delay=0.0)(mock_func)

        with pytest.raises(ConnectionError, match="Persistent"):
            decorated()

        # initial attempt + 2 retries
        assert mock_func.call_count == 3

    def test_non_retryable_raises_immediately(self):
        mock_func = Mock(side_effect=ValueError("bad SQL"))
        decorated = retry_database_operation(max_retries=5, base_delay=0.0)(mock_func)

        with pytest.raises(ValueError):
            decorated()
        assert mock_func.call_count == 1

    def test_zero_retries(self):
        mock_func = Mock(side_effect=ConnectionError("down"))
        decorated = retry_database_operation(max_retries=0)(mock_func)

        with pytest.raises(ConnectionError):
            decorated()
        assert mock_func.call_count == 1

    def test_custom_predicate(self):
        mock_func = Mock(side_effect=[KeyError("flaky"), "ok"])
        decorated = retry_database_operation(
            max_retries=1, base_delay=0.0, is_retryable=lambda e: isinstance(e, KeyError)
        )(mock_func)

        assert decorated() == "ok"

    def test_on_retry_callback(self):
        """Callback receives the 1-based attempt and the error"""
        error = ConnectionError("reset")
        mock_func = Mock(side_effect=[error, "ok"])
        callback = Mock()

        decorated = retry_database_operation(
            max_retries=2, base_delay=0.0, on_retry=callback
        )(mock_func)
        decorated()

        callback.assert_called_once()
        attempt, exc, delay = callback.call_args[0]
        assert attempt == 1
        assert exc is error
        assert delay == 0.0

    def test_cancel_event_stops_waiting(self):
        """A set cancel event re-raises instead of retrying"""
        cancel = threading.Event()
        cancel.set()
        mock_func = Mock(side_effect=ConnectionError("reset"))

        decorated = retry_database_operation(
            max_retries=5, base_delay=10.0, cancel_event=cancel
        )(mock_func)

        with pytest.raises(ConnectionError):
            decorated()
        assert mock_func.call_count == 1

    def test_preserves_function_name(self):
        def run_query():
            return 1

        assert retry_database_operation()(run_query).__name__ == "run_query"
