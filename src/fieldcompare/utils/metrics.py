"""
Prometheus metrics for field comparison

Module-level collectors are registered once on the global registry and are
safe to import from several modules. MetricsPublisher exposes them over HTTP.

Usage:
    from fieldcompare.utils.metrics import MetricsPublisher, RULES_EXECUTED

    MetricsPublisher(port=9091).start()
    RULES_EXECUTED.labels(status="SUCCESS").inc()
"""

import logging
from typing import Callable, Optional, TypeVar

from prometheus_client import (
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def get_or_create_metric(
    metric_factory: Callable[[], T],
    metric_name: str,
    registry: CollectorRegistry = REGISTRY,
) -> T:
    """
    Create a metric, or return the one already registered under the same name.

    Args:
        metric_factory: Callable that creates the metric (e.g., lambda: Counter(...))
        metric_name: Registered name used for lookup on a duplicate
        registry: Prometheus registry to use (default: global REGISTRY)

    Returns:
        The metric instance (either newly created or existing)
    """
    try:
        return metric_factory()
    except ValueError:
        existing = registry._names_to_collectors.get(metric_name)
        if existing is not None:
            return existing
        raise


RULES_EXECUTED = get_or_create_metric(
    lambda: Counter(
        "fieldcompare_rules_executed_total",
        "Comparison rules executed, by final status",
        ["status"],
    ),
    "fieldcompare_rules_executed_total",
)

RULE_DURATION = get_or_create_metric(
    lambda: Histogram(
        "fieldcompare_rule_duration_seconds",
        "Wall-clock duration of one rule execution",
        ["rule", "strategy"],
        buckets=[0.1, 0.5, 1, 5, 10, 30, 60, 120, 300, 600, 1800],
    ),
    "fieldcompare_rule_duration_seconds",
)

DIFFERENCES_FOUND = get_or_create_metric(
    lambda: Counter(
        "fieldcompare_differences_found_total",
        "Differences reported, by rule and kind",
        ["rule", "kind"],
    ),
    "fieldcompare_differences_found_total",
)

PAGES_FETCHED = get_or_create_metric(
    lambda: Counter(
        "fieldcompare_pages_fetched_total",
        "Pages read by the batched comparator, by phase",
        ["phase"],
    ),
    "fieldcompare_pages_fetched_total",
)

DUPLICATE_KEYS = get_or_create_metric(
    lambda: Counter(
        "fieldcompare_duplicate_keys_total",
        "Rows whose key was already seen in the same result set",
        ["connection"],
    ),
    "fieldcompare_duplicate_keys_total",
)

ACTIVE_RULES = get_or_create_metric(
    lambda: Gauge(
        "fieldcompare_active_rules",
        "Rules currently executing",
    ),
    "fieldcompare_active_rules",
)

RUN_DURATION = get_or_create_metric(
    lambda: Histogram(
        "fieldcompare_run_duration_seconds",
        "Duration of an orchestrated run over a set of rules",
        ["mode"],
        buckets=[1, 5, 10, 30, 60, 120, 300, 600, 1800, 3600],
    ),
    "fieldcompare_run_duration_seconds",
)


class MetricsPublisher:
    """
    Starts the Prometheus HTTP server that exposes /metrics.
    """

    def __init__(
        self,
        port: int = 9091,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.port = port
        self.registry = registry or REGISTRY
        self._server_started = False

    def start(self) -> None:
        """Start the metrics HTTP server"""
        if self._server_started:
            logger.warning(f"Metrics server already running on port {self.port}")
            return

        try:
            start_http_server(self.port, registry=self.registry)
        except OSError as e:
            raise RuntimeError(
                f"Metrics server could not bind port {self.port}: {e}"
            ) from e

        self._server_started = True
        logger.info(f"Metrics server started on port {self.port}")

    def is_started(self) -> bool:
        return self._server_started
