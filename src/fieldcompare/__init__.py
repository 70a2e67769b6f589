"""
fieldcompare: field-level comparison of a source and a target table.

A rule names one field on each side and the key shared by both tables;
running it reports keys present on only one side and keys whose field
values differ. Tables may live on different database engines.

Usage:
    from fieldcompare import ComparisonOrchestrator, load_config

    with ComparisonOrchestrator(load_config("rules.yaml")) as orchestrator:
        for result in orchestrator.run_all():
            print(result)
"""

from .config import ComparatorConfig, ComparatorSettings, ConnectionConfig, load_config
from .errors import (
    ComparatorError,
    ComparisonCancelledError,
    ConfigurationError,
    ConnectivityError,
    DataError,
    RuleNotFoundError,
)
from .models import (
    ComparisonResult,
    ComparisonRule,
    Difference,
    DifferenceType,
    ExecutionStatus,
    TableRef,
)
from .orchestrator import ComparisonOrchestrator

__version__ = "1.0.0"

__all__ = [
    "ComparisonOrchestrator",
    "load_config",
    "ComparatorConfig",
    "ComparatorSettings",
    "ConnectionConfig",
    "ComparisonRule",
    "TableRef",
    "Difference",
    "DifferenceType",
    "ComparisonResult",
    "ExecutionStatus",
    "ComparatorError",
    "ConfigurationError",
    "RuleNotFoundError",
    "ConnectivityError",
    "DataError",
    "ComparisonCancelledError",
]
