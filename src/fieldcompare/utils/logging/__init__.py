"""
Structured logging for fieldcompare

Usage:
    from fieldcompare.utils.logging import setup_logging, ContextLogger

    # Once at startup
    setup_logging(level="INFO", json_format=True)

    # Per rule execution
    logger = ContextLogger(__name__, rule_name="customer_email")
    logger.info("Comparison finished", differences=3)
"""

from .config import configure_from_env, get_logger, setup_logging
from .formatters import ConsoleFormatter, JSONFormatter
from .handlers import ContextLogger

__all__ = [
    "setup_logging",
    "get_logger",
    "configure_from_env",
    "JSONFormatter",
    "ConsoleFormatter",
    "ContextLogger",
]
