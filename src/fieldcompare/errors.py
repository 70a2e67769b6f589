"""
Error taxonomy for field comparison.

Configuration problems fail fast before anything is queried. Connectivity
and data problems are contained per rule and reported on the rule's
ComparisonResult instead of being raised out of the orchestrator.
"""


class ComparatorError(Exception):
    """Base exception for all comparison errors."""

    pass


class ConfigurationError(ComparatorError):
    """Raised for invalid configuration or unresolved references."""

    pass


class RuleNotFoundError(ConfigurationError, LookupError):
    """Raised when a rule name is not part of the configured rule set."""

    def __init__(self, rule_name: str):
        self.rule_name = rule_name
        super().__init__(f"Rule not found: {rule_name}")


class ConnectivityError(ComparatorError):
    """Raised when a count or fetch query fails against a connection."""

    def __init__(self, message: str, connection_name: str | None = None):
        self.connection_name = connection_name
        super().__init__(message)


class DataError(ConnectivityError):
    """Raised when a result set does not have the expected shape."""

    pass


class ComparisonCancelledError(ComparatorError):
    """Raised inside a rule execution when its cancellation token is set."""

    pass
