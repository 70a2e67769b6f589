"""
Data model for field comparison.

TableRef and ComparisonRule describe what to compare and where; they carry
no behaviour. Difference and ComparisonResult describe what was found.
"""

from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from .errors import ConfigurationError


class DifferenceType(str, Enum):
    """Kinds of difference the diff algorithm can emit."""

    SOURCE_ONLY = "SOURCE_ONLY"
    TARGET_ONLY = "TARGET_ONLY"
    VALUE_MISMATCH = "VALUE_MISMATCH"


class ExecutionStatus(str, Enum):
    """Terminal status of a rule execution."""

    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    # Reserved for callers that stop a comparison early; executors never set it
    PARTIAL = "PARTIAL"


@dataclass(frozen=True)
class TableRef:
    """A table on a named connection."""

    connection_name: str
    table_name: str
    schema: str | None = None

    def __post_init__(self) -> None:
        if not self.connection_name or not self.connection_name.strip():
            raise ConfigurationError("Table reference requires a connection name")
        if not self.table_name or not self.table_name.strip():
            raise ConfigurationError("Table reference requires a table name")

    @property
    def qualified_name(self) -> str:
        """schema.table when a schema is set, otherwise the bare table name."""
        if self.schema and self.schema.strip():
            return f"{self.schema}.{self.table_name}"
        return self.table_name


@dataclass(frozen=True)
class ComparisonRule:
    """
    Declarative description of one field comparison.

    The rule compares `compare_field` between source and target rows that
    share the same `key_field` value. `predicate` is raw SQL taken from
    configuration and applied to both tables.
    """

    name: str
    source_table: TableRef
    target_table: TableRef
    key_field: str
    compare_field: str
    description: str = ""
    predicate: str | None = None
    enabled: bool = True

    def __post_init__(self) -> None:
        if not self.name or not self.name.strip():
            raise ConfigurationError("Comparison rule requires a name")
        if not self.key_field or not self.key_field.strip():
            raise ConfigurationError(f"Rule '{self.name}': key_field must not be empty")
        if not self.compare_field or not self.compare_field.strip():
            raise ConfigurationError(
                f"Rule '{self.name}': compare_field must not be empty"
            )

    @property
    def has_predicate(self) -> bool:
        return bool(self.predicate and self.predicate.strip())

    def to_info(self) -> dict[str, Any]:
        """Summary used by rule listings."""
        return {
            "name": self.name,
            "description": self.description,
            "enabled": self.enabled,
            "source_table": self.source_table.qualified_name,
            "source_connection": self.source_table.connection_name,
            "target_table": self.target_table.qualified_name,
            "target_connection": self.target_table.connection_name,
            "key_field": self.key_field,
            "compare_field": self.compare_field,
        }


@dataclass(frozen=True)
class Difference:
    """
    A single per-key difference.

    Identity is (key, kind, field_name); the value payloads are
    informational and excluded from equality and hashing so that the same
    difference seen on two pages collapses to one.
    """

    key: Any
    kind: DifferenceType
    field_name: str
    source_value: Any = field(default=None, compare=False)
    target_value: Any = field(default=None, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "key": self.key,
            "kind": self.kind.value,
            "field_name": self.field_name,
            "source_value": self.source_value,
            "target_value": self.target_value,
        }


@dataclass
class ComparisonResult:
    """
    Outcome of one rule execution.

    Created optimistically with status SUCCESS when execution starts and
    finalized exactly once through complete() or fail(). Counts are derived
    from the differences and the measured row counts, never set directly.
    """

    rule_name: str
    rule_description: str = ""
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    status: ExecutionStatus = ExecutionStatus.SUCCESS
    error_message: str | None = None
    strategy: str | None = None
    source_count: int = field(default=0, init=False)
    target_count: int = field(default=0, init=False)
    _differences: tuple[Difference, ...] = field(default=(), init=False, repr=False)
    _finalized: bool = field(default=False, init=False, repr=False)

    def complete(
        self,
        differences: list[Difference],
        source_count: int,
        target_count: int,
        strategy: str | None = None,
    ) -> None:
        """Finalize as successful with the given differences and row counts."""
        self._ensure_open()
        self._differences = tuple(differences)
        self.source_count = source_count
        self.target_count = target_count
        self.strategy = strategy
        self.status = ExecutionStatus.SUCCESS
        self._close()

    def fail(self, error_message: str) -> None:
        """Finalize as failed. A failed result never carries differences."""
        self._ensure_open()
        self._differences = ()
        self.status = ExecutionStatus.FAILED
        self.error_message = error_message
        self._close()

    def _ensure_open(self) -> None:
        if self._finalized:
            raise RuntimeError(f"Result for rule '{self.rule_name}' is already finalized")

    def _close(self) -> None:
        self.end_time = datetime.now(UTC)
        self._finalized = True

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def differences(self) -> tuple[Difference, ...]:
        return self._differences

    @property
    def total_records(self) -> int:
        """
        Distinct keys seen across both sides: every source row plus the
        target rows whose key the source lacks.

        This deliberately departs from the max(source_count, target_count)
        formula of the result data model, which undercounts when each side
        holds keys the other lacks (two 3-row tables with keys {1, 2, 3} and
        {2, 3, 4} give 4 here, not 3). The two agree when one side's keys
        contain the other's.
        """
        return self.source_count + self.target_only_count

    @property
    def execution_time(self) -> timedelta | None:
        if self.end_time is None:
            return None
        return self.end_time - self.start_time

    @property
    def execution_time_ms(self) -> int:
        elapsed = self.execution_time
        return int(elapsed.total_seconds() * 1000) if elapsed is not None else 0

    @property
    def difference_count(self) -> int:
        return len(self._differences)

    def _count_kind(self, kind: DifferenceType) -> int:
        return Counter(d.kind for d in self._differences)[kind]

    @property
    def source_only_count(self) -> int:
        return self._count_kind(DifferenceType.SOURCE_ONLY)

    @property
    def target_only_count(self) -> int:
        return self._count_kind(DifferenceType.TARGET_ONLY)

    @property
    def value_mismatch_count(self) -> int:
        return self._count_kind(DifferenceType.VALUE_MISMATCH)

    @property
    def succeeded(self) -> bool:
        return self.status == ExecutionStatus.SUCCESS

    def to_dict(self, include_differences: bool = True) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        data = {
            "rule_name": self.rule_name,
            "rule_description": self.rule_description,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "execution_time_ms": self.execution_time_ms,
            "status": self.status.value,
            "error_message": self.error_message,
            "strategy": self.strategy,
            "source_count": self.source_count,
            "target_count": self.target_count,
            "total_records": self.total_records,
            "difference_count": self.difference_count,
            "source_only_count": self.source_only_count,
            "target_only_count": self.target_only_count,
            "value_mismatch_count": self.value_mismatch_count,
        }
        if include_differences:
            data["differences"] = [d.to_dict() for d in self._differences]
        return data

    def __str__(self) -> str:
        return (
            f"ComparisonResult(rule_name='{self.rule_name}', status={self.status.value}, "
            f"total_records={self.total_records}, difference_count={self.difference_count}, "
            f"execution_time={self.execution_time_ms}ms)"
        )
