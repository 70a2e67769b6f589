"""
Pytest configuration and fixtures for fieldcompare tests.

End-to-end comparisons run against SQLite files through a pool subclass
using the UNKNOWN dialect (LIMIT/OFFSET pagination, `?` placeholders), so
generated SQL is executed by a real engine.
"""

import sqlite3
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest

from fieldcompare.config import ComparatorConfig, ComparatorSettings, ConnectionConfig
from fieldcompare.connections import BaseConnectionPool, ConnectionProvider
from fieldcompare.models import ComparisonRule, TableRef
from fieldcompare.sql.dialect import Dialect


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line("markers", "integration: mark test as integration test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


class SQLitePool(BaseConnectionPool):
    """Pool of SQLite connections to one database file."""

    dialect = Dialect.UNKNOWN

    def __init__(self, path: str, **kwargs: Any):
        self.path = path
        super().__init__(**kwargs)

    def _create_connection(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path, check_same_thread=False)


def write_table(
    path: str,
    table: str,
    rows: dict[Any, Any] | list[tuple[Any, Any]],
    key_type: str = "INTEGER",
    value_type: str = "TEXT",
) -> None:
    """(Re)create `table` with columns (id, val) and insert the rows."""
    items = list(rows.items()) if isinstance(rows, dict) else list(rows)
    conn = sqlite3.connect(path)
    try:
        conn.execute(f"DROP TABLE IF EXISTS {table}")
        conn.execute(f"CREATE TABLE {table} (id {key_type}, val {value_type}, active INTEGER DEFAULT 1)")
        conn.executemany(f"INSERT INTO {table} (id, val) VALUES (?, ?)", items)
        conn.commit()
    finally:
        conn.close()


@pytest.fixture
def db_paths(tmp_path: Path) -> dict[str, str]:
    """SQLite files per connection name; 'broken' points into a missing directory."""
    return {
        "source": str(tmp_path / "source.db"),
        "target": str(tmp_path / "target.db"),
        "broken": str(tmp_path / "missing" / "nowhere.db"),
    }


@pytest.fixture
def connection_configs(db_paths: dict[str, str]) -> dict[str, ConnectionConfig]:
    return {
        name: ConnectionConfig(name=name, dialect=Dialect.UNKNOWN)
        for name in db_paths
    }


@pytest.fixture
def provider(
    db_paths: dict[str, str], connection_configs: dict[str, ConnectionConfig]
) -> Iterator[ConnectionProvider]:
    provider = ConnectionProvider(
        connection_configs,
        pool_factory=lambda config: SQLitePool(
            db_paths[config.name],
            min_size=0,
            max_size=4,
            acquire_timeout=2.0,
            pool_name=config.name,
        ),
    )
    yield provider
    provider.close()


@pytest.fixture
def create_table(db_paths: dict[str, str]) -> Callable[..., None]:
    """create_table(connection, table, rows, ...) writes rows into that connection's file."""
    def create(connection: str, table: str, rows: Any, **kwargs: Any) -> None:
        write_table(db_paths[connection], table, rows, **kwargs)
    return create


@pytest.fixture
def make_rule() -> Callable[..., ComparisonRule]:
    def make(
        name: str = "customer_val",
        source_table: str = "customers",
        target_table: str = "customers",
        source_connection: str = "source",
        target_connection: str = "target",
        predicate: str | None = None,
        enabled: bool = True,
        description: str = "",
    ) -> ComparisonRule:
        return ComparisonRule(
            name=name,
            description=description,
            source_table=TableRef(source_connection, source_table),
            target_table=TableRef(target_connection, target_table),
            key_field="id",
            compare_field="val",
            predicate=predicate,
            enabled=enabled,
        )
    return make


@pytest.fixture
def settings() -> ComparatorSettings:
    """Settings without retry delays."""
    return ComparatorSettings(batch_size=100, max_retries=0, retry_base_delay=0.0)


@pytest.fixture
def make_config(
    connection_configs: dict[str, ConnectionConfig], settings: ComparatorSettings
) -> Callable[..., ComparatorConfig]:
    def make(rules: list[ComparisonRule], **overrides: Any) -> ComparatorConfig:
        config = ComparatorConfig(
            settings=settings, connections=connection_configs, rules=rules
        )
        return config.with_settings(**overrides) if overrides else config
    return make
