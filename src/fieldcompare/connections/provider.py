"""
Named connection pools.

ConnectionProvider owns one pool per configured connection, created on
first use and reused until close(). It is shared by every rule executor of
an orchestrator.
"""

import logging
import threading
from typing import Any, Callable, Mapping

from ..config import ConnectionConfig
from ..errors import ConfigurationError
from ..sql.dialect import Dialect
from .base import BaseConnectionPool

logger = logging.getLogger(__name__)

PoolFactory = Callable[[ConnectionConfig], BaseConnectionPool]


def create_pool(config: ConnectionConfig) -> BaseConnectionPool:
    """
    Build the engine-specific pool for a connection.

    Engine modules are imported here rather than at module level so that a
    missing system library for one driver (unixODBC for pyodbc) only affects
    connections that use it.

    Raises:
        ConfigurationError: If the dialect has no bundled driver or required
            connection fields are missing
    """
    common = {
        "min_size": config.min_pool_size,
        "max_size": config.max_pool_size,
        "pool_name": config.name,
    }

    try:
        if config.dialect == Dialect.POSTGRESQL:
            from .postgres import PostgresConnectionPool

            user, password = config.resolve_credentials()
            return PostgresConnectionPool(
                host=config.host,
                port=config.port or 5432,
                database=config.database,
                user=user,
                password=password,
                options=config.options,
                **common,
            )

        if config.dialect == Dialect.SQLSERVER:
            from .sqlserver import SQLServerConnectionPool

            if config.connection_string:
                return SQLServerConnectionPool(
                    connection_string=config.connection_string, **common
                )
            user, password = config.resolve_credentials()
            return SQLServerConnectionPool(
                host=config.host,
                port=config.port,
                database=config.database,
                user=user,
                password=password,
                driver=config.driver,
                options=config.options,
                **common,
            )

        if config.dialect == Dialect.ORACLE:
            from .oracle import OracleConnectionPool

            user, password = config.resolve_credentials()
            return OracleConnectionPool(
                host=config.host,
                port=config.port,
                database=config.database,
                user=user,
                password=password,
                dsn=config.dsn,
                options=config.options,
                **common,
            )
    except ValueError as e:
        raise ConfigurationError(f"Connection '{config.name}': {e}") from e

    raise ConfigurationError(
        f"Connection '{config.name}': no database driver is available for "
        f"dialect '{config.dialect.value}'"
    )


class ConnectionProvider:
    """
    Resolves connection names to pooled, ready-to-use connections.

    Thread-safe: concurrent first requests for the same name create exactly
    one pool.
    """

    def __init__(
        self,
        connections: Mapping[str, ConnectionConfig],
        pool_factory: PoolFactory = create_pool,
    ):
        self._configs = dict(connections)
        self._pool_factory = pool_factory
        self._pools: dict[str, BaseConnectionPool] = {}
        self._lock = threading.Lock()

    def connection_names(self) -> list[str]:
        return list(self._configs)

    def has_connection(self, name: str) -> bool:
        return name in self._configs

    def _config(self, name: str) -> ConnectionConfig:
        try:
            return self._configs[name]
        except KeyError:
            raise ConfigurationError(f"Connection not configured: {name}") from None

    def dialect_for(self, name: str) -> Dialect:
        """
        Raises:
            ConfigurationError: If the name is not configured
        """
        return self._config(name).dialect

    def get_pool(self, name: str) -> BaseConnectionPool:
        """
        Return the pool for a connection, creating it on first use.

        Raises:
            ConfigurationError: If the name is not configured or the pool
                cannot be built from its configuration
        """
        config = self._config(name)

        with self._lock:
            pool = self._pools.get(name)
            if pool is None or pool.closed:
                logger.info(f"Creating connection pool for '{name}' ({config.dialect.value})")
                pool = self._pool_factory(config)
                self._pools[name] = pool
            return pool

    def test_connection(self, name: str) -> bool:
        """
        Run the dialect's health-check statement on a pooled connection.

        Returns:
            True if the statement succeeded; any failure is logged and
            reported as False
        """
        try:
            pool = self.get_pool(name)
            with pool.acquire() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(pool.dialect.health_check_query)
                    cursor.fetchone()
                finally:
                    cursor.close()
        except Exception as e:
            logger.warning(f"Connection test failed for '{name}': {e}")
            return False

        logger.debug(f"Connection test succeeded for '{name}'")
        return True

    def statistics(self, name: str) -> dict[str, Any]:
        """
        Report the server version and server time of a connection.

        Never raises: a failure yields connected=False with the error message.

        Returns:
            Dict with connection_name, connected, and either version and
            current_time or error
        """
        stats: dict[str, Any] = {"connection_name": name}

        try:
            pool = self.get_pool(name)
            with pool.acquire() as conn:
                cursor = conn.cursor()
                try:
                    cursor.execute(pool.dialect.server_info_query)
                    version, current_time = cursor.fetchone() or (None, None)
                finally:
                    cursor.close()
        except Exception as e:
            logger.warning(f"Could not read statistics for '{name}': {e}")
            stats["connected"] = False
            stats["error"] = str(e)
            return stats

        stats["dialect"] = pool.dialect.value
        stats["version"] = None if version is None else str(version)
        stats["current_time"] = None if current_time is None else str(current_time)
        stats["connected"] = True
        return stats

    def close(self) -> None:
        """Close every pool created so far."""
        with self._lock:
            pools = list(self._pools.values())
            self._pools.clear()

        for pool in pools:
            pool.close()
