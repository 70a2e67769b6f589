"""
Database connection pooling for PostgreSQL, SQL Server and Oracle.

Engine pool classes live in their own modules and are imported by
create_pool on demand.
"""

from .base import (
    BaseConnectionPool,
    ConnectionPoolError,
    PoolClosedError,
    PooledConnection,
    PoolExhaustedError,
)
from .provider import ConnectionProvider, create_pool

__all__ = [
    "BaseConnectionPool",
    "PooledConnection",
    "ConnectionPoolError",
    "PoolExhaustedError",
    "PoolClosedError",
    "ConnectionProvider",
    "create_pool",
]
