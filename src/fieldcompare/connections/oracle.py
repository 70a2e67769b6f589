"""Oracle connection pool (python-oracledb, thin mode)."""

from typing import Any

import oracledb
from opentelemetry import trace

from ..sql.dialect import Dialect
from ..utils.tracing import trace_operation
from .base import BaseConnectionPool


class OracleConnectionPool(BaseConnectionPool):
    """Connection pool for Oracle databases."""

    dialect = Dialect.ORACLE

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        dsn: str | None = None,
        options: dict[str, Any] | None = None,
        fetch_size: int = 2000,
        **kwargs: Any,
    ):
        """
        Args:
            host: Oracle host, used with port and database to build an
                Easy Connect string when dsn is not given
            port: Listener port (default 1521)
            database: Service name
            user: Username
            password: Password
            dsn: Complete DSN or TNS alias, used as-is
            options: Extra keyword arguments for oracledb.connect
            fetch_size: Cursor arraysize for streamed reads
            **kwargs: Additional arguments for BaseConnectionPool
        """
        if not dsn:
            if not host or not database:
                raise ValueError("Either dsn or host and database must be provided")
            dsn = f"{host}:{port or 1521}/{database}"

        self.dsn = dsn
        self.user = user
        self.password = password
        self.options = dict(options or {})
        self.fetch_size = fetch_size

        super().__init__(**kwargs)

    def _create_connection(self) -> oracledb.Connection:
        with trace_operation(
            "oracle_connect",
            kind=trace.SpanKind.CLIENT,
            db_dsn=self.dsn,
        ):
            return oracledb.connect(
                user=self.user,
                password=self.password,
                dsn=self.dsn,
                **self.options,
            )

    def _is_connection_healthy(self, conn: oracledb.Connection) -> bool:
        if conn is None:
            return False
        try:
            conn.ping()
            return True
        except oracledb.Error:
            return False

    def open_cursor(self, conn: oracledb.Connection) -> Any:
        cursor = conn.cursor()
        cursor.arraysize = self.fetch_size
        cursor.prefetchrows = self.fetch_size + 1
        return cursor
