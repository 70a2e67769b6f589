"""SQL Server connection pool."""

from typing import Any

import pyodbc
from opentelemetry import trace

from ..sql.dialect import Dialect
from ..utils.tracing import trace_operation
from .base import BaseConnectionPool

DEFAULT_DRIVER = "ODBC Driver 18 for SQL Server"


def extract_from_conn_str(conn_str: str, key: str) -> str:
    """Read one KEY=value entry of an ODBC connection string, 'unknown' if absent."""
    for part in conn_str.split(";"):
        name, sep, value = part.partition("=")
        if sep and name.strip().upper() == key.upper():
            return value.strip()
    return "unknown"


class SQLServerConnectionPool(BaseConnectionPool):
    """Connection pool for SQL Server databases."""

    dialect = Dialect.SQLSERVER

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        database: str | None = None,
        user: str | None = None,
        password: str | None = None,
        driver: str | None = None,
        connection_string: str | None = None,
        options: dict[str, Any] | None = None,
        **kwargs: Any,
    ):
        """
        Args:
            host: SQL Server host (required if connection_string not provided)
            port: SQL Server port (default 1433)
            database: Database name (required if connection_string not provided)
            user: Username (required if connection_string not provided)
            password: Password (required if connection_string not provided)
            driver: ODBC driver name
            connection_string: Complete ODBC connection string, used as-is
            options: Extra KEY=value pairs appended to a built connection string
            **kwargs: Additional arguments for BaseConnectionPool
        """
        if connection_string:
            self.connection_string = connection_string
            self.host = extract_from_conn_str(connection_string, "SERVER")
            self.database = extract_from_conn_str(connection_string, "DATABASE")
        else:
            if not all([host, database, user, password]):
                raise ValueError(
                    "Either connection_string or all of (host, database, user, password) "
                    "must be provided"
                )
            self.host = host
            self.database = database
            parts = {
                "DRIVER": f"{{{driver or DEFAULT_DRIVER}}}",
                "SERVER": f"{host},{port or 1433}",
                "DATABASE": database,
                "UID": user,
                "PWD": password,
                "TrustServerCertificate": "yes",
                "Encrypt": "yes",
            }
            parts.update({str(k): str(v) for k, v in (options or {}).items()})
            self.connection_string = "".join(f"{k}={v};" for k, v in parts.items())

        super().__init__(**kwargs)

    def _create_connection(self) -> pyodbc.Connection:
        with trace_operation(
            "sqlserver_connect",
            kind=trace.SpanKind.CLIENT,
            db_host=self.host,
            db_name=self.database,
        ):
            conn = pyodbc.connect(self.connection_string, timeout=10, readonly=True)
            conn.autocommit = True
            return conn

    def _is_connection_healthy(self, conn: pyodbc.Connection) -> bool:
        if conn is None:
            return False

        try:
            cursor = conn.cursor()
            cursor.execute(self.dialect.health_check_query)
            cursor.fetchone()
            cursor.close()
            return True
        except pyodbc.Error:
            return False
