"""PostgreSQL connection pool."""

import itertools
from typing import Any

import psycopg2
import psycopg2.extensions
from opentelemetry import trace

from ..sql.dialect import Dialect
from ..utils.tracing import trace_operation
from .base import BaseConnectionPool

_cursor_ids = itertools.count(1)


class PostgresConnectionPool(BaseConnectionPool):
    """
    Connection pool for PostgreSQL databases.

    Connections stay in transactional mode so that reads can use named
    (server-side) cursors, which stream rows instead of buffering the whole
    result set in the client. The pool rolls back on release.
    """

    dialect = Dialect.POSTGRESQL

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        user: str,
        password: str | None,
        options: dict[str, Any] | None = None,
        fetch_size: int = 2000,
        **kwargs: Any,
    ):
        """
        Args:
            host: PostgreSQL host
            port: PostgreSQL port
            database: Database name
            user: Username
            password: Password
            options: Extra keyword arguments for psycopg2.connect
            fetch_size: Rows per network round trip for streamed cursors
            **kwargs: Additional arguments for BaseConnectionPool
        """
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.options = dict(options or {})
        self.fetch_size = fetch_size

        super().__init__(**kwargs)

    def _create_connection(self) -> psycopg2.extensions.connection:
        with trace_operation(
            "postgres_connect",
            kind=trace.SpanKind.CLIENT,
            db_host=self.host,
            db_name=self.database,
        ):
            connect_args = {"connect_timeout": 10, **self.options}
            conn = psycopg2.connect(
                host=self.host,
                port=self.port,
                dbname=self.database,
                user=self.user,
                password=self.password,
                **connect_args,
            )
            conn.set_session(readonly=True, autocommit=False)
            return conn

    def _is_connection_healthy(self, conn: psycopg2.extensions.connection) -> bool:
        if conn is None or conn.closed:
            return False

        try:
            with conn.cursor() as cursor:
                cursor.execute(self.dialect.health_check_query)
                cursor.fetchone()
            conn.rollback()
            return True
        except (psycopg2.Error, psycopg2.Warning):
            return False

    def _close_connection(self, conn: psycopg2.extensions.connection) -> None:
        if conn is not None and not conn.closed:
            conn.close()

    def open_cursor(self, conn: psycopg2.extensions.connection) -> Any:
        """Open a named cursor so rows are streamed from the server."""
        cursor = conn.cursor(name=f"fieldcompare_{next(_cursor_ids)}")
        cursor.itersize = self.fetch_size
        return cursor
