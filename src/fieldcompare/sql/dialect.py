"""
SQL dialects understood by the query builder.

Each dialect fixes its pagination idiom, DB-API placeholder style,
identifier quoting, health-check statement and IN-list limit.
"""

from enum import Enum
from typing import Callable


def _limit_offset(offset: int, limit: int) -> str:
    return f"LIMIT {limit} OFFSET {offset}"


def _offset_fetch(offset: int, limit: int) -> str:
    return f"OFFSET {offset} ROWS FETCH NEXT {limit} ROWS ONLY"


class Dialect(str, Enum):
    """
    Closed set of SQL syntax families.

    Inherits from str so dialect names read naturally in configuration,
    logs and JSON output.
    """

    MYSQL = "mysql"
    POSTGRESQL = "postgresql"
    ORACLE = "oracle"
    SQLSERVER = "sqlserver"
    UNKNOWN = "unknown"

    @classmethod
    def infer(cls, hint: str | None) -> "Dialect":
        """
        Infer the dialect from a connection URL or driver name.

        Accepts plain URLs (postgresql://...), JDBC URLs (jdbc:sqlserver://...),
        Oracle thin DSNs (oracle:thin:@...), ODBC connection strings and
        driver hints (psycopg2, pyodbc, oracledb). URLs are judged by their
        scheme and ODBC strings by their DRIVER entry, so host or database
        names never decide the dialect.

        Args:
            hint: Connection URL or driver name, may be None

        Returns:
            Matching Dialect, UNKNOWN when nothing matches
        """
        if not hint:
            return cls.UNKNOWN

        value = hint.strip().lower()
        if value.startswith("jdbc:"):
            value = value[len("jdbc:"):]

        if "://" in value or ":@" in value:
            value = value.split(":", 1)[0]
        elif "driver=" in value:
            value = value.split("driver=", 1)[1].split(";", 1)[0]

        return cls._from_name(value)

    @classmethod
    def _from_name(cls, name: str) -> "Dialect":
        if "mysql" in name or "mariadb" in name:
            return cls.MYSQL
        if "postgres" in name or "psycopg" in name:
            return cls.POSTGRESQL
        if "oracle" in name:
            return cls.ORACLE
        if any(word in name for word in ("sqlserver", "sql server", "mssql", "odbc")):
            return cls.SQLSERVER
        return cls.UNKNOWN

    @property
    def pagination(self) -> Callable[[int, int], str]:
        return _PAGINATION[self]

    def pagination_clause(self, offset: int, limit: int) -> str:
        """Render the clause that selects `limit` rows starting at `offset`."""
        return self.pagination(offset, limit)

    @property
    def requires_order_by(self) -> bool:
        """OFFSET ... FETCH on SQL Server is only valid after an ORDER BY."""
        return self == Dialect.SQLSERVER

    def placeholder(self, index: int = 0) -> str:
        """
        Get the DB-API parameter placeholder for this dialect.

        Args:
            index: Parameter index (0-based)

        Returns:
            Placeholder string
        """
        if self in (Dialect.MYSQL, Dialect.POSTGRESQL):
            return "%s"
        if self == Dialect.ORACLE:
            return f":{index + 1}"
        return "?"

    @property
    def uses_percent_placeholders(self) -> bool:
        return self in (Dialect.MYSQL, Dialect.POSTGRESQL)

    def quote_identifier(self, identifier: str) -> str:
        """
        Quote a single identifier, doubling any embedded closing quote.

        Args:
            identifier: Column or table name

        Returns:
            Quoted identifier string
        """
        if self == Dialect.MYSQL:
            return "`" + identifier.replace("`", "``") + "`"
        if self in (Dialect.POSTGRESQL, Dialect.ORACLE):
            return '"' + identifier.replace('"', '""') + '"'
        if self == Dialect.SQLSERVER:
            return "[" + identifier.replace("]", "]]") + "]"
        return identifier

    @property
    def health_check_query(self) -> str:
        if self == Dialect.ORACLE:
            return "SELECT 1 FROM DUAL"
        return "SELECT 1"

    @property
    def server_info_query(self) -> str:
        """Statement returning one row of (server version, server time)."""
        return _SERVER_INFO[self]

    @property
    def max_in_list_size(self) -> int:
        if self == Dialect.SQLSERVER:
            return 2000
        return 1000


_PAGINATION: dict[Dialect, Callable[[int, int], str]] = {
    Dialect.MYSQL: _limit_offset,
    Dialect.POSTGRESQL: _limit_offset,
    Dialect.ORACLE: _offset_fetch,
    Dialect.SQLSERVER: _offset_fetch,
    Dialect.UNKNOWN: _limit_offset,
}

# Version is NULL for UNKNOWN; CURRENT_TIMESTAMP is portable
_SERVER_INFO: dict[Dialect, str] = {
    Dialect.MYSQL: "SELECT VERSION(), NOW()",
    Dialect.POSTGRESQL: "SELECT version(), now()",
    Dialect.ORACLE: "SELECT banner, SYSTIMESTAMP FROM v$version WHERE ROWNUM = 1",
    Dialect.SQLSERVER: "SELECT @@VERSION, SYSDATETIME()",
    Dialect.UNKNOWN: "SELECT NULL, CURRENT_TIMESTAMP",
}
