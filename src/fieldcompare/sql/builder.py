"""
Dialect-aware SQL generation.

All functions are pure: the same inputs always render the same SQL text.
Table and field names are emitted as configured (they are validated when the
configuration is loaded). Rule predicates are trusted configuration and are
passed through verbatim. Key values are never embedded in SQL; IN-lists use
placeholders and the values travel as bound parameters.
"""

from typing import Sequence

from ..models import TableRef
from .dialect import Dialect
from .safety import validate_integer_param

ALWAYS_FALSE = "1=0"

ExistenceQuery = tuple[str, tuple]


def escape_identifier(name: str, dialect: Dialect) -> str:
    """Quote an identifier in the style of the given dialect."""
    return dialect.quote_identifier(name)


def _where(*conditions: str | None) -> str:
    parts = [c.strip() for c in conditions if c and c.strip()]
    if not parts:
        return ""
    if len(parts) == 1:
        return f" WHERE {parts[0]}"
    return " WHERE " + " AND ".join(f"({p})" for p in parts)


def _select_list(fields: Sequence[str]) -> str:
    if not fields:
        raise ValueError("At least one field is required")
    return ", ".join(fields)


def build_select(
    table: TableRef, fields: Sequence[str], predicate: str | None = None
) -> str:
    """
    Build a plain SELECT over a table.

    Args:
        table: Table to read
        fields: Column names, in result order
        predicate: Optional filter expression

    Returns:
        SQL text
    """
    return f"SELECT {_select_list(fields)} FROM {table.qualified_name}{_where(predicate)}"


def build_paged_select(
    table: TableRef,
    fields: Sequence[str],
    predicate: str | None,
    order_by: str | None,
    offset: int,
    limit: int,
    dialect: Dialect,
) -> str:
    """
    Build a SELECT returning one page of rows.

    Args:
        table: Table to read
        fields: Column names, in result order
        predicate: Optional filter expression
        order_by: Column to order by; pagination is only stable when set
        offset: Number of rows to skip
        limit: Page size
        dialect: Dialect that decides the pagination idiom

    Returns:
        SQL text

    Raises:
        ValueError: If offset is negative or limit is below 1
    """
    validate_integer_param(offset, "offset", min_value=0)
    validate_integer_param(limit, "limit", min_value=1)

    sql = build_select(table, fields, predicate)
    if order_by and order_by.strip():
        sql += f" ORDER BY {order_by.strip()}"
    elif dialect.requires_order_by:
        sql += " ORDER BY (SELECT NULL)"

    return f"{sql} {dialect.pagination_clause(offset, limit)}"


def build_count(table: TableRef, predicate: str | None = None) -> str:
    """Build a row count query for a table and optional filter."""
    return f"SELECT COUNT(*) FROM {table.qualified_name}{_where(predicate)}"


def build_in_condition(
    field_name: str, count: int, dialect: Dialect = Dialect.UNKNOWN
) -> str:
    """
    Build `field IN (?, ?, ...)` with one placeholder per value.

    A non-positive count yields an always-false condition instead of an
    empty IN-list, which most engines reject.

    Args:
        field_name: Column to test
        count: Number of values that will be bound
        dialect: Dialect that decides the placeholder style

    Returns:
        SQL condition text
    """
    if count <= 0:
        return ALWAYS_FALSE

    placeholders = ", ".join(dialect.placeholder(i) for i in range(count))
    return f"{field_name} IN ({placeholders})"


def build_keyed_select(
    table: TableRef,
    fields: Sequence[str],
    key_field: str,
    key_count: int,
    predicate: str | None,
    dialect: Dialect,
) -> str:
    """
    Build a SELECT restricted to a list of keys, AND-combined with the
    rule predicate.

    For drivers using %s placeholders, literal percent signs in the
    predicate are doubled so the driver does not read them as parameters.
    """
    if predicate and key_count > 0 and dialect.uses_percent_placeholders:
        predicate = predicate.replace("%", "%%")

    in_condition = build_in_condition(key_field, key_count, dialect)
    return (
        f"SELECT {_select_list(fields)} FROM {table.qualified_name}"
        f"{_where(in_condition, predicate)}"
    )


def build_null_key_select(
    table: TableRef,
    fields: Sequence[str],
    key_field: str,
    predicate: str | None,
) -> str:
    """
    Build a SELECT of the rows whose key is NULL, AND-combined with the rule
    predicate. NULL never matches an IN-list, so keyed lookups need this
    separate statement. It binds no parameters.
    """
    return (
        f"SELECT {_select_list(fields)} FROM {table.qualified_name}"
        f"{_where(f'{key_field} IS NULL', predicate)}"
    )


def build_table_exists(table: TableRef, dialect: Dialect) -> ExistenceQuery | None:
    """
    Build a catalog query returning a row when the table exists.

    Names are bound as parameters. An absent schema means the connection's
    current schema.

    Returns:
        (sql, params), or None when the dialect has no known catalog
    """
    schema = table.schema.strip() if table.schema and table.schema.strip() else None
    p = dialect.placeholder

    if dialect == Dialect.MYSQL:
        sql = (
            "SELECT 1 FROM information_schema.tables "
            f"WHERE table_schema = COALESCE({p(0)}, DATABASE()) AND table_name = {p(1)}"
        )
        return sql, (schema, table.table_name)
    if dialect == Dialect.POSTGRESQL:
        sql = (
            "SELECT 1 FROM information_schema.tables "
            f"WHERE table_schema = COALESCE({p(0)}, current_schema()) "
            f"AND table_name = {p(1)}"
        )
        return sql, (schema.lower() if schema else None, table.table_name.lower())
    if dialect == Dialect.ORACLE:
        sql = (
            "SELECT 1 FROM ALL_TABLES "
            f"WHERE OWNER = COALESCE({p(0)}, USER) AND TABLE_NAME = {p(1)}"
        )
        return sql, (schema.upper() if schema else None, table.table_name.upper())
    if dialect == Dialect.SQLSERVER:
        sql = (
            "SELECT 1 FROM INFORMATION_SCHEMA.TABLES "
            f"WHERE TABLE_SCHEMA = COALESCE({p(0)}, SCHEMA_NAME()) AND TABLE_NAME = {p(1)}"
        )
        return sql, (schema, table.table_name)
    return None


def build_column_exists(
    table: TableRef, column: str, dialect: Dialect
) -> ExistenceQuery | None:
    """
    Build a catalog query returning a row when the column exists on the table.

    Returns:
        (sql, params), or None when the dialect has no known catalog
    """
    schema = table.schema.strip() if table.schema and table.schema.strip() else None
    p = dialect.placeholder

    if dialect == Dialect.MYSQL:
        sql = (
            "SELECT 1 FROM information_schema.columns "
            f"WHERE table_schema = COALESCE({p(0)}, DATABASE()) "
            f"AND table_name = {p(1)} AND column_name = {p(2)}"
        )
        return sql, (schema, table.table_name, column)
    if dialect == Dialect.POSTGRESQL:
        sql = (
            "SELECT 1 FROM information_schema.columns "
            f"WHERE table_schema = COALESCE({p(0)}, current_schema()) "
            f"AND table_name = {p(1)} AND column_name = {p(2)}"
        )
        return sql, (
            schema.lower() if schema else None,
            table.table_name.lower(),
            column.lower(),
        )
    if dialect == Dialect.ORACLE:
        sql = (
            "SELECT 1 FROM ALL_TAB_COLUMNS "
            f"WHERE OWNER = COALESCE({p(0)}, USER) "
            f"AND TABLE_NAME = {p(1)} AND COLUMN_NAME = {p(2)}"
        )
        return sql, (
            schema.upper() if schema else None,
            table.table_name.upper(),
            column.upper(),
        )
    if dialect == Dialect.SQLSERVER:
        sql = (
            "SELECT 1 FROM INFORMATION_SCHEMA.COLUMNS "
            f"WHERE TABLE_SCHEMA = COALESCE({p(0)}, SCHEMA_NAME()) "
            f"AND TABLE_NAME = {p(1)} AND COLUMN_NAME = {p(2)}"
        )
        return sql, (schema, table.table_name, column)
    return None


def chunk_keys(keys: Sequence, dialect: Dialect) -> list[list]:
    """Split keys into IN-list sized chunks for the dialect."""
    size = dialect.max_in_list_size
    return [list(keys[i:i + size]) for i in range(0, len(keys), size)]
