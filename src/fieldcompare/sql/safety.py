"""
Identifier validation for configured table and column names.

Rule identifiers are interpolated into generated SQL, so they are checked
once when configuration is loaded. Predicates are not checked here: they are
trusted SQL fragments from configuration.
"""

import re


# Strict ASCII-only pattern for SQL identifiers
VALID_IDENTIFIER = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_$#]*$")


def validate_identifier(identifier: str) -> None:
    """
    Validate a SQL identifier (table name, column name, schema).

    Args:
        identifier: The identifier to validate

    Raises:
        ValueError: If the identifier contains invalid characters
    """
    if not identifier:
        raise ValueError("SQL identifier cannot be empty")

    if not VALID_IDENTIFIER.match(identifier):
        raise ValueError(
            f"Invalid SQL identifier: {identifier!r}. "
            "Only ASCII letters, digits, '_', '$' and '#' are allowed, "
            "and must start with a letter or underscore."
        )


def validate_integer_param(value: int, param_name: str, min_value: int = 0) -> None:
    """
    Validate an integer that is rendered literally into SQL (offset, limit).

    Raises:
        ValueError: If the value is not an integer or is below min_value
    """
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"Invalid {param_name}: {value!r}. Must be an integer.")

    if value < min_value:
        raise ValueError(f"Invalid {param_name}: {value}. Must be >= {min_value}.")
