"""
SQL generation for field comparison.

This subpackage provides:
- Dialect: pagination, placeholders, quoting and limits per engine family
- builder functions for select, paged select, count, IN-lists and catalog checks
- identifier validation for configured names
"""

from .builder import (
    ALWAYS_FALSE,
    build_column_exists,
    build_count,
    build_in_condition,
    build_keyed_select,
    build_null_key_select,
    build_paged_select,
    build_select,
    build_table_exists,
    chunk_keys,
    escape_identifier,
)
from .dialect import Dialect
from .safety import validate_identifier, validate_integer_param

__all__ = [
    'Dialect',
    'ALWAYS_FALSE',
    'build_select',
    'build_paged_select',
    'build_count',
    'build_in_condition',
    'build_keyed_select',
    'build_null_key_select',
    'build_table_exists',
    'build_column_exists',
    'chunk_keys',
    'escape_identifier',
    'validate_identifier',
    'validate_integer_param',
]
