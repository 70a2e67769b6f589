"""
Key-set diff between two key -> value mappings.

A key present in a mapping with a None value is a row whose compare field is
NULL; it is distinct from a key that is missing from the mapping. Two NULLs
compare equal.
"""

from typing import Any, Hashable, Iterable, Mapping

from ..models import Difference, DifferenceType


def diff(
    source: Mapping[Hashable, Any],
    target: Mapping[Hashable, Any],
    field_name: str,
) -> list[Difference]:
    """
    Classify every key of the union of both mappings.

    Args:
        source: key -> value rows from the source table
        target: key -> value rows from the target table
        field_name: Name of the compared field, copied onto each difference

    Returns:
        One Difference per differing key, in no guaranteed order
    """
    differences = []

    for key, source_value in source.items():
        if key not in target:
            differences.append(Difference(
                key=key,
                kind=DifferenceType.SOURCE_ONLY,
                field_name=field_name,
                source_value=source_value,
            ))
            continue

        target_value = target[key]
        if not values_equal(source_value, target_value):
            differences.append(Difference(
                key=key,
                kind=DifferenceType.VALUE_MISMATCH,
                field_name=field_name,
                source_value=source_value,
                target_value=target_value,
            ))

    for key, target_value in target.items():
        if key not in source:
            differences.append(Difference(
                key=key,
                kind=DifferenceType.TARGET_ONLY,
                field_name=field_name,
                target_value=target_value,
            ))

    return differences


def target_only(
    source_keys: set, target: Mapping[Hashable, Any], field_name: str
) -> list[Difference]:
    """Differences for target rows whose key is not in the source key set."""
    return [
        Difference(
            key=key,
            kind=DifferenceType.TARGET_ONLY,
            field_name=field_name,
            target_value=value,
        )
        for key, value in target.items()
        if key not in source_keys
    ]


def values_equal(left: Any, right: Any) -> bool:
    if left is None or right is None:
        return left is None and right is None
    return left == right


def deduplicate(differences: Iterable[Difference]) -> list[Difference]:
    """Drop repeated differences by (key, kind, field_name), keeping first-seen order."""
    seen = set()
    unique = []
    for difference in differences:
        if difference not in seen:
            seen.add(difference)
            unique.append(difference)
    return unique
