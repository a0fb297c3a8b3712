"""
Deep comparison of property bags.

Used to suppress update events that did not change anything: an update whose
old and new property bags compare equal is not delivered.

Semantics:
    - Mappings are equal when they have the same keys and equal values
    - Lists are equal when they hold the same elements in any order,
      counting duplicates
    - Everything else compares with ==, except that booleans never equal
      numbers
"""

from __future__ import annotations

from typing import Any, Mapping, Optional


def values_equal(a: Any, b: Any) -> bool:
    """Deep, list-order-insensitive equality.

    Example:
        >>> values_equal({"tags": ["a", "b"]}, {"tags": ["b", "a"]})
        True
        >>> values_equal([1, 1, 2], [1, 2, 2])
        False
    """
    if isinstance(a, Mapping) and isinstance(b, Mapping):
        if a.keys() != b.keys():
            return False
        return all(values_equal(a[key], b[key]) for key in a)

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        unmatched = list(b)
        for item in a:
            for index, candidate in enumerate(unmatched):
                if values_equal(item, candidate):
                    del unmatched[index]
                    break
            else:
                return False
        return True

    if isinstance(a, (Mapping, list, tuple)) or isinstance(b, (Mapping, list, tuple)):
        return False
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def properties_equal(
    old: Optional[Mapping[str, Any]],
    new: Optional[Mapping[str, Any]],
) -> bool:
    """Whether an update left every property unchanged.

    A missing bag is treated as empty.
    """
    return values_equal(old or {}, new or {})
