"""
Filter-key parsing.

A where-expression field key is a field name with an optional operator
suffix: `title`, `age_GT`, `name_NOT_CONTAINS`. Parsing splits it into the
field name, the operator and whether the operator is negated.

Invariants:
    - No suffix means equality
    - `_NOT` alone is negated equality
    - A negated operator stays one operator (`NOT_CONTAINS`), it is never
      parsed as `NOT` applied to `CONTAINS`
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass
from typing import Optional

# Longer alternatives first where one is a prefix of another.
OPERATORS = (
    "NOT_IN",
    "NOT_INCLUDES",
    "NOT_CONTAINS",
    "NOT_STARTS_WITH",
    "NOT_ENDS_WITH",
    "NOT_MATCHES",
    "NOT",
    "INCLUDES",
    "IN",
    "CONTAINS",
    "STARTS_WITH",
    "ENDS_WITH",
    "MATCHES",
    "LTE",
    "LT",
    "GTE",
    "GT",
)

_KEY_PATTERN = re.compile(
    r"^(?P<field_name>[_A-Za-z]\w*?)(?:_(?P<operator>" + "|".join(OPERATORS) + r"))?$"
)


@dataclass(frozen=True)
class FilterKey:
    """A parsed where-expression field key.

    Attributes:
        field_name: Name of the filtered field
        operator: Operator suffix, None for plain equality
        is_not: Whether the operator is a negation
    """

    field_name: str
    operator: Optional[str] = None
    is_not: bool = False

    @property
    def base_operator(self) -> str:
        """The comparison performed before any negation ("EQ" for equality)."""
        if self.operator is None or self.operator == "NOT":
            return "EQ"
        if self.operator.startswith("NOT_"):
            return self.operator[len("NOT_"):]
        return self.operator


@functools.lru_cache(maxsize=4096)
def parse_filter_key(key: str) -> FilterKey:
    """Split a where key into field name and operator.

    Example:
        >>> parse_filter_key("name_NOT_CONTAINS")
        FilterKey(field_name='name', operator='NOT_CONTAINS', is_not=True)
        >>> parse_filter_key("title")
        FilterKey(field_name='title', operator=None, is_not=False)

    Raises:
        ValueError: If the key is not a valid field key
    """
    match = _KEY_PATTERN.match(key)
    if match is None:
        raise ValueError(f"Invalid filter key '{key}'")

    operator = match.group("operator")
    return FilterKey(
        field_name=match.group("field_name"),
        operator=operator,
        is_not=operator is not None and (operator == "NOT" or operator.startswith("NOT_")),
    )
