"""
Logical combinators for where-expressions.

`AND` and `OR` reduce the results of a list of child expressions, `NOT`
negates the result of a single child expression. The reducers are `all` and
`any`, so an empty `AND` is true and an empty `OR` is false.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Callable, Iterable, Mapping

NOT = "NOT"

MULTIPLE_CONDITIONS: Mapping[str, Callable[[Iterable[bool]], bool]] = MappingProxyType(
    {
        "AND": all,
        "OR": any,
    }
)

COMBINATOR_KEYS = frozenset({*MULTIPLE_CONDITIONS, NOT})


def is_combinator(key: str) -> bool:
    return key in COMBINATOR_KEYS


def negate(result: bool) -> bool:
    return not result
