"""
Comparison operators for where-expressions.

Each comparator is a binary predicate `(received, filtered, kind) -> bool`
where `received` is the value found in the event, `filtered` is the operand
from the where-expression and `kind` is the attribute's semantic type (None
when the field is not declared).

Numeric handling:
    - int/bigint attributes compare as arbitrary-precision integers; numeric
      strings and integral floats are converted with int(), never float()
    - id attributes compare as integers only when the two sides have
      different types (e.g. 42 against "42"); two strings compare as strings
    - float attributes and undeclared fields compare natively

Invariants:
    - String operators never coerce: non-string operands do not match
    - A null received value matches only equality (and its negation)
    - A null or unresolved operand matches no operator except equality
    - The comparator table is immutable
    - An uncompilable MATCHES pattern raises MisconfigurationError
"""

from __future__ import annotations

import re
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional

from ..errors import MisconfigurationError
from ..schema.types import AttributeKind
from .combinators import negate
from .keys import FilterKey


class _Undefined:
    """Operand for a placeholder that resolved to nothing. Never equal to a value."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False


UNDEFINED = _Undefined()

_INTEGER_PATTERN = re.compile(r"^\s*[+-]?\d+\s*$")
_SEQUENCES = (list, tuple)
_NUMBERS = (int, float, Decimal)


def to_integer(value: Any) -> Optional[int]:
    """Convert a value to an exact integer, or None if it is not integral."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, Decimal):
        return int(value) if value.is_finite() and value == value.to_integral_value() else None
    if isinstance(value, str) and _INTEGER_PATTERN.match(value):
        return int(value)
    return None


def _align(received: Any, filtered: Any, kind: Optional[AttributeKind]) -> tuple[Any, Any]:
    if kind is None:
        return received, filtered
    if kind.is_integer or (kind == AttributeKind.ID and type(received) is not type(filtered)):
        r, f = to_integer(received), to_integer(filtered)
        if r is not None and f is not None:
            return r, f
    return received, filtered


def equals(received: Any, filtered: Any, kind: Optional[AttributeKind] = None) -> bool:
    if isinstance(received, _SEQUENCES) or isinstance(filtered, _SEQUENCES):
        if not (isinstance(received, _SEQUENCES) and isinstance(filtered, _SEQUENCES)):
            return False
        if len(received) != len(filtered):
            return False
        return all(equals(r, f, kind) for r, f in zip(received, filtered))

    r, f = _align(received, filtered, kind)
    if isinstance(r, bool) != isinstance(f, bool):
        return False
    return r == f


def _orderable(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return False
    if isinstance(a, _NUMBERS) and isinstance(b, _NUMBERS):
        return True
    return isinstance(a, str) and isinstance(b, str)


def _ordering(test: Callable[[Any, Any], bool]) -> Callable[..., bool]:
    def comparator(received: Any, filtered: Any, kind: Optional[AttributeKind] = None) -> bool:
        r, f = _align(received, filtered, kind)
        return _orderable(r, f) and test(r, f)

    return comparator


def _strings(test: Callable[[str, str], bool]) -> Callable[..., bool]:
    def comparator(received: Any, filtered: Any, kind: Optional[AttributeKind] = None) -> bool:
        return isinstance(received, str) and isinstance(filtered, str) and test(received, filtered)

    return comparator


def is_in(received: Any, filtered: Any, kind: Optional[AttributeKind] = None) -> bool:
    if not isinstance(filtered, _SEQUENCES):
        return False
    return any(equals(received, item, kind) for item in filtered)


def includes(received: Any, filtered: Any, kind: Optional[AttributeKind] = None) -> bool:
    if not isinstance(received, _SEQUENCES):
        return False
    return any(equals(item, filtered, kind) for item in received)


COMPARATORS: Mapping[str, Callable[..., bool]] = MappingProxyType(
    {
        "EQ": equals,
        "LT": _ordering(lambda r, f: r < f),
        "LTE": _ordering(lambda r, f: r <= f),
        "GT": _ordering(lambda r, f: r > f),
        "GTE": _ordering(lambda r, f: r >= f),
        "STARTS_WITH": _strings(lambda r, f: r.startswith(f)),
        "ENDS_WITH": _strings(lambda r, f: r.endswith(f)),
        "CONTAINS": _strings(lambda r, f: f in r),
        "MATCHES": _strings(lambda r, f: re.fullmatch(f, r) is not None),
        "IN": is_in,
        "INCLUDES": includes,
    }
)


def compare(
    key: FilterKey,
    received: Any,
    filtered: Any,
    kind: Optional[AttributeKind] = None,
) -> bool:
    """Apply the operator named by `key` to a received value.

    Callers handle missing properties; `received` is always a value that is
    present in the event (possibly None).

    Example:
        >>> compare(FilterKey("age", "GT"), 30, 18, AttributeKind.INTEGER)
        True
    """
    operator = key.base_operator
    if operator != "EQ" and (received is None or filtered is None or filtered is UNDEFINED):
        return False

    try:
        result = COMPARATORS[operator](received, filtered, kind)
    except re.error as e:
        raise MisconfigurationError(
            f"Invalid pattern for '{key.field_name}': {e}", key=key.field_name
        ) from e
    return negate(result) if key.is_not else result
