"""
Recursive where-expression evaluator.

Every filter in graphsub, subscriber filters and authorization rules alike,
is evaluated by `evaluate_where`. What differs between them is the
FilterScope: the property bag that field keys are compared against, the
attribute metadata that picks comparison semantics, and named branches
(`node`, `edge`, `jwt`, `createdRelationship`, ...) that hand a sub-tree to
a different scope.

Semantics:
    - Sibling keys in one mapping are combined with AND
    - `AND`/`OR` take a list of child expressions, `NOT` takes one
    - Combinator children are evaluated in the same scope, so branches stay
      reachable inside `AND`/`OR`/`NOT`
    - A field missing from the property bag never matches

Invariants:
    - Evaluation has no side effects; short-circuiting does not change results
    - Placeholders are resolved before evaluation, never here
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Mapping

from ..errors import MisconfigurationError
from ..schema.types import AttributeMeta
from .combinators import MULTIPLE_CONDITIONS, NOT, negate
from .keys import parse_filter_key
from .operators import compare

logger = logging.getLogger(__name__)

Branch = Callable[[Any], bool]


@dataclass(frozen=True)
class FilterScope:
    """What one level of a where-expression is evaluated against.

    Attributes:
        properties: Property bag field keys are compared against
        attributes: Attribute metadata for the bag, keyed by field name
        branches: Handlers for keys that select a nested scope
    """

    properties: Mapping[str, Any] = field(default_factory=dict)
    attributes: Mapping[str, AttributeMeta] = field(default_factory=dict)
    branches: Mapping[str, Branch] = field(default_factory=dict)


def evaluate_where(where: Mapping[str, Any], scope: FilterScope) -> bool:
    """Evaluate a where-expression in a scope.

    Args:
        where: Where-expression (already resolved, no placeholders)
        scope: Properties, attribute metadata and branches

    Returns:
        True if every key of the expression matches

    Raises:
        MisconfigurationError: If the expression is malformed
    """
    if not isinstance(where, Mapping):
        raise MisconfigurationError(
            f"Where-expression must be a mapping, got {type(where).__name__}"
        )
    return all(_evaluate_entry(key, value, scope) for key, value in where.items())


def _evaluate_entry(key: str, value: Any, scope: FilterScope) -> bool:
    if key in MULTIPLE_CONDITIONS:
        children = value if isinstance(value, (list, tuple)) else [value]
        return MULTIPLE_CONDITIONS[key](evaluate_where(child, scope) for child in children)

    if key == NOT:
        return negate(evaluate_where(value, scope))

    branch = scope.branches.get(key)
    if branch is not None:
        return branch(value)

    return _evaluate_field(key, value, scope)


def _evaluate_field(key: str, value: Any, scope: FilterScope) -> bool:
    try:
        parsed = parse_filter_key(key)
    except ValueError as e:
        raise MisconfigurationError(str(e), key=key) from e

    attribute = scope.attributes.get(parsed.field_name)
    property_key = attribute.property_key if attribute is not None else parsed.field_name

    if property_key not in scope.properties:
        return False

    return compare(
        parsed,
        scope.properties[property_key],
        value,
        attribute.kind if attribute is not None else None,
    )
