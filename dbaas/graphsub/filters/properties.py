"""
Property filters for node events.

A subscriber to node create/update/delete events supplies a where-expression
over the entity's attributes. It is evaluated against one flat property bag:
the new state for create events, the state before the change for update and
delete events.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from ..events import NodeEvent
from ..schema.types import AttributeMeta, EntityDef
from .evaluator import FilterScope, evaluate_where


def filter_by_properties(
    where: Mapping[str, Any],
    properties: Mapping[str, Any],
    attributes: Optional[Mapping[str, AttributeMeta]] = None,
) -> bool:
    """Evaluate a where-expression against a flat property bag.

    Example:
        >>> filter_by_properties({"title_STARTS_WITH": "The"}, {"title": "The Matrix"})
        True
    """
    return evaluate_where(where, FilterScope(properties=properties, attributes=attributes or {}))


def filter_node_event(
    where: Optional[Mapping[str, Any]],
    event: NodeEvent,
    entity: EntityDef,
) -> bool:
    """Evaluate a subscriber's where-expression against a node event.

    A missing where-expression matches every event.
    """
    if not where:
        return True
    return filter_by_properties(where, event.filter_properties, entity.attribute_map)
