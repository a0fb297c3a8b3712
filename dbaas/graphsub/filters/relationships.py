"""
Relationship filters for relationship create/delete events.

A subscriber to relationship events on an entity supplies a where-expression
shaped like the subscription payload:

    {
        "movie": {"title": "The Matrix"},             # the subscribed entity
        "createdRelationship": {                      # or deletedRelationship
            "actors": {                               # relationship field name
                "edge": {"screenTime_GT": 10},        # edge properties
                "node": {"name_STARTS_WITH": "K"},    # connected node
            },
        },
    }

The connected node is filtered according to the relationship's target shape:
    - STANDARD: `node` is a plain property filter
    - INTERFACE: `node` holds common fields plus optional per-implementation
      overrides under `_on`; when `_on` is given, a connected node whose type
      is not listed does not match
    - UNION: the field holds one branch per member type
      (`{"Person": {"node": ..., "edge": ...}}`); a connected node whose type
      has no branch does not match

Invariants:
    - An entity declares at most one relationship per relationship type;
      anything else is a misconfiguration, never a silent False
    - IN relationships read the connected node from the event's `from` bag,
      all others from `to`
    - A relationship section that does not name the event's relationship
      field does not match; a named field with an empty filter matches
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..errors import MisconfigurationError
from ..events import RelationshipEvent
from ..schema.registry import SchemaModel
from ..schema.types import AttributeMeta, Direction, EntityDef, RelationshipDef, TargetShape
from .evaluator import FilterScope, evaluate_where

logger = logging.getLogger(__name__)

RELATIONSHIP_SECTIONS = ("createdRelationship", "deletedRelationship")
INTERFACE_OVERRIDES = "_on"
EDGE = "edge"
NODE = "node"


@dataclass(frozen=True)
class OrientedRelationship:
    """A relationship event seen from one of its endpoint entities.

    Attributes:
        relationship: The declaration the event belongs to
        own_properties: Properties of the subscribed entity's node
        connected_properties: Properties of the node at the far end
        connected_type: Concrete type name of the node at the far end
        edge_properties: Properties stored on the relationship
    """

    relationship: RelationshipDef
    own_properties: Mapping[str, Any]
    connected_properties: Mapping[str, Any]
    connected_type: str
    edge_properties: Mapping[str, Any]


def resolve_event_relationship(entity: EntityDef, event: RelationshipEvent) -> RelationshipDef:
    """Find the single relationship declaration an event belongs to.

    Raises:
        MisconfigurationError: If no declaration or more than one matches,
            or the schema model was not frozen
    """
    matches = entity.relationships_of_type(event.relationship_name)
    if not matches:
        raise MisconfigurationError(
            f"Entity '{entity.name}' declares no relationship of type '{event.relationship_name}'",
            entity=entity.name,
            relationship=event.relationship_name,
        )
    if len(matches) > 1:
        fields = ", ".join(r.field_name for r in matches)
        raise MisconfigurationError(
            f"Entity '{entity.name}' declares relationship type "
            f"'{event.relationship_name}' more than once ({fields})",
            entity=entity.name,
            relationship=event.relationship_name,
        )

    relationship = matches[0]
    if relationship.shape is None:
        raise MisconfigurationError(
            "Schema model must be frozen before events are evaluated",
            entity=entity.name,
        )
    return relationship


def orient(entity: EntityDef, event: RelationshipEvent) -> OrientedRelationship:
    """Split a relationship event into the entity's side and the far side."""
    relationship = resolve_event_relationship(entity, event)

    if relationship.direction == Direction.IN:
        return OrientedRelationship(
            relationship=relationship,
            own_properties=event.to_properties,
            connected_properties=event.from_properties,
            connected_type=event.from_type_name,
            edge_properties=event.relationship_properties,
        )
    return OrientedRelationship(
        relationship=relationship,
        own_properties=event.from_properties,
        connected_properties=event.to_properties,
        connected_type=event.to_type_name,
        edge_properties=event.relationship_properties,
    )


class RelationshipFilter:
    """Evaluates subscriber where-expressions against relationship events.

    Thread safety:
        Stateless apart from the frozen schema model; safe to share.

    Example:
        >>> rel_filter = RelationshipFilter(schema)
        >>> rel_filter.matches(
        ...     {"createdRelationship": {"actors": {"edge": {"screenTime_GT": 10}}}},
        ...     event,
        ...     schema.get_entity("Movie"),
        ... )
        True
    """

    def __init__(self, schema: SchemaModel) -> None:
        self.schema = schema

    def matches(
        self,
        where: Optional[Mapping[str, Any]],
        event: RelationshipEvent,
        entity: EntityDef,
    ) -> bool:
        """Whether a relationship event matches a where-expression.

        A missing where-expression matches every event.

        Raises:
            MisconfigurationError: If the event's relationship cannot be resolved
        """
        oriented = orient(entity, event)
        if not where:
            return True
        return evaluate_where(where, self.scope(entity, oriented))

    def scope(self, entity: EntityDef, oriented: OrientedRelationship) -> FilterScope:
        """Top-level scope: the entity's own node and the relationship sections."""
        own_scope = FilterScope(
            properties=oriented.own_properties,
            attributes=entity.attribute_map,
        )

        def filter_section(section: Any) -> bool:
            return self._filter_section(section, oriented)

        branches = {section: filter_section for section in RELATIONSHIP_SECTIONS}
        branches[entity.payload_key] = lambda where: evaluate_where(where, own_scope)
        return FilterScope(branches=branches)

    def _filter_section(self, section: Any, oriented: OrientedRelationship) -> bool:
        if not isinstance(section, Mapping):
            raise MisconfigurationError("Relationship section must be a mapping")

        relationship = oriented.relationship
        if relationship.field_name not in section:
            return False

        field_where = section[relationship.field_name]
        if not field_where:
            return True

        if relationship.shape == TargetShape.UNION:
            if not isinstance(field_where, Mapping):
                raise MisconfigurationError(
                    f"Union filter on '{relationship.field_name}' must be a mapping of member types",
                    field=relationship.field_name,
                )
            if oriented.connected_type not in field_where:
                logger.debug(
                    f"Union branch '{oriented.connected_type}' not requested on "
                    f"'{relationship.field_name}'"
                )
                return False
            member_where = field_where[oriented.connected_type]
            if not member_where:
                return True
            if not isinstance(member_where, Mapping):
                raise MisconfigurationError(
                    f"Union member filter '{relationship.field_name}.{oriented.connected_type}' "
                    f"must be a mapping",
                    field=relationship.field_name,
                    member=oriented.connected_type,
                )
            return evaluate_where(member_where, self._edge_and_node_scope(oriented))

        return evaluate_where(field_where, self._edge_and_node_scope(oriented))

    def _edge_and_node_scope(self, oriented: OrientedRelationship) -> FilterScope:
        return FilterScope(
            branches={
                EDGE: lambda where: self._filter_edge(where, oriented),
                NODE: lambda where: self._filter_node(where, oriented),
            }
        )

    def _filter_edge(self, where: Mapping[str, Any], oriented: OrientedRelationship) -> bool:
        attributes: Mapping[str, AttributeMeta] = {}
        properties_name = oriented.relationship.properties
        if properties_name:
            declaration = self.schema.get_edge_properties(properties_name)
            if declaration is None:
                raise MisconfigurationError(
                    f"Unknown edge properties '{properties_name}' on relationship "
                    f"'{oriented.relationship.field_name}'"
                )
            attributes = declaration.attribute_map

        return evaluate_where(
            where,
            FilterScope(properties=oriented.edge_properties, attributes=attributes),
        )

    def _filter_node(self, where: Mapping[str, Any], oriented: OrientedRelationship) -> bool:
        shape = oriented.relationship.shape

        if shape == TargetShape.INTERFACE:
            return self._filter_interface_node(where, oriented)
        if shape == TargetShape.UNION:
            target = self._connected_entity(oriented.connected_type)
        elif shape == TargetShape.STANDARD:
            target = self._connected_entity(oriented.relationship.target)
        else:
            raise MisconfigurationError(f"Unsupported target shape {shape!r}")

        return evaluate_where(
            where,
            FilterScope(properties=oriented.connected_properties, attributes=target.attribute_map),
        )

    def _filter_interface_node(self, where: Mapping[str, Any], oriented: OrientedRelationship) -> bool:
        if not isinstance(where, Mapping):
            raise MisconfigurationError("Node filter must be a mapping")

        common = {k: v for k, v in where.items() if k != INTERFACE_OVERRIDES}
        overrides_by_type = where.get(INTERFACE_OVERRIDES)
        overrides: Mapping[str, Any] = {}

        if overrides_by_type is not None:
            if oriented.connected_type not in overrides_by_type:
                logger.debug(
                    f"Implementation '{oriented.connected_type}' not listed under _on "
                    f"for '{oriented.relationship.field_name}'"
                )
                return False
            overrides = overrides_by_type[oriented.connected_type] or {}

        merged = {k: v for k, v in common.items() if k not in overrides}
        merged.update(overrides)

        target = self.schema.get_entity(oriented.connected_type)
        if target is not None:
            attributes = target.attribute_map
        else:
            interface = self.schema.get_interface(oriented.relationship.target)
            attributes = interface.attribute_map if interface is not None else {}

        return evaluate_where(
            merged,
            FilterScope(properties=oriented.connected_properties, attributes=attributes),
        )

    def _connected_entity(self, name: str) -> EntityDef:
        entity = self.schema.get_entity(name)
        if entity is None:
            raise MisconfigurationError(f"Unknown connected entity '{name}'", entity=name)
        return entity
