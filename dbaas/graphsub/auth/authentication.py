"""
Authentication checks on the requested field selection.

Authentication annotations can sit on the schema, on an entity, on an
attribute or on a relationship field. Before a payload is released, the
walker visits the fields the subscriber actually asked for and checks every
annotation that applies to subscriptions.

Selection shape:
    The selection is a nested mapping of field name to sub-selection (None
    or {} for leaves). Interface and union fragments go under `_on`:

        {
            "movie": {"title": None, "budget": None},
            "createdRelationship": {
                "actors": {
                    "edge": {"screenTime": None},
                    "node": {"name": None, "_on": {"Person": {"email": None}}},
                },
            },
        }

Invariants:
    - A missing identity raises UnauthenticatedError, an annotation whose jwt
      condition fails raises ForbiddenError; neither is ever turned into False
    - Only the relationship the event is about is walked, and only the
      fragment of the connected node's concrete type
    - Edge property fields are exempt
"""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..errors import ForbiddenError, MisconfigurationError, UnauthenticatedError
from ..events import ChangeEvent, RelationshipEvent
from ..filters.relationships import INTERFACE_OVERRIDES, NODE, RELATIONSHIP_SECTIONS, orient
from ..schema.registry import SchemaModel
from ..schema.types import AuthenticationAnnotation, EntityDef, TargetShape
from .context import AuthorizationContext
from .placeholders import resolve_where_parameters
from .rules import filter_jwt

logger = logging.getLogger(__name__)

SUBSCRIBE = "SUBSCRIBE"
PREVIOUS_STATE = "previousState"


class AuthenticationWalker:
    """Checks authentication annotations against a selection.

    Example:
        >>> walker = AuthenticationWalker(schema)
        >>> walker.check(event, movie, {"movie": {"title": None}}, context)
    """

    def __init__(self, schema: SchemaModel) -> None:
        self.schema = schema

    def check(
        self,
        event: ChangeEvent,
        entity: EntityDef,
        selection: Optional[Mapping[str, Any]],
        context: AuthorizationContext,
    ) -> None:
        """Check every annotation the selection touches.

        The schema-level and entity-level annotations are always checked,
        since every payload carries the entity.

        Raises:
            UnauthenticatedError: If an annotation requires an identity and none is present
            ForbiddenError: If an annotation's jwt condition is not met
        """
        self._check_entity(entity, context)

        for key, sub_selection in (selection or {}).items():
            if key in (entity.payload_key, PREVIOUS_STATE):
                self._walk_fields(entity, sub_selection, context)
            elif key in RELATIONSHIP_SECTIONS and isinstance(event, RelationshipEvent):
                self._walk_relationship(entity, event, sub_selection, context)

    def check_annotation(
        self,
        annotation: Optional[AuthenticationAnnotation],
        context: AuthorizationContext,
        entity: str,
        field_name: Optional[str] = None,
    ) -> None:
        if annotation is None or not annotation.applies_to(SUBSCRIBE):
            return

        if not context.is_authenticated:
            logger.debug(f"Unauthenticated access to {entity}.{field_name or '*'}")
            raise UnauthenticatedError(entity=entity, field_name=field_name)

        if annotation.jwt:
            where = resolve_where_parameters(annotation.jwt, context)
            if not filter_jwt(where, context, self.schema):
                raise ForbiddenError("Forbidden", entity=entity, field_name=field_name)

    def _check_entity(self, entity: EntityDef, context: AuthorizationContext) -> None:
        self.check_annotation(self.schema.authentication, context, entity.name)
        self.check_annotation(entity.authentication, context, entity.name)

    def _walk_fields(
        self,
        entity: EntityDef,
        selection: Optional[Mapping[str, Any]],
        context: AuthorizationContext,
    ) -> None:
        for name in selection or {}:
            attr = entity.get_attribute(name)
            if attr is not None:
                self.check_annotation(attr.authentication, context, entity.name, name)
                continue
            relationship = entity.get_relationship(name)
            if relationship is not None:
                self.check_annotation(relationship.authentication, context, entity.name, name)

    def _walk_relationship(
        self,
        entity: EntityDef,
        event: RelationshipEvent,
        selection: Optional[Mapping[str, Any]],
        context: AuthorizationContext,
    ) -> None:
        oriented = orient(entity, event)
        relationship = oriented.relationship
        if not selection or relationship.field_name not in selection:
            return

        self.check_annotation(relationship.authentication, context, entity.name, relationship.field_name)

        relationship_selection = selection[relationship.field_name] or {}
        if relationship.shape == TargetShape.UNION:
            relationship_selection = relationship_selection.get(oriented.connected_type) or {}

        node_selection = relationship_selection.get(NODE)
        if node_selection is None:
            return

        connected = self.schema.get_entity(oriented.connected_type)
        if connected is None:
            raise MisconfigurationError(
                f"Unknown connected entity '{oriented.connected_type}'",
                entity=oriented.connected_type,
            )

        self._check_entity(connected, context)
        self._walk_fields(connected, _fragment_fields(node_selection, connected.name), context)


def _fragment_fields(selection: Mapping[str, Any], type_name: str) -> dict[str, Any]:
    """Common fields of a selection plus the fragment for one concrete type."""
    fields = {k: v for k, v in selection.items() if k != INTERFACE_OVERRIDES}
    fragments = selection.get(INTERFACE_OVERRIDES) or {}
    fields.update(fragments.get(type_name) or {})
    return fields
