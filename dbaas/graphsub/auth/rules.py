"""
Subscription authorization rules.

An entity carries a list of AuthorizationRule. For an incoming event the
gate keeps the rules whose events include the event's kind, evaluates each
one and authorizes the event if any of them passes.

Rule where-expressions are evaluated by the common evaluator with extra
branches:
    - `node`: the node as the rule author reasons about it; the new state
      for create events, the old state for update and delete events, and the
      entity's own endpoint for relationship events
    - `edge`: edge properties (relationship events only)
    - `jwt`: the caller's claims

Invariants:
    - No applicable rule means no restriction
    - A rule requiring authentication fails without an identity, before its
      where-expression is looked at
    - Reaching a `jwt` branch without an identity is a misconfiguration
    - Placeholders are resolved before evaluation
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from ..errors import MisconfigurationError
from ..events import ChangeEvent, EventKind, NodeEvent, RelationshipEvent
from ..filters.evaluator import FilterScope, evaluate_where
from ..filters.relationships import EDGE, NODE, orient
from ..schema.registry import SchemaModel
from ..schema.types import AttributeMeta, AuthorizationRule, EntityDef
from .context import AuthorizationContext
from .placeholders import resolve_where_parameters

logger = logging.getLogger(__name__)

JWT = "jwt"


def filter_jwt(
    where: Mapping[str, Any],
    context: AuthorizationContext,
    schema: SchemaModel,
) -> bool:
    """Evaluate a where-expression against the caller's claims.

    Raises:
        MisconfigurationError: If the caller has no verified identity
    """
    if not context.is_authenticated:
        raise MisconfigurationError(
            "jwt filter reached without a verified identity; "
            "the rule must require authentication"
        )
    return evaluate_where(
        where,
        FilterScope(properties=context.claims_view(), attributes=schema.jwt_claims),
    )


def select_rules(
    rules: Iterable[AuthorizationRule],
    kind: EventKind,
) -> list[AuthorizationRule]:
    """Rules that apply to an event kind."""
    return [rule for rule in rules if rule.applies_to(kind)]


class AuthorizationGate:
    """Evaluates an entity's authorization rules against events.

    Thread safety:
        Stateless apart from the frozen schema model; safe to share.

    Example:
        >>> gate = AuthorizationGate(schema)
        >>> gate.authorize(movie.authorization, event, movie, context)
        True
    """

    def __init__(self, schema: SchemaModel) -> None:
        self.schema = schema

    def authorize(
        self,
        rules: Iterable[AuthorizationRule],
        event: ChangeEvent,
        entity: EntityDef,
        context: AuthorizationContext,
    ) -> bool:
        """Whether any applicable rule authorizes the event.

        Returns:
            True if no rule applies or at least one applicable rule passes
        """
        candidates = select_rules(rules, event.kind)
        if not candidates:
            return True
        return any(self.evaluate_rule(rule, event, entity, context) for rule in candidates)

    def evaluate_rule(
        self,
        rule: AuthorizationRule,
        event: ChangeEvent,
        entity: EntityDef,
        context: AuthorizationContext,
    ) -> bool:
        if rule.require_authentication and not context.is_authenticated:
            logger.debug(f"Authorization rule on {entity.name} requires authentication")
            return False

        where = resolve_where_parameters(rule.where, context)
        result = evaluate_where(where, self.scope(event, entity, context))
        logger.debug(f"Authorization rule on {entity.name} for {event.kind.value}: {result}")
        return result

    def scope(
        self,
        event: ChangeEvent,
        entity: EntityDef,
        context: AuthorizationContext,
    ) -> FilterScope:
        """Top-level scope of an authorization where-expression."""
        node_scope = FilterScope(
            properties=self._node_properties(event, entity),
            attributes=entity.attribute_map,
        )
        branches = {
            NODE: lambda where: evaluate_where(where, node_scope),
            JWT: lambda where: filter_jwt(where, context, self.schema),
        }
        if isinstance(event, RelationshipEvent):
            edge_scope = FilterScope(
                properties=event.relationship_properties,
                attributes=self._edge_attributes(event, entity),
            )
            branches[EDGE] = lambda where: evaluate_where(where, edge_scope)
        return FilterScope(branches=branches)

    def _node_properties(self, event: ChangeEvent, entity: EntityDef) -> Mapping[str, Any]:
        if isinstance(event, NodeEvent):
            return event.filter_properties
        if isinstance(event, RelationshipEvent):
            return orient(entity, event).own_properties
        raise MisconfigurationError(f"Unsupported event type {type(event).__name__}")

    def _edge_attributes(self, event: RelationshipEvent, entity: EntityDef) -> Mapping[str, AttributeMeta]:
        relationship = orient(entity, event).relationship
        if not relationship.properties:
            return {}
        declaration = self.schema.get_edge_properties(relationship.properties)
        return declaration.attribute_map if declaration is not None else {}
