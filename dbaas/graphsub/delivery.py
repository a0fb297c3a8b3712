"""
Per-subscriber delivery decision.

`SubscriptionFilter.should_deliver` decides whether one change event may be
handed to one subscriber. The steps run in this order:

    1. Authorization gate over the entity's rules for the event kind
    2. Unchanged-update suppression (optional)
    3. The subscriber's where-expression (node or relationship filter)
    4. Authentication annotations on the requested selection

Results:
    - True: deliver
    - False: filtered; the subscriber is not interested or the rules do not
      authorize this event
    - UnauthenticatedError / ForbiddenError: the subscriber is not allowed
    - MisconfigurationError: the filter or the schema model is broken

Invariants:
    - The decision is a pure function of its inputs and the frozen schema
    - An anonymous subscriber rejected by rules that require authentication
      gets UnauthenticatedError, never False
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping, Optional

from .auth.authentication import AuthenticationWalker
from .auth.context import AuthorizationContext
from .auth.rules import AuthorizationGate, select_rules
from .errors import MisconfigurationError, UnauthenticatedError
from .events import ChangeEvent, EventKind, NodeEvent, RelationshipEvent
from .filters.compare import properties_equal
from .filters.properties import filter_node_event
from .filters.relationships import RelationshipFilter
from .schema.registry import SchemaModel
from .schema.types import AuthorizationRule, EntityDef

logger = logging.getLogger(__name__)


class SubscriptionFilter:
    """Decides event delivery for subscribers of one schema model.

    Thread safety:
        Stateless apart from the frozen schema model; one instance can serve
        any number of concurrent evaluations.

    Example:
        >>> subscription_filter = SubscriptionFilter(schema)
        >>> subscription_filter.should_deliver(
        ...     event,
        ...     subscriber_where={"title": "A"},
        ...     context=AuthorizationContext(jwt={"sub": "user-1"}),
        ... )
        True
    """

    def __init__(self, schema: SchemaModel, suppress_unchanged_updates: bool = True) -> None:
        self.schema = schema
        self.suppress_unchanged_updates = suppress_unchanged_updates
        self._gate = AuthorizationGate(schema)
        self._relationships = RelationshipFilter(schema)
        self._authentication = AuthenticationWalker(schema)

    def should_deliver(
        self,
        event: ChangeEvent,
        authorization_rules: Optional[Iterable[AuthorizationRule]] = None,
        subscriber_where: Optional[Mapping[str, Any]] = None,
        context: Optional[AuthorizationContext] = None,
        selection: Optional[Mapping[str, Any]] = None,
        *,
        entity_name: Optional[str] = None,
    ) -> bool:
        """Decide whether an event may be delivered to a subscriber.

        Args:
            event: The change event
            authorization_rules: Rules to apply (defaults to the entity's own)
            subscriber_where: The subscriber's where-expression
            context: The subscriber's authorization context (anonymous if None)
            selection: Fields the subscriber requested
            entity_name: Entity the subscription is on (defaults to the
                event's type; required for relationship events seen from the
                end node)

        Returns:
            True to deliver, False if the event is filtered out

        Raises:
            UnauthenticatedError: Authentication is required and missing
            ForbiddenError: An authentication annotation's condition fails
            MisconfigurationError: The filter or schema cannot be evaluated
        """
        context = context or AuthorizationContext()
        entity = self.schema.entity_for_evaluation(entity_name or event.type_name)
        rules = entity.authorization if authorization_rules is None else tuple(authorization_rules)

        candidates = select_rules(rules, event.kind)
        if not self._gate.authorize(candidates, event, entity, context):
            if not context.is_authenticated and any(r.require_authentication for r in candidates):
                raise UnauthenticatedError(entity=entity.name)
            logger.debug(f"Event {event.id} not authorized for {entity.name}")
            return False

        if self.suppress_unchanged_updates and _is_unchanged_update(event):
            logger.debug(f"Event {event.id} dropped: update changed nothing")
            return False

        if not self._matches(event, entity, subscriber_where):
            logger.debug(f"Event {event.id} filtered by subscriber where on {entity.name}")
            return False

        self._authentication.check(event, entity, selection, context)
        return True

    def _matches(self, event: ChangeEvent, entity: EntityDef, where: Optional[Mapping[str, Any]]) -> bool:
        if isinstance(event, NodeEvent):
            return filter_node_event(where, event, entity)
        if isinstance(event, RelationshipEvent):
            return self._relationships.matches(where, event, entity)
        raise MisconfigurationError(f"Unsupported event type {type(event).__name__}")


def _is_unchanged_update(event: ChangeEvent) -> bool:
    return (
        isinstance(event, NodeEvent)
        and event.kind == EventKind.UPDATE
        and properties_equal(event.old, event.new)
    )
