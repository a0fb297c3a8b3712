"""
graphsub: change-data subscription filtering for graph databases.

For every change event (node create/update/delete, relationship
create/delete) and every active subscriber, graphsub decides whether the
subscriber may receive the event:

- schema: the read-only schema model filters are evaluated against
- filters: where-expression evaluation for node and relationship events
- auth: authorization rules, placeholders and authentication annotations
- delivery: the per-subscriber `should_deliver` decision
- dispatch: an asyncio hub that fans events out to subscriptions

Example:
    >>> from dbaas.graphsub import SubscriptionFilter, ChangeEvent
    >>> from dbaas.graphsub.schema import load_schema
    >>> schema = load_schema("schema.yaml")
    >>> event = ChangeEvent.from_dict(raw_event)
    >>> SubscriptionFilter(schema).should_deliver(event, subscriber_where={"title": "A"})
    True
"""

from ._version import __version__
from .auth import AuthorizationContext
from .delivery import SubscriptionFilter
from .dispatch import DispatchResult, Subscription, SubscriptionHub
from .errors import (
    ForbiddenError,
    MisconfigurationError,
    SubscriptionClosedError,
    SubscriptionError,
    UnauthenticatedError,
)
from .events import ChangeEvent, EventKind, NodeEvent, RelationshipEvent

__all__ = [
    "__version__",
    "AuthorizationContext",
    "ChangeEvent",
    "DispatchResult",
    "EventKind",
    "ForbiddenError",
    "MisconfigurationError",
    "NodeEvent",
    "RelationshipEvent",
    "Subscription",
    "SubscriptionClosedError",
    "SubscriptionError",
    "SubscriptionFilter",
    "SubscriptionHub",
    "UnauthenticatedError",
]
