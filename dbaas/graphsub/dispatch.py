"""
In-process subscription dispatch.

The SubscriptionHub fans change events out to registered subscriptions:
- register() validates the subscriber's where-expression and returns a
  Subscription with its own bounded queue
- publish() evaluates `should_deliver` for every interested subscription
  and enqueues the event where it passes
- events() is the async iterator a subscriber consumes

Error policy:
    Forbidden and misconfiguration errors are raised by the evaluation core
    and handled here, according to DispatchConfig.error_policy:
    - drop_subscriber: close that subscription; its consumer receives the
      error once the queue is drained; other subscribers are unaffected
    - fail_dispatch: re-raise from publish() and stop the dispatch cycle

Invariants:
    - Per subscription, events are enqueued in publish order
    - A subscriber never blocks publish(); a full queue closes the subscription
    - Evaluations for different subscriptions are independent

How to change safely:
    - Keep publish() free of awaits between evaluation and enqueue, so a
      dispatch cycle sees one consistent set of subscriptions
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Iterable, Mapping, Optional

from .auth.context import AuthorizationContext
from .config import DispatchConfig, ErrorPolicy
from .delivery import SubscriptionFilter
from .errors import MisconfigurationError, SubscriptionClosedError, SubscriptionError
from .events import ChangeEvent, EventKind, RelationshipEvent
from .filters.validate import validate_subscriber_where
from .schema.registry import SchemaModel
from .schema.types import AuthorizationRule

logger = logging.getLogger(__name__)

_CLOSED = object()


@dataclass
class Subscription:
    """One registered subscriber.

    Attributes:
        id: Subscription identifier
        entity_name: Entity the subscription is on
        kinds: Event kinds the subscriber wants
        where: Subscriber where-expression
        context: Subscriber authorization context
        selection: Fields the subscriber requested
        authorization_rules: Rules overriding the entity's own, if any
        queue: Events waiting to be consumed
        closed: Whether the hub stopped delivering to this subscription
        error: Why the subscription was closed, if not by unregister()
    """

    id: str
    entity_name: str
    kinds: frozenset[EventKind]
    where: Optional[Mapping[str, Any]] = None
    context: AuthorizationContext = field(default_factory=AuthorizationContext)
    selection: Optional[Mapping[str, Any]] = None
    authorization_rules: Optional[tuple[AuthorizationRule, ...]] = None
    queue: asyncio.Queue = field(default_factory=asyncio.Queue)
    closed: bool = False
    error: Optional[BaseException] = None


@dataclass(frozen=True)
class DispatchResult:
    """Outcome of publishing one event.

    Attributes:
        delivered: Subscriptions the event was enqueued for
        filtered: Interested subscriptions that filtered the event out
        dropped: Subscriptions closed during this dispatch
    """

    delivered: int = 0
    filtered: int = 0
    dropped: int = 0


class SubscriptionHub:
    """Fans change events out to subscriptions.

    Thread safety:
        Intended for a single event loop. Registration and publishing are
        coroutines and may interleave between dispatch cycles.

    Example:
        >>> hub = SubscriptionHub(schema)
        >>> sub = await hub.register("Movie", kinds=["update"], where={"title": "A"})
        >>> await hub.publish(event)
        DispatchResult(delivered=1, filtered=0, dropped=0)
        >>> async for event in hub.events(sub):
        ...     print(event.id)
    """

    def __init__(self, schema: SchemaModel, config: Optional[DispatchConfig] = None) -> None:
        """Initialize the hub.

        Args:
            schema: Frozen schema model
            config: Dispatch configuration (defaults if None)
        """
        self.schema = schema
        self.config = config or DispatchConfig()
        self.filter = SubscriptionFilter(
            schema,
            suppress_unchanged_updates=self.config.suppress_unchanged_updates,
        )
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = asyncio.Lock()

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    async def register(
        self,
        entity_name: str,
        kinds: Optional[Iterable[str | EventKind]] = None,
        where: Optional[Mapping[str, Any]] = None,
        context: Optional[AuthorizationContext] = None,
        selection: Optional[Mapping[str, Any]] = None,
        *,
        authorization_rules: Optional[Iterable[AuthorizationRule]] = None,
    ) -> Subscription:
        """Register a subscriber.

        Args:
            entity_name: Entity to subscribe to
            kinds: Event kinds (all kinds if None)
            where: Subscriber where-expression
            context: Subscriber authorization context (anonymous if None)
            selection: Fields the subscriber requested
            authorization_rules: Rules overriding the entity's own

        Returns:
            The new Subscription

        Raises:
            MisconfigurationError: If the entity is unknown or the
                where-expression is invalid for the requested kinds
        """
        entity = self.schema.entity_for_evaluation(entity_name)
        resolved_kinds = (
            frozenset(k if isinstance(k, EventKind) else EventKind.from_str(k) for k in kinds)
            if kinds is not None
            else frozenset(EventKind)
        )

        errors: list[str] = []
        for kind in sorted(resolved_kinds, key=lambda k: k.value):
            for error in validate_subscriber_where(where, entity, self.schema, kind):
                if error not in errors:
                    errors.append(error)
        if errors:
            raise MisconfigurationError(
                f"Invalid where-expression for {entity_name}: {'; '.join(errors)}",
                entity=entity_name,
                errors=errors,
            )

        subscription = Subscription(
            id=uuid.uuid4().hex,
            entity_name=entity_name,
            kinds=resolved_kinds,
            where=where,
            context=context or AuthorizationContext(),
            selection=selection,
            authorization_rules=tuple(authorization_rules)
            if authorization_rules is not None
            else None,
            queue=asyncio.Queue(maxsize=self.config.queue_size),
        )

        async with self._lock:
            self._subscriptions[subscription.id] = subscription

        logger.info(
            f"Subscription registered on {entity_name}",
            extra={
                "subscription_id": subscription.id,
                "kinds": sorted(k.value for k in resolved_kinds),
            },
        )
        return subscription

    async def unregister(self, subscription: Subscription) -> None:
        """Remove a subscription and end its event stream."""
        async with self._lock:
            self._close(subscription, None)
        logger.info(
            f"Subscription removed from {subscription.entity_name}",
            extra={"subscription_id": subscription.id},
        )

    async def close(self) -> None:
        """Remove every subscription."""
        async with self._lock:
            for subscription in list(self._subscriptions.values()):
                self._close(subscription, None)
        logger.debug("SubscriptionHub closed")

    async def publish(self, event: ChangeEvent) -> DispatchResult:
        """Evaluate an event for every interested subscription.

        Returns:
            DispatchResult with per-outcome counts

        Raises:
            SubscriptionError: If evaluation fails and the error policy is
                fail_dispatch
        """
        delivered = filtered = dropped = 0

        async with self._lock:
            for subscription in list(self._subscriptions.values()):
                if not self._is_interested(subscription, event):
                    continue

                try:
                    allowed = self.filter.should_deliver(
                        event,
                        subscription.authorization_rules,
                        subscription.where,
                        subscription.context,
                        subscription.selection,
                        entity_name=subscription.entity_name,
                    )
                except SubscriptionError as e:
                    if self.config.error_policy == ErrorPolicy.FAIL_DISPATCH:
                        logger.error(
                            f"Dispatch of event {event.id} failed: {e}",
                            extra={"subscription_id": subscription.id, "code": e.code},
                        )
                        raise
                    logger.warning(
                        f"Dropping subscription on {subscription.entity_name}: {e}",
                        extra={"subscription_id": subscription.id, "code": e.code},
                    )
                    self._close(subscription, e)
                    dropped += 1
                    continue

                if not allowed:
                    filtered += 1
                    continue

                try:
                    subscription.queue.put_nowait(event)
                except asyncio.QueueFull:
                    logger.warning(
                        f"Subscription queue full on {subscription.entity_name}, closing",
                        extra={"subscription_id": subscription.id},
                    )
                    self._close(
                        subscription,
                        SubscriptionClosedError(
                            "Subscription queue overflowed", subscription_id=subscription.id
                        ),
                    )
                    dropped += 1
                    continue

                delivered += 1

        logger.debug(
            f"Event {event.id} dispatched",
            extra={"delivered": delivered, "filtered": filtered, "dropped": dropped},
        )
        return DispatchResult(delivered=delivered, filtered=filtered, dropped=dropped)

    async def events(self, subscription: Subscription) -> AsyncIterator[ChangeEvent]:
        """Consume a subscription's events until it is closed.

        Yields:
            Delivered change events, in publish order

        Raises:
            SubscriptionError: The error the subscription was closed with
        """
        while True:
            if subscription.closed and subscription.queue.empty():
                break
            item = await subscription.queue.get()
            if item is _CLOSED:
                break
            yield item

        if subscription.error is not None:
            raise subscription.error

    def _is_interested(self, subscription: Subscription, event: ChangeEvent) -> bool:
        if subscription.closed or event.kind not in subscription.kinds:
            return False
        if isinstance(event, RelationshipEvent):
            if not event.involves(subscription.entity_name):
                return False
            entity = self.schema.get_entity(subscription.entity_name)
            return entity is not None and bool(entity.relationships_of_type(event.relationship_name))
        return event.type_name == subscription.entity_name

    def _close(self, subscription: Subscription, error: Optional[BaseException]) -> None:
        self._subscriptions.pop(subscription.id, None)
        if subscription.closed:
            return
        subscription.closed = True
        subscription.error = error
        try:
            subscription.queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # The consumer sees `closed` once it has drained the queue.
            pass
