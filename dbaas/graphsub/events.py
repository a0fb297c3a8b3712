"""
Change events consumed by the subscription layer.

A change event is produced once per committed mutation by the database's
change-capture mechanism and handed to graphsub unchanged. There are five
kinds: node create/update/delete and relationship create/delete.

Invariants:
    - Events are immutable once constructed
    - Node events carry `old` (absent on create) and `new` (absent on delete)
    - Relationship events carry the `from`, `to` and `relationship` bags
      plus the concrete type names of both endpoints

How to change safely:
    - New event kinds must be added to EventKind and to from_dict dispatch
    - Keep from_dict tolerant of extra keys; producers may add metadata

Example:
    >>> event = ChangeEvent.from_dict({
    ...     "id": "evt-1",
    ...     "event": "update",
    ...     "typename": "Movie",
    ...     "timestamp": 1730000000000,
    ...     "properties": {"old": {"title": "A"}, "new": {"title": "B"}},
    ... })
    >>> event.filter_properties
    {'title': 'A'}
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional


class EventKind(Enum):
    """Kinds of change events."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    CREATE_RELATIONSHIP = "create_relationship"
    DELETE_RELATIONSHIP = "delete_relationship"

    @classmethod
    def from_str(cls, value: str) -> EventKind:
        """Convert a string to an EventKind, ignoring case.

        Accepts the kind itself ("create", "CREATE_RELATIONSHIP") and the
        subscription event names used in authorization rules ("CREATED",
        "RELATIONSHIP_DELETED").

        Raises:
            ValueError: If value names no event kind
        """
        normalized = value.strip().lower()
        kind = _EVENT_ALIASES.get(normalized)
        if kind is not None:
            return kind
        for candidate in cls:
            if candidate.value == normalized:
                return candidate
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid event kind '{value}'. Valid kinds: {valid}")

    @property
    def is_relationship(self) -> bool:
        """Whether this kind describes a relationship change."""
        return self in (EventKind.CREATE_RELATIONSHIP, EventKind.DELETE_RELATIONSHIP)


_EVENT_ALIASES = {
    "created": EventKind.CREATE,
    "updated": EventKind.UPDATE,
    "deleted": EventKind.DELETE,
    "relationship_created": EventKind.CREATE_RELATIONSHIP,
    "relationship_deleted": EventKind.DELETE_RELATIONSHIP,
    "connect": EventKind.CREATE_RELATIONSHIP,
    "disconnect": EventKind.DELETE_RELATIONSHIP,
}


@dataclass(frozen=True)
class ChangeEvent:
    """Fields common to every change event.

    Attributes:
        id: Event identifier
        kind: Event kind
        type_name: Concrete type name of the affected node
        timestamp_ms: Commit timestamp (Unix ms)
    """

    id: str
    kind: EventKind
    type_name: str
    timestamp_ms: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ChangeEvent:
        """Create a NodeEvent or RelationshipEvent from a dictionary.

        Args:
            data: Event dictionary as emitted by the change-capture source

        Returns:
            NodeEvent or RelationshipEvent

        Raises:
            ValueError: If required fields are missing or the kind is unknown
        """
        if "event" not in data:
            raise ValueError("Missing required fields: ['event']")
        kind = EventKind.from_str(data["event"])
        if kind.is_relationship:
            return RelationshipEvent._from_dict(kind, data)
        return NodeEvent._from_dict(kind, data)


@dataclass(frozen=True)
class NodeEvent(ChangeEvent):
    """A node was created, updated or deleted.

    Attributes:
        old: Properties before the change (None on create)
        new: Properties after the change (None on delete)
    """

    old: Optional[Mapping[str, Any]] = None
    new: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        if self.kind.is_relationship:
            raise ValueError(f"NodeEvent cannot have kind {self.kind.value}")

    @property
    def filter_properties(self) -> Mapping[str, Any]:
        """The property bag filters are evaluated against.

        Create events expose the new state; update and delete events expose
        the state before the change.
        """
        if self.kind == EventKind.CREATE:
            return self.new or {}
        return self.old or {}

    @classmethod
    def _from_dict(cls, kind: EventKind, data: Mapping[str, Any]) -> NodeEvent:
        required = ["id", "typename"]
        missing = [f for f in required if f not in data]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")

        properties = data.get("properties") or {}
        return cls(
            id=str(data["id"]),
            kind=kind,
            type_name=data["typename"],
            timestamp_ms=data.get("timestamp", int(time.time() * 1000)),
            old=properties.get("old"),
            new=properties.get("new"),
        )


@dataclass(frozen=True)
class RelationshipEvent(ChangeEvent):
    """A relationship was created or deleted.

    `type_name` is the type of the relationship's start node.

    Attributes:
        relationship_name: Relationship type name (e.g. "ACTED_IN")
        from_type_name: Concrete type of the start node
        to_type_name: Concrete type of the end node
        from_properties: Properties of the start node
        to_properties: Properties of the end node
        relationship_properties: Properties stored on the edge itself
        relationship_field_name: Field name reported by the producer, if any
    """

    relationship_name: str = ""
    from_type_name: str = ""
    to_type_name: str = ""
    from_properties: Mapping[str, Any] = field(default_factory=dict)
    to_properties: Mapping[str, Any] = field(default_factory=dict)
    relationship_properties: Mapping[str, Any] = field(default_factory=dict)
    relationship_field_name: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.kind.is_relationship:
            raise ValueError(f"RelationshipEvent cannot have kind {self.kind.value}")
        if not self.relationship_name:
            raise ValueError("relationship_name is required")

    def involves(self, entity_name: str) -> bool:
        """Whether the entity sits at either end of the relationship."""
        return entity_name in (self.from_type_name, self.to_type_name)

    @classmethod
    def _from_dict(cls, kind: EventKind, data: Mapping[str, Any]) -> RelationshipEvent:
        required = ["id", "relationshipName", "fromTypename", "toTypename"]
        missing = [f for f in required if f not in data]
        if missing:
            raise ValueError(f"Missing required fields: {missing}")

        properties = data.get("properties") or {}
        return cls(
            id=str(data["id"]),
            kind=kind,
            type_name=data["fromTypename"],
            timestamp_ms=data.get("timestamp", int(time.time() * 1000)),
            relationship_name=data["relationshipName"],
            from_type_name=data["fromTypename"],
            to_type_name=data["toTypename"],
            from_properties=properties.get("from") or {},
            to_properties=properties.get("to") or {},
            relationship_properties=properties.get("relationship") or {},
            relationship_field_name=data.get("relationshipFieldName"),
        )
