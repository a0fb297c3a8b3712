"""
Core type definitions for the graphsub schema model.

This module defines the read-only model the filters are evaluated against:
- AttributeMeta: A declared field and its semantic type
- AuthenticationAnnotation: "must be authenticated" marker on schema/entity/field
- AuthorizationRule: A subscription authorization rule on an entity
- RelationshipDef: A relationship field and its target shape
- EntityDef, InterfaceDef, UnionDef, EdgePropertiesDef: Named declarations

Invariants:
    - Names are unique within their containing declaration
    - A relationship's target shape is resolved once, when the schema model
      is frozen, and never probed at evaluation time
    - All definitions are frozen dataclasses

How to change safely:
    - New attribute kinds must say whether they compare as integers
    - New annotation operations must be additive

Example:
    >>> Movie = EntityDef(
    ...     name="Movie",
    ...     attributes=(
    ...         attribute("title", "str"),
    ...         attribute("views", "bigint"),
    ...     ),
    ...     relationships=(
    ...         RelationshipDef("actors", "ACTED_IN", Direction.IN, "Actor", properties="ActedIn"),
    ...     ),
    ... )
"""

from __future__ import annotations

from dataclasses import dataclass
from dataclasses import field as dataclass_field
from enum import Enum
from typing import Any, Mapping, Optional

from ..events import EventKind


class AttributeKind(Enum):
    """Semantic type of a declared attribute.

    Only used to pick a comparison strategy: integer kinds compare with
    arbitrary-precision integer semantics, everything else natively.
    """

    STRING = "str"
    ID = "id"
    INTEGER = "int"
    BIG_INT = "bigint"
    FLOAT = "float"
    BOOLEAN = "bool"
    DATE_TIME = "datetime"
    DATE = "date"
    TIME = "time"
    ENUM = "enum"
    JSON = "json"

    @classmethod
    def from_str(cls, value: str) -> AttributeKind:
        """Convert string representation to AttributeKind.

        Raises:
            ValueError: If value is not a valid attribute kind
        """
        normalized = value.lower()
        for kind in cls:
            if kind.value == normalized:
                return kind
        valid = [k.value for k in cls]
        raise ValueError(f"Invalid attribute kind '{value}'. Valid kinds: {valid}")

    @property
    def is_integer(self) -> bool:
        """Whether values always compare as arbitrary-precision integers."""
        return self in (AttributeKind.INTEGER, AttributeKind.BIG_INT)


class Direction(Enum):
    """Direction of a relationship, seen from the declaring entity."""

    IN = "IN"
    OUT = "OUT"


class TargetShape(Enum):
    """What the far end of a relationship can be."""

    STANDARD = "standard"
    UNION = "union"
    INTERFACE = "interface"


ALL_OPERATIONS = frozenset(
    {
        "READ",
        "AGGREGATE",
        "CREATE",
        "UPDATE",
        "DELETE",
        "CREATE_RELATIONSHIP",
        "DELETE_RELATIONSHIP",
        "SUBSCRIBE",
    }
)


@dataclass(frozen=True)
class AuthenticationAnnotation:
    """Requires an authenticated identity for the listed operations.

    Attributes:
        operations: Operations the annotation applies to
        jwt: Optional where-expression the verified claims must also satisfy
    """

    operations: frozenset[str] = ALL_OPERATIONS
    jwt: Optional[Mapping[str, Any]] = None

    def __post_init__(self) -> None:
        unknown = set(self.operations) - ALL_OPERATIONS
        if unknown:
            raise ValueError(f"Unknown authentication operations: {sorted(unknown)}")

    def applies_to(self, operation: str) -> bool:
        return operation in self.operations

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"operations": sorted(self.operations)}
        if self.jwt is not None:
            result["jwt"] = self.jwt
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AuthenticationAnnotation:
        operations = data.get("operations")
        return cls(
            operations=frozenset(op.upper() for op in operations)
            if operations is not None
            else ALL_OPERATIONS,
            jwt=data.get("jwt"),
        )


@dataclass(frozen=True)
class AuthorizationRule:
    """One subscription authorization rule of an entity.

    Several rules on the same entity are combined with OR.

    Attributes:
        events: Event kinds the rule applies to
        require_authentication: Whether the rule fails without an identity
        where: Where-expression, possibly holding $jwt/$context placeholders
    """

    events: frozenset[EventKind] = frozenset(EventKind)
    require_authentication: bool = True
    where: Mapping[str, Any] = dataclass_field(default_factory=dict)

    def applies_to(self, kind: EventKind) -> bool:
        return kind in self.events

    def to_dict(self) -> dict[str, Any]:
        return {
            "events": sorted(k.value for k in self.events),
            "requireAuthentication": self.require_authentication,
            "where": self.where,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AuthorizationRule:
        """Create from dictionary representation.

        Event names are matched case-insensitively.
        """
        events = data.get("events")
        return cls(
            events=frozenset(EventKind.from_str(e) for e in events)
            if events is not None
            else frozenset(EventKind),
            require_authentication=data.get("requireAuthentication", True),
            where=data.get("where") or {},
        )


@dataclass(frozen=True)
class AttributeMeta:
    """A declared field and its semantic type.

    Attributes:
        name: Field name used in where-expressions and selections
        kind: Semantic type
        is_list: Whether the field holds a list of `kind` values
        db_name: Property name in event bags when it differs from `name`
        authentication: Field-level authentication annotation
    """

    name: str
    kind: AttributeKind
    is_list: bool = False
    db_name: Optional[str] = None
    authentication: Optional[AuthenticationAnnotation] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Attribute name cannot be empty")

    @property
    def property_key(self) -> str:
        """Key under which the value appears in event property bags."""
        return self.db_name or self.name

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "kind": self.kind.value}
        if self.is_list:
            result["list"] = True
        if self.db_name:
            result["db_name"] = self.db_name
        if self.authentication is not None:
            result["authentication"] = self.authentication.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AttributeMeta:
        authentication = data.get("authentication")
        return cls(
            name=data["name"],
            kind=AttributeKind.from_str(data["kind"]),
            is_list=data.get("list", False),
            db_name=data.get("db_name"),
            authentication=AuthenticationAnnotation.from_dict(authentication)
            if authentication is not None
            else None,
        )


def attribute(
    name: str,
    kind: str | AttributeKind,
    *,
    is_list: bool = False,
    db_name: Optional[str] = None,
    authentication: Optional[AuthenticationAnnotation] = None,
) -> AttributeMeta:
    """Convenience function to create an AttributeMeta.

    Example:
        >>> title = attribute("title", "str")
        >>> tags = attribute("tags", "str", is_list=True)
    """
    if isinstance(kind, str):
        kind = AttributeKind.from_str(kind)
    return AttributeMeta(
        name=name,
        kind=kind,
        is_list=is_list,
        db_name=db_name,
        authentication=authentication,
    )


def _check_unique(names: list[str], what: str, owner: str) -> None:
    if len(names) != len(set(names)):
        raise ValueError(f"Duplicate {what} in '{owner}'")


@dataclass(frozen=True)
class EdgePropertiesDef:
    """Properties stored on a relationship itself.

    Attributes:
        name: Declaration name, referenced by RelationshipDef.properties
        attributes: Edge property definitions
    """

    name: str
    attributes: tuple[AttributeMeta, ...] = dataclass_field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Edge properties name cannot be empty")
        _check_unique([a.name for a in self.attributes], "attribute name", self.name)

    @property
    def attribute_map(self) -> dict[str, AttributeMeta]:
        return {a.name: a for a in self.attributes}

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "attributes": [a.to_dict() for a in self.attributes]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EdgePropertiesDef:
        return cls(
            name=data["name"],
            attributes=tuple(AttributeMeta.from_dict(a) for a in data.get("attributes", [])),
        )


@dataclass(frozen=True)
class UnionDef:
    """A union of concrete entity types."""

    name: str
    members: tuple[str, ...] = dataclass_field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Union name cannot be empty")
        if not self.members:
            raise ValueError(f"Union '{self.name}' must have at least one member")

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "members": list(self.members)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> UnionDef:
        return cls(name=data["name"], members=tuple(data.get("members", [])))


@dataclass(frozen=True)
class InterfaceDef:
    """An interface implemented by one or more entities.

    Implementations are the entities whose `implements` names this interface.
    """

    name: str
    attributes: tuple[AttributeMeta, ...] = dataclass_field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Interface name cannot be empty")
        _check_unique([a.name for a in self.attributes], "attribute name", self.name)

    @property
    def attribute_map(self) -> dict[str, AttributeMeta]:
        return {a.name: a for a in self.attributes}

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "attributes": [a.to_dict() for a in self.attributes]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> InterfaceDef:
        return cls(
            name=data["name"],
            attributes=tuple(AttributeMeta.from_dict(a) for a in data.get("attributes", [])),
        )


@dataclass(frozen=True)
class RelationshipDef:
    """A relationship field declared on an entity.

    Attributes:
        field_name: Field name on the declaring entity (e.g. "actors")
        type: Relationship type name in the graph (e.g. "ACTED_IN")
        direction: Direction seen from the declaring entity
        target: Name of the target entity, union or interface
        properties: Name of the EdgePropertiesDef, if the edge has properties
        authentication: Field-level authentication annotation
        shape: Target shape, resolved when the schema model is frozen
        member_types: Concrete entity names the target can be, resolved at freeze

    Invariants:
        - shape and member_types are None/empty until the model is frozen
    """

    field_name: str
    type: str
    direction: Direction
    target: str
    properties: Optional[str] = None
    authentication: Optional[AuthenticationAnnotation] = None
    shape: Optional[TargetShape] = None
    member_types: tuple[str, ...] = dataclass_field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not self.field_name:
            raise ValueError("Relationship field name cannot be empty")
        if not self.type:
            raise ValueError(f"Relationship '{self.field_name}' must have a type")

    def connected_side(self) -> str:
        """Which event bag holds the node at the far end: "from" or "to"."""
        return "from" if self.direction == Direction.IN else "to"

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "field_name": self.field_name,
            "type": self.type,
            "direction": self.direction.value,
            "target": self.target,
        }
        if self.properties:
            result["properties"] = self.properties
        if self.authentication is not None:
            result["authentication"] = self.authentication.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> RelationshipDef:
        authentication = data.get("authentication")
        return cls(
            field_name=data["field_name"],
            type=data["type"],
            direction=Direction(data.get("direction", "OUT").upper()),
            target=data["target"],
            properties=data.get("properties"),
            authentication=AuthenticationAnnotation.from_dict(authentication)
            if authentication is not None
            else None,
        )


@dataclass(frozen=True)
class EntityDef:
    """A concrete node type.

    Attributes:
        name: Type name (the event's typename)
        attributes: Declared scalar fields
        relationships: Declared relationship fields
        implements: Interfaces this entity implements
        authorization: Subscription authorization rules (combined with OR)
        authentication: Entity-level authentication annotation
        payload_field: Key of the entity in subscription payloads and
            relationship where-expressions (defaults to the name with a
            lowercase first letter)

    Example:
        >>> Actor = EntityDef(name="Actor", attributes=(attribute("name", "str"),))
        >>> Actor.payload_key
        'actor'
    """

    name: str
    attributes: tuple[AttributeMeta, ...] = dataclass_field(default_factory=tuple)
    relationships: tuple[RelationshipDef, ...] = dataclass_field(default_factory=tuple)
    implements: tuple[str, ...] = dataclass_field(default_factory=tuple)
    authorization: tuple[AuthorizationRule, ...] = dataclass_field(default_factory=tuple)
    authentication: Optional[AuthenticationAnnotation] = None
    payload_field: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Entity name cannot be empty")
        _check_unique([a.name for a in self.attributes], "attribute name", self.name)
        _check_unique(
            [r.field_name for r in self.relationships], "relationship field", self.name
        )

    @property
    def payload_key(self) -> str:
        return self.payload_field or self.name[:1].lower() + self.name[1:]

    @property
    def attribute_map(self) -> dict[str, AttributeMeta]:
        return {a.name: a for a in self.attributes}

    def get_attribute(self, name: str) -> Optional[AttributeMeta]:
        for a in self.attributes:
            if a.name == name:
                return a
        return None

    def get_relationship(self, field_name: str) -> Optional[RelationshipDef]:
        for r in self.relationships:
            if r.field_name == field_name:
                return r
        return None

    def relationships_of_type(self, type_name: str) -> list[RelationshipDef]:
        """All relationship fields whose graph type is `type_name`."""
        return [r for r in self.relationships if r.type == type_name]

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "attributes": [a.to_dict() for a in self.attributes],
        }
        if self.relationships:
            result["relationships"] = [r.to_dict() for r in self.relationships]
        if self.implements:
            result["implements"] = list(self.implements)
        if self.authorization:
            result["authorization"] = [r.to_dict() for r in self.authorization]
        if self.authentication is not None:
            result["authentication"] = self.authentication.to_dict()
        if self.payload_field:
            result["payload_field"] = self.payload_field
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> EntityDef:
        authentication = data.get("authentication")
        return cls(
            name=data["name"],
            attributes=tuple(AttributeMeta.from_dict(a) for a in data.get("attributes", [])),
            relationships=tuple(
                RelationshipDef.from_dict(r) for r in data.get("relationships", [])
            ),
            implements=tuple(data.get("implements", [])),
            authorization=tuple(
                AuthorizationRule.from_dict(r) for r in data.get("authorization", [])
            ),
            authentication=AuthenticationAnnotation.from_dict(authentication)
            if authentication is not None
            else None,
            payload_field=data.get("payload_field"),
        )
