"""
Schema model for graphsub.

The SchemaModel is the read-only view of the graph schema that every filter
is evaluated against. It provides:
- Registration of entities, interfaces, unions and edge-property declarations
- Lookup by name
- Target-shape resolution for every relationship, done once at freeze
- Schema fingerprinting for consistency checks

Invariants:
    - The model is mutable during startup, frozen before dispatch begins
    - Once frozen, no declarations can be added
    - Evaluation against an unfrozen model is a misconfiguration
    - Every relationship of a frozen model has a TargetShape

How to change safely:
    - Register all declarations before calling freeze()
    - Never mutate a frozen model while events are being evaluated

Example:
    >>> schema = SchemaModel()
    >>> schema.register_entity(Movie)
    >>> schema.register_entity(Actor)
    >>> schema.freeze()
    >>> schema.get_entity("Movie").get_relationship("actors").shape
    <TargetShape.STANDARD: 'standard'>
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import logging
import threading
from typing import Any, Dict, Iterator, Mapping, Optional

from ..errors import MisconfigurationError
from .types import (
    AttributeMeta,
    AuthenticationAnnotation,
    EdgePropertiesDef,
    EntityDef,
    InterfaceDef,
    RelationshipDef,
    TargetShape,
    UnionDef,
)

logger = logging.getLogger(__name__)

# Global schema instance
_global_schema: Optional[SchemaModel] = None
_schema_lock = threading.Lock()


class RegistryFrozenError(Exception):
    """Raised when attempting to modify a frozen schema model."""
    pass


class DuplicateRegistrationError(Exception):
    """Raised when attempting to register a name twice."""
    pass


class SchemaModel:
    """Registry of all declarations the subscription filters need.

    Thread-safety:
        - Registration is thread-safe (uses internal lock)
        - Lookups after freeze are lock-free
        - Freeze is atomic and irreversible

    Attributes:
        frozen: Whether the model is frozen (immutable)
        fingerprint: SHA-256 hash of the model (computed on freeze)
        authentication: Schema-level authentication annotation
    """

    def __init__(self) -> None:
        """Initialize an empty, mutable model."""
        self._entities: Dict[str, EntityDef] = {}
        self._interfaces: Dict[str, InterfaceDef] = {}
        self._unions: Dict[str, UnionDef] = {}
        self._edge_properties: Dict[str, EdgePropertiesDef] = {}
        self._jwt_claims: Dict[str, AttributeMeta] = {}
        self._authentication: Optional[AuthenticationAnnotation] = None
        self._frozen = False
        self._fingerprint: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def frozen(self) -> bool:
        """Whether the model is frozen."""
        return self._frozen

    @property
    def fingerprint(self) -> Optional[str]:
        """Schema fingerprint (available after freeze)."""
        return self._fingerprint

    @property
    def authentication(self) -> Optional[AuthenticationAnnotation]:
        """Schema-level authentication annotation."""
        return self._authentication

    @property
    def jwt_claims(self) -> Dict[str, AttributeMeta]:
        """Declared claim types, keyed by claim name."""
        return dict(self._jwt_claims)

    def _check_mutable(self, what: str) -> None:
        if self._frozen:
            raise RegistryFrozenError(f"Cannot register {what}: schema model is frozen")

    def _check_name_free(self, name: str) -> None:
        for kind, table in (
            ("entity", self._entities),
            ("interface", self._interfaces),
            ("union", self._unions),
        ):
            if name in table:
                raise DuplicateRegistrationError(f"Name '{name}' already registered as {kind}")

    def register_entity(self, entity: EntityDef) -> None:
        """Register a concrete entity.

        Raises:
            RegistryFrozenError: If the model is frozen
            DuplicateRegistrationError: If the name is already taken
        """
        with self._lock:
            self._check_mutable(f"entity '{entity.name}'")
            self._check_name_free(entity.name)
            self._entities[entity.name] = entity
            logger.debug(f"Registered entity: {entity.name}")

    def register_interface(self, interface: InterfaceDef) -> None:
        """Register an interface declaration."""
        with self._lock:
            self._check_mutable(f"interface '{interface.name}'")
            self._check_name_free(interface.name)
            self._interfaces[interface.name] = interface
            logger.debug(f"Registered interface: {interface.name}")

    def register_union(self, union: UnionDef) -> None:
        """Register a union declaration."""
        with self._lock:
            self._check_mutable(f"union '{union.name}'")
            self._check_name_free(union.name)
            self._unions[union.name] = union
            logger.debug(f"Registered union: {union.name} ({', '.join(union.members)})")

    def register_edge_properties(self, edge_properties: EdgePropertiesDef) -> None:
        """Register an edge-properties declaration."""
        with self._lock:
            self._check_mutable(f"edge properties '{edge_properties.name}'")
            if edge_properties.name in self._edge_properties:
                raise DuplicateRegistrationError(
                    f"Edge properties '{edge_properties.name}' already registered"
                )
            self._edge_properties[edge_properties.name] = edge_properties

    def set_jwt_claims(self, claims: tuple[AttributeMeta, ...]) -> None:
        """Declare claim types so jwt filters compare with the right semantics."""
        with self._lock:
            self._check_mutable("jwt claims")
            self._jwt_claims = {c.name: c for c in claims}

    def set_authentication(self, annotation: Optional[AuthenticationAnnotation]) -> None:
        """Set the schema-level authentication annotation."""
        with self._lock:
            self._check_mutable("schema authentication")
            self._authentication = annotation

    def get_entity(self, name: str) -> Optional[EntityDef]:
        return self._entities.get(name)

    def get_interface(self, name: str) -> Optional[InterfaceDef]:
        return self._interfaces.get(name)

    def get_union(self, name: str) -> Optional[UnionDef]:
        return self._unions.get(name)

    def get_edge_properties(self, name: str) -> Optional[EdgePropertiesDef]:
        return self._edge_properties.get(name)

    def entities(self) -> Iterator[EntityDef]:
        """Iterate over all registered entities."""
        yield from self._entities.values()

    def implementations(self, interface_name: str) -> list[str]:
        """Names of the entities implementing an interface, sorted."""
        return sorted(e.name for e in self._entities.values() if interface_name in e.implements)

    def entity_for_evaluation(self, name: str) -> EntityDef:
        """Look up an entity for filter evaluation.

        Raises:
            MisconfigurationError: If the model is not frozen or the entity is unknown
        """
        if not self._frozen:
            raise MisconfigurationError(
                "Schema model must be frozen before events are evaluated"
            )
        entity = self._entities.get(name)
        if entity is None:
            raise MisconfigurationError(f"Unknown entity '{name}'", entity=name)
        return entity

    def freeze(self) -> str:
        """Resolve relationship targets, freeze the model and compute its fingerprint.

        Returns:
            Schema fingerprint string

        Raises:
            RegistryFrozenError: If already frozen
            MisconfigurationError: If a relationship target cannot be resolved
        """
        with self._lock:
            if self._frozen:
                raise RegistryFrozenError("Schema model is already frozen")

            self._entities = {
                name: dataclasses.replace(
                    entity,
                    relationships=tuple(self._resolve(entity, r) for r in entity.relationships),
                )
                for name, entity in self._entities.items()
            }
            self._fingerprint = self._compute_fingerprint()
            self._frozen = True
            logger.info(
                f"Schema model frozen with {len(self._entities)} entities, "
                f"{len(self._interfaces)} interfaces, {len(self._unions)} unions, "
                f"fingerprint={self._fingerprint}"
            )
            return self._fingerprint

    def _resolve(self, entity: EntityDef, relationship: RelationshipDef) -> RelationshipDef:
        """Attach the target shape and concrete member types to a relationship."""
        target = relationship.target
        if target in self._entities:
            shape, members = TargetShape.STANDARD, (target,)
        elif target in self._unions:
            shape, members = TargetShape.UNION, self._unions[target].members
        elif target in self._interfaces:
            shape = TargetShape.INTERFACE
            members = tuple(
                sorted(e.name for e in self._entities.values() if target in e.implements)
            )
        else:
            raise MisconfigurationError(
                f"Relationship '{entity.name}.{relationship.field_name}' targets "
                f"unknown type '{target}'",
                entity=entity.name,
                field=relationship.field_name,
            )
        return dataclasses.replace(relationship, shape=shape, member_types=members)

    def _compute_fingerprint(self) -> str:
        """Compute SHA-256 fingerprint of the model.

        Returns:
            Fingerprint string in format 'sha256:<hash>'
        """
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(',', ':'), default=str)
        hash_bytes = hashlib.sha256(canonical.encode('utf-8')).hexdigest()
        return f"sha256:{hash_bytes}"

    def to_dict(self) -> dict:
        """Convert the model to a dictionary, sorted by name for determinism."""
        result: dict[str, Any] = {
            "entities": [self._entities[n].to_dict() for n in sorted(self._entities)],
            "interfaces": [self._interfaces[n].to_dict() for n in sorted(self._interfaces)],
            "unions": [self._unions[n].to_dict() for n in sorted(self._unions)],
            "edge_properties": [
                self._edge_properties[n].to_dict() for n in sorted(self._edge_properties)
            ],
        }
        if self._jwt_claims:
            result["jwt_claims"] = [self._jwt_claims[n].to_dict() for n in sorted(self._jwt_claims)]
        if self._authentication is not None:
            result["authentication"] = self._authentication.to_dict()
        return result

    def to_json(self, indent: Optional[int] = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True, default=str)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SchemaModel:
        """Create a model from its dictionary representation.

        Returns:
            New SchemaModel with declarations registered (not frozen)
        """
        schema = cls()
        for item in data.get("edge_properties", []):
            schema.register_edge_properties(EdgePropertiesDef.from_dict(item))
        for item in data.get("interfaces", []):
            schema.register_interface(InterfaceDef.from_dict(item))
        for item in data.get("unions", []):
            schema.register_union(UnionDef.from_dict(item))
        for item in data.get("entities", []):
            schema.register_entity(EntityDef.from_dict(item))
        if data.get("jwt_claims"):
            schema.set_jwt_claims(tuple(AttributeMeta.from_dict(c) for c in data["jwt_claims"]))
        if data.get("authentication") is not None:
            schema.set_authentication(AuthenticationAnnotation.from_dict(data["authentication"]))
        return schema

    @classmethod
    def from_json(cls, json_str: str) -> SchemaModel:
        return cls.from_dict(json.loads(json_str))

    def validate_all(self) -> list[str]:
        """Validate all declarations for consistency.

        Returns:
            List of validation errors (empty if valid)
        """
        from ..filters.validate import validate_authorization_rule

        errors = []

        for union in self._unions.values():
            for member in union.members:
                if member not in self._entities:
                    errors.append(f"Union '{union.name}' references unknown entity '{member}'")

        for entity in self._entities.values():
            for interface_name in entity.implements:
                interface = self._interfaces.get(interface_name)
                if interface is None:
                    errors.append(
                        f"Entity '{entity.name}' implements unknown interface '{interface_name}'"
                    )
                    continue
                for attr in interface.attributes:
                    if entity.get_attribute(attr.name) is None:
                        errors.append(
                            f"Entity '{entity.name}' is missing field '{attr.name}' "
                            f"of interface '{interface_name}'"
                        )

            for rel in entity.relationships:
                if (
                    rel.target not in self._entities
                    and rel.target not in self._unions
                    and rel.target not in self._interfaces
                ):
                    errors.append(
                        f"Relationship '{entity.name}.{rel.field_name}' targets "
                        f"unknown type '{rel.target}'"
                    )
                if rel.properties and rel.properties not in self._edge_properties:
                    errors.append(
                        f"Relationship '{entity.name}.{rel.field_name}' references "
                        f"unknown edge properties '{rel.properties}'"
                    )

            relationship_types = [r.type for r in entity.relationships]
            for type_name in sorted(set(relationship_types)):
                if relationship_types.count(type_name) > 1:
                    errors.append(
                        f"Entity '{entity.name}' declares relationship type "
                        f"'{type_name}' more than once"
                    )

            if self._frozen:
                for index, rule in enumerate(entity.authorization):
                    for error in validate_authorization_rule(rule, entity, self):
                        errors.append(f"{entity.name} authorization rule {index}: {error}")

        return errors


def get_schema() -> SchemaModel:
    """Get the global schema model, creating an empty one if none exists."""
    global _global_schema
    with _schema_lock:
        if _global_schema is None:
            _global_schema = SchemaModel()
        return _global_schema


def freeze_schema() -> str:
    """Freeze the global schema model.

    This should be called after all declarations are registered
    and before any event is dispatched.

    Returns:
        Schema fingerprint
    """
    return get_schema().freeze()


def reset_schema() -> None:
    """Reset the global schema model (for testing only)."""
    global _global_schema
    with _schema_lock:
        _global_schema = None
