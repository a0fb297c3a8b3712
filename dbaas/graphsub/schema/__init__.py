"""
Schema model for graphsub.

This module provides the read-only model that subscription filters are
evaluated against:
- Declarations (EntityDef, InterfaceDef, UnionDef, EdgePropertiesDef)
- Attribute metadata and authorization/authentication annotations
- The SchemaModel registry, which resolves relationship target shapes on freeze
- YAML/JSON schema file loading

Invariants:
    - The model is frozen before any event is evaluated
    - Declarations are immutable
"""

from .loader import load_schema, parse_json, parse_yaml
from .registry import (
    DuplicateRegistrationError,
    RegistryFrozenError,
    SchemaModel,
    freeze_schema,
    get_schema,
    reset_schema,
)
from .types import (
    ALL_OPERATIONS,
    AttributeKind,
    AttributeMeta,
    AuthenticationAnnotation,
    AuthorizationRule,
    Direction,
    EdgePropertiesDef,
    EntityDef,
    InterfaceDef,
    RelationshipDef,
    TargetShape,
    UnionDef,
    attribute,
)

__all__ = [
    # Types
    "ALL_OPERATIONS",
    "AttributeKind",
    "AttributeMeta",
    "AuthenticationAnnotation",
    "AuthorizationRule",
    "Direction",
    "EdgePropertiesDef",
    "EntityDef",
    "InterfaceDef",
    "RelationshipDef",
    "TargetShape",
    "UnionDef",
    "attribute",
    # Registry
    "SchemaModel",
    "RegistryFrozenError",
    "DuplicateRegistrationError",
    "get_schema",
    "freeze_schema",
    "reset_schema",
    # Files
    "load_schema",
    "parse_yaml",
    "parse_json",
]
