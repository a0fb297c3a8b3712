"""
Static validation of where-expressions and authorization rules.

Evaluation treats a key it cannot resolve as a non-match, so a typo in a
filter silently filters out every event. These checks run at registration
time (and from the CLI) and report such mistakes up front.

Every validator returns a list of human-readable errors; an empty list means
the expression is valid.
"""

from __future__ import annotations

import re
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..events import EventKind
from ..schema.registry import SchemaModel
from ..schema.types import (
    AttributeKind,
    AttributeMeta,
    AuthorizationRule,
    EntityDef,
    RelationshipDef,
    TargetShape,
)
from .combinators import MULTIPLE_CONDITIONS, NOT
from .keys import parse_filter_key
from .relationships import EDGE, INTERFACE_OVERRIDES, NODE, RELATIONSHIP_SECTIONS

BranchValidator = Callable[[Any, str], List[str]]

PLACEHOLDER_PREFIXES = ("$jwt.", "$context.")

_STRING_OPERATORS = frozenset({"STARTS_WITH", "ENDS_WITH", "CONTAINS", "MATCHES"})
_ORDERING_OPERATORS = frozenset({"LT", "LTE", "GT", "GTE"})
_STRING_KINDS = frozenset({AttributeKind.STRING, AttributeKind.ID, AttributeKind.ENUM})
_UNORDERED_KINDS = frozenset({AttributeKind.BOOLEAN, AttributeKind.JSON})


def _is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and value.startswith(PLACEHOLDER_PREFIXES)


def _check_operator(attr: AttributeMeta, operator: str, value: Any, path: str) -> List[str]:
    if operator == "INCLUDES" and not attr.is_list:
        return [f"{path}: INCLUDES requires a list field, '{attr.name}' is not a list"]
    if operator == "IN" and not (_is_placeholder(value) or isinstance(value, (list, tuple))):
        return [f"{path}: IN requires a list operand"]
    if operator == "MATCHES" and isinstance(value, str) and not _is_placeholder(value):
        try:
            re.compile(value)
        except re.error as e:
            return [f"{path}: invalid MATCHES pattern: {e}"]
    if operator in _STRING_OPERATORS and attr.kind not in _STRING_KINDS:
        return [f"{path}: {operator} is not supported on {attr.kind.value} field '{attr.name}'"]
    if operator in _ORDERING_OPERATORS and attr.kind in _UNORDERED_KINDS:
        return [f"{path}: {operator} is not supported on {attr.kind.value} field '{attr.name}'"]
    return []


def validate_where(
    where: Any,
    attributes: Mapping[str, AttributeMeta],
    *,
    branches: Optional[Mapping[str, BranchValidator]] = None,
    allow_unknown_fields: bool = False,
    path: str = "where",
) -> List[str]:
    """Validate a where-expression against declared attributes.

    Args:
        where: Where-expression to validate
        attributes: Attributes the field keys may name
        branches: Validators for keys that open a nested scope
        allow_unknown_fields: Accept field names missing from `attributes`
        path: Location prefix used in error messages

    Returns:
        List of validation errors (empty if valid)

    Example:
        >>> validate_where({"title_GT": 1, "rating_CONTAINS": "x"}, Movie.attribute_map)
        ["where.rating_CONTAINS: unknown field 'rating'"]
    """
    if not isinstance(where, Mapping):
        return [f"{path}: must be a mapping"]

    branches = branches or {}
    errors: List[str] = []

    for key, value in where.items():
        key_path = f"{path}.{key}"

        if key in MULTIPLE_CONDITIONS:
            if not isinstance(value, (list, tuple)):
                errors.append(f"{key_path}: must be a list of where-expressions")
                continue
            for i, child in enumerate(value):
                errors.extend(
                    validate_where(
                        child,
                        attributes,
                        branches=branches,
                        allow_unknown_fields=allow_unknown_fields,
                        path=f"{key_path}[{i}]",
                    )
                )
            continue

        if key == NOT:
            errors.extend(
                validate_where(
                    value,
                    attributes,
                    branches=branches,
                    allow_unknown_fields=allow_unknown_fields,
                    path=key_path,
                )
            )
            continue

        if key in branches:
            errors.extend(branches[key](value, key_path))
            continue

        try:
            parsed = parse_filter_key(key)
        except ValueError as e:
            errors.append(f"{key_path}: {e}")
            continue

        attr = attributes.get(parsed.field_name)
        if attr is None:
            if not allow_unknown_fields:
                errors.append(f"{key_path}: unknown field '{parsed.field_name}'")
            continue

        errors.extend(_check_operator(attr, parsed.base_operator, value, key_path))

    return errors


class _RelationshipWhereValidator:
    """Validates relationship where-expressions of one entity."""

    def __init__(self, entity: EntityDef, schema: SchemaModel) -> None:
        self.entity = entity
        self.schema = schema

    def validate(self, where: Any, path: str) -> List[str]:
        own = self.entity.attribute_map
        branches: Dict[str, BranchValidator] = {
            section: self._validate_section for section in RELATIONSHIP_SECTIONS
        }
        branches[self.entity.payload_key] = lambda value, p: validate_where(value, own, path=p)
        return validate_where(where, {}, branches=branches, path=path)

    def _validate_section(self, section: Any, path: str) -> List[str]:
        if not isinstance(section, Mapping):
            return [f"{path}: must be a mapping"]

        errors: List[str] = []
        for field_name, field_where in section.items():
            field_path = f"{path}.{field_name}"
            relationship = self.entity.get_relationship(field_name)
            if relationship is None:
                errors.append(
                    f"{field_path}: '{self.entity.name}' has no relationship field '{field_name}'"
                )
                continue
            if not field_where:
                continue
            if relationship.shape == TargetShape.UNION:
                errors.extend(self._validate_union(relationship, field_where, field_path))
            else:
                errors.extend(self._validate_edge_and_node(relationship, field_where, field_path, None))
        return errors

    def _validate_union(self, relationship: RelationshipDef, where: Any, path: str) -> List[str]:
        if not isinstance(where, Mapping):
            return [f"{path}: must be a mapping"]

        errors: List[str] = []
        for member, member_where in where.items():
            if member not in relationship.member_types:
                errors.append(
                    f"{path}.{member}: '{member}' is not a member of union '{relationship.target}'"
                )
                continue
            if member_where:
                errors.extend(
                    self._validate_edge_and_node(relationship, member_where, f"{path}.{member}", member)
                )
        return errors

    def _validate_edge_and_node(
        self,
        relationship: RelationshipDef,
        where: Any,
        path: str,
        member: Optional[str],
    ) -> List[str]:
        return validate_where(
            where,
            {},
            branches={
                EDGE: lambda value, p: self._validate_edge(relationship, value, p),
                NODE: lambda value, p: self._validate_node(relationship, value, p, member),
            },
            path=path,
        )

    def _validate_edge(self, relationship: RelationshipDef, where: Any, path: str) -> List[str]:
        if not relationship.properties:
            return [f"{path}: relationship '{relationship.field_name}' has no edge properties"]
        declaration = self.schema.get_edge_properties(relationship.properties)
        if declaration is None:
            return [f"{path}: unknown edge properties '{relationship.properties}'"]
        return validate_where(where, declaration.attribute_map, path=path)

    def _validate_node(
        self,
        relationship: RelationshipDef,
        where: Any,
        path: str,
        member: Optional[str],
    ) -> List[str]:
        if relationship.shape == TargetShape.INTERFACE:
            return self._validate_interface_node(relationship, where, path)

        target = self.schema.get_entity(member or relationship.target)
        if target is None:
            return [f"{path}: unknown entity '{member or relationship.target}'"]
        return validate_where(where, target.attribute_map, path=path)

    def _validate_interface_node(self, relationship: RelationshipDef, where: Any, path: str) -> List[str]:
        if not isinstance(where, Mapping):
            return [f"{path}: must be a mapping"]

        interface = self.schema.get_interface(relationship.target)
        common_attributes = interface.attribute_map if interface is not None else {}
        common = {k: v for k, v in where.items() if k != INTERFACE_OVERRIDES}
        errors = validate_where(common, common_attributes, path=path)

        overrides = where.get(INTERFACE_OVERRIDES)
        if overrides is None:
            return errors
        if not isinstance(overrides, Mapping):
            return errors + [f"{path}._on: must be a mapping"]

        for type_name, override in overrides.items():
            override_path = f"{path}._on.{type_name}"
            if type_name not in relationship.member_types:
                errors.append(
                    f"{override_path}: '{type_name}' does not implement '{relationship.target}'"
                )
                continue
            implementation = self.schema.get_entity(type_name)
            errors.extend(
                validate_where(override or {}, implementation.attribute_map, path=override_path)
            )
        return errors


def validate_relationship_where(
    where: Any,
    entity: EntityDef,
    schema: SchemaModel,
    path: str = "where",
) -> List[str]:
    """Validate a relationship-event where-expression of an entity.

    The schema model must be frozen so relationship shapes are known.
    """
    return _RelationshipWhereValidator(entity, schema).validate(where, path)


def validate_subscriber_where(
    where: Any,
    entity: EntityDef,
    schema: SchemaModel,
    kind: EventKind,
) -> List[str]:
    """Validate a subscriber where-expression for the event kind it targets."""
    if not where:
        return []
    if kind.is_relationship:
        return validate_relationship_where(where, entity, schema)
    return validate_where(where, entity.attribute_map)


def validate_authorization_rule(
    rule: AuthorizationRule,
    entity: EntityDef,
    schema: SchemaModel,
) -> List[str]:
    """Validate an authorization rule of an entity.

    Rule where-expressions may only use the `node` and `jwt` branches (and
    `edge` for rules that apply to relationship events) at the top level.
    Claim names are checked only when the schema model declares claim types.
    """
    errors: List[str] = []
    if not rule.events:
        errors.append("rule applies to no events")

    claims = schema.jwt_claims
    branches: Dict[str, BranchValidator] = {
        NODE: lambda value, p: validate_where(value, entity.attribute_map, path=p),
        "jwt": lambda value, p: validate_where(
            value, claims, allow_unknown_fields=not claims, path=p
        ),
    }

    if any(kind.is_relationship for kind in rule.events):
        edge_attributes: Dict[str, AttributeMeta] = {}
        for relationship in entity.relationships:
            if relationship.properties:
                declaration = schema.get_edge_properties(relationship.properties)
                if declaration is not None:
                    edge_attributes.update(declaration.attribute_map)
        branches[EDGE] = lambda value, p: validate_where(value, edge_attributes, path=p)

    errors.extend(validate_where(rule.where, {}, branches=branches))
    return errors
