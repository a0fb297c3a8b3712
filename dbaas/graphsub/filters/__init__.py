"""
Where-expression filters for graphsub.

This package evaluates declarative where-expressions against change events:
- keys: field-key parsing (`age_GT`, `name_NOT_CONTAINS`)
- operators, combinators: immutable operator and combinator tables
- evaluator: the one recursive evaluator every filter goes through
- properties, relationships: node and relationship event filters
- compare: deep comparison used to drop unchanged updates
- validate: static checks for where-expressions and authorization rules

Invariants:
    - Evaluation is synchronous and side-effect-free
    - A filter that does not match returns False; only configuration
      problems raise
"""

from .compare import properties_equal, values_equal
from .evaluator import FilterScope, evaluate_where
from .keys import FilterKey, parse_filter_key
from .operators import COMPARATORS, UNDEFINED, compare
from .properties import filter_by_properties, filter_node_event
from .relationships import RelationshipFilter, orient, resolve_event_relationship
from .validate import (
    validate_authorization_rule,
    validate_relationship_where,
    validate_subscriber_where,
    validate_where,
)

__all__ = [
    "COMPARATORS",
    "UNDEFINED",
    "FilterKey",
    "FilterScope",
    "RelationshipFilter",
    "compare",
    "evaluate_where",
    "filter_by_properties",
    "filter_node_event",
    "orient",
    "parse_filter_key",
    "properties_equal",
    "resolve_event_relationship",
    "validate_authorization_rule",
    "validate_relationship_where",
    "validate_subscriber_where",
    "validate_where",
    "values_equal",
]
