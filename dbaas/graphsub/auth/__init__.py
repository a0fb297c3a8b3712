"""
Authorization and authentication for graphsub.

- context: the caller's identity, claims-path remapping and request values
- placeholders: `$jwt.` / `$context.` resolution before evaluation
- rules: the authorization gate over an entity's rules
- authentication: selection walker enforcing authentication annotations
"""

from .authentication import AuthenticationWalker
from .context import AuthorizationContext, ClaimsView, get_path, split_path
from .placeholders import resolve_where_parameters
from .rules import AuthorizationGate, filter_jwt, select_rules

__all__ = [
    "AuthenticationWalker",
    "AuthorizationContext",
    "AuthorizationGate",
    "ClaimsView",
    "filter_jwt",
    "get_path",
    "resolve_where_parameters",
    "select_rules",
    "split_path",
]
