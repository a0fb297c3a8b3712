"""
Where-parameter resolution.

Authorization rules and authentication annotations are written with
placeholders that refer to the caller:

    {"node": {"owner": "$jwt.sub"}}
    {"node": {"tenant": "$context.tenant.id"}}

`resolve_where_parameters` rewrites such a tree into a fully resolved copy
before evaluation, so the evaluator never sees a placeholder.

Resolution:
    - `$jwt.<path>` is looked up in the verified claims, through the
      claims-path remap table; a missing claim resolves to UNDEFINED, which
      matches no operand
    - `$context.<path>` is looked up in the request values; a missing value
      resolves to the empty string
    - Lists resolve element-wise, mappings value-wise
    - Every other value, None included, is kept as is
"""

from __future__ import annotations

from typing import Any, Mapping

from .context import AuthorizationContext

JWT_PREFIX = "$jwt."
CONTEXT_PREFIX = "$context."


def resolve_where_parameters(value: Any, context: AuthorizationContext) -> Any:
    """Return a copy of `value` with every placeholder replaced.

    Example:
        >>> ctx = AuthorizationContext(jwt={"sub": "user-1"})
        >>> resolve_where_parameters({"node": {"owner": "$jwt.sub"}}, ctx)
        {'node': {'owner': 'user-1'}}
    """
    if isinstance(value, Mapping):
        return {key: resolve_where_parameters(child, context) for key, child in value.items()}

    if isinstance(value, (list, tuple)):
        return [resolve_where_parameters(child, context) for child in value]

    if isinstance(value, str):
        if value.startswith(JWT_PREFIX):
            return context.claim(value[len(JWT_PREFIX):])
        if value.startswith(CONTEXT_PREFIX):
            return context.context_value(value[len(CONTEXT_PREFIX):], default="")

    return value
