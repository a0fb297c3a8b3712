"""
Caller-scoped authorization context.

One AuthorizationContext is built per subscription connection from the
verified identity claims (if any), an optional claims-path remap table and
request-scoped values. It is read-only for the lifetime of the connection.

Claim paths:
    Claim names are dotted paths into the claims object
    (`"organisation.id"`). A literal dot inside a key is escaped as `\\.`
    (`"https://example\\.com/roles"`). The remap table maps a claim name
    used in filters to the path it is actually stored under.
"""

from __future__ import annotations

import re
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional

from ..filters.operators import UNDEFINED

_UNESCAPED_DOT = re.compile(r"(?<!\\)\.")


def split_path(path: str) -> list[str]:
    """Split a dotted path, honouring `\\.` escapes.

    Example:
        >>> split_path("https://example\\\\.com/claims.roles")
        ['https://example.com/claims', 'roles']
    """
    return [part.replace("\\.", ".") for part in _UNESCAPED_DOT.split(path)]


def get_path(data: Optional[Mapping[str, Any]], path: str, default: Any = UNDEFINED) -> Any:
    """Look up a dotted path in nested mappings, or return `default`."""
    current: Any = data
    for part in split_path(path):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


@dataclass(frozen=True)
class AuthorizationContext:
    """Identity and request values of one subscriber.

    Attributes:
        jwt: Verified claims, None for anonymous subscribers
        claims_paths: Claim name -> path of the claim inside `jwt`
        values: Request-scoped values referenced by `$context.` placeholders
    """

    jwt: Optional[Mapping[str, Any]] = None
    claims_paths: Mapping[str, str] = field(default_factory=dict)
    values: Mapping[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return self.jwt is not None

    def claim(self, name: str) -> Any:
        """Resolve a claim by name, UNDEFINED if it is not present."""
        return get_path(self.jwt, self.claims_paths.get(name, name))

    def context_value(self, path: str, default: Any = UNDEFINED) -> Any:
        return get_path(self.values, path, default)

    def claims_view(self) -> ClaimsView:
        return ClaimsView(self)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jwt": self.jwt,
            "claimsPaths": dict(self.claims_paths),
            "context": dict(self.values),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> AuthorizationContext:
        return cls(
            jwt=data.get("jwt"),
            claims_paths=data.get("claimsPaths") or {},
            values=data.get("context") or {},
        )


class ClaimsView(MappingABC):
    """Read-only mapping over claims, keyed by claim name.

    Lookups go through the remap table and dotted paths, so a `jwt` filter
    can be evaluated like any other property filter.

    Iteration yields remapped claim names first, then top-level jwt keys,
    keeping only names a lookup would resolve.
    """

    def __init__(self, context: AuthorizationContext) -> None:
        self._context = context

    def __getitem__(self, name: str) -> Any:
        value = self._context.claim(name)
        if value is UNDEFINED:
            raise KeyError(name)
        return value

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self._context.claim(name) is not UNDEFINED

    def __iter__(self) -> Iterator[str]:
        seen = set()
        for name in (*self._context.claims_paths, *(self._context.jwt or {})):
            if name not in seen and name in self:
                seen.add(name)
                yield name

    def __len__(self) -> int:
        return sum(1 for _ in self)
