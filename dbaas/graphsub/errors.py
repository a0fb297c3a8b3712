"""
Error types for graphsub.

This module defines the exceptions raised while deciding whether a change
event may be delivered to a subscriber:
- SubscriptionError: Base exception
- ForbiddenError: The subscriber is not allowed to receive the event
- UnauthenticatedError: An authenticated identity was required and is missing
- MisconfigurationError: The schema model or a filter cannot be evaluated
- SubscriptionClosedError: The dispatch hub closed a lagging subscription

A subscriber whose filter does not match is NOT an error: filters return
False. Only "not allowed" and "cannot evaluate" are raised, so callers can
tell "not interested" apart from "not allowed".

Invariants:
    - All errors inherit from SubscriptionError
    - Errors include context for debugging
    - Error messages never include claim values
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class SubscriptionError(Exception):
    """Base exception for all graphsub errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "SUBSCRIPTION_ERROR"
        self.details = details or {}


class ForbiddenError(SubscriptionError):
    """Delivery of an event is not allowed.

    Raised when:
    - An authentication annotation's jwt condition is not met by the claims
    - Authorization rules reject an anonymous subscriber that had to sign in
    """

    def __init__(
        self,
        message: str,
        entity: Optional[str] = None,
        field_name: Optional[str] = None,
        code: str = "FORBIDDEN",
    ) -> None:
        super().__init__(
            message,
            code=code,
            details={"entity": entity, "field": field_name},
        )
        self.entity = entity
        self.field_name = field_name


class UnauthenticatedError(ForbiddenError):
    """An authenticated identity is required but none is present."""

    def __init__(
        self,
        message: str = "Unauthenticated",
        entity: Optional[str] = None,
        field_name: Optional[str] = None,
    ) -> None:
        super().__init__(message, entity=entity, field_name=field_name, code="UNAUTHENTICATED")


class MisconfigurationError(SubscriptionError):
    """A filter or the schema model cannot be evaluated.

    Raised when:
    - A relationship type cannot be resolved, or resolves more than once
    - A jwt branch is reached without a verified identity
    - The schema model is used before it has been frozen
    - A combinator has a malformed operand
    """

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message, code="MISCONFIGURATION", details=details)


class SubscriptionClosedError(SubscriptionError):
    """A subscription was closed by the dispatch hub.

    Raised to the consumer of a subscription whose queue overflowed.
    """

    def __init__(self, message: str, subscription_id: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="SUBSCRIPTION_CLOSED",
            details={"subscription_id": subscription_id},
        )
        self.subscription_id = subscription_id
