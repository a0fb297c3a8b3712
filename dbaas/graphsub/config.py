"""
Configuration management for graphsub.

All configuration is done via environment variables.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Claims and request values are never part of configuration or its logs

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Keep the error policy names stable; operators set them in deployments
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)

LOG_FORMATS = ("json", "text")


class ErrorPolicy(Enum):
    """What the dispatch hub does when evaluation raises for a subscriber."""

    DROP_SUBSCRIBER = "drop_subscriber"
    FAIL_DISPATCH = "fail_dispatch"


@dataclass(frozen=True)
class DispatchConfig:
    """Subscription dispatch configuration.

    Attributes:
        queue_size: Maximum undelivered events buffered per subscription
        error_policy: Handling of Forbidden/Misconfiguration errors
        suppress_unchanged_updates: Drop update events that changed nothing
    """

    queue_size: int = 1000
    error_policy: ErrorPolicy = ErrorPolicy.DROP_SUBSCRIBER
    suppress_unchanged_updates: bool = True

    @classmethod
    def from_env(cls) -> DispatchConfig:
        """Load configuration from environment variables."""
        policy_str = os.getenv("SUBSCRIPTION_ERROR_POLICY", "drop_subscriber").lower()
        try:
            error_policy = ErrorPolicy(policy_str)
        except ValueError:
            valid = ", ".join(p.value for p in ErrorPolicy)
            raise ValueError(
                f"Invalid SUBSCRIPTION_ERROR_POLICY '{policy_str}'. Must be one of: {valid}"
            )

        return cls(
            queue_size=int(os.getenv("SUBSCRIPTION_QUEUE_SIZE", "1000")),
            error_policy=error_policy,
            suppress_unchanged_updates=os.getenv(
                "SUBSCRIPTION_SUPPRESS_UNCHANGED_UPDATES", "true"
            ).lower() == "true",
        )


@dataclass(frozen=True)
class SchemaConfig:
    """Schema model source.

    Attributes:
        path: YAML or JSON schema file, None when the model is built in code
    """

    path: Optional[str] = None

    @classmethod
    def from_env(cls) -> SchemaConfig:
        """Load configuration from environment variables."""
        return cls(path=os.getenv("SCHEMA_PATH") or None)


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class SubscriptionsConfig:
    """Complete graphsub configuration.

    Attributes:
        dispatch: Dispatch hub configuration
        schema: Schema model source
        observability: Logging configuration
    """

    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    schema: SchemaConfig = field(default_factory=SchemaConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> SubscriptionsConfig:
        """Load complete configuration from environment variables.

        Raises:
            ValueError: If configuration is invalid.
        """
        config = cls(
            dispatch=DispatchConfig.from_env(),
            schema=SchemaConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.dispatch.queue_size <= 0:
            raise ValueError(
                f"SUBSCRIPTION_QUEUE_SIZE must be positive, got {self.dispatch.queue_size}"
            )
        if self.observability.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid LOG_FORMAT '{self.observability.log_format}'. "
                f"Must be one of: {', '.join(LOG_FORMATS)}"
            )
        if self.schema.path and not os.path.exists(self.schema.path):
            logger.warning(f"Schema file does not exist: {self.schema.path}")

    def log_config(self) -> None:
        """Log configuration."""
        logger.info(
            "Subscription configuration loaded",
            extra={
                "queue_size": self.dispatch.queue_size,
                "error_policy": self.dispatch.error_policy.value,
                "suppress_unchanged_updates": self.dispatch.suppress_unchanged_updates,
                "schema_path": self.schema.path,
                "log_level": self.observability.log_level,
            },
        )
