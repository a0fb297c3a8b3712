"""
Command-line entry point for graphsub.

Commands:
- validate: Check a schema file for consistency
- check-where: Validate a subscriber where-expression against an entity
- evaluate: Decide delivery of one event to one subscriber

Usage:
    graphsub validate --schema schema.yaml
    graphsub check-where --schema schema.yaml --entity Movie --where where.json
    graphsub evaluate --schema schema.yaml --event event.json \\
        --where where.json --context context.json

Exit codes:
    0: valid / deliver
    1: invalid / filtered
    2: forbidden, unauthenticated or misconfigured

Invariants:
    - Results go to stdout, logs to stderr
    - Exit codes are stable for scripting

How to change safely:
    - Add new commands, don't modify existing ones
    - Keep output lines stable for CI parsing
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import json_log_formatter
import yaml

from ._version import __version__
from .auth.context import AuthorizationContext
from .config import SubscriptionsConfig
from .delivery import SubscriptionFilter
from .errors import ForbiddenError, MisconfigurationError
from .events import ChangeEvent, EventKind
from .filters.validate import validate_subscriber_where
from .schema.loader import load_schema
from .schema.registry import SchemaModel
from .schema.types import AuthorizationRule

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_REJECTED = 1
EXIT_ERROR = 2


def setup_logging(config: SubscriptionsConfig) -> None:
    """Configure logging based on configuration.

    Args:
        config: graphsub configuration
    """
    level = getattr(logging, config.observability.log_level.upper(), logging.INFO)

    if config.observability.log_format == "json":
        formatter = json_log_formatter.JSONFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    handler = logging.StreamHandler()
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers = [handler]


def load_document(path: str | Path) -> Any:
    """Load a JSON or YAML document (JSON for .json files, YAML otherwise)."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    return yaml.safe_load(text)


class SubscriptionCLI:
    """CLI tool for subscription filters.

    Example:
        >>> cli = SubscriptionCLI()
        >>> cli.validate(schema)
        []
        >>> cli.evaluate(schema, event, where={"title": "A"})
        ('deliver', 0)
    """

    def __init__(self, config: Optional[SubscriptionsConfig] = None) -> None:
        self.config = config or SubscriptionsConfig()

    def validate(self, schema: SchemaModel) -> list[str]:
        """Validate schema for internal consistency.

        Returns:
            List of validation errors
        """
        return schema.validate_all()

    def check_where(
        self,
        schema: SchemaModel,
        entity_name: str,
        where: Any,
        kind: EventKind,
    ) -> list[str]:
        """Validate a subscriber where-expression.

        Returns:
            List of validation errors
        """
        entity = schema.get_entity(entity_name)
        if entity is None:
            return [f"Unknown entity '{entity_name}'"]
        return validate_subscriber_where(where, entity, schema, kind)

    def evaluate(
        self,
        schema: SchemaModel,
        event: ChangeEvent,
        where: Optional[dict[str, Any]] = None,
        context: Optional[AuthorizationContext] = None,
        selection: Optional[dict[str, Any]] = None,
        entity_name: Optional[str] = None,
        rules: Optional[list[AuthorizationRule]] = None,
    ) -> tuple[str, int]:
        """Run the delivery decision for one event.

        Returns:
            Tuple of (outcome line, exit code)
        """
        subscription_filter = SubscriptionFilter(
            schema,
            suppress_unchanged_updates=self.config.dispatch.suppress_unchanged_updates,
        )
        try:
            allowed = subscription_filter.should_deliver(
                event,
                rules,
                where,
                context,
                selection,
                entity_name=entity_name,
            )
        except ForbiddenError as e:
            return f"forbidden: {e.code}: {e.message}", EXIT_ERROR
        except MisconfigurationError as e:
            return f"misconfigured: {e.message}", EXIT_ERROR

        if allowed:
            return "deliver", EXIT_OK
        return "filtered", EXIT_REJECTED


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="graphsub",
        description="Change-data subscription filters for graph databases",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_schema_argument(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--schema", "-s", help="Schema file (default: $SCHEMA_PATH)")

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate schema for consistency")
    add_schema_argument(validate_parser)

    # check-where command
    check_parser = subparsers.add_parser("check-where", help="Validate a where-expression")
    add_schema_argument(check_parser)
    check_parser.add_argument("--entity", "-e", required=True, help="Entity name")
    check_parser.add_argument("--where", "-w", required=True, help="Where-expression file")
    check_parser.add_argument(
        "--kind", default="update", help="Event kind the where-expression targets"
    )

    # evaluate command
    evaluate_parser = subparsers.add_parser("evaluate", help="Decide delivery of one event")
    add_schema_argument(evaluate_parser)
    evaluate_parser.add_argument("--event", required=True, help="Change event file")
    evaluate_parser.add_argument("--where", "-w", help="Subscriber where-expression file")
    evaluate_parser.add_argument("--context", "-c", help="Authorization context file")
    evaluate_parser.add_argument("--selection", help="Requested selection file")
    evaluate_parser.add_argument("--entity", "-e", help="Subscribed entity (default: event type)")
    evaluate_parser.add_argument("--rules", help="Authorization rules file (default: entity rules)")

    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """CLI entry point."""
    args = _build_parser().parse_args(argv)

    try:
        config = SubscriptionsConfig.from_env()
    except ValueError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    setup_logging(config)
    cli = SubscriptionCLI(config)

    schema_path = args.schema or config.schema.path
    if not schema_path:
        print("No schema given: use --schema or set SCHEMA_PATH", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    try:
        schema = load_schema(schema_path)
    except (OSError, ValueError, yaml.YAMLError, MisconfigurationError) as e:
        print(f"Cannot load schema {schema_path}: {e}", file=sys.stderr)
        sys.exit(EXIT_ERROR)

    if args.command == "validate":
        errors = cli.validate(schema)
        if errors:
            print(f"Schema validation FAILED with {len(errors)} error(s):")
            for error in errors:
                print(f"  - {error}")
            sys.exit(EXIT_REJECTED)
        print(f"Schema is valid ({schema.fingerprint})")
        sys.exit(EXIT_OK)

    elif args.command == "check-where":
        try:
            kind = EventKind.from_str(args.kind)
        except ValueError as e:
            print(str(e), file=sys.stderr)
            sys.exit(EXIT_ERROR)

        errors = cli.check_where(schema, args.entity, load_document(args.where), kind)
        if errors:
            print(f"Where-expression is invalid ({len(errors)} error(s)):")
            for error in errors:
                print(f"  - {error}")
            sys.exit(EXIT_REJECTED)
        print("Where-expression is valid")
        sys.exit(EXIT_OK)

    elif args.command == "evaluate":
        try:
            event = ChangeEvent.from_dict(load_document(args.event))
        except ValueError as e:
            print(f"Invalid event: {e}", file=sys.stderr)
            sys.exit(EXIT_ERROR)

        context = (
            AuthorizationContext.from_dict(load_document(args.context)) if args.context else None
        )
        rules = (
            [AuthorizationRule.from_dict(r) for r in load_document(args.rules)]
            if args.rules
            else None
        )
        outcome, code = cli.evaluate(
            schema,
            event,
            where=load_document(args.where) if args.where else None,
            context=context,
            selection=load_document(args.selection) if args.selection else None,
            entity_name=args.entity,
            rules=rules,
        )
        print(outcome)
        sys.exit(code)


if __name__ == "__main__":
    main()
