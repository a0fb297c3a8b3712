"""
YAML/JSON schema files for graphsub.

Example schema:
    edge_properties:
      - name: ActedIn
        attributes:
          - {name: screenTime, kind: int}

    entities:
      - name: Movie
        attributes:
          - {name: title, kind: str}
        relationships:
          - field_name: actors
            type: ACTED_IN
            direction: IN
            target: Actor
            properties: ActedIn
        authorization:
          - events: [CREATED, UPDATED]
            requireAuthentication: true
            where: {node: {title_NOT: "$jwt.blocked"}}
      - name: Actor
        attributes:
          - {name: name, kind: str}

    jwt_claims:
      - {name: roles, kind: str, list: true}
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml

from .registry import SchemaModel

logger = logging.getLogger(__name__)


def parse_schema(data: dict[str, Any], freeze: bool = True) -> SchemaModel:
    """Build a schema model from a parsed document, frozen by default."""
    schema = SchemaModel.from_dict(data)
    if freeze:
        schema.freeze()
    return schema


def parse_yaml(yaml_str: str, freeze: bool = True) -> SchemaModel:
    """Parse a schema model from a YAML string."""
    data = yaml.safe_load(yaml_str)
    return parse_schema(data or {}, freeze=freeze)


def parse_json(json_str: str, freeze: bool = True) -> SchemaModel:
    """Parse a schema model from a JSON string."""
    data = json.loads(json_str)
    return parse_schema(data or {}, freeze=freeze)


def load_schema(path: str | Path, freeze: bool = True) -> SchemaModel:
    """Load a schema model from a .yaml/.yml or .json file.

    Args:
        path: Schema file path
        freeze: Whether to freeze the model after loading

    Returns:
        SchemaModel

    Raises:
        ValueError: If the file extension is not supported
    """
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()

    if suffix in (".yaml", ".yml"):
        schema = parse_yaml(text, freeze=freeze)
    elif suffix == ".json":
        schema = parse_json(text, freeze=freeze)
    else:
        raise ValueError(f"Unsupported schema file type '{suffix}' (expected .yaml, .yml or .json)")

    logger.info(f"Loaded schema from {path}", extra={"fingerprint": schema.fingerprint})
    return schema
