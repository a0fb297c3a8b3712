"""
Unit tests for the schema model.

Tests cover:
- Type definitions and their validation
- Registration, freeze and target-shape resolution
- Fingerprint determinism
- Dictionary round trip and the YAML/JSON loader
- validate_all consistency checks
"""

import json

import pytest

from dbaas.graphsub.errors import MisconfigurationError
from dbaas.graphsub.schema.loader import load_schema, parse_yaml
from dbaas.graphsub.schema.registry import (
    DuplicateRegistrationError,
    RegistryFrozenError,
    SchemaModel,
    freeze_schema,
    get_schema,
    reset_schema,
)
from dbaas.graphsub.schema.types import (
    AttributeKind,
    AuthenticationAnnotation,
    Direction,
    EntityDef,
    RelationshipDef,
    TargetShape,
    UnionDef,
    attribute,
)

SCHEMA_YAML = """
edge_properties:
  - name: ActedIn
    attributes:
      - {name: screenTime, kind: int}

entities:
  - name: Movie
    attributes:
      - {name: title, kind: str}
      - {name: released, kind: int, db_name: year}
    relationships:
      - field_name: actors
        type: ACTED_IN
        direction: IN
        target: Actor
        properties: ActedIn
    authorization:
      - events: [CREATED, updated]
        requireAuthentication: false
        where: {node: {title_NOT: "$jwt.blocked"}}
  - name: Actor
    attributes:
      - {name: name, kind: str}
      - name: email
        kind: str
        authentication: {operations: [subscribe]}

jwt_claims:
  - {name: roles, kind: str, list: true}
"""


class TestTypes:
    """Tests for type definitions."""

    def test_attribute_kind_from_str(self):
        assert AttributeKind.from_str("BigInt") == AttributeKind.BIG_INT
        with pytest.raises(ValueError, match="Invalid attribute kind"):
            AttributeKind.from_str("decimal")

    def test_integer_kinds(self):
        assert AttributeKind.INTEGER.is_integer
        assert AttributeKind.BIG_INT.is_integer
        assert not AttributeKind.FLOAT.is_integer

    def test_property_key(self):
        """db_name overrides the key in event bags."""
        assert attribute("released", "int", db_name="year").property_key == "year"
        assert attribute("title", "str").property_key == "title"

    def test_duplicate_attribute(self):
        with pytest.raises(ValueError, match="Duplicate attribute name"):
            EntityDef(name="Movie", attributes=(attribute("a", "str"), attribute("a", "int")))

    def test_payload_key(self):
        assert EntityDef(name="MovieReview").payload_key == "movieReview"
        assert EntityDef(name="Movie", payload_field="film").payload_key == "film"

    def test_unknown_annotation_operation(self):
        with pytest.raises(ValueError, match="Unknown authentication operations"):
            AuthenticationAnnotation(operations=frozenset({"WRITE"}))

    def test_connected_side(self):
        assert RelationshipDef("a", "R", Direction.IN, "X").connected_side() == "from"
        assert RelationshipDef("a", "R", Direction.OUT, "X").connected_side() == "to"

    def test_empty_union(self):
        with pytest.raises(ValueError, match="at least one member"):
            UnionDef(name="Nothing")


class TestSchemaModel:
    """Tests for registration and freeze."""

    def test_shapes_resolved_at_freeze(self, schema):
        movie = schema.get_entity("Movie")
        assert movie.get_relationship("actors").shape == TargetShape.STANDARD
        assert movie.get_relationship("directors").shape == TargetShape.UNION
        assert movie.get_relationship("directors").member_types == ("Actor", "Person")
        reviewers = movie.get_relationship("reviewers")
        assert reviewers.shape == TargetShape.INTERFACE
        assert reviewers.member_types == ("Influencer", "Person")

    def test_shapes_unresolved_before_freeze(self, unfrozen_schema):
        assert unfrozen_schema.get_entity("Movie").get_relationship("actors").shape is None

    def test_frozen_rejects_registration(self, schema):
        with pytest.raises(RegistryFrozenError):
            schema.register_entity(EntityDef(name="Studio"))
        with pytest.raises(RegistryFrozenError):
            schema.freeze()

    def test_duplicate_names(self, unfrozen_schema):
        """Entity, interface and union names share one namespace."""
        with pytest.raises(DuplicateRegistrationError):
            unfrozen_schema.register_entity(EntityDef(name="Reviewer"))
        with pytest.raises(DuplicateRegistrationError):
            unfrozen_schema.register_union(UnionDef(name="Movie", members=("Actor",)))

    def test_unknown_target_fails_freeze(self):
        schema = SchemaModel()
        schema.register_entity(
            EntityDef(name="Movie", relationships=(RelationshipDef("x", "X", Direction.OUT, "Ghost"),))
        )
        with pytest.raises(MisconfigurationError, match="unknown type 'Ghost'"):
            schema.freeze()

    def test_entity_for_evaluation(self, schema, unfrozen_schema):
        assert schema.entity_for_evaluation("Movie").name == "Movie"
        with pytest.raises(MisconfigurationError, match="Unknown entity"):
            schema.entity_for_evaluation("Studio")
        with pytest.raises(MisconfigurationError, match="frozen"):
            unfrozen_schema.entity_for_evaluation("Movie")

    def test_implementations(self, schema):
        assert schema.implementations("Reviewer") == ["Influencer", "Person"]

    def test_fingerprint_is_deterministic(self, schema):
        other = SchemaModel.from_dict(schema.to_dict())
        assert other.freeze() == schema.fingerprint
        assert schema.fingerprint.startswith("sha256:")

    def test_round_trip(self, schema):
        rebuilt = SchemaModel.from_dict(json.loads(schema.to_json()))
        rebuilt.freeze()
        assert rebuilt.to_dict() == schema.to_dict()
        assert rebuilt.jwt_claims["roles"].is_list


class TestGlobalSchema:
    """Tests for the process-wide schema model."""

    def test_get_and_freeze(self):
        reset_schema()
        try:
            get_schema().register_entity(EntityDef(name="Movie", attributes=(attribute("t", "str"),)))
            fingerprint = freeze_schema()
            assert get_schema().frozen
            assert get_schema().fingerprint == fingerprint
        finally:
            reset_schema()


class TestLoader:
    """Tests for schema files."""

    def test_parse_yaml(self):
        schema = parse_yaml(SCHEMA_YAML)
        assert schema.frozen
        movie = schema.get_entity("Movie")
        assert movie.get_attribute("released").property_key == "year"
        assert movie.get_relationship("actors").shape == TargetShape.STANDARD
        rule = movie.authorization[0]
        assert rule.require_authentication is False
        assert {k.value for k in rule.events} == {"create", "update"}
        email = schema.get_entity("Actor").get_attribute("email")
        assert email.authentication.applies_to("SUBSCRIBE")
        assert not email.authentication.applies_to("READ")

    def test_parse_unfrozen(self):
        assert not parse_yaml(SCHEMA_YAML, freeze=False).frozen

    def test_load_yaml_and_json(self, tmp_path):
        yaml_path = tmp_path / "schema.yaml"
        yaml_path.write_text(SCHEMA_YAML)
        from_yaml = load_schema(yaml_path)

        json_path = tmp_path / "schema.json"
        json_path.write_text(from_yaml.to_json())
        from_json = load_schema(json_path)

        assert from_json.fingerprint == from_yaml.fingerprint

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "schema.toml"
        path.write_text("")
        with pytest.raises(ValueError, match="Unsupported schema file type"):
            load_schema(path)


class TestValidateAll:
    """Tests for validate_all."""

    def test_valid_schema(self, schema):
        assert schema.validate_all() == []

    def test_loaded_rules_are_validated(self):
        schema = parse_yaml(SCHEMA_YAML.replace("title_NOT", "budget_NOT"))
        assert schema.validate_all() == [
            "Movie authorization rule 0: where.node.budget_NOT: unknown field 'budget'"
        ]

    def test_inconsistencies(self):
        schema = SchemaModel()
        schema.register_union(UnionDef(name="Crew", members=("Ghost",)))
        schema.register_entity(
            EntityDef(
                name="Movie",
                relationships=(
                    RelationshipDef("a", "R", Direction.OUT, "Nowhere"),
                    RelationshipDef("b", "R", Direction.OUT, "Movie", properties="Missing"),
                ),
                implements=("Unknown",),
            )
        )
        errors = schema.validate_all()
        assert "Union 'Crew' references unknown entity 'Ghost'" in errors
        assert "Entity 'Movie' implements unknown interface 'Unknown'" in errors
        assert "Relationship 'Movie.a' targets unknown type 'Nowhere'" in errors
        assert "Relationship 'Movie.b' references unknown edge properties 'Missing'" in errors
        assert "Entity 'Movie' declares relationship type 'R' more than once" in errors

    def test_missing_interface_field(self, unfrozen_schema):
        unfrozen_schema.register_entity(
            EntityDef(name="Critic", attributes=(attribute("name", "str"),), implements=("Reviewer",))
        )
        assert unfrozen_schema.validate_all() == [
            "Entity 'Critic' is missing field 'reputation' of interface 'Reviewer'"
        ]
