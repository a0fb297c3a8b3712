"""
Shared fixtures for graphsub unit tests.

The schema used throughout:

    Movie      title, id, views (bigint), rating (float), tags (list), released (db: year)
      actors     <-ACTED_IN-  Actor           (edge: ActedIn)
      directors  <-DIRECTED-  Director union  [Actor, Person]
      reviewers  <-REVIEWED-  Reviewer        (interface, edge: Review)
    Actor      name, age;  movies -ACTED_IN-> Movie
    Person     name, reputation, email (authenticated);  implements Reviewer
    Influencer name, reputation, url;  implements Reviewer
    Writer     name
"""

import pytest

from dbaas.graphsub.events import EventKind, NodeEvent, RelationshipEvent
from dbaas.graphsub.schema.registry import SchemaModel
from dbaas.graphsub.schema.types import (
    AuthenticationAnnotation,
    Direction,
    EdgePropertiesDef,
    EntityDef,
    InterfaceDef,
    RelationshipDef,
    UnionDef,
    attribute,
)


def build_schema() -> SchemaModel:
    schema = SchemaModel()

    schema.register_edge_properties(
        EdgePropertiesDef(
            name="ActedIn",
            attributes=(attribute("screenTime", "int"), attribute("role", "str")),
        )
    )
    schema.register_edge_properties(
        EdgePropertiesDef(name="Review", attributes=(attribute("score", "float"),))
    )
    schema.register_interface(
        InterfaceDef(name="Reviewer", attributes=(attribute("reputation", "int"),))
    )
    schema.register_union(UnionDef(name="Director", members=("Actor", "Person")))

    schema.register_entity(
        EntityDef(
            name="Movie",
            attributes=(
                attribute("title", "str"),
                attribute("id", "id"),
                attribute("views", "bigint"),
                attribute("rating", "float"),
                attribute("tags", "str", is_list=True),
                attribute("released", "int", db_name="year"),
            ),
            relationships=(
                RelationshipDef("actors", "ACTED_IN", Direction.IN, "Actor", properties="ActedIn"),
                RelationshipDef("directors", "DIRECTED", Direction.IN, "Director"),
                RelationshipDef("reviewers", "REVIEWED", Direction.IN, "Reviewer", properties="Review"),
            ),
        )
    )
    schema.register_entity(
        EntityDef(
            name="Actor",
            attributes=(attribute("name", "str"), attribute("age", "int")),
            relationships=(
                RelationshipDef("movies", "ACTED_IN", Direction.OUT, "Movie", properties="ActedIn"),
            ),
        )
    )
    schema.register_entity(
        EntityDef(
            name="Person",
            attributes=(
                attribute("name", "str"),
                attribute("reputation", "int"),
                attribute("email", "str", authentication=AuthenticationAnnotation()),
            ),
            implements=("Reviewer",),
        )
    )
    schema.register_entity(
        EntityDef(
            name="Influencer",
            attributes=(
                attribute("name", "str"),
                attribute("reputation", "int"),
                attribute("url", "str"),
            ),
            implements=("Reviewer",),
        )
    )
    schema.register_entity(EntityDef(name="Writer", attributes=(attribute("name", "str"),)))

    schema.set_jwt_claims((attribute("sub", "str"), attribute("roles", "str", is_list=True)))
    return schema


@pytest.fixture
def schema():
    """Frozen movie schema."""
    model = build_schema()
    model.freeze()
    return model


@pytest.fixture
def unfrozen_schema():
    """Movie schema before freeze."""
    return build_schema()


@pytest.fixture
def movie(schema):
    return schema.get_entity("Movie")


@pytest.fixture
def node_event():
    """Factory for node events."""

    def make(kind="update", old=None, new=None, type_name="Movie", event_id="evt-1"):
        return NodeEvent(
            id=event_id,
            kind=EventKind.from_str(kind),
            type_name=type_name,
            timestamp_ms=1730000000000,
            old=old,
            new=new,
        )

    return make


@pytest.fixture
def relationship_event():
    """Factory for relationship events."""

    def make(
        relationship_name="ACTED_IN",
        from_type="Actor",
        to_type="Movie",
        from_properties=None,
        to_properties=None,
        relationship_properties=None,
        kind="create_relationship",
        event_id="evt-rel-1",
    ):
        return RelationshipEvent(
            id=event_id,
            kind=EventKind.from_str(kind),
            type_name=from_type,
            timestamp_ms=1730000000000,
            relationship_name=relationship_name,
            from_type_name=from_type,
            to_type_name=to_type,
            from_properties=from_properties or {},
            to_properties=to_properties or {},
            relationship_properties=relationship_properties or {},
        )

    return make
