"""
Unit tests for relationship filters.

Tests cover:
- Relationship sections (absent field filters, empty field passes)
- Edge property filters
- Direction-dependent connected node
- Union dispatch by runtime type
- Interface common fields and _on overrides
- Misconfiguration for unresolvable or ambiguous relationship types
- Misconfiguration for malformed union filters
"""

import pytest

from dbaas.graphsub.errors import MisconfigurationError
from dbaas.graphsub.filters.relationships import RelationshipFilter, orient
from dbaas.graphsub.schema.registry import SchemaModel
from dbaas.graphsub.schema.types import Direction, EntityDef, RelationshipDef, attribute


@pytest.fixture
def rel_filter(schema):
    return RelationshipFilter(schema)


@pytest.fixture
def acted_in(relationship_event):
    return relationship_event(
        "ACTED_IN",
        from_type="Actor",
        to_type="Movie",
        from_properties={"name": "Keanu Reeves", "age": 60},
        to_properties={"title": "The Matrix"},
        relationship_properties={"screenTime": 120, "role": "Neo"},
    )


class TestStandardRelationship:
    """Relationships with a single concrete target."""

    def test_edge_and_node(self, rel_filter, acted_in, movie):
        """Edge and node filters both apply."""
        where = {
            "createdRelationship": {
                "actors": {
                    "edge": {"screenTime_GT": 60},
                    "node": {"name_STARTS_WITH": "Keanu"},
                }
            }
        }
        assert rel_filter.matches(where, acted_in, movie) is True

    def test_node_mismatch(self, rel_filter, acted_in, movie):
        """A failing node filter filters the event."""
        where = {"createdRelationship": {"actors": {"node": {"name": "Tom Hanks"}}}}
        assert rel_filter.matches(where, acted_in, movie) is False

    def test_edge_mismatch(self, rel_filter, acted_in, movie):
        """A failing edge filter filters the event."""
        where = {"createdRelationship": {"actors": {"edge": {"role": "Trinity"}}}}
        assert rel_filter.matches(where, acted_in, movie) is False

    def test_absent_relationship_field_filters(self, rel_filter, acted_in, movie):
        """A section that does not name the event's relationship does not match."""
        where = {"createdRelationship": {"directors": {}}}
        assert rel_filter.matches(where, acted_in, movie) is False

    def test_empty_relationship_field_passes(self, rel_filter, acted_in, movie):
        """Naming the relationship with no constraint matches any change on it."""
        assert rel_filter.matches({"createdRelationship": {"actors": {}}}, acted_in, movie) is True
        assert rel_filter.matches(
            {"createdRelationship": {"reviewers": {}, "actors": {}}}, acted_in, movie
        ) is True

    def test_own_node_filter(self, rel_filter, acted_in, movie):
        """The entity payload key filters the subscribed entity's own node."""
        assert rel_filter.matches({"movie": {"title": "The Matrix"}}, acted_in, movie) is True
        assert rel_filter.matches({"movie": {"title": "Alien"}}, acted_in, movie) is False

    def test_no_where_matches(self, rel_filter, acted_in, movie):
        """A subscriber without a filter gets every relationship event."""
        assert rel_filter.matches(None, acted_in, movie) is True

    def test_combinators_across_sections(self, rel_filter, acted_in, movie):
        """Combinators can mix the entity and relationship sections."""
        where = {
            "OR": [
                {"movie": {"title": "Alien"}},
                {"createdRelationship": {"actors": {"edge": {"screenTime_GTE": 120}}}},
            ]
        }
        assert rel_filter.matches(where, acted_in, movie) is True

    def test_deleted_relationship_section(self, rel_filter, relationship_event, movie):
        """Delete events are filtered through deletedRelationship."""
        event = relationship_event(
            "ACTED_IN",
            from_properties={"name": "Keanu Reeves"},
            to_properties={"title": "The Matrix"},
            kind="delete_relationship",
        )
        where = {"deletedRelationship": {"actors": {"node": {"name_CONTAINS": "Reeves"}}}}
        assert rel_filter.matches(where, event, movie) is True


class TestDirection:
    """The connected node depends on the relationship direction."""

    def test_in_reads_from(self, acted_in, movie):
        """Movie.actors is IN: the actor is the `from` node."""
        oriented = orient(movie, acted_in)
        assert oriented.connected_type == "Actor"
        assert oriented.connected_properties["name"] == "Keanu Reeves"
        assert oriented.own_properties["title"] == "The Matrix"

    def test_out_reads_to(self, rel_filter, acted_in, schema):
        """Actor.movies is OUT: the movie is the `to` node."""
        actor = schema.get_entity("Actor")
        where = {
            "actor": {"name": "Keanu Reeves"},
            "createdRelationship": {"movies": {"node": {"title": "The Matrix"}}},
        }
        assert rel_filter.matches(where, acted_in, actor) is True


class TestUnionRelationship:
    """Relationships to a union dispatch on the connected node's type."""

    WHERE = {
        "createdRelationship": {
            "directors": {
                "Actor": {"node": {"name": "Tom"}},
                "Person": {"node": {"name": "Jerry"}},
            }
        }
    }

    def test_matching_branch(self, rel_filter, relationship_event, movie):
        """An Actor director is checked against the Actor branch."""
        event = relationship_event("DIRECTED", from_type="Actor", from_properties={"name": "Tom"})
        assert rel_filter.matches(self.WHERE, event, movie) is True

    def test_only_own_branch_is_used(self, rel_filter, relationship_event, movie):
        """An Actor named Jerry does not match through the Person branch."""
        event = relationship_event("DIRECTED", from_type="Actor", from_properties={"name": "Jerry"})
        assert rel_filter.matches(self.WHERE, event, movie) is False

    def test_unlisted_type_filtered(self, rel_filter, relationship_event, movie):
        """A runtime type with no branch is filtered out."""
        event = relationship_event("DIRECTED", from_type="Writer", from_properties={"name": "Tom"})
        assert rel_filter.matches(self.WHERE, event, movie) is False

    def test_empty_branch_passes(self, rel_filter, relationship_event, movie):
        """An empty branch accepts any node of that type."""
        event = relationship_event("DIRECTED", from_type="Person", from_properties={"name": "Ann"})
        where = {"createdRelationship": {"directors": {"Person": {}}}}
        assert rel_filter.matches(where, event, movie) is True


class TestInterfaceRelationship:
    """Relationships to an interface support per-implementation overrides."""

    def reviewed(self, relationship_event, type_name, reputation, score=8.5):
        return relationship_event(
            "REVIEWED",
            from_type=type_name,
            from_properties={"name": "Ann", "reputation": reputation},
            relationship_properties={"score": score},
        )

    def test_common_fields(self, rel_filter, relationship_event, movie):
        """Common fields apply to every implementation."""
        event = self.reviewed(relationship_event, "Influencer", 10)
        where = {"createdRelationship": {"reviewers": {"node": {"reputation_LT": 11}}}}
        assert rel_filter.matches(where, event, movie) is True

    def test_override_replaces_common_field(self, rel_filter, relationship_event, movie):
        """_on[type] overrides the common field for that type."""
        event = self.reviewed(relationship_event, "Person", 10)
        where = {
            "createdRelationship": {
                "reviewers": {"node": {"reputation_LT": 10, "_on": {"Person": {"reputation_LT": 11}}}}
            }
        }
        assert rel_filter.matches(where, event, movie) is True

    def test_without_override_common_field_applies(self, rel_filter, relationship_event, movie):
        """Without _on the common field decides."""
        event = self.reviewed(relationship_event, "Person", 10)
        where = {"createdRelationship": {"reviewers": {"node": {"reputation_LT": 10}}}}
        assert rel_filter.matches(where, event, movie) is False

    def test_unlisted_implementation_filtered(self, rel_filter, relationship_event, movie):
        """When _on is given, implementations it does not list are filtered out."""
        event = self.reviewed(relationship_event, "Influencer", 1)
        where = {
            "createdRelationship": {
                "reviewers": {"node": {"reputation_LT": 10, "_on": {"Person": {"reputation_LT": 11}}}}
            }
        }
        assert rel_filter.matches(where, event, movie) is False

    def test_override_on_implementation_field(self, rel_filter, relationship_event, movie):
        """Overrides can filter fields only the implementation has."""
        event = self.reviewed(relationship_event, "Person", 10)
        where = {"createdRelationship": {"reviewers": {"node": {"_on": {"Person": {"name": "Ann"}}}}}}
        assert rel_filter.matches(where, event, movie) is True

    def test_edge_properties(self, rel_filter, relationship_event, movie):
        """Edge properties of an interface relationship."""
        event = self.reviewed(relationship_event, "Person", 10, score=8.5)
        where = {"createdRelationship": {"reviewers": {"edge": {"score_GTE": 8}}}}
        assert rel_filter.matches(where, event, movie) is True


class TestMisconfiguration:
    """Relationship types that cannot be resolved raise."""

    def test_unknown_relationship_type(self, rel_filter, relationship_event, movie):
        """A relationship the entity does not declare is a misconfiguration."""
        event = relationship_event("PRODUCED", from_type="Person")
        with pytest.raises(MisconfigurationError, match="no relationship of type 'PRODUCED'"):
            rel_filter.matches({"createdRelationship": {"actors": {}}}, event, movie)

    def test_unknown_type_raises_without_where(self, rel_filter, relationship_event, movie):
        """Resolution happens even for subscribers without a filter."""
        event = relationship_event("PRODUCED", from_type="Person")
        with pytest.raises(MisconfigurationError):
            rel_filter.matches(None, event, movie)

    @pytest.mark.parametrize(
        "directors_where",
        [5, ["Actor"], {"Actor": 5}, {"Actor": "name"}],
    )
    def test_non_mapping_union_filter(self, rel_filter, relationship_event, movie, directors_where):
        """Union filters and their member filters must be mappings."""
        event = relationship_event("DIRECTED", from_type="Actor")
        with pytest.raises(MisconfigurationError) as exc_info:
            rel_filter.matches({"createdRelationship": {"directors": directors_where}}, event, movie)
        assert exc_info.value.details["field"] == "directors"

    def test_ambiguous_relationship_type(self, relationship_event):
        """Two fields with the same relationship type are a misconfiguration."""
        schema = SchemaModel()
        schema.register_entity(EntityDef(name="Actor", attributes=(attribute("name", "str"),)))
        schema.register_entity(
            EntityDef(
                name="Movie",
                attributes=(attribute("title", "str"),),
                relationships=(
                    RelationshipDef("actors", "ACTED_IN", Direction.IN, "Actor"),
                    RelationshipDef("stars", "ACTED_IN", Direction.IN, "Actor"),
                ),
            )
        )
        schema.freeze()

        event = relationship_event("ACTED_IN")
        with pytest.raises(MisconfigurationError, match="more than once"):
            RelationshipFilter(schema).matches(
                {"createdRelationship": {"actors": {}}}, event, schema.get_entity("Movie")
            )

    def test_unfrozen_schema(self, relationship_event, unfrozen_schema):
        """Relationships without a resolved shape cannot be evaluated."""
        schema = unfrozen_schema
        event = relationship_event("ACTED_IN")
        with pytest.raises(MisconfigurationError, match="frozen"):
            RelationshipFilter(schema).matches(
                {"createdRelationship": {"actors": {}}}, event, schema.get_entity("Movie")
            )
