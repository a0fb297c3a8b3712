"""
Unit tests for the property filter evaluator.

Tests cover:
- Implicit AND between sibling keys
- AND/OR/NOT composition laws
- Empty combinators
- Missing properties never matching
- Attribute aliases (db_name)
- Node events reading old state for update/delete
"""

import pytest

from dbaas.graphsub.errors import MisconfigurationError
from dbaas.graphsub.filters.evaluator import FilterScope, evaluate_where
from dbaas.graphsub.filters.keys import OPERATORS
from dbaas.graphsub.filters.properties import filter_by_properties, filter_node_event

PROPERTIES = {"title": "The Matrix", "views": 120, "tags": ["sci-fi"]}

EXPRESSIONS = [
    {"title": "The Matrix"},
    {"title": "Alien"},
    {"views_GT": 100},
    {"views_LT": 100},
    {"tags_INCLUDES": "drama"},
    {"OR": [{"title": "Alien"}, {"views_GTE": 120}]},
]


class TestEvaluateWhere:
    """Tests for where-expression evaluation."""

    def test_sibling_keys_are_conjunctive(self):
        """Every key in a mapping must match."""
        assert filter_by_properties({"title": "The Matrix", "views_GT": 100}, PROPERTIES) is True
        assert filter_by_properties({"title": "The Matrix", "views_GT": 200}, PROPERTIES) is False

    @pytest.mark.parametrize("w1", EXPRESSIONS)
    @pytest.mark.parametrize("w2", EXPRESSIONS)
    def test_and_or_laws(self, w1, w2):
        """AND/OR of two expressions equal the boolean and/or of their results."""
        r1 = filter_by_properties(w1, PROPERTIES)
        r2 = filter_by_properties(w2, PROPERTIES)
        assert filter_by_properties({"AND": [w1, w2]}, PROPERTIES) == (r1 and r2)
        assert filter_by_properties({"OR": [w1, w2]}, PROPERTIES) == (r1 or r2)

    @pytest.mark.parametrize("w", EXPRESSIONS)
    def test_not_law(self, w):
        """NOT negates its child."""
        assert filter_by_properties({"NOT": w}, PROPERTIES) == (not filter_by_properties(w, PROPERTIES))

    @pytest.mark.parametrize("properties", [{}, PROPERTIES])
    def test_empty_combinators(self, properties):
        """AND of nothing is true, OR of nothing is false, for any bag."""
        assert filter_by_properties({"AND": []}, properties) is True
        assert filter_by_properties({"OR": []}, properties) is False

    def test_nested_combinators(self):
        """Combinators nest at any depth."""
        where = {
            "OR": [
                {"AND": [{"title_STARTS_WITH": "The"}, {"NOT": {"views_LT": 100}}]},
                {"title": "Alien"},
            ]
        }
        assert filter_by_properties(where, PROPERTIES) is True

    @pytest.mark.parametrize("operator", [None, *OPERATORS])
    def test_missing_property_never_matches(self, operator):
        """A field absent from the bag fails every operator, negations included."""
        key = "rating" if operator is None else f"rating_{operator}"
        operand = ["x"] if operator and operator.endswith("IN") else "x"
        assert filter_by_properties({key: operand}, {}) is False
        assert filter_by_properties({key: operand}, PROPERTIES) is False

    def test_alias_reads_db_name(self, movie):
        """A where key names the attribute; the value comes from its db_name."""
        assert filter_by_properties({"released": 1999}, {"year": 1999}, movie.attribute_map) is True
        assert filter_by_properties({"released": 1999}, {"released": 1999}, movie.attribute_map) is False

    def test_non_mapping_raises(self):
        """A malformed expression is a misconfiguration."""
        with pytest.raises(MisconfigurationError):
            evaluate_where(["title"], FilterScope())
        with pytest.raises(MisconfigurationError):
            filter_by_properties({"AND": ["title"]}, PROPERTIES)

    def test_invalid_key_raises(self):
        """An unparseable key is a misconfiguration."""
        with pytest.raises(MisconfigurationError):
            filter_by_properties({"9lives": 1}, PROPERTIES)

    def test_branch_handler(self):
        """Branch keys hand their value to a nested scope."""
        nested = FilterScope(properties={"name": "Keanu"})
        scope = FilterScope(branches={"node": lambda w: evaluate_where(w, nested)})
        assert evaluate_where({"node": {"name": "Keanu"}}, scope) is True
        assert evaluate_where({"OR": [{"node": {"name": "Tom"}}]}, scope) is False


class TestFilterNodeEvent:
    """Tests for node event filtering."""

    def test_update_reads_old_state(self, node_event, movie):
        """An update is filtered against the state before the change."""
        event = node_event("update", old={"title": "A"}, new={"title": "B"})
        assert filter_node_event({"title": "B"}, event, movie) is False
        assert filter_node_event({"title": "A"}, event, movie) is True

    def test_create_reads_new_state(self, node_event, movie):
        """A create is filtered against the new node."""
        event = node_event("create", new={"title": "B"})
        assert filter_node_event({"title": "B"}, event, movie) is True

    def test_delete_reads_old_state(self, node_event, movie):
        """A delete is filtered against the deleted node."""
        event = node_event("delete", old={"title": "A"})
        assert filter_node_event({"title": "A"}, event, movie) is True

    def test_no_where_matches(self, node_event, movie):
        """A subscriber without a filter gets every event."""
        event = node_event("update", old={"title": "A"}, new={"title": "B"})
        assert filter_node_event(None, event, movie) is True
        assert filter_node_event({}, event, movie) is True

    def test_integer_fidelity_through_schema(self, node_event, movie):
        """An id above 2**53 matches its exact literal through the attribute type."""
        event = node_event("create", new={"id": 9007199254740993})
        assert filter_node_event({"id": "9007199254740993"}, event, movie) is True
        assert filter_node_event({"id": "9007199254740992"}, event, movie) is False
