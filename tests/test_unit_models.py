"""
Unit tests for the rule tree model.

Tests cover:
- Node construction and defaults
- Connector resolution between siblings
- Serialization round-trip and the camelCase wire format
- Legacy tree upgrade
- Read-only queries (find, path, depth, counts)
"""

import json
from datetime import date, datetime

import pytest
from pydantic import ValidationError as PydanticValidationError

from rule_builder.core.errors import ValidationError
from rule_builder.domain.enums import Combinator, NodeKind
from rule_builder.domain.models import (
    Condition,
    Group,
    count_conditions,
    count_groups,
    create_condition,
    create_group,
    effective_connector,
    find_node,
    find_parent_group,
    flatten_conditions,
    is_empty_tree,
    max_depth,
    parse_tree,
    path_to,
    serialize_tree,
    tree_to_json,
    upgrade_legacy_tree,
    used_fields,
)


class TestNodeConstruction:
    """Tests for node defaults and factories."""

    @pytest.mark.anyio
    async def test_group_defaults(self):
        """A new group is an empty, non-negated AND group."""
        group = Group()
        assert group.default_combinator == Combinator.AND
        assert group.children == ()
        assert group.negate is False
        assert group.edge_combinator is None

    @pytest.mark.anyio
    async def test_factories_generate_unique_ids(self):
        """Factories never reuse ids."""
        ids = {create_condition("age").id for _ in range(20)}
        ids |= {create_group().id for _ in range(20)}
        assert len(ids) == 40

    @pytest.mark.anyio
    async def test_nodes_are_frozen(self):
        """Nodes cannot be mutated in place."""
        condition = Condition(id="c1", field_name="age")
        with pytest.raises(PydanticValidationError):
            condition.value = 5  # type: ignore[misc]


class TestEffectiveConnector:
    """Tests for connector resolution between siblings."""

    @pytest.mark.anyio
    async def test_left_sibling_edge_combinator_wins(self):
        """OR group whose left child says AND joins with AND."""
        group = Group(
            default_combinator=Combinator.OR,
            children=(
                Condition(id="a", edge_combinator=Combinator.AND),
                Condition(id="b"),
                Condition(id="c"),
            ),
        )
        assert effective_connector(group, 0) == Combinator.AND
        assert effective_connector(group, 1) == Combinator.OR

    @pytest.mark.anyio
    async def test_falls_back_to_group_default(self):
        group = Group(children=(Condition(id="a"), Condition(id="b")))
        assert effective_connector(group, 0) == Combinator.AND


class TestSerialization:
    """Tests for the serialized tree format."""

    @pytest.mark.anyio
    async def test_round_trip_preserves_tree(self, nested_tree):
        """serialize then parse yields an equal tree."""
        assert parse_tree(serialize_tree(nested_tree)) == nested_tree

    @pytest.mark.anyio
    async def test_round_trip_through_json_string(self, nested_tree):
        assert parse_tree(tree_to_json(nested_tree)) == nested_tree

    @pytest.mark.anyio
    async def test_tuple_and_date_values_are_stored_as_json(self):
        """Range tuples become lists and dates ISO strings, so round-trip holds."""
        tree = Group(
            id="root",
            children=(
                Condition(id="c1", field_name="age", operator="between", value=(1, 5)),
                Condition(id="c2", field_name="signup", operator="after", value=date(2024, 1, 2)),
                Condition(
                    id="c3",
                    field_name="seen",
                    operator="before",
                    value=datetime(2024, 1, 2, 8, 30),
                ),
            ),
        )

        assert tree.children[0].value == [1, 5]
        assert tree.children[1].value == "2024-01-02"
        assert tree.children[2].value == "2024-01-02T08:30:00"
        assert parse_tree(serialize_tree(tree)) == tree
        assert parse_tree(tree_to_json(tree)) == tree

    @pytest.mark.anyio
    @pytest.mark.parametrize("value", [object(), {1, 2}, float("inf"), float("nan"), {1: "x"}])
    async def test_non_json_values_rejected(self, value):
        with pytest.raises(PydanticValidationError, match="value must be"):
            Condition(id="c1", field_name="age", value=value)

    @pytest.mark.anyio
    async def test_wire_format_uses_camel_case(self, sample_tree):
        """Keys are camelCase and unset optional keys are omitted."""
        data = serialize_tree(sample_tree)
        assert data["kind"] == "group"
        assert data["defaultCombinator"] == "AND"
        first = data["children"][0]
        assert first == {
            "kind": "condition",
            "id": "c-age",
            "fieldName": "age",
            "operator": ">",
            "value": 18,
        }

    @pytest.mark.anyio
    async def test_parse_rejects_condition_root(self):
        with pytest.raises(ValidationError, match="must be a group"):
            parse_tree({"kind": "condition", "id": "c1", "fieldName": "age"})

    @pytest.mark.anyio
    async def test_parse_rejects_invalid_json(self):
        with pytest.raises(ValidationError, match="not valid JSON"):
            parse_tree("{not json")

    @pytest.mark.anyio
    async def test_parse_rejects_unknown_combinator(self):
        data = {"kind": "group", "id": "g", "defaultCombinator": "XOR", "children": []}
        with pytest.raises(ValidationError, match="Malformed"):
            parse_tree(data)

    @pytest.mark.anyio
    async def test_lower_case_combinator_accepted(self):
        tree = parse_tree({"kind": "group", "id": "g", "defaultCombinator": "or"})
        assert tree.default_combinator == Combinator.OR


class TestLegacyUpgrade:
    """Tests for upgrading untagged legacy trees."""

    @pytest.mark.anyio
    async def test_upgrades_groups_and_conditions(self):
        legacy = {
            "id": "root",
            "combinator": "OR",
            "not": True,
            "rules": [
                {"id": "r1", "field": "age", "operator": ">", "value": 3, "combinator": "AND"},
                {"id": "g1", "combinator": "AND", "rules": []},
            ],
        }
        upgraded = upgrade_legacy_tree(legacy)
        assert upgraded["kind"] == NodeKind.GROUP
        assert upgraded["children"][0]["kind"] == NodeKind.CONDITION
        tree = parse_tree(upgraded)

        assert tree.default_combinator == Combinator.OR
        assert tree.negate is True
        first, second = tree.children
        assert isinstance(first, Condition)
        assert first.field_name == "age"
        assert first.edge_combinator == Combinator.AND
        assert isinstance(second, Group)

    @pytest.mark.anyio
    async def test_tagged_data_passes_through(self, sample_tree):
        data = serialize_tree(sample_tree)
        assert upgrade_legacy_tree(data) is data

    @pytest.mark.anyio
    async def test_unrecognized_node_raises(self):
        with pytest.raises(ValidationError):
            upgrade_legacy_tree({"id": "x"})


class TestQueries:
    """Tests for read-only tree queries."""

    @pytest.mark.anyio
    async def test_find_node_and_parent(self, nested_tree):
        assert find_node(nested_tree, "c-country").value == "us"
        assert find_parent_group(nested_tree, "c-country").id == "g-inner"
        assert find_parent_group(nested_tree, "root") is None
        assert find_node(nested_tree, "missing") is None

    @pytest.mark.anyio
    async def test_path_to(self, nested_tree):
        assert path_to(nested_tree, "c-name") == ["root", "g-inner", "c-name"]
        assert path_to(nested_tree, "root") == ["root"]
        assert path_to(nested_tree, "missing") is None

    @pytest.mark.anyio
    async def test_counts(self, nested_tree):
        assert count_conditions(nested_tree) == 4
        assert count_groups(nested_tree) == 2
        assert [c.id for c in flatten_conditions(nested_tree)] == [
            "c-age",
            "c-name",
            "c-country",
            "c-status",
        ]

    @pytest.mark.anyio
    async def test_max_depth(self, nested_tree, sample_tree):
        assert max_depth(Group()) == 0
        assert max_depth(sample_tree) == 1
        assert max_depth(nested_tree) == 2

    @pytest.mark.anyio
    async def test_used_fields_in_first_use_order(self, nested_tree):
        assert used_fields(nested_tree) == ["age", "name", "country", "status"]

    @pytest.mark.anyio
    async def test_is_empty_tree(self):
        assert is_empty_tree(Group(children=(Group(), Group())))
        assert not is_empty_tree(Group(children=(Condition(field_name="age"),)))


def test_tree_to_json_is_valid_json(sample_tree):
    """Module-level sanity check on JSON output."""
    assert json.loads(tree_to_json(sample_tree, indent=2))["id"] == "root"
