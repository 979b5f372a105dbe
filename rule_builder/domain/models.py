"""
Rule tree model.

A rule tree is a recursive union of two node kinds, tagged by ``kind``:

- Condition: tests one field with one operator and value
- Group: ordered children joined by connectors, optionally negated

Both kinds carry ``edge_combinator``, the connector between the node and its
next sibling in the parent's children. When it is unset the parent's
``default_combinator`` applies (see ``effective_connector``).

Nodes are frozen pydantic models. Edits never mutate a node; the structural
editor builds new ancestors around the replaced subtree and reuses every
untouched subtree by reference.

Serialized form (camelCase keys, unset optional keys omitted):
    {
        "kind": "group",
        "id": "g-1",
        "defaultCombinator": "AND",
        "negate": false,
        "children": [
            {"kind": "condition", "id": "c-1", "fieldName": "age",
             "operator": ">", "value": 18}
        ]
    }
"""

import json
import math
import uuid
from collections.abc import Iterator
from datetime import date
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from rule_builder.core.errors import ValidationError
from rule_builder.domain.enums import Combinator, NodeKind


def new_node_id() -> str:
    """Generate a fresh, globally unique node id."""
    return str(uuid.uuid4())


class _TreeNodeBase(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    id: str = Field(default_factory=new_node_id)
    edge_combinator: Combinator | None = None


class Condition(_TreeNodeBase):
    """Leaf node: ``<field_name> <operator> <value>``."""

    kind: Literal["condition"] = NodeKind.CONDITION.value
    field_name: str = ""
    operator: str = "equals"
    value: Any = None

    @field_validator("value", mode="before")
    @classmethod
    def validate_value(cls, v: Any) -> Any:
        """Values stay plain JSON data: tuples become lists, dates ISO strings."""
        return _json_value(v)


def _json_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ValueError(f"value must be a finite number, got {value!r}")
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, (list, tuple)):
        return [_json_value(item) for item in value]
    if isinstance(value, dict) and all(isinstance(key, str) for key in value):
        return {key: _json_value(item) for key, item in value.items()}
    raise ValueError(f"value must be JSON data, got {type(value).__name__}")


class Group(_TreeNodeBase):
    """Internal node holding ordered children."""

    kind: Literal["group"] = NodeKind.GROUP.value
    default_combinator: Combinator = Combinator.AND
    children: tuple["TreeNode", ...] = ()
    negate: bool = False


TreeNode = Annotated[Union[Condition, Group], Field(discriminator="kind")]

Group.model_rebuild()


def is_condition(node: Any) -> bool:
    """True when node is a Condition."""
    return isinstance(node, Condition)


def is_group(node: Any) -> bool:
    """True when node is a Group."""
    return isinstance(node, Group)


def create_condition(
    field_name: str = "",
    operator: str = "equals",
    value: Any = "",
    edge_combinator: Combinator | None = None,
) -> Condition:
    """Create a condition with a fresh id."""
    return Condition(
        field_name=field_name,
        operator=operator,
        value=value,
        edge_combinator=edge_combinator,
    )


def create_group(
    default_combinator: Combinator = Combinator.AND,
    children: tuple[Condition | Group, ...] = (),
    negate: bool = False,
) -> Group:
    """Create a group with a fresh id."""
    return Group(
        default_combinator=default_combinator,
        children=tuple(children),
        negate=negate,
    )


def effective_connector(group: Group, index: int) -> Combinator:
    """
    Connector between ``group.children[index]`` and ``group.children[index + 1]``.

    The left sibling's edge combinator wins; otherwise the group default applies.
    """
    left = group.children[index]
    return left.edge_combinator or group.default_combinator


# =============================================================================
# Serialization
# =============================================================================


def serialize_tree(node: Condition | Group) -> dict[str, Any]:
    """Serialize a node (usually the root group) to plain JSON-safe data."""
    return node.model_dump(mode="json", by_alias=True, exclude_none=True)


def tree_to_json(node: Condition | Group, indent: int | None = None) -> str:
    """Serialize a node to a JSON string."""
    return json.dumps(serialize_tree(node), indent=indent, ensure_ascii=False)


def parse_tree(data: dict[str, Any] | str) -> Group:
    """
    Parse serialized data into a root group.

    Args:
        data: Serialized tree as a dict or a JSON string

    Returns:
        Root Group

    Raises:
        ValidationError: If the data is not a well-formed tree with a group root
    """
    if isinstance(data, str):
        try:
            data = json.loads(data)
        except json.JSONDecodeError as e:
            raise ValidationError("Tree is not valid JSON", details={"error": str(e)}) from e

    if not isinstance(data, dict):
        raise ValidationError(
            "Tree root must be an object", details={"type": type(data).__name__}
        )

    if data.get("kind") != NodeKind.GROUP.value:
        raise ValidationError(
            "Tree root must be a group", details={"kind": data.get("kind")}
        )

    try:
        return Group.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(
            "Malformed rule tree",
            details={"errors": e.errors(include_url=False, include_context=False)},
        ) from e


def upgrade_legacy_tree(data: dict[str, Any]) -> dict[str, Any]:
    """
    Convert an untagged legacy tree into the tagged serialized form.

    Legacy groups look like ``{"id", "combinator", "rules", "not"?,
    "individualCombinator"?}`` and legacy conditions like ``{"id", "field",
    "operator", "value", "combinator"?}``. Already tagged nodes pass through.
    """
    if "kind" in data:
        return data

    if "rules" in data:
        upgraded: dict[str, Any] = {
            "kind": NodeKind.GROUP.value,
            "id": data.get("id") or new_node_id(),
            "defaultCombinator": data.get("combinator", "AND"),
            "negate": bool(data.get("not", False)),
            "children": [upgrade_legacy_tree(child) for child in data.get("rules", [])],
        }
        if data.get("individualCombinator"):
            upgraded["edgeCombinator"] = data["individualCombinator"]
        return upgraded

    if "field" in data:
        upgraded = {
            "kind": NodeKind.CONDITION.value,
            "id": data.get("id") or new_node_id(),
            "fieldName": data["field"],
            "operator": data.get("operator", "equals"),
            "value": data.get("value"),
        }
        if data.get("combinator"):
            upgraded["edgeCombinator"] = data["combinator"]
        return upgraded

    raise ValidationError(
        "Cannot upgrade legacy node: expected 'rules' or 'field'",
        details={"keys": sorted(data.keys())},
    )


# =============================================================================
# Read-only queries
# =============================================================================


def iter_nodes(node: Condition | Group) -> Iterator[Condition | Group]:
    """Yield every node of the subtree in depth-first pre-order."""
    yield node
    if is_group(node):
        for child in node.children:
            yield from iter_nodes(child)


def find_node(tree: Group, node_id: str) -> Condition | Group | None:
    """Find a node by id anywhere in the tree."""
    for node in iter_nodes(tree):
        if node.id == node_id:
            return node
    return None


def find_parent_group(tree: Group, node_id: str) -> Group | None:
    """Find the group whose children contain ``node_id`` (None for root or unknown)."""
    for node in iter_nodes(tree):
        if is_group(node) and any(child.id == node_id for child in node.children):
            return node
    return None


def path_to(tree: Group, node_id: str) -> list[str] | None:
    """Ids from the root down to ``node_id`` inclusive, or None if absent."""
    if tree.id == node_id:
        return [tree.id]
    for child in tree.children:
        if child.id == node_id:
            return [tree.id, child.id]
        if is_group(child):
            sub_path = path_to(child, node_id)
            if sub_path is not None:
                return [tree.id, *sub_path]
    return None


def collect_ids(node: Condition | Group) -> set[str]:
    """All ids in the subtree rooted at node."""
    return {n.id for n in iter_nodes(node)}


def flatten_conditions(tree: Group) -> list[Condition]:
    """All conditions in depth-first, left-to-right order."""
    return [node for node in iter_nodes(tree) if is_condition(node)]


def count_conditions(tree: Group) -> int:
    return len(flatten_conditions(tree))


def count_groups(tree: Group) -> int:
    """Number of groups, root included."""
    return sum(1 for node in iter_nodes(tree) if is_group(node))


def max_depth(group: Group, current_depth: int = 0) -> int:
    """
    Deepest nesting level reached by any node.

    An empty root is depth 0, a root holding conditions is depth 1, and each
    nested group adds one level.
    """
    depths = [current_depth]
    for child in group.children:
        if is_group(child):
            depths.append(max_depth(child, current_depth + 1))
        else:
            depths.append(current_depth + 1)
    return max(depths)


def used_fields(tree: Group) -> list[str]:
    """Unique field names referenced by conditions, in first-use order."""
    seen: dict[str, None] = {}
    for condition in flatten_conditions(tree):
        seen.setdefault(condition.field_name, None)
    return list(seen)


def is_empty_tree(tree: Group) -> bool:
    """True when no condition exists anywhere in the tree."""
    return count_conditions(tree) == 0
