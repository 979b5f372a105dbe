"""
Edit intents and the pure reducer that applies them.

An intent describes one structural edit as data. ``apply_edit`` dispatches it
to the matching editor operation, so a builder session (or any other owner of
the current tree) can treat editing as ``tree' = apply_edit(tree, intent)``.
"""

from dataclasses import dataclass
from typing import Any

from rule_builder.domain.catalog import FieldCatalog
from rule_builder.domain.enums import Combinator
from rule_builder.domain.models import Condition, Group
from rule_builder.editor import operations


@dataclass(frozen=True)
class AddCondition:
    group_id: str
    condition: Condition | dict[str, Any] | None = None


@dataclass(frozen=True)
class AddGroup:
    group_id: str
    group: Group | dict[str, Any] | None = None


@dataclass(frozen=True)
class UpdateCondition:
    condition_id: str
    patch: dict[str, Any]


@dataclass(frozen=True)
class UpdateGroup:
    group_id: str
    patch: dict[str, Any]


@dataclass(frozen=True)
class DeleteNode:
    node_id: str


@dataclass(frozen=True)
class CloneNode:
    node_id: str
    insert_after: bool = True


@dataclass(frozen=True)
class MoveNode:
    node_id: str
    target_group_id: str
    target_index: int


@dataclass(frozen=True)
class SetDefaultCombinator:
    group_id: str
    combinator: Combinator


@dataclass(frozen=True)
class SetEdgeCombinator:
    node_id: str
    combinator: Combinator | None


@dataclass(frozen=True)
class ToggleNegate:
    group_id: str


EditIntent = (
    AddCondition
    | AddGroup
    | UpdateCondition
    | UpdateGroup
    | DeleteNode
    | CloneNode
    | MoveNode
    | SetDefaultCombinator
    | SetEdgeCombinator
    | ToggleNegate
)


def apply_edit(
    tree: Group,
    intent: EditIntent,
    *,
    catalog: FieldCatalog | None = None,
    max_depth: int | None = None,
) -> Group:
    """
    Apply one edit intent to a tree.

    Args:
        tree: Current root group
        intent: Edit to apply
        catalog: Field catalog used when a condition must be synthesized
        max_depth: Nesting limit for added groups (None for unlimited)

    Returns:
        New tree, or ``tree`` itself when the edit was a no-op

    Raises:
        TypeError: If intent is not a known edit intent
    """
    match intent:
        case AddCondition(group_id, condition):
            return operations.add_condition(tree, group_id, condition, catalog=catalog)
        case AddGroup(group_id, group):
            return operations.add_group(tree, group_id, group, max_depth=max_depth)
        case UpdateCondition(condition_id, patch):
            return operations.update_condition(tree, condition_id, patch)
        case UpdateGroup(group_id, patch):
            return operations.update_group(tree, group_id, patch)
        case DeleteNode(node_id):
            return operations.delete_node(tree, node_id)
        case CloneNode(node_id, insert_after):
            return operations.clone_node(tree, node_id, insert_after)
        case MoveNode(node_id, target_group_id, target_index):
            return operations.move_node(tree, node_id, target_group_id, target_index)
        case SetDefaultCombinator(group_id, combinator):
            return operations.set_default_combinator(tree, group_id, combinator)
        case SetEdgeCombinator(node_id, combinator):
            return operations.set_edge_combinator(tree, node_id, combinator)
        case ToggleNegate(group_id):
            return operations.toggle_negate(tree, group_id)
    raise TypeError(f"Unknown edit intent: {type(intent).__name__}")
