from rule_builder.editor.intents import (
    AddCondition,
    AddGroup,
    CloneNode,
    DeleteNode,
    EditIntent,
    MoveNode,
    SetDefaultCombinator,
    SetEdgeCombinator,
    ToggleNegate,
    UpdateCondition,
    UpdateGroup,
    apply_edit,
)
from rule_builder.editor.operations import (
    add_condition,
    add_group,
    clone_node,
    clone_subtree,
    delete_node,
    move_node,
    set_default_combinator,
    set_edge_combinator,
    toggle_negate,
    update_condition,
    update_group,
)

__all__ = [
    "AddCondition",
    "AddGroup",
    "CloneNode",
    "DeleteNode",
    "EditIntent",
    "MoveNode",
    "SetDefaultCombinator",
    "SetEdgeCombinator",
    "ToggleNegate",
    "UpdateCondition",
    "UpdateGroup",
    "add_condition",
    "add_group",
    "apply_edit",
    "clone_node",
    "clone_subtree",
    "delete_node",
    "move_node",
    "set_default_combinator",
    "set_edge_combinator",
    "toggle_negate",
    "update_condition",
    "update_group",
]
