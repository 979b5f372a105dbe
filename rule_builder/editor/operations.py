"""
Structural edit operations for rule trees.

Every operation is a pure function: old tree in, new tree out. Nodes are
addressed by id. An operation descends until it reaches the target, rebuilds
each ancestor with a new children tuple and reuses every untouched subtree by
reference, so callers can detect unchanged branches with ``is``.

Failure contract:
- A missing id, a wrong node kind, an attempt to detach the root or a move
  into the moved node's own subtree raises StructuralError internally.
- The public functions catch it, log it and return the input tree object
  unchanged. UI edits must never crash a render.
- Exceeding the nesting limit in ``add_group`` is a documented no-op.
"""

import functools
import logging
from collections.abc import Callable, Mapping, Sequence
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from rule_builder.core.errors import StructuralError
from rule_builder.core.observability import record_edit
from rule_builder.domain.catalog import FieldCatalog, default_value_for
from rule_builder.domain.enums import Combinator
from rule_builder.domain.models import (
    Condition,
    Group,
    collect_ids,
    find_node,
    find_parent_group,
    is_condition,
    is_group,
    iter_nodes,
    new_node_id,
    path_to,
)

logger = logging.getLogger(__name__)

Node = Condition | Group
Patch = Mapping[str, Any] | BaseModel


def _edit_operation(func: Callable[..., Group]) -> Callable[..., Group]:
    """Apply the return-unchanged contract and record the outcome."""

    @functools.wraps(func)
    def wrapper(tree: Group, *args: Any, **kwargs: Any) -> Group:
        try:
            result = func(tree, *args, **kwargs)
        except StructuralError as e:
            logger.warning("%s rejected: %s", func.__name__, e.message, extra=e.details)
            record_edit(func.__name__, "noop")
            return tree

        outcome = "noop" if result is tree else "applied"
        record_edit(func.__name__, outcome)
        logger.debug("%s %s", func.__name__, outcome)
        return result

    return wrapper


# =============================================================================
# Rewrite machinery
# =============================================================================


def _rewrite(group: Group, target_id: str, replace: Callable[[Node], Sequence[Node]]) -> Group:
    """
    Replace the child ``target_id`` somewhere below ``group``.

    ``replace`` receives the target and returns the nodes that take its place:
    an empty sequence deletes it, one node updates it, several insert siblings.
    Returns ``group`` itself when the target is not in this subtree.
    """
    new_children: list[Node] = []
    changed = False

    for child in group.children:
        if changed:
            new_children.append(child)
        elif child.id == target_id:
            new_children.extend(replace(child))
            changed = True
        elif is_group(child):
            new_child = _rewrite(child, target_id, replace)
            changed = new_child is not child
            new_children.append(new_child)
        else:
            new_children.append(child)

    if not changed:
        return group
    return group.model_copy(update={"children": tuple(new_children)})


def _replace_node(tree: Group, target_id: str, replace: Callable[[Node], Sequence[Node]]) -> Group:
    """Replace any node (root included) in a single recursive pass."""
    if tree.id == target_id:
        replacement = tuple(replace(tree))
        if len(replacement) != 1 or not is_group(replacement[0]):
            raise StructuralError(
                "The root group cannot be removed or duplicated",
                details={"node_id": target_id},
            )
        return replacement[0]
    return _rewrite(tree, target_id, replace)


def _require_node(tree: Group, node_id: str) -> Node:
    node = find_node(tree, node_id)
    if node is None:
        raise StructuralError(f"Node '{node_id}' not found", details={"node_id": node_id})
    return node


def _require_group(tree: Group, group_id: str) -> Group:
    node = _require_node(tree, group_id)
    if not is_group(node):
        raise StructuralError(
            f"Node '{group_id}' is not a group", details={"node_id": group_id}
        )
    return node


def _require_condition(tree: Group, condition_id: str) -> Condition:
    node = _require_node(tree, condition_id)
    if not is_condition(node):
        raise StructuralError(
            f"Node '{condition_id}' is not a condition", details={"node_id": condition_id}
        )
    return node


def _group_height(group: Group) -> int:
    """Number of group levels below ``group`` (0 when it holds no groups)."""
    heights = [_group_height(child) + 1 for child in group.children if is_group(child)]
    return max(heights, default=0)


# =============================================================================
# Ids and patches
# =============================================================================


def clone_subtree(node: Node) -> Node:
    """Deep copy of ``node`` with a fresh id on every node."""
    if is_group(node):
        return node.model_copy(
            update={
                "id": new_node_id(),
                "children": tuple(clone_subtree(child) for child in node.children),
            }
        )
    return node.model_copy(update={"id": new_node_id()})


def _ensure_fresh_ids(node: Node, taken: set[str]) -> Node:
    """
    Re-identify ``node`` when any of its ids is already taken or repeated.

    ``taken`` is extended with the ids of the returned subtree.
    """
    ids = [n.id for n in iter_nodes(node)]
    if taken.intersection(ids) or len(set(ids)) != len(ids):
        node = clone_subtree(node)
        ids = [n.id for n in iter_nodes(node)]
    taken.update(ids)
    return node


def _normalize_patch(model_cls: type[Node], patch: Patch) -> dict[str, Any]:
    """
    Map patch keys (field names or camelCase aliases) to field names.

    ``id`` and ``kind`` are never patched; unknown keys are ignored.
    """
    if isinstance(patch, BaseModel):
        patch = dict(patch)

    aliases = {info.alias: name for name, info in model_cls.model_fields.items() if info.alias}
    normalized: dict[str, Any] = {}
    for key, value in patch.items():
        name = key if key in model_cls.model_fields else aliases.get(key)
        if name is None:
            logger.debug("Ignoring unknown patch key '%s' for %s", key, model_cls.__name__)
            continue
        if name in ("id", "kind"):
            continue
        normalized[name] = value
    return normalized


def _patched(node: Node, patch: Patch) -> Node:
    """Validated copy of ``node`` with ``patch`` applied, keeping its id."""
    model_cls = type(node)
    fields = {name: getattr(node, name) for name in model_cls.model_fields}
    fields.update(_normalize_patch(model_cls, patch))
    fields["id"] = node.id
    try:
        return model_cls.model_validate(fields)
    except PydanticValidationError as e:
        raise StructuralError(
            f"Invalid patch for node '{node.id}'",
            details={
                "node_id": node.id,
                "errors": e.errors(include_url=False, include_context=False),
            },
        ) from e


def _default_condition(catalog: FieldCatalog | None) -> Condition:
    """Condition synthesized from the first catalog field."""
    field = catalog.first() if catalog is not None else None
    if field is None:
        return Condition(field_name="", operator="equals", value="")
    return Condition(
        field_name=field.name,
        operator=field.allowed_operators[0],
        value=default_value_for(field),
    )


def _coerce_condition(condition: Condition | Patch | None, catalog: FieldCatalog | None) -> Node:
    if condition is None:
        return _default_condition(catalog)
    if is_condition(condition):
        return condition
    if is_group(condition):
        raise StructuralError("add_condition expects a condition, got a group")

    base = _default_condition(catalog)
    patched = _patched(base, condition)
    supplied_id = condition.get("id") if isinstance(condition, Mapping) else None
    if supplied_id:
        patched = patched.model_copy(update={"id": supplied_id})
    return patched


# =============================================================================
# Public operations
# =============================================================================


@_edit_operation
def add_condition(
    tree: Group,
    target_group_id: str,
    condition: Condition | Patch | None = None,
    *,
    catalog: FieldCatalog | None = None,
) -> Group:
    """
    Append a condition to a group.

    Args:
        tree: Root group
        target_group_id: Group receiving the condition
        condition: Condition to append, a partial mapping merged over the
                   default condition, or None to synthesize one from the first
                   catalog field
        catalog: Field catalog used to synthesize defaults

    Returns:
        New tree, or ``tree`` itself when the target group does not exist
    """
    _require_group(tree, target_group_id)
    new_condition = _ensure_fresh_ids(_coerce_condition(condition, catalog), collect_ids(tree))

    return _replace_node(
        tree,
        target_group_id,
        lambda group: (group.model_copy(update={"children": (*group.children, new_condition)}),),
    )


@_edit_operation
def add_group(
    tree: Group,
    target_group_id: str,
    group: Group | Patch | None = None,
    *,
    max_depth: int | None = None,
) -> Group:
    """
    Append a group (empty, AND by default) to a group.

    The root is level 0. When any group of the inserted subtree would sit
    deeper than ``max_depth`` the call is a no-op.
    """
    target = _require_group(tree, target_group_id)

    if group is None:
        new_group = Group()
    elif is_group(group):
        new_group = group
    elif is_condition(group):
        raise StructuralError("add_group expects a group, got a condition")
    else:
        new_group = _patched(Group(), group)

    if max_depth is not None:
        target_level = len(path_to(tree, target.id)) - 1
        deepest_level = target_level + 1 + _group_height(new_group)
        if deepest_level > max_depth:
            logger.info(
                "add_group skipped: level %d exceeds max depth %d", deepest_level, max_depth
            )
            return tree

    new_group = _ensure_fresh_ids(new_group, collect_ids(tree))
    return _replace_node(
        tree,
        target_group_id,
        lambda g: (g.model_copy(update={"children": (*g.children, new_group)}),),
    )


@_edit_operation
def update_condition(tree: Group, condition_id: str, patch: Patch) -> Group:
    """
    Replace condition content by id. The id itself is always preserved.
    """
    node = _require_condition(tree, condition_id)
    updated = _patched(node, patch)
    if updated == node:
        return tree
    return _replace_node(tree, condition_id, lambda _: (updated,))


@_edit_operation
def update_group(tree: Group, group_id: str, patch: Patch) -> Group:
    """
    Replace group content by id. The id itself is always preserved.

    Replacement children whose ids collide with nodes outside the group (or
    with each other) are re-identified.
    """
    node = _require_group(tree, group_id)
    updated = _patched(node, patch)

    if "children" in _normalize_patch(Group, patch):
        taken = collect_ids(tree) - collect_ids(node)
        taken.add(node.id)
        children = tuple(_ensure_fresh_ids(child, taken) for child in updated.children)
        updated = updated.model_copy(update={"children": children})

    if updated == node:
        return tree
    return _replace_node(tree, group_id, lambda _: (updated,))


@_edit_operation
def delete_node(tree: Group, node_id: str) -> Group:
    """Remove a condition or group wherever it occurs. The root is never removed."""
    if node_id == tree.id:
        raise StructuralError("The root group cannot be deleted", details={"node_id": node_id})
    _require_node(tree, node_id)
    return _replace_node(tree, node_id, lambda _: ())


@_edit_operation
def clone_node(tree: Group, node_id: str, insert_after: bool = True) -> Group:
    """
    Deep-clone a subtree with fresh ids.

    The clone is inserted right after the original, or appended to the end of
    the original's parent when ``insert_after`` is False.
    """
    if node_id == tree.id:
        raise StructuralError("The root group cannot be cloned", details={"node_id": node_id})
    node = _require_node(tree, node_id)
    clone = clone_subtree(node)

    if insert_after:
        return _replace_node(tree, node_id, lambda original: (original, clone))

    parent = find_parent_group(tree, node_id)
    return _replace_node(
        tree,
        parent.id,
        lambda g: (g.model_copy(update={"children": (*g.children, clone)}),),
    )


@_edit_operation
def move_node(tree: Group, node_id: str, target_group_id: str, target_index: int) -> Group:
    """
    Detach a node and reinsert it at ``target_index`` in the target group.

    The index refers to the target's children after detaching and is clamped
    to the valid range. Moving a group into itself or one of its descendants
    is rejected.
    """
    if node_id == tree.id:
        raise StructuralError("The root group cannot be moved", details={"node_id": node_id})
    node = _require_node(tree, node_id)
    _require_group(tree, target_group_id)

    if target_group_id in collect_ids(node):
        raise StructuralError(
            "Cannot move a group into its own subtree",
            details={"node_id": node_id, "target_group_id": target_group_id},
        )

    detached = _replace_node(tree, node_id, lambda _: ())
    target = find_node(detached, target_group_id)
    index = max(0, min(target_index, len(target.children)))

    parent = find_parent_group(tree, node_id)
    if parent.id == target_group_id:
        current_index = next(i for i, child in enumerate(parent.children) if child.id == node_id)
        if current_index == index:
            return tree

    def insert(group: Node) -> tuple[Node]:
        children = list(group.children)
        children.insert(index, node)
        return (group.model_copy(update={"children": tuple(children)}),)

    return _replace_node(detached, target_group_id, insert)


@_edit_operation
def set_default_combinator(tree: Group, group_id: str, combinator: Combinator | str) -> Group:
    """Set the connector a group uses between children without an edge override."""
    node = _require_group(tree, group_id)
    updated = _patched(node, {"default_combinator": combinator})
    if updated == node:
        return tree
    return _replace_node(tree, group_id, lambda _: (updated,))


@_edit_operation
def set_edge_combinator(
    tree: Group, node_id: str, combinator: Combinator | str | None
) -> Group:
    """
    Set (or clear with None) the connector between a node and its next sibling.
    """
    if node_id == tree.id:
        raise StructuralError("The root group has no siblings", details={"node_id": node_id})
    node = _require_node(tree, node_id)
    updated = _patched(node, {"edge_combinator": combinator})
    if updated == node:
        return tree
    return _replace_node(tree, node_id, lambda _: (updated,))


@_edit_operation
def toggle_negate(tree: Group, group_id: str) -> Group:
    """Flip the NOT flag of a group."""
    node = _require_group(tree, group_id)
    updated = node.model_copy(update={"negate": not node.negate})
    return _replace_node(tree, group_id, lambda _: (updated,))
