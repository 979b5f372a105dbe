"""
Rule builder session.

Owns the current tree for one editing session and wires the engine together:
edit intent -> structural editor -> history -> validator. Outputs are compiled
on demand from the current tree.
"""

import logging
import uuid
from collections.abc import Callable
from typing import Any

from rule_builder.compiler.compiler import CustomFormatter, RuleOutput, generate_output
from rule_builder.core.config import settings
from rule_builder.core.observability import bind_session_id
from rule_builder.domain.catalog import FieldCatalog
from rule_builder.domain.enums import Combinator
from rule_builder.domain.models import Condition, Group
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
from rule_builder.services.history import RuleHistory
from rule_builder.validation.findings import ValidationFinding, ValidationResult
from rule_builder.validation.validator import validate

logger = logging.getLogger(__name__)


class RuleBuilder:
    """
    Stateful editing session over an immutable rule tree.

    Args:
        catalog: Field catalog for defaults, validation and compilation
        initial: Starting tree (an empty AND group when omitted)
        max_depth: Nesting limit for added groups (defaults to settings)
        history_size: Undo/redo cap (defaults to settings)
        custom_formatter: Extra backend threaded into ``output()``
        on_change: Called with the new tree after every real change
        on_validation_change: Called with the new result when findings change
    """

    def __init__(
        self,
        catalog: FieldCatalog,
        initial: Group | None = None,
        *,
        max_depth: int | None = None,
        history_size: int | None = None,
        custom_formatter: CustomFormatter | None = None,
        on_change: Callable[[Group], Any] | None = None,
        on_validation_change: Callable[[ValidationResult], Any] | None = None,
    ):
        self.session_id = str(uuid.uuid4())
        self.catalog = catalog
        self.max_depth = max_depth if max_depth is not None else settings.max_nesting_depth
        self.custom_formatter = custom_formatter
        self.on_change = on_change
        self.on_validation_change = on_validation_change

        self._history = RuleHistory(initial if initial is not None else Group(), history_size)
        self._validation = validate(self.tree, self.catalog)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def tree(self) -> Group:
        return self._history.current

    @property
    def validation(self) -> ValidationResult:
        return self._validation

    @property
    def findings(self) -> tuple[ValidationFinding, ...]:
        return self._validation.findings

    @property
    def is_valid(self) -> bool:
        return self._validation.is_valid

    @property
    def history(self) -> RuleHistory:
        return self._history

    def can_undo(self) -> bool:
        return self._history.can_undo()

    def can_redo(self) -> bool:
        return self._history.can_redo()

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def dispatch(self, intent: EditIntent) -> Group:
        """
        Apply an edit intent to the current tree.

        No-op edits leave history, validation and callbacks untouched.

        Returns:
            The current tree after the edit
        """
        with bind_session_id(self.session_id):
            previous = self.tree
            updated = apply_edit(
                previous, intent, catalog=self.catalog, max_depth=self.max_depth
            )
            if updated is previous:
                logger.debug("Edit %s left the tree unchanged", type(intent).__name__)
                return previous

            self._history.push(updated)
            self._on_tree_changed()
            return self.tree

    def add_condition(
        self, group_id: str, condition: Condition | dict[str, Any] | None = None
    ) -> Group:
        return self.dispatch(AddCondition(group_id, condition))

    def add_group(self, group_id: str, group: Group | dict[str, Any] | None = None) -> Group:
        return self.dispatch(AddGroup(group_id, group))

    def update_condition(self, condition_id: str, patch: dict[str, Any]) -> Group:
        return self.dispatch(UpdateCondition(condition_id, patch))

    def update_group(self, group_id: str, patch: dict[str, Any]) -> Group:
        return self.dispatch(UpdateGroup(group_id, patch))

    def delete_node(self, node_id: str) -> Group:
        return self.dispatch(DeleteNode(node_id))

    def clone_node(self, node_id: str, insert_after: bool = True) -> Group:
        return self.dispatch(CloneNode(node_id, insert_after))

    def move_node(self, node_id: str, target_group_id: str, target_index: int) -> Group:
        return self.dispatch(MoveNode(node_id, target_group_id, target_index))

    def set_default_combinator(self, group_id: str, combinator: Combinator) -> Group:
        return self.dispatch(SetDefaultCombinator(group_id, combinator))

    def set_edge_combinator(self, node_id: str, combinator: Combinator | None) -> Group:
        return self.dispatch(SetEdgeCombinator(node_id, combinator))

    def toggle_negate(self, group_id: str) -> Group:
        return self.dispatch(ToggleNegate(group_id))

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def undo(self) -> Group:
        previous = self.tree
        with bind_session_id(self.session_id):
            if self._history.undo() is not previous:
                self._on_tree_changed()
        return self.tree

    def redo(self) -> Group:
        previous = self.tree
        with bind_session_id(self.session_id):
            if self._history.redo() is not previous:
                self._on_tree_changed()
        return self.tree

    def reset(self, tree: Group | None = None) -> Group:
        """Replace the tree (an empty group when omitted) and clear the history."""
        previous = self.tree
        with bind_session_id(self.session_id):
            self._history.reset(tree if tree is not None else Group())
            if self.tree is not previous:
                self._on_tree_changed()
        return self.tree

    # ------------------------------------------------------------------
    # Catalog and output
    # ------------------------------------------------------------------

    def update_catalog(self, catalog: FieldCatalog) -> ValidationResult:
        """Swap the field catalog (e.g. after options resolve) and re-validate."""
        self.catalog = catalog
        with bind_session_id(self.session_id):
            self._revalidate()
        return self._validation

    def output(self, *, date_format: str | None = None) -> RuleOutput:
        """Compile the current tree with every backend."""
        with bind_session_id(self.session_id):
            return generate_output(
                self.tree, self.catalog, self.custom_formatter, date_format=date_format
            )

    def _on_tree_changed(self) -> None:
        if self.on_change is not None:
            self.on_change(self.tree)
        self._revalidate()

    def _revalidate(self) -> None:
        result = validate(self.tree, self.catalog)
        changed = result != self._validation
        self._validation = result
        if changed and self.on_validation_change is not None:
            self.on_validation_change(result)
