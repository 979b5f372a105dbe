"""
Bounded, linear undo/redo history over rule trees.

The log holds immutable tree snapshots and a cursor. Pushing while the cursor
is behind the tip discards the redo tail first; pushing past the cap drops the
oldest entry.
"""

import logging

from rule_builder.core.config import settings
from rule_builder.core.observability import record_history_action
from rule_builder.domain.models import Group

logger = logging.getLogger(__name__)


class RuleHistory:
    """
    Undo/redo log.

    Example:
        >>> history = RuleHistory(tree)
        >>> history.push(edited)
        >>> history.undo() is tree
        True
    """

    def __init__(self, initial: Group, max_size: int | None = None):
        self.max_size = max_size if max_size is not None else settings.history_max_size
        if self.max_size < 1:
            raise ValueError("History max_size must be at least 1")
        self._entries: list[Group] = [initial]
        self._index = 0

    @property
    def current(self) -> Group:
        return self._entries[self._index]

    @property
    def entries(self) -> tuple[Group, ...]:
        return tuple(self._entries)

    @property
    def index(self) -> int:
        return self._index

    def __len__(self) -> int:
        return len(self._entries)

    def can_undo(self) -> bool:
        return self._index > 0

    def can_redo(self) -> bool:
        return self._index < len(self._entries) - 1

    def push(self, tree: Group) -> Group:
        """
        Append a new tree and move the cursor to it.

        A tree that is the current entry itself (a no-op edit) is ignored.

        Returns:
            The current tree after the push
        """
        if tree is self.current:
            return self.current

        del self._entries[self._index + 1 :]
        self._entries.append(tree)
        if len(self._entries) > self.max_size:
            dropped = len(self._entries) - self.max_size
            del self._entries[:dropped]
            logger.debug("History cap %d reached, dropped %d oldest entries", self.max_size, dropped)
        self._index = len(self._entries) - 1

        record_history_action("push")
        return self.current

    def undo(self) -> Group:
        """Step back one entry (no-op at the oldest entry) and return the current tree."""
        if self.can_undo():
            self._index -= 1
            record_history_action("undo")
        return self.current

    def redo(self) -> Group:
        """Step forward one entry (no-op at the tip) and return the current tree."""
        if self.can_redo():
            self._index += 1
            record_history_action("redo")
        return self.current

    def reset(self, tree: Group) -> Group:
        """Clear the log to a single entry."""
        self._entries = [tree]
        self._index = 0
        record_history_action("reset")
        return tree
