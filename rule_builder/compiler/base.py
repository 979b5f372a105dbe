"""
Shared traversal for the compiler backends.

Every backend renders a group the same way:
1. Render each child (conditions through the leaf renderer, groups recursively)
2. Drop children that render to the backend's empty value
3. Record the effective connector between consecutive rendered children
4. Join the rendered children (backend-specific)
5. Negate the joined result when the group is negated

An empty group, or a group whose children all render empty, renders as the
empty value and contributes no connector to its parent.
"""

from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from rule_builder.domain.catalog import FieldCatalog
from rule_builder.domain.enums import Combinator
from rule_builder.domain.models import Condition, Group, effective_connector, is_group

T = TypeVar("T")


class TreeRenderer(ABC, Generic[T]):
    """Base class for one compiler backend."""

    def __init__(self, catalog: FieldCatalog):
        self.catalog = catalog

    def render(self, tree: Group) -> T:
        return self.render_group(tree)

    def render_group(self, group: Group) -> T:
        parts: list[T] = []
        connectors: list[Combinator] = []
        pending: Combinator | None = None

        for index, child in enumerate(group.children):
            if is_group(child):
                rendered = self.render_group(child)
                if self.is_empty(rendered):
                    continue
                rendered = self.wrap_nested(rendered)
            else:
                rendered = self.render_condition(child)
                if self.is_empty(rendered):
                    continue

            if parts:
                connectors.append(pending)
            parts.append(rendered)
            pending = effective_connector(group, index)

        if not parts:
            return self.empty()

        result = self.join(group, parts, connectors)
        return self.negate(result) if group.negate else result

    def wrap_nested(self, rendered: T) -> T:
        """Hook for nested group output; identity by default."""
        return rendered

    @abstractmethod
    def empty(self) -> T: ...

    @abstractmethod
    def is_empty(self, rendered: T) -> bool: ...

    @abstractmethod
    def render_condition(self, condition: Condition) -> T: ...

    @abstractmethod
    def join(self, group: Group, parts: list[T], connectors: list[Combinator]) -> T: ...

    @abstractmethod
    def negate(self, rendered: T) -> T: ...


class TextRenderer(TreeRenderer[str]):
    """Infix text backends: nested groups are parenthesized, NOT wraps the group."""

    def empty(self) -> str:
        return ""

    def is_empty(self, rendered: str) -> bool:
        return rendered == ""

    def wrap_nested(self, rendered: str) -> str:
        return f"({rendered})"

    def join(self, group: Group, parts: list[str], connectors: list[Combinator]) -> str:
        pieces = [parts[0]]
        for connector, part in zip(connectors, parts[1:]):
            pieces.append(f" {connector.value} ")
            pieces.append(part)
        return "".join(pieces)

    def negate(self, rendered: str) -> str:
        return f"NOT ({rendered})"
