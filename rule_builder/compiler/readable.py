"""Human-readable backend: ``Age is greater than 18 AND Name equals "O'Brien"``."""

from typing import Any

from rule_builder.compiler.base import TextRenderer
from rule_builder.core.config import settings
from rule_builder.domain.catalog import (
    OPERATOR_LABELS,
    RANGE_OPERATORS,
    VALUELESS_OPERATORS,
    FieldCatalog,
    FieldConfig,
)
from rule_builder.domain.enums import FieldType
from rule_builder.domain.models import Condition, Group
from rule_builder.domain.values import format_number, parse_date, to_number


def _plain(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    if isinstance(value, (int, float)):
        return format_number(value)
    return str(value)


class ReadableRenderer(TextRenderer):
    """Renders a tree as a plain-English sentence."""

    def __init__(self, catalog: FieldCatalog, date_format: str | None = None):
        super().__init__(catalog)
        self.date_format = date_format or settings.readable_date_format

    def render_condition(self, condition: Condition) -> str:
        field = self.catalog.get(condition.field_name)
        label = field.display_label if field is not None else condition.field_name
        phrase = OPERATOR_LABELS.get(condition.operator, condition.operator)

        if condition.operator in VALUELESS_OPERATORS:
            return f"{label} {phrase}"

        return f"{label} {phrase} {self.format_value(condition, field)}"

    def format_value(self, condition: Condition, field: FieldConfig | None) -> str:
        value = condition.value
        if isinstance(value, (list, tuple)):
            if condition.operator in RANGE_OPERATORS and len(value) == 2:
                low, high = value
                return f"{self._format_member(low, field)} and {self._format_member(high, field)}"
            return ", ".join(self._format_member(member, field) for member in value)
        return self._format_member(value, field)

    def _format_member(self, value: Any, field: FieldConfig | None) -> str:
        if field is None:
            return _plain(value)

        if field.type == FieldType.STRING and isinstance(value, str):
            return f'"{value}"'

        if field.type == FieldType.DATE:
            parsed = parse_date(value)
            return parsed.strftime(self.date_format) if parsed is not None else _plain(value)

        if field.type == FieldType.SELECT and field.options:
            option_label = field.option_label(value)
            return f'"{option_label}"' if option_label is not None else _plain(value)

        if field.type == FieldType.NUMBER:
            number = to_number(value)
            return format_number(number) if number is not None else _plain(value)

        return _plain(value)


def format_readable(tree: Group, catalog: FieldCatalog, date_format: str | None = None) -> str:
    """
    Render a tree as a human-readable sentence.

    Args:
        tree: Root group
        catalog: Field catalog (labels, option labels, field types)
        date_format: strftime format for date values (defaults to settings)

    Returns:
        Sentence, or "" for a tree without conditions
    """
    return ReadableRenderer(catalog, date_format).render(tree)
