"""
SQL WHERE clause backend.

Column names are emitted as given in the catalog. String values are quoted
with embedded single quotes doubled; dates are emitted as 'YYYY-MM-DD'.
"""

from typing import Any

from rule_builder.compiler.base import TextRenderer
from rule_builder.domain.catalog import FieldCatalog, FieldConfig
from rule_builder.domain.enums import FieldType, Operator
from rule_builder.domain.models import Condition, Group
from rule_builder.domain.values import format_number, parse_date, to_number

# Operators rendered as "<column> <symbol> <value>"
_COMPARISONS = {
    Operator.EQUALS.value: "=",
    Operator.NOT_EQUALS.value: "!=",
    Operator.GT.value: ">",
    Operator.GTE.value: ">=",
    Operator.LT.value: "<",
    Operator.LTE.value: "<=",
    Operator.BEFORE.value: "<",
    Operator.AFTER.value: ">",
}


def _quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def format_sql_value(value: Any, field: FieldConfig | None) -> str:
    """
    Format one value as a SQL literal.

    Args:
        value: Condition value (a single member, never a list)
        field: Catalog entry of the compared column, if known

    Returns:
        SQL literal text
    """
    if value is None:
        return "NULL"

    field_type = field.type if field is not None else None

    if field_type == FieldType.NUMBER:
        number = to_number(value)
        if number is not None:
            return format_number(number)

    if field_type == FieldType.DATE:
        parsed = parse_date(value)
        if parsed is not None:
            return _quote(parsed.date().isoformat())

    if isinstance(value, bool):
        return "TRUE" if value else "FALSE"

    if field_type == FieldType.STRING or isinstance(value, str):
        return _quote(str(value))

    if field_type == FieldType.BOOLEAN:
        return "TRUE" if value else "FALSE"

    if isinstance(value, (int, float)):
        return format_number(value)

    return _quote(str(value))


class SqlRenderer(TextRenderer):
    """Renders a tree as a SQL WHERE clause (without the WHERE keyword)."""

    def render_condition(self, condition: Condition) -> str:
        field = self.catalog.get(condition.field_name)
        column = condition.field_name
        operator = condition.operator
        value = condition.value

        def literal(member: Any) -> str:
            return format_sql_value(member, field)

        is_pair = isinstance(value, (list, tuple)) and len(value) == 2
        is_list = isinstance(value, (list, tuple))

        if operator in _COMPARISONS:
            return f"{column} {_COMPARISONS[operator]} {literal(value)}"

        if operator == Operator.CONTAINS.value:
            return f"{column} LIKE {_quote(f'%{value}%')}"
        if operator == Operator.STARTS_WITH.value:
            return f"{column} LIKE {_quote(f'{value}%')}"
        if operator == Operator.ENDS_WITH.value:
            return f"{column} LIKE {_quote(f'%{value}')}"

        if operator == Operator.IS_EMPTY.value:
            return f"({column} IS NULL OR {column} = '')"
        if operator == Operator.IS_NOT_EMPTY.value:
            return f"({column} IS NOT NULL AND {column} != '')"
        if operator == Operator.IS_TRUE.value:
            return f"{column} = TRUE"
        if operator == Operator.IS_FALSE.value:
            return f"{column} = FALSE"

        if operator == Operator.BETWEEN.value:
            if is_pair:
                return f"{column} BETWEEN {literal(value[0])} AND {literal(value[1])}"
            return f"{column} = {literal(value)}"
        if operator == Operator.NOT_BETWEEN.value:
            if is_pair:
                return f"{column} NOT BETWEEN {literal(value[0])} AND {literal(value[1])}"
            return f"{column} != {literal(value)}"

        if operator == Operator.IN.value:
            if is_list:
                return f"{column} IN ({', '.join(literal(member) for member in value)})"
            return f"{column} = {literal(value)}"
        if operator == Operator.NOT_IN.value:
            if is_list:
                return f"{column} NOT IN ({', '.join(literal(member) for member in value)})"
            return f"{column} != {literal(value)}"

        return f"{column} = {literal(value)}"


def format_sql(tree: Group, catalog: FieldCatalog) -> str:
    """Render a tree as a SQL WHERE clause ("" for a tree without conditions)."""
    return SqlRenderer(catalog).render(tree)
