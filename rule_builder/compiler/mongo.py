"""
MongoDB query backend.

Groups become ``{"$and": [...]}`` / ``{"$or": [...]}``. When the connectors
inside one group are mixed, the whole group is joined with its default
combinator; consumers rely on this shape, so it is kept as is. A group with a
single rendered child renders as that child.
"""

import re
from typing import Any

from rule_builder.compiler.base import TreeRenderer
from rule_builder.domain.catalog import FieldCatalog, FieldConfig
from rule_builder.domain.enums import Combinator, FieldType, Operator
from rule_builder.domain.models import Condition, Group
from rule_builder.domain.values import parse_date, to_number

_COMPARISONS = {
    Operator.NOT_EQUALS.value: "$ne",
    Operator.GT.value: "$gt",
    Operator.GTE.value: "$gte",
    Operator.LT.value: "$lt",
    Operator.LTE.value: "$lte",
}

_GROUP_OPERATORS = {Combinator.AND: "$and", Combinator.OR: "$or"}

_REGEX_SPECIAL = re.compile(r"[.*+?^${}()|[\]\\]")


def escape_regex(text: str) -> str:
    """Escape regular expression metacharacters for a $regex pattern."""
    return _REGEX_SPECIAL.sub(r"\\\g<0>", text)


def _mongo_value(value: Any, field: FieldConfig | None) -> Any:
    """Number fields take numeric strings as numbers; everything else passes through."""
    if field is not None and field.type == FieldType.NUMBER:
        number = to_number(value)
        if number is not None:
            return number
    return value


class MongoRenderer(TreeRenderer[dict[str, Any]]):
    """Renders a tree as a MongoDB filter document."""

    def empty(self) -> dict[str, Any]:
        return {}

    def is_empty(self, rendered: dict[str, Any]) -> bool:
        return not rendered

    def join(
        self, group: Group, parts: list[dict[str, Any]], connectors: list[Combinator]
    ) -> dict[str, Any]:
        if len(parts) == 1:
            return parts[0]
        if all(connector == connectors[0] for connector in connectors):
            combinator = connectors[0]
        else:
            combinator = group.default_combinator
        return {_GROUP_OPERATORS[combinator]: parts}

    def negate(self, rendered: dict[str, Any]) -> dict[str, Any]:
        return {"$not": rendered}

    def render_condition(self, condition: Condition) -> dict[str, Any]:
        field = self.catalog.get(condition.field_name)
        name = condition.field_name
        operator = condition.operator
        raw = condition.value
        is_pair = isinstance(raw, (list, tuple)) and len(raw) == 2

        def value(member: Any = raw) -> Any:
            return _mongo_value(member, field)

        if operator == Operator.EQUALS.value:
            return {name: value()}
        if operator in _COMPARISONS:
            return {name: {_COMPARISONS[operator]: value()}}

        if operator == Operator.CONTAINS.value:
            return {name: {"$regex": raw, "$options": "i"}}
        if operator == Operator.STARTS_WITH.value:
            return {name: {"$regex": f"^{escape_regex(str(raw))}", "$options": "i"}}
        if operator == Operator.ENDS_WITH.value:
            return {name: {"$regex": f"{escape_regex(str(raw))}$", "$options": "i"}}

        if operator == Operator.IS_EMPTY.value:
            return {"$or": [{name: None}, {name: ""}]}
        if operator == Operator.IS_NOT_EMPTY.value:
            return {"$and": [{name: {"$ne": None}}, {name: {"$ne": ""}}]}
        if operator == Operator.IS_TRUE.value:
            return {name: True}
        if operator == Operator.IS_FALSE.value:
            return {name: False}

        if operator == Operator.BETWEEN.value:
            if is_pair:
                return {name: {"$gte": value(raw[0]), "$lte": value(raw[1])}}
            return {name: value()}
        if operator == Operator.NOT_BETWEEN.value:
            if is_pair:
                return {"$or": [{name: {"$lt": value(raw[0])}}, {name: {"$gt": value(raw[1])}}]}
            return {name: {"$ne": value()}}

        if operator in (Operator.BEFORE.value, Operator.AFTER.value):
            parsed = parse_date(raw)
            bound = parsed if parsed is not None else raw
            return {name: {"$lt" if operator == Operator.BEFORE.value else "$gt": bound}}

        if operator in (Operator.IN.value, Operator.NOT_IN.value):
            members = list(raw) if isinstance(raw, (list, tuple)) else [raw]
            key = "$in" if operator == Operator.IN.value else "$nin"
            return {name: {key: [value(member) for member in members]}}

        return {name: value()}


def format_mongo(tree: Group, catalog: FieldCatalog) -> dict[str, Any]:
    """Render a tree as a MongoDB filter ({} for a tree without conditions)."""
    return MongoRenderer(catalog).render(tree)
