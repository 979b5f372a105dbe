"""
Best-effort detection of contradictory numeric conditions.

Within one group, consecutive children joined only by AND connectors form a
conjunction. Two number-field conditions on the same field inside such a run
contradict each other when the value ranges they admit do not overlap, e.g.
``x > 10 AND x < 5`` or ``x = 3 AND x between [5, 9]``.
"""

import math
from dataclasses import dataclass
from itertools import combinations
from typing import Any

from rule_builder.domain.catalog import FieldCatalog
from rule_builder.domain.enums import Combinator, FieldType, FindingType, Operator, Severity
from rule_builder.domain.models import Condition, Group, effective_connector, is_condition, is_group
from rule_builder.domain.values import to_number
from rule_builder.validation.findings import ValidationFinding


@dataclass(frozen=True)
class _Bounds:
    low: float = -math.inf
    low_inclusive: bool = False
    high: float = math.inf
    high_inclusive: bool = False

    def overlaps(self, other: "_Bounds") -> bool:
        if self.low > other.low:
            low, low_inclusive = self.low, self.low_inclusive
        elif other.low > self.low:
            low, low_inclusive = other.low, other.low_inclusive
        else:
            low, low_inclusive = self.low, self.low_inclusive and other.low_inclusive

        if self.high < other.high:
            high, high_inclusive = self.high, self.high_inclusive
        elif other.high < self.high:
            high, high_inclusive = other.high, other.high_inclusive
        else:
            high, high_inclusive = self.high, self.high_inclusive and other.high_inclusive

        if low < high:
            return True
        return low == high and low_inclusive and high_inclusive


def _bounds_for(condition: Condition) -> _Bounds | None:
    """Range admitted by a numeric condition, or None when it cannot be bounded."""
    operator = condition.operator

    if operator == Operator.BETWEEN.value:
        if not isinstance(condition.value, (list, tuple)) or len(condition.value) != 2:
            return None
        low, high = (to_number(bound) for bound in condition.value)
        if low is None or high is None:
            return None
        return _Bounds(low, True, high, True)

    value = to_number(condition.value)
    if value is None:
        return None

    if operator == Operator.GT.value:
        return _Bounds(low=value)
    if operator == Operator.GTE.value:
        return _Bounds(low=value, low_inclusive=True)
    if operator == Operator.LT.value:
        return _Bounds(high=value)
    if operator == Operator.LTE.value:
        return _Bounds(high=value, high_inclusive=True)
    if operator == Operator.EQUALS.value:
        return _Bounds(value, True, value, True)
    return None


def _describe(condition: Condition) -> str:
    if condition.operator == Operator.BETWEEN.value:
        low, high = condition.value
        return f"{condition.field_name} between {low} and {high}"
    if condition.operator == Operator.EQUALS.value:
        return f"{condition.field_name} = {condition.value}"
    return f"{condition.field_name} {condition.operator} {condition.value}"


def _and_runs(group: Group) -> list[list[Any]]:
    """Split children into maximal runs joined only by AND connectors."""
    runs: list[list[Any]] = []
    current: list[Any] = []
    for index, child in enumerate(group.children):
        current.append(child)
        is_last = index == len(group.children) - 1
        if is_last or effective_connector(group, index) == Combinator.OR:
            runs.append(current)
            current = []
    return runs


def check_logical_consistency(
    tree: Group, catalog: FieldCatalog, parent_path: tuple[str, ...] = ()
) -> list[ValidationFinding]:
    """
    Report contradictory conjoined numeric conditions as warnings.

    Args:
        tree: Group to inspect (nested groups are inspected recursively)
        catalog: Field catalog; only number fields are considered
        parent_path: Ids of the groups enclosing ``tree``

    Returns:
        Warning findings, one per contradictory pair
    """
    path = (*parent_path, tree.id)
    findings: list[ValidationFinding] = []

    for run in _and_runs(tree):
        bounded = []
        for child in run:
            if not is_condition(child):
                continue
            field = catalog.get(child.field_name)
            if field is None or field.type != FieldType.NUMBER:
                continue
            bounds = _bounds_for(child)
            if bounds is not None:
                bounded.append((child, bounds))

        for (first, first_bounds), (second, second_bounds) in combinations(bounded, 2):
            if first.field_name != second.field_name:
                continue
            if first_bounds.overlaps(second_bounds):
                continue
            findings.append(
                ValidationFinding(
                    id=f"{tree.id}-contradiction-{first.id}-{second.id}",
                    type=FindingType.GROUP,
                    severity=Severity.WARNING,
                    message=(
                        f"Contradictory conditions: {_describe(first)} AND {_describe(second)}"
                    ),
                    path=path,
                    suggestions=("Review the conditions for logical consistency",),
                )
            )

    for child in tree.children:
        if is_group(child):
            findings.extend(check_logical_consistency(child, catalog, path))

    return findings
