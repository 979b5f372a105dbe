"""
Rule Tree Validation.

Checks a rule tree against a field catalog and reports findings instead of
raising:
- Referenced fields exist in the catalog
- Operators are allowed for their fields
- A value is present unless the operator takes none
- Values match the field type (number, date, boolean, select option)
- Field-supplied constraints (required, min, max, pattern, custom)
- Groups are not empty
- Conjoined numeric conditions on the same field are not contradictory

Conditions are checked depth-first in child order; contradiction warnings
follow all other findings.
"""

import logging
import re
from typing import Any

from rule_builder.core.observability import record_findings
from rule_builder.domain.catalog import (
    LIST_OPERATORS,
    RANGE_OPERATORS,
    VALUELESS_OPERATORS,
    FieldCatalog,
    FieldConfig,
    FieldConstraints,
)
from rule_builder.domain.enums import FieldType, FindingType, Severity
from rule_builder.domain.models import Condition, Group, is_group
from rule_builder.domain.values import is_blank, parse_date, to_number
from rule_builder.validation.consistency import check_logical_consistency
from rule_builder.validation.findings import ValidationFinding, ValidationResult

logger = logging.getLogger(__name__)


def validate_tree(tree: Group, catalog: FieldCatalog) -> list[ValidationFinding]:
    """
    Validate a rule tree against the field catalog.

    Args:
        tree: Root group
        catalog: Field catalog conditions are checked against

    Returns:
        Ordered findings (empty when the tree is clean)
    """
    findings = _validate_group(tree, catalog, ())
    findings.extend(check_logical_consistency(tree, catalog))
    return findings


def validate(tree: Group, catalog: FieldCatalog) -> ValidationResult:
    """Validate a tree and summarize the outcome."""
    findings = validate_tree(tree, catalog)
    errors = sum(1 for finding in findings if finding.is_error)
    warnings = len(findings) - errors

    record_findings(errors, warnings)
    if findings:
        logger.debug("Validation found %d errors and %d warnings", errors, warnings)

    return ValidationResult(is_valid=errors == 0, findings=tuple(findings))


def is_valid(tree: Group, catalog: FieldCatalog) -> bool:
    """True when the tree has no error findings (warnings are allowed)."""
    return not any(finding.is_error for finding in validate_tree(tree, catalog))


def _validate_group(
    group: Group, catalog: FieldCatalog, parent_path: tuple[str, ...]
) -> list[ValidationFinding]:
    path = (*parent_path, group.id)
    findings: list[ValidationFinding] = []

    if not group.children:
        findings.append(
            ValidationFinding(
                id=f"{group.id}-empty",
                type=FindingType.GROUP,
                severity=Severity.WARNING,
                message="Rule group is empty",
                path=path,
                suggestions=("Add at least one rule or condition to this group",),
            )
        )

    for child in group.children:
        if is_group(child):
            findings.extend(_validate_group(child, catalog, path))
        else:
            findings.extend(validate_condition(child, catalog, path))

    return findings


def validate_condition(
    condition: Condition, catalog: FieldCatalog, parent_path: tuple[str, ...] = ()
) -> list[ValidationFinding]:
    """
    Validate one condition.

    Args:
        condition: Condition to check
        catalog: Field catalog
        parent_path: Ids of the enclosing groups, root first

    Returns:
        Findings for this condition
    """
    path = (*parent_path, condition.id)
    findings: list[ValidationFinding] = []

    # Check 1: Field exists
    field = catalog.get(condition.field_name)
    if field is None:
        findings.append(
            _rule_finding(
                condition,
                path,
                "field",
                f'Field "{condition.field_name}" does not exist',
                ("Select a valid field from the list",),
            )
        )
        return findings

    # Check 2: Operator is allowed
    allowed = field.allowed_operators
    if condition.operator not in allowed:
        findings.append(
            _rule_finding(
                condition,
                path,
                "operator",
                f'Operator "{condition.operator}" is not valid for field type "{field.type.value}"',
                (f"Valid operators: {', '.join(allowed)}",),
            )
        )

    # Check 3: Value present
    if condition.operator in VALUELESS_OPERATORS:
        return findings

    if is_blank(condition.value):
        findings.append(
            _rule_finding(
                condition,
                path,
                "value",
                "Value is required for this operator",
                ("Enter a value for this condition",),
            )
        )
        if field.constraints is not None and field.constraints.required:
            findings.append(_field_finding(condition, path, "required", "This field is required"))
        return findings

    # Checks 4 and 5: Value shape, type and constraints
    members = _value_members(condition, path, findings)
    if members is None:
        return findings

    type_finding = _check_member_types(condition, field, path, members)
    if type_finding is not None:
        findings.append(type_finding)
        return findings

    if field.constraints is not None:
        findings.extend(_check_constraints(condition, field, path, members))

    return findings


def _rule_finding(
    condition: Condition,
    path: tuple[str, ...],
    attribute: str,
    message: str,
    suggestions: tuple[str, ...] = (),
) -> ValidationFinding:
    return ValidationFinding(
        id=f"{condition.id}-{attribute}",
        type=FindingType.RULE,
        severity=Severity.ERROR,
        message=message,
        path=path,
        attribute=attribute,
        suggestions=suggestions,
    )


def _field_finding(
    condition: Condition,
    path: tuple[str, ...],
    check: str,
    message: str,
    suggestions: tuple[str, ...] = (),
) -> ValidationFinding:
    return ValidationFinding(
        id=f"{condition.id}-{check}",
        type=FindingType.FIELD,
        severity=Severity.ERROR,
        message=message,
        path=path,
        attribute="value",
        suggestions=suggestions,
    )


def _value_members(
    condition: Condition, path: tuple[str, ...], findings: list[ValidationFinding]
) -> list[Any] | None:
    """
    Split the value into the members to type-check.

    Range operators need a two-element list, list operators accept a list or a
    single value, every other operator takes a single value. Returns None (and
    appends a finding) when the shape is wrong.
    """
    value = condition.value
    operator = condition.operator

    if operator in RANGE_OPERATORS:
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            findings.append(
                ValidationFinding(
                    id=f"{condition.id}-value-shape",
                    type=FindingType.SCHEMA,
                    severity=Severity.ERROR,
                    message=f'Operator "{operator}" requires exactly two values',
                    path=path,
                    attribute="value",
                    suggestions=("Enter a lower and an upper bound",),
                )
            )
            return None
        if any(is_blank(member) for member in value):
            findings.append(
                _rule_finding(
                    condition,
                    path,
                    "value",
                    "Both range bounds are required",
                    ("Enter a lower and an upper bound",),
                )
            )
            return None
        return list(value)

    if operator in LIST_OPERATORS:
        return list(value) if isinstance(value, (list, tuple)) else [value]

    if isinstance(value, (list, tuple)):
        findings.append(
            ValidationFinding(
                id=f"{condition.id}-value-shape",
                type=FindingType.SCHEMA,
                severity=Severity.ERROR,
                message=f'Operator "{operator}" does not accept a list of values',
                path=path,
                attribute="value",
            )
        )
        return None

    return [value]


def _check_member_types(
    condition: Condition, field: FieldConfig, path: tuple[str, ...], members: list[Any]
) -> ValidationFinding | None:
    """First type mismatch among the value members, if any."""
    for member in members:
        if field.type == FieldType.STRING and not isinstance(member, str):
            return _field_finding(condition, path, "value-type", "Value must be a string")

        if field.type == FieldType.NUMBER and to_number(member) is None:
            return _field_finding(condition, path, "value-type", "Value must be a valid number")

        if field.type == FieldType.DATE and parse_date(member) is None:
            return _field_finding(
                condition,
                path,
                "value-type",
                "Value must be a valid date",
                ("Use the YYYY-MM-DD format",),
            )

        if field.type == FieldType.BOOLEAN and not isinstance(member, bool):
            return _field_finding(condition, path, "value-type", "Value must be true or false")

        if field.type == FieldType.SELECT and field.options and not field.has_option(member):
            return _field_finding(
                condition,
                path,
                "value-option",
                "Value must be one of the available options",
                tuple(f'"{option.label}"' for option in field.options[:3]),
            )

    return None


def _check_constraints(
    condition: Condition, field: FieldConfig, path: tuple[str, ...], members: list[Any]
) -> list[ValidationFinding]:
    """Field-supplied constraints; each check reports at most once per condition."""
    constraints: FieldConstraints = field.constraints
    reported: dict[str, ValidationFinding] = {}

    def report(check: str, message: str) -> None:
        reported.setdefault(check, _field_finding(condition, path, check, message))

    for member in members:
        if field.type == FieldType.NUMBER:
            number = to_number(member)
            if constraints.min is not None and number < constraints.min:
                report("min", f"Value must be at least {_format_bound(constraints.min)}")
            if constraints.max is not None and number > constraints.max:
                report("max", f"Value must be at most {_format_bound(constraints.max)}")
        elif isinstance(member, str):
            if constraints.min is not None and len(member) < constraints.min:
                report(
                    "min-length",
                    f"Value must be at least {_format_bound(constraints.min)} characters",
                )
            if constraints.max is not None and len(member) > constraints.max:
                report(
                    "max-length",
                    f"Value must be at most {_format_bound(constraints.max)} characters",
                )

        if constraints.pattern and isinstance(member, str):
            try:
                matched = re.search(constraints.pattern, member) is not None
            except re.error as e:
                logger.warning(
                    "Invalid pattern for field '%s': %s", field.name, e, extra={"field": field.name}
                )
                matched = True
            if not matched:
                report("pattern", "Value does not match the required format")

        if constraints.custom is not None:
            result = constraints.custom(member)
            if result is not True:
                report("custom", result if isinstance(result, str) else "Value is invalid")

    return list(reported.values())


def _format_bound(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)
