"""
Tests for rule tree validation.

These tests verify:
- Field, operator and value presence checks
- Value type and select option checks
- Field-supplied constraints (required, min, max, pattern, custom)
- Empty group warnings
- Contradiction detection for conjoined numeric conditions
- Finding ids, paths and ordering
"""

import pytest

from rule_builder.domain.catalog import FieldCatalog, FieldConfig, FieldConstraints
from rule_builder.domain.enums import Combinator, FieldType, FindingType, Severity
from rule_builder.domain.models import Condition, Group
from rule_builder.validation import (
    check_logical_consistency,
    is_valid,
    validate,
    validate_condition,
    validate_tree,
)


def _check(catalog, **condition_fields):
    condition = Condition(id="c1", **condition_fields)
    return {finding.id: finding for finding in validate_condition(condition, catalog, ("root",))}


# =============================================================================
# Condition checks
# =============================================================================


class TestConditionChecks:
    """Tests for per-condition checks."""

    @pytest.mark.anyio
    async def test_valid_condition_has_no_findings(self, catalog):
        assert _check(catalog, field_name="age", operator=">", value=18) == {}

    @pytest.mark.anyio
    async def test_unknown_field(self, catalog):
        findings = _check(catalog, field_name="ghost", operator="equals", value="x")

        assert list(findings) == ["c1-field"]
        finding = findings["c1-field"]
        assert finding.message == 'Field "ghost" does not exist'
        assert finding.type == FindingType.RULE
        assert finding.severity == Severity.ERROR
        assert finding.path == ("root", "c1")

    @pytest.mark.anyio
    async def test_operator_not_allowed(self, catalog):
        findings = _check(catalog, field_name="age", operator="contains", value=3)

        finding = findings["c1-operator"]
        assert finding.message == 'Operator "contains" is not valid for field type "number"'
        assert finding.suggestions[0].startswith("Valid operators: equals, notEquals, >")

    @pytest.mark.anyio
    async def test_value_required(self, catalog):
        for blank in (None, "", []):
            findings = _check(catalog, field_name="name", operator="equals", value=blank)
            assert findings["c1-value"].message == "Value is required for this operator"

    @pytest.mark.anyio
    async def test_valueless_operator_skips_value_checks(self, catalog):
        assert _check(catalog, field_name="status", operator="isTrue") == {}
        assert _check(catalog, field_name="name", operator="isEmpty", value=None) == {}

    @pytest.mark.anyio
    async def test_required_constraint_adds_finding(self):
        catalog = FieldCatalog(
            [FieldConfig(name="code", constraints=FieldConstraints(required=True))]
        )
        findings = _check(catalog, field_name="code", operator="equals", value="")
        assert set(findings) == {"c1-value", "c1-required"}

    @pytest.mark.anyio
    async def test_number_type(self, catalog):
        findings = _check(catalog, field_name="age", operator=">", value="abc")
        assert findings["c1-value-type"].message == "Value must be a valid number"
        assert findings["c1-value-type"].type == FindingType.FIELD

    @pytest.mark.anyio
    async def test_numeric_string_accepted(self, catalog):
        assert _check(catalog, field_name="age", operator=">", value="42") == {}
        assert _check(catalog, field_name="age", operator=">", value=" -2.5e1 ") == {}

    @pytest.mark.anyio
    @pytest.mark.parametrize("text", ["inf", "-Infinity", "NaN", "1e999", "1_000", "0x10", "٣"])
    async def test_non_finite_or_non_decimal_strings_rejected(self, text):
        """Only plain finite decimal strings count as numbers."""
        catalog = FieldCatalog([FieldConfig(name="amount", type=FieldType.NUMBER)])
        findings = _check(catalog, field_name="amount", operator=">", value=text)
        assert findings["c1-value-type"].message == "Value must be a valid number"

    @pytest.mark.anyio
    async def test_date_type(self, catalog):
        findings = _check(catalog, field_name="signup", operator="before", value="soon")
        assert findings["c1-value-type"].message == "Value must be a valid date"
        assert _check(catalog, field_name="signup", operator="before", value="2024-01-31") == {}

    @pytest.mark.anyio
    async def test_boolean_type(self, catalog):
        findings = _check(catalog, field_name="status", operator="equals", value="yes")
        assert findings["c1-value-type"].message == "Value must be true or false"

    @pytest.mark.anyio
    async def test_select_option(self, catalog):
        findings = _check(catalog, field_name="country", operator="equals", value="zz")

        finding = findings["c1-value-option"]
        assert finding.suggestions == ('"United States"', '"Canada"', '"Mexico"')

    @pytest.mark.anyio
    async def test_select_list_members_checked(self, catalog):
        assert _check(catalog, field_name="country", operator="in", value=["us", "ca"]) == {}
        findings = _check(catalog, field_name="country", operator="in", value=["us", "zz"])
        assert "c1-value-option" in findings

    @pytest.mark.anyio
    async def test_range_shape(self, catalog):
        findings = _check(catalog, field_name="age", operator="between", value=5)
        assert findings["c1-value-shape"].type == FindingType.SCHEMA

        findings = _check(catalog, field_name="age", operator="between", value=[5, ""])
        assert findings["c1-value"].message == "Both range bounds are required"

    @pytest.mark.anyio
    async def test_scalar_operator_rejects_list(self, catalog):
        findings = _check(catalog, field_name="age", operator="equals", value=[1, 2])
        assert "c1-value-shape" in findings


class TestConstraints:
    """Tests for field-supplied constraints."""

    @pytest.mark.anyio
    async def test_number_min_max(self, catalog):
        findings = _check(catalog, field_name="age", operator="equals", value=-1)
        assert findings["c1-min"].message == "Value must be at least 0"

        findings = _check(catalog, field_name="age", operator="equals", value=200)
        assert findings["c1-max"].message == "Value must be at most 150"

    @pytest.mark.anyio
    async def test_range_reports_each_check_once(self, catalog):
        findings = _check(catalog, field_name="age", operator="between", value=[-5, -1])
        assert list(findings) == ["c1-min"]

    @pytest.mark.anyio
    async def test_string_length_and_pattern(self):
        catalog = FieldCatalog(
            [
                FieldConfig(
                    name="code",
                    constraints=FieldConstraints(min=2, max=4, pattern=r"^[A-Z]+$"),
                )
            ]
        )
        findings = _check(catalog, field_name="code", operator="equals", value="a")
        assert set(findings) == {"c1-min-length", "c1-pattern"}

        findings = _check(catalog, field_name="code", operator="equals", value="ABCDE")
        assert set(findings) == {"c1-max-length"}

    @pytest.mark.anyio
    async def test_invalid_pattern_is_ignored(self):
        catalog = FieldCatalog(
            [FieldConfig(name="code", constraints=FieldConstraints(pattern="[unclosed"))]
        )
        assert _check(catalog, field_name="code", operator="equals", value="x") == {}

    @pytest.mark.anyio
    async def test_custom_check_message(self):
        def even(value):
            return value % 2 == 0 or "Value must be even"

        catalog = FieldCatalog(
            [
                FieldConfig(
                    name="n", type=FieldType.NUMBER, constraints=FieldConstraints(custom=even)
                )
            ]
        )
        findings = _check(catalog, field_name="n", operator="equals", value=3)
        assert findings["c1-custom"].message == "Value must be even"
        assert _check(catalog, field_name="n", operator="equals", value=4) == {}

    @pytest.mark.anyio
    async def test_custom_check_default_message(self):
        catalog = FieldCatalog(
            [FieldConfig(name="n", constraints=FieldConstraints(custom=lambda value: False))]
        )
        findings = _check(catalog, field_name="n", operator="equals", value="x")
        assert findings["c1-custom"].message == "Value is invalid"


# =============================================================================
# Tree checks
# =============================================================================


class TestTreeValidation:
    """Tests for whole-tree validation."""

    @pytest.mark.anyio
    async def test_clean_tree(self, sample_tree, catalog):
        result = validate(sample_tree, catalog)
        assert result.is_valid
        assert result.findings == ()

    @pytest.mark.anyio
    async def test_empty_root_is_warning_only(self, catalog):
        result = validate(Group(id="root"), catalog)

        assert result.is_valid
        (warning,) = result.warnings
        assert warning.id == "root-empty"
        assert warning.message == "Rule group is empty"
        assert warning.type == FindingType.GROUP

    @pytest.mark.anyio
    async def test_findings_depth_first_with_paths(self, catalog):
        tree = Group(
            id="root",
            children=(
                Condition(id="a", field_name="ghost"),
                Group(id="g", children=(Condition(id="b", field_name="age", operator=">"),)),
                Group(id="e"),
            ),
        )
        findings = validate_tree(tree, catalog)

        assert [f.id for f in findings] == ["a-field", "b-value", "e-empty"]
        assert findings[1].path == ("root", "g", "b")

    @pytest.mark.anyio
    async def test_is_valid(self, sample_tree, catalog):
        assert is_valid(sample_tree, catalog)
        broken = Group(children=(Condition(field_name="ghost"),))
        assert not is_valid(broken, catalog)

    @pytest.mark.anyio
    async def test_result_serializes_with_aliases(self, catalog):
        result = validate(Group(id="root"), catalog)
        data = result.model_dump(mode="json", by_alias=True)
        assert data["isValid"] is True
        assert data["findings"][0]["severity"] == "warning"


class TestConsistency:
    """Tests for contradiction warnings."""

    @pytest.mark.anyio
    async def test_contradiction_in_and_run(self, catalog):
        tree = Group(
            id="root",
            children=(
                Condition(id="a", field_name="age", operator=">", value=10),
                Condition(id="b", field_name="age", operator="<", value=5),
            ),
        )
        (warning,) = check_logical_consistency(tree, catalog)

        assert warning.id == "root-contradiction-a-b"
        assert warning.message == "Contradictory conditions: age > 10 AND age < 5"
        assert warning.severity == Severity.WARNING
        assert warning.path == ("root",)

    @pytest.mark.anyio
    async def test_contradiction_is_warning_not_error(self, catalog):
        tree = Group(
            id="root",
            children=(
                Condition(id="a", field_name="age", operator="equals", value=3),
                Condition(id="b", field_name="age", operator="between", value=[5, 9]),
            ),
        )
        result = validate(tree, catalog)
        assert result.is_valid
        assert [w.id for w in result.warnings] == ["root-contradiction-a-b"]

    @pytest.mark.anyio
    async def test_or_connector_breaks_run(self, catalog):
        tree = Group(
            id="root",
            default_combinator=Combinator.OR,
            children=(
                Condition(id="a", field_name="age", operator=">", value=10),
                Condition(id="b", field_name="age", operator="<", value=5),
            ),
        )
        assert check_logical_consistency(tree, catalog) == []

    @pytest.mark.anyio
    async def test_touching_inclusive_bounds_overlap(self, catalog):
        tree = Group(
            children=(
                Condition(field_name="age", operator=">=", value=5),
                Condition(field_name="age", operator="<=", value=5),
            ),
        )
        assert check_logical_consistency(tree, catalog) == []

    @pytest.mark.anyio
    async def test_touching_exclusive_bounds_contradict(self, catalog):
        tree = Group(
            children=(
                Condition(field_name="age", operator=">", value=5),
                Condition(field_name="age", operator="<=", value=5),
            ),
        )
        assert len(check_logical_consistency(tree, catalog)) == 1

    @pytest.mark.anyio
    async def test_nested_group_path(self, catalog):
        tree = Group(
            id="root",
            children=(
                Group(
                    id="g",
                    children=(
                        Condition(id="a", field_name="age", operator="<", value=1),
                        Condition(id="b", field_name="age", operator=">", value=2),
                    ),
                ),
            ),
        )
        (warning,) = check_logical_consistency(tree, catalog)
        assert warning.path == ("root", "g")

    @pytest.mark.anyio
    async def test_non_number_fields_ignored(self, catalog):
        tree = Group(
            children=(
                Condition(field_name="name", operator="equals", value="a"),
                Condition(field_name="name", operator="equals", value="b"),
            ),
        )
        assert check_logical_consistency(tree, catalog) == []
