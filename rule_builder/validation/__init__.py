from rule_builder.validation.consistency import check_logical_consistency
from rule_builder.validation.findings import ValidationFinding, ValidationResult
from rule_builder.validation.validator import (
    is_valid,
    validate,
    validate_condition,
    validate_tree,
)

__all__ = [
    "ValidationFinding",
    "ValidationResult",
    "check_logical_consistency",
    "is_valid",
    "validate",
    "validate_condition",
    "validate_tree",
]
