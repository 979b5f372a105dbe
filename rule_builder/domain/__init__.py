"""
Domain layer: rule tree model, field catalog and shared enums.
"""

from rule_builder.domain.catalog import (
    DEFAULT_OPERATORS,
    OPERATOR_LABELS,
    VALUELESS_OPERATORS,
    FieldCatalog,
    FieldConfig,
    FieldConstraints,
    SelectOption,
    default_value_for,
)
from rule_builder.domain.enums import Combinator, ExportFormat, FieldType, Operator, Severity
from rule_builder.domain.models import (
    Condition,
    Group,
    TreeNode,
    create_condition,
    create_group,
    effective_connector,
    is_condition,
    is_group,
    parse_tree,
    serialize_tree,
)

__all__ = [
    "Combinator",
    "Condition",
    "DEFAULT_OPERATORS",
    "ExportFormat",
    "FieldCatalog",
    "FieldConfig",
    "FieldConstraints",
    "FieldType",
    "Group",
    "OPERATOR_LABELS",
    "Operator",
    "SelectOption",
    "Severity",
    "TreeNode",
    "VALUELESS_OPERATORS",
    "create_condition",
    "create_group",
    "default_value_for",
    "effective_connector",
    "is_condition",
    "is_group",
    "parse_tree",
    "serialize_tree",
]
