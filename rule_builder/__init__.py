"""
Rule builder engine.

Immutable rule trees of AND/OR-joined conditions, a pure structural edit
algebra, a validator, readable/SQL/MongoDB compilers and a bounded undo/redo
history.
"""

from rule_builder.compiler import compile_tree, format_mongo, format_readable, format_sql
from rule_builder.domain import Combinator, Condition, FieldCatalog, FieldConfig, Group
from rule_builder.services.builder import RuleBuilder
from rule_builder.validation import validate, validate_tree

__version__ = "0.1.0"

__all__ = [
    "Combinator",
    "Condition",
    "FieldCatalog",
    "FieldConfig",
    "Group",
    "RuleBuilder",
    "compile_tree",
    "format_mongo",
    "format_readable",
    "format_sql",
    "validate",
    "validate_tree",
]
