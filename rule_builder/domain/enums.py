"""
Domain enums for the rule tree, the field catalog and the compiler.

Enum values are the exact strings that appear in serialized trees, field
catalogs and validation findings.
"""

from enum import Enum


class Combinator(str, Enum):
    """Boolean connector between two consecutive siblings."""

    AND = "AND"
    OR = "OR"

    @classmethod
    def _missing_(cls, value: object) -> "Combinator | None":
        # Accept lower-case connectors ("and" / "or") from legacy payloads
        if isinstance(value, str):
            upper = value.upper()
            for member in cls:
                if member.value == upper:
                    return member
        return None


class NodeKind(str, Enum):
    """Discriminator for tree nodes."""

    CONDITION = "condition"
    GROUP = "group"


class FieldType(str, Enum):
    """
    Data types for catalog fields.
    Drives default operators, default values and value checks.
    """

    STRING = "string"
    NUMBER = "number"
    DATE = "date"
    BOOLEAN = "boolean"
    SELECT = "select"


class Operator(str, Enum):
    """
    Supported condition operators.
    Used in field catalog operator lists and in conditions.
    """

    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    BETWEEN = "between"
    NOT_BETWEEN = "notBetween"
    BEFORE = "before"
    AFTER = "after"
    IS_TRUE = "isTrue"
    IS_FALSE = "isFalse"
    IN = "in"
    NOT_IN = "notIn"


class Severity(str, Enum):
    """Severity of a validation finding."""

    ERROR = "error"
    WARNING = "warning"


class FindingType(str, Enum):
    """What a validation finding is about."""

    FIELD = "field"
    RULE = "rule"
    GROUP = "group"
    SCHEMA = "schema"


class ExportFormat(str, Enum):
    """Built-in compiler outputs."""

    JSON = "json"
    SQL = "sql"
    MONGODB = "mongodb"
    READABLE = "readable"
