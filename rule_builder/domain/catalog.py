"""
Field catalog.

The catalog is the ordered list of fields a condition may reference. It is
consumed by the structural editor (default conditions), the validator and the
compiler (labels, option labels, value formatting).

Catalog entry format accepted by ``FieldCatalog.from_dicts``:
    {
        "name": "status",
        "label": "Status",
        "type": "select",
        "operators": ["equals", "in"],          # optional, defaults per type
        "options": [{"label": "Active", "value": "active"}],
        "constraints": {"min": 0, "max": 10, "pattern": "^[A-Z]+$"}
    }
"""

from collections.abc import Callable, Iterable, Iterator, Sequence
from datetime import date
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from rule_builder.core.errors import ValidationError
from rule_builder.domain.enums import FieldType, Operator

# Operators offered when a field does not declare its own list
DEFAULT_OPERATORS: dict[FieldType, tuple[str, ...]] = {
    FieldType.STRING: (
        Operator.EQUALS.value,
        Operator.NOT_EQUALS.value,
        Operator.CONTAINS.value,
        Operator.STARTS_WITH.value,
        Operator.ENDS_WITH.value,
        Operator.IS_EMPTY.value,
        Operator.IS_NOT_EMPTY.value,
    ),
    FieldType.NUMBER: (
        Operator.EQUALS.value,
        Operator.NOT_EQUALS.value,
        Operator.GT.value,
        Operator.GTE.value,
        Operator.LT.value,
        Operator.LTE.value,
        Operator.BETWEEN.value,
        Operator.NOT_BETWEEN.value,
    ),
    FieldType.DATE: (
        Operator.EQUALS.value,
        Operator.NOT_EQUALS.value,
        Operator.BEFORE.value,
        Operator.AFTER.value,
        Operator.BETWEEN.value,
        Operator.NOT_BETWEEN.value,
    ),
    FieldType.BOOLEAN: (
        Operator.EQUALS.value,
        Operator.IS_TRUE.value,
        Operator.IS_FALSE.value,
    ),
    FieldType.SELECT: (
        Operator.EQUALS.value,
        Operator.NOT_EQUALS.value,
        Operator.IN.value,
        Operator.NOT_IN.value,
    ),
}

# Phrases used by the human-readable backend
OPERATOR_LABELS: dict[str, str] = {
    Operator.EQUALS.value: "equals",
    Operator.NOT_EQUALS.value: "does not equal",
    Operator.CONTAINS.value: "contains",
    Operator.STARTS_WITH.value: "starts with",
    Operator.ENDS_WITH.value: "ends with",
    Operator.IS_EMPTY.value: "is empty",
    Operator.IS_NOT_EMPTY.value: "is not empty",
    Operator.GT.value: "is greater than",
    Operator.GTE.value: "is greater than or equal to",
    Operator.LT.value: "is less than",
    Operator.LTE.value: "is less than or equal to",
    Operator.BETWEEN.value: "is between",
    Operator.NOT_BETWEEN.value: "is not between",
    Operator.BEFORE.value: "is before",
    Operator.AFTER.value: "is after",
    Operator.IS_TRUE.value: "is true",
    Operator.IS_FALSE.value: "is false",
    Operator.IN.value: "is in",
    Operator.NOT_IN.value: "is not in",
}

# Operators that take no value
VALUELESS_OPERATORS = frozenset(
    {
        Operator.IS_EMPTY.value,
        Operator.IS_NOT_EMPTY.value,
        Operator.IS_TRUE.value,
        Operator.IS_FALSE.value,
    }
)

# Operators that take a [low, high] pair
RANGE_OPERATORS = frozenset({Operator.BETWEEN.value, Operator.NOT_BETWEEN.value})

# Operators that take a list of values
LIST_OPERATORS = frozenset({Operator.IN.value, Operator.NOT_IN.value})


class _CatalogModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        arbitrary_types_allowed=True,
    )


class SelectOption(_CatalogModel):
    label: str
    value: Any


class FieldConstraints(_CatalogModel):
    """
    Field-supplied value constraints.

    ``min``/``max`` bound numbers by value and strings by length. ``pattern`` is
    a regular expression searched in string values. ``custom`` returns True when
    the value is acceptable, or False / an error message otherwise.
    """

    required: bool = False
    min: float | None = None
    max: float | None = None
    pattern: str | None = None
    custom: Callable[[Any], bool | str] | None = Field(default=None, exclude=True)


class FieldConfig(_CatalogModel):
    """One catalog entry."""

    name: str
    label: str = ""
    type: FieldType = FieldType.STRING
    operators: tuple[str, ...] | None = None
    options: tuple[SelectOption, ...] | None = None
    constraints: FieldConstraints | None = None
    # Async option source; only its resolved options ever reach the engine
    value_resolver: Any = Field(default=None, exclude=True)

    @property
    def display_label(self) -> str:
        return self.label or self.name

    @property
    def allowed_operators(self) -> tuple[str, ...]:
        """Declared operators, or the default set for the field type."""
        if self.operators:
            return self.operators
        return DEFAULT_OPERATORS[self.type]

    def option_label(self, value: Any) -> str | None:
        """Label of the option whose value equals ``value``."""
        for option in self.options or ():
            if option.value == value:
                return option.label
        return None

    def has_option(self, value: Any) -> bool:
        return any(option.value == value for option in self.options or ())


class FieldCatalog:
    """Ordered, immutable collection of fields keyed by name."""

    def __init__(self, fields: Iterable[FieldConfig] = ()):
        self._fields: tuple[FieldConfig, ...] = tuple(fields)
        self._by_name: dict[str, FieldConfig] = {}
        for field in self._fields:
            # First declaration wins for duplicated names
            self._by_name.setdefault(field.name, field)

    @classmethod
    def from_dicts(cls, entries: Sequence[dict[str, Any]]) -> "FieldCatalog":
        """
        Build a catalog from plain dictionaries.

        Raises:
            ValidationError: If an entry is malformed
        """
        fields = []
        for index, entry in enumerate(entries):
            try:
                fields.append(FieldConfig.model_validate(entry))
            except PydanticValidationError as e:
                raise ValidationError(
                    f"Invalid field catalog entry at index {index}",
                    details={
                        "index": index,
                        "errors": e.errors(include_url=False, include_context=False),
                    },
                ) from e
        return cls(fields)

    def __iter__(self) -> Iterator[FieldConfig]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    def get(self, name: str) -> FieldConfig | None:
        return self._by_name.get(name)

    def first(self) -> FieldConfig | None:
        return self._fields[0] if self._fields else None

    def names(self) -> list[str]:
        return [field.name for field in self._fields]

    def with_options(self, name: str, options: Iterable[SelectOption]) -> "FieldCatalog":
        """
        Return a new catalog where ``name`` carries the given resolved options.

        Unknown names return the catalog unchanged.
        """
        if name not in self._by_name:
            return self
        resolved = tuple(options)
        return FieldCatalog(
            field.model_copy(update={"options": resolved}) if field.name == name else field
            for field in self._fields
        )

    def to_dicts(self) -> list[dict[str, Any]]:
        return [
            field.model_dump(mode="json", by_alias=True, exclude_none=True)
            for field in self._fields
        ]


def default_value_for(field: FieldConfig | None, today: date | None = None) -> Any:
    """
    Default condition value for a field type.

    Args:
        field: Catalog entry (None yields an empty string)
        today: Date used for date fields (defaults to the current date)
    """
    if field is None:
        return ""

    if field.type == FieldType.NUMBER:
        return 0
    if field.type == FieldType.BOOLEAN:
        return False
    if field.type == FieldType.DATE:
        return (today or date.today()).isoformat()
    if field.type == FieldType.SELECT:
        return field.options[0].value if field.options else ""
    return ""
