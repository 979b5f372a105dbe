"""
Pytest configuration and shared fixtures.

Provides:
- anyio backend selection (asyncio)
- A field catalog covering every field type
- Sample trees: the two-condition AND tree and a nested tree
"""

import pytest

from rule_builder.domain.catalog import FieldCatalog
from rule_builder.domain.enums import Combinator
from rule_builder.domain.models import Condition, Group


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def catalog() -> FieldCatalog:
    return FieldCatalog.from_dicts(
        [
            {
                "name": "age",
                "label": "Age",
                "type": "number",
                "constraints": {"min": 0, "max": 150},
            },
            {"name": "name", "label": "Name", "type": "string"},
            {"name": "status", "label": "Status", "type": "boolean"},
            {
                "name": "country",
                "label": "Country",
                "type": "select",
                "options": [
                    {"label": "United States", "value": "us"},
                    {"label": "Canada", "value": "ca"},
                    {"label": "Mexico", "value": "mx"},
                ],
            },
            {"name": "signup", "label": "Signup Date", "type": "date"},
        ]
    )


@pytest.fixture
def sample_tree() -> Group:
    """age > 18 AND name = "O'Brien"."""
    return Group(
        id="root",
        children=(
            Condition(id="c-age", field_name="age", operator=">", value=18),
            Condition(id="c-name", field_name="name", operator="equals", value="O'Brien"),
        ),
    )


@pytest.fixture
def nested_tree() -> Group:
    """age > 18 AND (name = "Ann" OR country = us) AND status is true."""
    return Group(
        id="root",
        children=(
            Condition(id="c-age", field_name="age", operator=">", value=18),
            Group(
                id="g-inner",
                default_combinator=Combinator.OR,
                children=(
                    Condition(id="c-name", field_name="name", operator="equals", value="Ann"),
                    Condition(id="c-country", field_name="country", operator="equals", value="us"),
                ),
            ),
            Condition(id="c-status", field_name="status", operator="isTrue"),
        ),
    )
