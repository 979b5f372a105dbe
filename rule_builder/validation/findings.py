"""
Validation finding shapes.

Findings are data, never exceptions: a well-formed tree with semantic problems
yields a list of findings the caller can render next to the offending node.
"""

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from rule_builder.domain.enums import FindingType, Severity


class ValidationFinding(BaseModel):
    """
    One validation problem.

    ``id`` is stable for a given node and check (``<node id>-<check>``), and
    ``path`` holds node ids from the root down to the offending node.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    id: str
    type: FindingType
    severity: Severity
    message: str
    path: tuple[str, ...] = ()
    attribute: str | None = None
    suggestions: tuple[str, ...] = ()

    @property
    def is_error(self) -> bool:
        return self.severity == Severity.ERROR


class ValidationResult(BaseModel):
    """Findings of one validation pass."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)

    is_valid: bool
    findings: tuple[ValidationFinding, ...] = ()

    @property
    def errors(self) -> list[ValidationFinding]:
        return [finding for finding in self.findings if finding.severity == Severity.ERROR]

    @property
    def warnings(self) -> list[ValidationFinding]:
        return [finding for finding in self.findings if finding.severity == Severity.WARNING]
