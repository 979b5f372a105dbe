"""
Domain-specific exceptions for the rule builder engine.

Structural editor failures never escape the public editor functions (they
return the input tree unchanged); the remaining errors surface to callers and
are mapped to process exit codes by the command-line front end.
"""

from typing import Any


class RuleBuilderError(Exception):
    """Base exception for all rule builder errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class StructuralError(RuleBuilderError):
    """
    Raised when an edit cannot be applied to the tree.

    Examples:
    - Target id does not exist
    - Target id is a condition where a group is required
    - Move would place a group inside its own subtree
    - Attempt to detach the root group
    """

    pass


class ValidationError(RuleBuilderError):
    """
    Raised when input data has the wrong shape entirely.

    Examples:
    - Serialized tree that is not a group
    - Unknown node kind
    - Field catalog entry without a name
    - Corrupt saved-rules payload

    Semantic problems in a well-formed tree are reported as findings,
    never raised.
    """

    pass


class CompilationError(RuleBuilderError):
    """
    Raised when an output cannot be produced.

    Examples:
    - Unknown export backend
    - Custom formatter raised
    """

    pass


class NotFoundError(RuleBuilderError):
    """
    Raised when a requested saved rule or folder does not exist.
    """

    pass


class ConflictError(RuleBuilderError):
    """
    Raised when an operation conflicts with current state.

    Examples:
    - Folder moved under its own descendant
    """

    pass


class ResolverError(RuleBuilderError):
    """
    Raised when a field value resolver fails to fetch options.
    """

    pass


# Process exit code mapping used by the CLI
ERROR_EXIT_CODE_MAP = {
    ValidationError: 2,
    StructuralError: 3,
    CompilationError: 4,
    NotFoundError: 5,
    ConflictError: 6,
    ResolverError: 7,
}


def get_exit_code(error: Exception) -> int:
    """
    Get the process exit code for a given exception.

    Args:
        error: The exception instance

    Returns:
        Exit code (defaults to 1 for unknown errors)
    """
    return ERROR_EXIT_CODE_MAP.get(type(error), 1)
