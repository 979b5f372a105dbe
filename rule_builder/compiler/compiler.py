"""
Compiler entry points.

Turns a rule tree into every supported output:
- json: the serialized tree itself
- sql: a SQL WHERE clause
- mongodb: a MongoDB filter document
- readable: a plain-English sentence
- custom: the result of a caller-supplied ``(tree) -> T`` function

Every ``compile_tree`` call is timed, logged and recorded in metrics.
"""

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from rule_builder.compiler.canonicalizer import to_canonical_json_pretty
from rule_builder.compiler.mongo import format_mongo
from rule_builder.compiler.readable import format_readable
from rule_builder.compiler.sql import format_sql
from rule_builder.core.errors import CompilationError
from rule_builder.core.observability import record_compilation
from rule_builder.domain.catalog import FieldCatalog
from rule_builder.domain.enums import ExportFormat
from rule_builder.domain.models import Group, is_empty_tree, serialize_tree

logger = logging.getLogger(__name__)

CustomFormatter = Callable[[Group], Any]


@dataclass(frozen=True)
class RuleOutput:
    """All outputs of one tree."""

    json: dict[str, Any]
    sql: str
    mongodb: dict[str, Any]
    readable: str
    custom: Any = None


@dataclass(frozen=True)
class ExportFormatInfo:
    name: str
    description: str
    mime_type: str
    extension: str


_FORMAT_INFO = {
    ExportFormat.JSON: ExportFormatInfo(
        "JSON", "Native rule structure format", "application/json", ".json"
    ),
    ExportFormat.SQL: ExportFormatInfo(
        "SQL WHERE Clause", "SQL WHERE clause syntax", "text/plain", ".sql"
    ),
    ExportFormat.MONGODB: ExportFormatInfo(
        "MongoDB Query", "MongoDB query object", "application/json", ".json"
    ),
    ExportFormat.READABLE: ExportFormatInfo(
        "Human Readable", "Plain English description", "text/plain", ".txt"
    ),
}


def format_json(tree: Group) -> dict[str, Any]:
    """The json output: the tree in its serialized form."""
    return serialize_tree(tree)


def _resolve_format(backend: ExportFormat | str) -> ExportFormat:
    try:
        return ExportFormat(backend)
    except ValueError as e:
        raise CompilationError(
            f"Unknown export format '{backend}'",
            details={"backend": str(backend), "supported": [f.value for f in ExportFormat]},
        ) from e


def compile_tree(
    tree: Group,
    catalog: FieldCatalog,
    backend: ExportFormat | str | CustomFormatter = ExportFormat.READABLE,
    *,
    date_format: str | None = None,
) -> Any:
    """
    Compile a tree with one backend.

    Args:
        tree: Root group
        catalog: Field catalog (labels, types, options)
        backend: Built-in format, or a callable receiving the tree
        date_format: strftime format for readable dates (defaults to settings)

    Returns:
        str for sql/readable, dict for json/mongodb, anything for a callable

    Raises:
        CompilationError: If the format is unknown or a custom backend fails
    """
    if callable(backend):
        name = "custom"
    else:
        backend = _resolve_format(backend)
        name = backend.value

    start_time = time.perf_counter()
    try:
        if name == "custom":
            result = _run_custom(backend, tree)
        elif backend == ExportFormat.JSON:
            result = format_json(tree)
        elif backend == ExportFormat.SQL:
            result = format_sql(tree, catalog)
        elif backend == ExportFormat.MONGODB:
            result = format_mongo(tree, catalog)
        else:
            result = format_readable(tree, catalog, date_format)
    except Exception:
        record_compilation(name, "error", time.perf_counter() - start_time)
        raise

    duration = time.perf_counter() - start_time
    logger.info("Compiled tree %s with %s backend in %.4fs", tree.id, name, duration)
    record_compilation(name, "success", duration)
    return result


def _run_custom(formatter: CustomFormatter, tree: Group) -> Any:
    try:
        return formatter(tree)
    except Exception as e:
        logger.exception("Custom formatter failed for tree %s", tree.id)
        raise CompilationError(
            f"Custom formatter failed: {e}",
            details={"tree_id": tree.id, "formatter": getattr(formatter, "__name__", "custom")},
        ) from e


def generate_output(
    tree: Group,
    catalog: FieldCatalog,
    custom: CustomFormatter | None = None,
    *,
    date_format: str | None = None,
) -> RuleOutput:
    """
    Compile a tree with every built-in backend (and ``custom`` when given).

    Raises:
        CompilationError: If the custom formatter fails
    """
    return RuleOutput(
        json=compile_tree(tree, catalog, ExportFormat.JSON),
        sql=compile_tree(tree, catalog, ExportFormat.SQL),
        mongodb=compile_tree(tree, catalog, ExportFormat.MONGODB),
        readable=compile_tree(tree, catalog, ExportFormat.READABLE, date_format=date_format),
        custom=compile_tree(tree, catalog, custom) if custom is not None else None,
    )


def export_text(
    tree: Group,
    catalog: FieldCatalog,
    backend: ExportFormat | str,
    *,
    date_format: str | None = None,
) -> str:
    """
    Compile a tree to text ready for a file of the format's extension.

    json and mongodb outputs are emitted as canonical, indented JSON.
    """
    backend = _resolve_format(backend)
    result = compile_tree(tree, catalog, backend, date_format=date_format)
    if backend in (ExportFormat.JSON, ExportFormat.MONGODB):
        return to_canonical_json_pretty(result)
    return result


def can_export_to_format(tree: Group, backend: ExportFormat | str) -> bool:
    """False for unknown formats and for trees without any condition."""
    try:
        ExportFormat(backend)
    except ValueError:
        return False
    return not is_empty_tree(tree)


def export_format_info() -> dict[ExportFormat, ExportFormatInfo]:
    """Display name, description, MIME type and file extension per format."""
    return dict(_FORMAT_INFO)
