"""Command-line front end.

Usage:
    rule-builder validate tree.json --catalog fields.json [--json]
    rule-builder compile tree.json --catalog fields.json [--format sql]
    rule-builder formats

Exit codes: 0 on success, 1 when validation finds errors, otherwise the code
mapped to the raised error (see ``ERROR_EXIT_CODE_MAP``).
"""

import argparse
import json
import logging
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from rule_builder.compiler.compiler import export_format_info, export_text
from rule_builder.core.errors import RuleBuilderError, ValidationError, get_exit_code
from rule_builder.core.observability import configure_structured_logging
from rule_builder.domain.catalog import FieldCatalog
from rule_builder.domain.enums import ExportFormat
from rule_builder.domain.models import Group, parse_tree, upgrade_legacy_tree
from rule_builder.validation.validator import validate

logger = logging.getLogger(__name__)


def _read_json(path: str) -> Any:
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ValidationError(f"Cannot read {path}: {e.strerror}", details={"path": path}) from e
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise ValidationError(
            f"{path} is not valid JSON", details={"path": path, "error": str(e)}
        ) from e


def load_tree(path: str) -> Group:
    """Load a tree file; untagged legacy trees are upgraded first."""
    data = _read_json(path)
    if isinstance(data, dict) and "kind" not in data:
        data = upgrade_legacy_tree(data)
    return parse_tree(data)


def load_catalog(path: str) -> FieldCatalog:
    """Load a catalog file: a list of fields or ``{"fields": [...]}``."""
    data = _read_json(path)
    if isinstance(data, dict):
        data = data.get("fields")
    if not isinstance(data, list):
        raise ValidationError(f"{path} must hold a list of fields", details={"path": path})
    return FieldCatalog.from_dicts(data)


def _cmd_validate(args: argparse.Namespace) -> int:
    tree = load_tree(args.tree)
    result = validate(tree, load_catalog(args.catalog))

    if args.json:
        print(
            json.dumps(
                {
                    "isValid": result.is_valid,
                    "findings": [
                        finding.model_dump(mode="json", by_alias=True, exclude_none=True)
                        for finding in result.findings
                    ],
                },
                indent=2,
                ensure_ascii=False,
            )
        )
    else:
        for finding in result.findings:
            print(f"{finding.severity.value.upper():<8}{finding.id}: {finding.message}")
        print(
            f"{'valid' if result.is_valid else 'invalid'}: "
            f"{len(result.errors)} errors, {len(result.warnings)} warnings"
        )

    return 0 if result.is_valid else 1


def _cmd_compile(args: argparse.Namespace) -> int:
    tree = load_tree(args.tree)
    catalog = load_catalog(args.catalog)

    if args.format == "all":
        for backend in ExportFormat:
            print(f"== {backend.value} ==")
            print(export_text(tree, catalog, backend, date_format=args.date_format))
    else:
        print(export_text(tree, catalog, args.format, date_format=args.date_format))
    return 0


def _cmd_formats(args: argparse.Namespace) -> int:
    for backend, info in export_format_info().items():
        print(f"{backend.value:<10}{info.name} ({info.mime_type}, {info.extension})")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rule-builder", description="Validate and compile rule trees"
    )
    parser.add_argument(
        "--log-level", default="WARNING", help="Log level for stderr output (default: WARNING)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    validate_parser = subparsers.add_parser("validate", help="Validate a tree against a catalog")
    validate_parser.add_argument("tree", help="Path to the tree JSON file")
    validate_parser.add_argument("--catalog", required=True, help="Path to the field catalog")
    validate_parser.add_argument("--json", action="store_true", help="Print findings as JSON")
    validate_parser.set_defaults(handler=_cmd_validate)

    compile_parser = subparsers.add_parser("compile", help="Compile a tree")
    compile_parser.add_argument("tree", help="Path to the tree JSON file")
    compile_parser.add_argument("--catalog", required=True, help="Path to the field catalog")
    compile_parser.add_argument(
        "--format",
        default=ExportFormat.READABLE.value,
        choices=[backend.value for backend in ExportFormat] + ["all"],
        help="Output format (default: readable)",
    )
    compile_parser.add_argument(
        "--date-format", default=None, help="strftime format for readable dates"
    )
    compile_parser.set_defaults(handler=_cmd_compile)

    formats_parser = subparsers.add_parser("formats", help="List export formats")
    formats_parser.set_defaults(handler=_cmd_formats)

    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_structured_logging(args.log_level, structured=False)

    try:
        return args.handler(args)
    except RuleBuilderError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {e.message}", file=sys.stderr)
        return get_exit_code(e)


if __name__ == "__main__":
    sys.exit(main())
