"""
Rule tree compiler.

Key Components:
- base: traversal shared by every backend
- readable, sql, mongo: the built-in backends
- compiler: entry points, custom backends, export metadata
- canonicalizer: deterministic JSON text for exported output
"""

from rule_builder.compiler.canonicalizer import (
    canonicalize_json,
    to_canonical_json_pretty,
    to_canonical_json_string,
)
from rule_builder.compiler.compiler import (
    ExportFormatInfo,
    RuleOutput,
    can_export_to_format,
    compile_tree,
    export_format_info,
    export_text,
    format_json,
    generate_output,
)
from rule_builder.compiler.mongo import format_mongo
from rule_builder.compiler.readable import format_readable
from rule_builder.compiler.sql import format_sql

__all__ = [
    "ExportFormatInfo",
    "RuleOutput",
    "can_export_to_format",
    "canonicalize_json",
    "compile_tree",
    "export_format_info",
    "export_text",
    "format_json",
    "format_mongo",
    "format_readable",
    "format_sql",
    "generate_output",
    "to_canonical_json_pretty",
    "to_canonical_json_string",
]
