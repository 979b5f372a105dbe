"""
Observability module for the rule builder engine.

Provides:
- Structured logging with JSON format and a builder-session correlation id
- Prometheus metrics collection (editor, validator, compiler, history)
- Recording helpers that never let a metrics failure break an engine call

Usage:
    from rule_builder.core.observability import (
        bind_session_id,
        configure_structured_logging,
        metrics,
        record_compilation,
    )
"""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import UTC, datetime

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

from rule_builder.core.config import settings

# ============================================================================
# Context Variables
# ============================================================================

# Session ID - links all logs emitted while one builder session handles an edit
_session_id_ctx: ContextVar[str] = ContextVar("session_id", default="")


def get_session_id() -> str:
    """Get the current builder session ID from context."""
    return _session_id_ctx.get()


@contextmanager
def bind_session_id(session_id: str) -> Iterator[None]:
    """Bind a session ID to the logging context for the duration of a block."""
    token = _session_id_ctx.set(session_id)
    try:
        yield
    finally:
        _session_id_ctx.reset(token)


# ============================================================================
# Structured Logging Configuration
# ============================================================================

_RESERVED_RECORD_KEYS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "taskName",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
}


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs as JSON with standard fields:
    - timestamp: ISO 8601 format
    - level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - logger: Logger name
    - message: Log message
    - session_id: Builder session correlation ID (if available)
    - extra: Any additional context from logging.extra
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = get_session_id()
        if session_id:
            log_entry["session_id"] = session_id

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
            }

        log_entry["file"] = record.pathname
        log_entry["line"] = record.lineno
        log_entry["function"] = record.funcName

        # These come from logger.info("msg", extra={"key": "value"})
        extra_keys = {
            k: v for k, v in record.__dict__.items() if k not in _RESERVED_RECORD_KEYS
        }
        if extra_keys:
            log_entry["extra"] = extra_keys

        return json.dumps(log_entry, default=str)


def configure_structured_logging(level: str | None = None, structured: bool | None = None) -> None:
    """
    Configure the root logger.

    Args:
        level: Log level (defaults to settings.log_level)
        structured: JSON lines when True, plain text otherwise
                    (defaults to settings.structured_logs)
    """
    level = level or settings.log_level
    structured = settings.structured_logs if structured is None else structured

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    handler = logging.StreamHandler()
    if structured:
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))

    root_logger.addHandler(handler)


# ============================================================================
# Prometheus Metrics
# ============================================================================

# Use a custom registry to avoid conflicts with the host application's metrics
_registry = CollectorRegistry()


class Metrics:
    """
    Centralized metrics collection for the engine.

    Metrics groups:
    - Editor: applied vs no-op structural edits
    - Validator: findings by severity
    - Compiler: compilations and duration per backend
    - History: undo/redo/reset actions
    """

    def __init__(self, registry: CollectorRegistry) -> None:
        self.registry = registry

        # -------------------------------------------------------------------
        # Editor Metrics
        # -------------------------------------------------------------------

        self.editor_operations_total = Counter(
            "rule_builder_editor_operations_total",
            "Total structural edit operations",
            ["operation", "outcome"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Validator Metrics
        # -------------------------------------------------------------------

        self.validator_findings_total = Counter(
            "rule_builder_validator_findings_total",
            "Total validation findings",
            ["severity"],
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # Compiler Metrics
        # -------------------------------------------------------------------

        self.compiler_compilations_total = Counter(
            "rule_builder_compiler_compilations_total",
            "Total tree compilations",
            ["backend", "status"],
            registry=self.registry,
        )

        self.compiler_duration_seconds = Histogram(
            "rule_builder_compiler_duration_seconds",
            "Tree compilation duration in seconds",
            ["backend"],
            buckets=(0.0001, 0.0005, 0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0),
            registry=self.registry,
        )

        # -------------------------------------------------------------------
        # History Metrics
        # -------------------------------------------------------------------

        self.history_actions_total = Counter(
            "rule_builder_history_actions_total",
            "Total history actions",
            ["action"],
            registry=self.registry,
        )


# Global metrics instance
metrics = Metrics(_registry)


def export_metrics() -> bytes:
    """Render the engine registry in the Prometheus text exposition format."""
    return generate_latest(_registry)


def record_edit(operation: str, outcome: str) -> None:
    """
    Record a structural edit.

    Args:
        operation: Editor function name (e.g. "add_condition")
        outcome: "applied" or "noop"
    """
    if not settings.metrics_enabled:
        return
    try:
        metrics.editor_operations_total.labels(operation=operation, outcome=outcome).inc()
    except Exception:
        # Metrics should never break editing
        pass


def record_findings(errors: int, warnings: int) -> None:
    """Record the number of findings produced by one validation pass."""
    if not settings.metrics_enabled:
        return
    try:
        if errors:
            metrics.validator_findings_total.labels(severity="error").inc(errors)
        if warnings:
            metrics.validator_findings_total.labels(severity="warning").inc(warnings)
    except Exception:
        pass


def record_compilation(backend: str, status: str, duration: float) -> None:
    """
    Record compiler metrics.

    Args:
        backend: Backend name ("readable", "sql", "mongodb", "json", "custom")
        status: "success" or "error"
        duration: Compilation duration in seconds
    """
    if not settings.metrics_enabled:
        return
    try:
        metrics.compiler_compilations_total.labels(backend=backend, status=status).inc()
        metrics.compiler_duration_seconds.labels(backend=backend).observe(duration)
    except Exception:
        pass


def record_history_action(action: str) -> None:
    """Record a history action ("push", "undo", "redo", "reset")."""
    if not settings.metrics_enabled:
        return
    try:
        metrics.history_actions_total.labels(action=action).inc()
    except Exception:
        pass
