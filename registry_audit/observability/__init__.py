"""Observability helpers."""

from registry_audit.observability.otel import (
    initialize,
    shutdown,
    start_span,
    record_analysis_pass,
    record_orphan_action,
)

__all__ = [
    "initialize",
    "shutdown",
    "start_span",
    "record_analysis_pass",
    "record_orphan_action",
]
