"""Diagnostics contracts and helpers."""

from .base import DiagnosticReport, DiagnosticSection
from .doctor import run_doctor_preflight
from .events import (
    DEBUG_EVENT_SCHEMA_VERSION,
    EVENT_PAYLOAD_FIELDS,
    PULL_ATTEMPT,
    PULL_ITERATION,
    JsonlEventLogger,
    build_debug_event,
    validate_debug_event,
)
from .redact import REDACTED, redact_text, redact_value

__all__ = [
    "DEBUG_EVENT_SCHEMA_VERSION",
    "DiagnosticReport",
    "DiagnosticSection",
    "EVENT_PAYLOAD_FIELDS",
    "JsonlEventLogger",
    "PULL_ATTEMPT",
    "PULL_ITERATION",
    "REDACTED",
    "build_debug_event",
    "redact_text",
    "redact_value",
    "run_doctor_preflight",
    "validate_debug_event",
]
