"""Structured logging primitives for canvasagent."""

from .events import (
    before_sleep_log_event,
    extract_http_error_context,
    log_event,
    setup_logging,
    summarize_text,
)
from .formatter import StructuredTextFormatter
from .sanitization import sanitize_error_message
from .schema import EVENT_KEY_ORDER, ordered_keys

__all__ = [
    "EVENT_KEY_ORDER",
    "StructuredTextFormatter",
    "before_sleep_log_event",
    "extract_http_error_context",
    "log_event",
    "ordered_keys",
    "sanitize_error_message",
    "setup_logging",
    "summarize_text",
]
