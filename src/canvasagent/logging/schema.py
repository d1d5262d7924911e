"""Preferred key order per structured log event."""

from __future__ import annotations

from typing import Any

DEFAULT_EVENT_KEY_ORDER: list[str] = [
    "ts",
    "level",
    "logger",
    "provider",
    "model",
    "message",
]

EVENT_KEY_ORDER: dict[str, list[str]] = {
    "ai_request": [
        "ts",
        "level",
        "provider",
        "model",
        "generation",
        "message_count",
        "input_chars",
        "has_schema",
        "has_session",
        "max_output_tokens",
    ],
    "ai_response": [
        "ts",
        "level",
        "provider",
        "model",
        "generation",
        "latency_ms",
        "delta_count",
        "output_chars",
        "dispatched",
        "cache_read_tokens",
    ],
    "ai_error": [
        "ts",
        "level",
        "provider",
        "model",
        "generation",
        "latency_ms",
        "error_kind",
        "retryable",
        "error_type",
        "error",
        "http_status",
    ],
    "ai_cancelled": [
        "ts",
        "level",
        "provider",
        "model",
        "generation",
        "latency_ms",
        "dispatched",
    ],
    "action_dispatch": [
        "ts",
        "level",
        "generation",
        "index",
        "action_kind",
        "records_history",
        "has_diff",
    ],
    "action_dropped": [
        "ts",
        "level",
        "index",
        "action_kind",
        "reason",
        "error",
    ],
    "action_apply_error": [
        "ts",
        "level",
        "generation",
        "index",
        "action_kind",
        "error_type",
        "error",
    ],
    "provider_log": [
        "ts",
        "level",
        "provider",
        "message",
    ],
    "provider_retry": [
        "ts",
        "level",
        "provider",
        "operation",
        "attempt",
        "sleep_sec",
        "result",
        "error_type",
        "error",
    ],
    "connection_test": [
        "ts",
        "level",
        "provider",
        "success",
        "model_count",
        "error_kind",
        "error",
    ],
    "action_skipped": [
        "ts",
        "level",
        "action_kind",
        "reason",
        "target",
    ],
    "schema_override_invalid": [
        "ts",
        "level",
        "error",
    ],
}


def ordered_keys(event: str, fields: dict[str, Any]) -> list[str]:
    """Keys of ``fields`` with a non-None value: preferred order first, then sorted."""
    preferred = EVENT_KEY_ORDER.get(event, DEFAULT_EVENT_KEY_ORDER)
    present = [key for key in preferred if fields.get(key) is not None]
    rest = sorted(key for key, value in fields.items() if value is not None and key not in preferred)
    return present + rest
