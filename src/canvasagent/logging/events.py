"""Structured event emission.

Every event is one stdlib ``logging`` record on the ``canvasagent`` logger
whose message is a compact JSON object: ``{"ts", "event", **fields}``. The
file formatter expands those objects into readable blocks.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from pydantic import BaseModel
from tenacity import RetryCallState

from ..constants import APP_NAME
from ..time_utils import utc_now_iso
from .formatter import StructuredTextFormatter
from .sanitization import sanitize_error_message

logger = logging.getLogger(APP_NAME)

# Free-text fields that can echo provider responses (and so credentials).
_REDACTED_FIELDS = frozenset({"error", "message", "detail"})


def _to_log_safe(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, str):
        return value
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", by_alias=True, exclude_none=True)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_log_safe(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(key): _to_log_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_log_safe(item) for item in value]
    if isinstance(value, Path):
        return value.as_posix()
    return str(value)


def log_event(event: str, level: int = logging.INFO, **fields: Any) -> None:
    """Emit one structured event on the package logger."""
    if not logger.isEnabledFor(level):
        return
    payload: dict[str, Any] = {"ts": utc_now_iso(), "event": event}
    for name, value in fields.items():
        if name in _REDACTED_FIELDS and isinstance(value, str):
            value = sanitize_error_message(value)
        payload[name] = _to_log_safe(value)
    logger.log(level, json.dumps(payload, ensure_ascii=False, separators=(",", ":")))


def extract_http_error_context(error: BaseException) -> dict[str, Any]:
    """HTTP method, URL, status and reason carried by an SDK or httpx error."""
    response = getattr(error, "response", None)
    request = getattr(error, "request", None) or getattr(response, "request", None)

    context: dict[str, Any] = {}
    if request is not None:
        if getattr(request, "method", None):
            context["http_method"] = str(request.method)
        if getattr(request, "url", None):
            context["http_url"] = str(request.url)

    status = getattr(response, "status_code", None)
    if status is None:
        status = getattr(error, "status_code", None)
    if isinstance(status, int):
        context["http_status"] = status
    if getattr(response, "reason_phrase", None):
        context["http_reason"] = str(response.reason_phrase)
    return context


def summarize_text(text: Any, max_chars: Optional[int] = None) -> str:
    """Collapse whitespace and clip to ``max_chars`` with an ellipsis."""
    if text is None:
        return ""
    summary = " ".join(str(text).split())
    if max_chars is None or len(summary) <= max_chars:
        return summary
    return summary[: max(0, max_chars - 3)] + "..."


def before_sleep_log_event(
    *,
    provider: str,
    operation: str,
    level: int = logging.WARNING,
) -> Callable[[RetryCallState], None]:
    """tenacity ``before_sleep`` hook reporting each retry as ``provider_retry``."""

    def _log_retry(retry_state: RetryCallState) -> None:
        if retry_state.outcome is None or retry_state.next_action is None:
            return
        fields: dict[str, Any] = {
            "provider": provider,
            "operation": operation,
            "attempt": retry_state.attempt_number,
            "sleep_sec": retry_state.next_action.sleep,
        }
        if retry_state.outcome.failed:
            error = retry_state.outcome.exception()
            fields["result"] = "raised"
            if error is not None:
                fields["error_type"] = type(error).__name__
                fields["error"] = str(error)
        else:
            fields["result"] = "returned"
        log_event("provider_retry", level=level, **fields)

    return _log_retry


def setup_logging(
    log_file: Optional[str] = None, level: int = logging.INFO
) -> Optional[logging.Handler]:
    """Route all logging to ``log_file`` as structured text blocks.

    Without a log file logging is disabled so nothing interleaves with the
    command output. Returns the installed handler.
    """
    if not log_file:
        logging.disable(logging.CRITICAL)
        return None

    log_path = Path(log_file).expanduser()
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, encoding="utf-8")
    handler.setFormatter(StructuredTextFormatter())

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing.formatter, StructuredTextFormatter):
            root.removeHandler(existing)
            existing.close()
    root.addHandler(handler)
    root.setLevel(level)
    logging.disable(logging.NOTSET)
    return handler
