"""Plaintext rendering of structured log records."""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from ..time_utils import utc_now_iso
from .schema import ordered_keys

# httpx logs every request with this exact format string.
_HTTPX_REQUEST_FORMAT = 'HTTP Request: %s %s "%s %d %s"'


def _json_object(message: str) -> Optional[dict[str, Any]]:
    if not (message.startswith("{") and message.endswith("}")):
        return None
    try:
        parsed = json.loads(message)
    except ValueError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _render(value: Any) -> str:
    if isinstance(value, (dict, list)):
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"))
    return str(value).replace("\n", "\\n")


class StructuredTextFormatter(logging.Formatter):
    """Render each record as an ``=== event ===`` block of ``key: value`` lines.

    Records produced by ``log_event`` are expanded field by field; httpx
    request lines are split into ``http_*`` fields; anything else keeps its
    text under ``message``. Blocks are separated by one blank line.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._written = 0

    def format(self, record: logging.LogRecord) -> str:
        fields = self._fields(record)
        event = str(fields.pop("event", record.name))

        lines = [f"=== {event} ==="]
        lines.extend(f"{key}: {_render(fields[key])}" for key in ordered_keys(event, fields))
        if record.exc_info:
            lines.append("traceback:")
            lines.append(self.formatException(record.exc_info))

        self._written += 1
        block = "\n".join(lines)
        return block if self._written == 1 else "\n" + block

    @staticmethod
    def _fields(record: logging.LogRecord) -> dict[str, Any]:
        fields: dict[str, Any] = {"level": record.levelname, "logger": record.name}
        message = record.getMessage()

        payload = _json_object(message)
        if payload is not None:
            fields.update(payload)
        elif (
            record.name == "httpx"
            and record.msg == _HTTPX_REQUEST_FORMAT
            and isinstance(record.args, tuple)
            and len(record.args) == 5
        ):
            method, url, version, status, reason = record.args
            fields.update(
                event="httpx_request",
                http_method=str(method),
                http_url=str(url),
                http_version=str(version),
                http_status=status,
                http_reason=str(reason),
            )
        else:
            fields.update(event=record.name, message=message)

        fields.setdefault("ts", utc_now_iso())
        return fields
