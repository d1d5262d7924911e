"""Rate-limit detection and retry-delay extraction from provider errors."""

from __future__ import annotations

import re
from typing import Optional

_RETRY_IN = re.compile(r"retry\s+in\s+([\d.]+)\s*s", re.IGNORECASE)
_RETRY_DELAY_JSON = re.compile(r"[\"']retryDelay[\"']\s*:\s*[\"']([\d.]+)s?[\"']", re.IGNORECASE)
_RETRY_AFTER = re.compile(r"retry-after[:\s]+(\d+)", re.IGNORECASE)

_RATE_LIMIT_PATTERNS = (
    re.compile(r"\b429\b"),
    re.compile(r"rate.?limit", re.IGNORECASE),
    re.compile(r"too.?many.?requests", re.IGNORECASE),
    re.compile(r"quota.?exceeded", re.IGNORECASE),
    re.compile(r"exceeded.*quota", re.IGNORECASE),
    re.compile(r"resource.?exhausted", re.IGNORECASE),
)


def _positive(raw: str) -> Optional[float]:
    try:
        value = float(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def extract_retry_delay(message: str) -> Optional[float]:
    """Return the retry delay in seconds announced in an error message.

    Recognizes "Please retry in 48.7s", ``"retryDelay": "48s"`` and
    ``Retry-After: 30``.
    """
    for pattern in (_RETRY_IN, _RETRY_DELAY_JSON, _RETRY_AFTER):
        match = pattern.search(message)
        if match:
            seconds = _positive(match.group(1))
            if seconds is not None:
                return seconds
    return None


def retry_after_from_headers(headers: object) -> Optional[float]:
    getter = getattr(headers, "get", None)
    if getter is None:
        return None
    raw = getter("retry-after")
    if raw is None:
        return None
    return _positive(str(raw).strip())


def is_rate_limit_message(message: str) -> bool:
    return any(pattern.search(message) for pattern in _RATE_LIMIT_PATTERNS)
