"""Redaction of credentials in log fields and user-visible errors."""

import re

_REDACTIONS: tuple[tuple[re.Pattern[str], str], ...] = (
    # Anthropic keys first so the generic ``sk-`` rule does not split them.
    (re.compile(r"sk-ant-[A-Za-z0-9_-]{10,}"), "[REDACTED_API_KEY]"),
    (re.compile(r"sk-[A-Za-z0-9_-]{10,}"), "[REDACTED_API_KEY]"),
    (re.compile(r"AIza[A-Za-z0-9_-]{20,}"), "[REDACTED_API_KEY]"),
    (re.compile(r"Bearer\s+[A-Za-z0-9_.\-]{20,}"), "Bearer [REDACTED_TOKEN]"),
    (re.compile(r"eyJ[A-Za-z0-9_-]+\.eyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+"), "[REDACTED_JWT]"),
    (re.compile(r"(x-goog-api-key|x-api-key)([\"']?\s*[:=]\s*[\"']?)[^\s\"',}]+", re.IGNORECASE), r"\1\2[REDACTED]"),
)


def sanitize_error_message(error_msg: str) -> str:
    """Replace API keys, bearer tokens and JWTs with placeholders."""
    for pattern, replacement in _REDACTIONS:
        error_msg = pattern.sub(replacement, error_msg)
    return error_msg
