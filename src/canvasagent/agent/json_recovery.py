"""Strict and bracket-completion parsing of truncated JSON text."""

from __future__ import annotations

import json
import re
from typing import Any, Optional

from ..constants import ACTIONS_ENVELOPE_KEY

_LEADING_FENCE = re.compile(r"^\s*```[A-Za-z0-9_-]*[ \t]*\r?\n?")
_TRAILING_FENCE = re.compile(r"\r?\n?[ \t]*```\s*$")

_CLOSERS = {"{": "}", "[": "]"}

# Sentinel distinguishing "did not parse" from a parsed JSON ``null``.
NOT_PARSED = object()


def strip_code_fence(text: str) -> str:
    """Drop a leading ```json fence and a trailing ``` fence, if present."""
    stripped, count = _LEADING_FENCE.subn("", text, count=1)
    if not count:
        return text
    return _TRAILING_FENCE.sub("", stripped, count=1)


def parse_strict(text: str) -> Any:
    """Parse ``text`` as one JSON document; ``NOT_PARSED`` on failure."""
    if not text.strip():
        return NOT_PARSED
    try:
        return json.loads(text)
    except ValueError:
        return NOT_PARSED


def completion_suffix(text: str) -> Optional[str]:
    """Return the minimal suffix closing every open string, array and object.

    Returns None when the text cannot be closed this way (unbalanced
    closers).
    """
    stack: list[str] = []
    in_string = False
    escaped = False

    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(ch)
        elif ch in "}]":
            if not stack or _CLOSERS[stack[-1]] != ch:
                return None
            stack.pop()

    suffix = ""
    if in_string:
        if escaped:
            # Mid-escape: closing here would produce an invalid escape.
            return None
        suffix += '"'
    suffix += "".join(_CLOSERS[opener] for opener in reversed(stack))
    return suffix


def parse_recovered(text: str) -> Any:
    """Parse ``text`` after appending its completion suffix."""
    suffix = completion_suffix(text)
    if suffix is None:
        return NOT_PARSED
    return parse_strict(text + suffix)


_ACTION_LINE_PREFIX = re.compile(r"\[ACTION\]\s*:\s*")
_DECODER = json.JSONDecoder()


def line_actions_envelope(text: str) -> Optional[str]:
    """Rewrite ``[ACTION]: {...}`` lines as an ``{"actions": [...]}`` document.

    A segment keeps only its leading JSON object, so prose after it is
    ignored. Broken segments are skipped, except that the last one stays
    open (and the envelope unclosed) while it may still be streaming in.
    Returns None when ``text`` already opens a JSON document or holds no
    prefixed actions.
    """
    if text.lstrip().startswith(("{", "[")):
        return None
    segments = [segment.strip() for segment in _ACTION_LINE_PREFIX.split(text)[1:]]
    if not segments:
        return None

    elements: list[str] = []
    tail = ""
    for position, segment in enumerate(segments):
        if not segment.startswith("{"):
            continue
        try:
            _, end = _DECODER.raw_decode(segment)
        except ValueError:
            if position == len(segments) - 1:
                tail = segment
            continue
        elements.append(segment[:end])

    body = ", ".join(elements + ([tail] if tail else []))
    envelope = f'{{"{ACTIONS_ENVELOPE_KEY}": [{body}'
    return envelope if tail else envelope + "]}"
