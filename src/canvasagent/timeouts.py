"""Timeout and retry policy shared by the provider clients."""

from __future__ import annotations

import math
from typing import Any, Optional

import httpx

DEFAULT_PROVIDER_TIMEOUT_SEC = 60

# Only the read timeout is configurable: a streamed generation can sit idle
# between deltas, while connecting and sending a request should be quick.
HTTP_CONNECT_TIMEOUT_SEC = 10.0
HTTP_WRITE_TIMEOUT_SEC = 15.0
HTTP_POOL_TIMEOUT_SEC = 5.0

MODEL_LIST_TIMEOUT_SEC = 15.0

# tenacity policy for the non-streaming call; streams are never retried.
STANDARD_RETRY_ATTEMPTS = 4
RETRY_BACKOFF_INITIAL_SEC = 1.0
RETRY_BACKOFF_EXP_BASE = 2.0
RETRY_BACKOFF_JITTER = 0.5
RETRY_BACKOFF_MAX_SEC = 30.0


def normalize_timeout(value: Any, fallback: int | float = DEFAULT_PROVIDER_TIMEOUT_SEC) -> float:
    """Seconds as a finite, non-negative float; anything else becomes ``fallback``."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        if math.isfinite(value) and value >= 0:
            return float(value)
    return float(fallback)


def build_ai_httpx_timeout(read_timeout_sec: int | float) -> Optional[httpx.Timeout]:
    """httpx timeout for an SDK client; ``0`` disables timeouts (``None``)."""
    read = normalize_timeout(read_timeout_sec)
    if read == 0:
        return None
    return httpx.Timeout(
        read,
        connect=HTTP_CONNECT_TIMEOUT_SEC,
        write=HTTP_WRITE_TIMEOUT_SEC,
        pool=HTTP_POOL_TIMEOUT_SEC,
    )
