"""Tests for provider error classification and rate-limit parsing."""

from __future__ import annotations

import logging
from unittest.mock import patch

import anthropic
import httpx
import openai
import pytest
from google.genai.errors import ClientError

from canvasagent.ai.errors import classify_error, status_code_of
from canvasagent.ai.gemini_provider import GeminiProvider
from canvasagent.ai.provider_logging import failure_message, log_provider_error
from canvasagent.ai.rate_limit import extract_retry_delay, is_rate_limit_message, retry_after_from_headers
from canvasagent.errors import AgentError, AgentErrorKind

URL = "https://api.example.test/v1/messages"


def _response(status: int, headers: dict | None = None) -> httpx.Response:
    return httpx.Response(status, headers=headers, request=httpx.Request("POST", URL))


def test_authentication_errors_are_not_retryable():
    error = anthropic.AuthenticationError("invalid x-api-key", response=_response(401), body=None)
    classified = classify_error("claude", error)
    assert classified.kind == AgentErrorKind.INVALID_CREDENTIALS
    assert classified.retryable is False
    assert classified.status_code == 401
    assert classified.provider == "claude"


def test_permission_denied_counts_as_invalid_credentials():
    error = openai.PermissionDeniedError("forbidden", response=_response(403), body=None)
    assert classify_error("openai", error).kind == AgentErrorKind.INVALID_CREDENTIALS


def test_rate_limit_uses_retry_after_header():
    error = openai.RateLimitError("slow down", response=_response(429, {"retry-after": "30"}), body=None)
    classified = classify_error("openai", error)
    assert classified.kind == AgentErrorKind.RATE_LIMITED
    assert classified.retryable is True
    assert classified.retry_after == 30
    assert "Retry in 30s." in classified.message


def test_rate_limit_detected_from_message_without_status():
    classified = classify_error("gemini", RuntimeError("Quota exceeded. Please retry in 12.5s."))
    assert classified.kind == AgentErrorKind.RATE_LIMITED
    assert classified.retry_after == 12.5


def test_server_errors_are_backend_faults():
    error = anthropic.InternalServerError("overloaded", response=_response(529), body=None)
    classified = classify_error("claude", error)
    assert classified.kind == AgentErrorKind.BACKEND_FAULT
    assert classified.retryable is True
    assert "claude" in classified.message


def test_context_exceeded_from_message():
    error = anthropic.BadRequestError("prompt is too long: 250000 tokens > 200000 maximum", response=_response(400), body=None)
    classified = classify_error("claude", error)
    assert classified.kind == AgentErrorKind.CONTEXT_EXCEEDED
    assert classified.retryable is False


def test_transport_errors_are_network():
    classified = classify_error("openai-compatible", httpx.ConnectError("Connection refused"))
    assert classified.kind == AgentErrorKind.NETWORK
    assert classified.retryable is True

    sdk_error = openai.APIConnectionError(request=httpx.Request("GET", URL))
    assert classify_error("openai", sdk_error, network_types=(openai.APIConnectionError,)).kind == AgentErrorKind.NETWORK


def test_unknown_errors_keep_sanitized_detail():
    classified = classify_error("openai", RuntimeError("strange failure for sk-abcdefghijklmnopqrst"))
    assert classified.kind == AgentErrorKind.UNKNOWN
    assert classified.retryable is False
    assert "[REDACTED_API_KEY]" in classified.message
    assert "sk-abc" not in classified.message


def test_agent_errors_pass_through():
    error = AgentError(AgentErrorKind.NETWORK, "offline", retryable=True, provider="claude")
    assert classify_error("claude", error) is error


def test_agent_error_to_dict():
    error = AgentError(AgentErrorKind.RATE_LIMITED, "wait", retryable=True, provider="openai", status_code=429, retry_after=2.0)
    assert error.to_dict() == {
        "kind": "rate_limited",
        "message": "wait",
        "retryable": True,
        "provider": "openai",
        "status_code": 429,
        "retry_after": 2.0,
    }


def test_status_code_of():
    assert status_code_of(anthropic.NotFoundError("missing", response=_response(404), body=None)) == 404
    assert status_code_of(httpx.HTTPStatusError("x", request=httpx.Request("GET", URL), response=_response(502))) == 502
    assert status_code_of(ValueError("x")) is None


def test_gemini_invalid_key_maps_to_invalid_credentials():
    provider = GeminiProvider.__new__(GeminiProvider)
    classified = provider.classify_error(ValueError("400 INVALID_ARGUMENT. API key not valid. Please pass a valid API key."))
    assert classified.kind == AgentErrorKind.INVALID_CREDENTIALS
    assert classified.status_code == 401


def test_gemini_api_error_uses_its_code():
    provider = GeminiProvider.__new__(GeminiProvider)
    error = ClientError(429, {"error": {"code": 429, "message": "Resource has been exhausted", "status": "RESOURCE_EXHAUSTED"}})
    classified = provider.classify_error(error)
    assert classified.kind == AgentErrorKind.RATE_LIMITED
    assert classified.status_code == 429


@pytest.mark.parametrize(
    ("message", "expected"),
    [
        ("Please retry in 48.7s.", 48.7),
        ('{"retryDelay": "21s"}', 21.0),
        ("Retry-After: 30", 30.0),
        ("retry in 0s", None),
        ("no hint here", None),
    ],
)
def test_extract_retry_delay(message, expected):
    assert extract_retry_delay(message) == expected


def test_rate_limit_helpers():
    assert is_rate_limit_message("Error 429: Too Many Requests")
    assert is_rate_limit_message("RESOURCE_EXHAUSTED")
    assert not is_rate_limit_message("invalid request")
    assert retry_after_from_headers(httpx.Headers({"Retry-After": "5"})) == 5.0
    assert retry_after_from_headers(None) is None


def test_failure_message_by_kind():
    error = RuntimeError("boom")
    auth = AgentError(AgentErrorKind.INVALID_CREDENTIALS, "x", retryable=False, provider="claude", status_code=401)
    network = AgentError(AgentErrorKind.NETWORK, "x", retryable=True, provider="claude")
    unknown = AgentError(AgentErrorKind.UNKNOWN, "x", retryable=False, provider="claude")
    assert failure_message(error, auth) == "Authentication failed (401): boom"
    assert failure_message(error, network) == "Network error: RuntimeError: boom"
    assert failure_message(error, unknown) == "Unexpected error: RuntimeError: boom"


def test_log_provider_error_emits_structured_event():
    with patch("canvasagent.ai.provider_logging.log_event") as mock_log_event:
        log_provider_error("openai", "Authentication failed: bad key")

    mock_log_event.assert_called_once_with(
        "provider_log",
        level=logging.ERROR,
        provider="openai",
        message="Authentication failed: bad key",
    )
