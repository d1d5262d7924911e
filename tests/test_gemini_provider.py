"""Tests for the Gemini provider adapter."""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import MagicMock, AsyncMock

import httpx
import pytest

import canvasagent.ai.gemini_provider as gemini_module
from canvasagent.ai.gemini_provider import GEMINI_API_BASE, GeminiProvider, format_model_name
from canvasagent.errors import AgentErrorKind

from conftest import BlockingStream, aiter_of, collect, read_until_cancelled, request_for


def _provider() -> GeminiProvider:
    provider = GeminiProvider.__new__(GeminiProvider)
    provider.client = MagicMock()
    provider.api_base = GEMINI_API_BASE
    provider.timeout = 60
    return provider


@pytest.fixture
def mock_http(monkeypatch):
    """Route every ``httpx.AsyncClient`` through a handler set by the test."""
    real_client = httpx.AsyncClient
    state = SimpleNamespace(handler=None, requests=[])

    def handler(request: httpx.Request) -> httpx.Response:
        state.requests.append(request)
        return state.handler(request)

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(gemini_module.httpx, "AsyncClient", factory)
    return state


def test_format_model_name():
    assert format_model_name("models/gemini-2.5-flash") == "Gemini 2.5 Flash"


def test_format_messages_maps_roles_and_decodes_images():
    provider = _provider()
    contents = provider.format_messages(
        [
            {
                "role": "user",
                "content": [
                    {"type": "text", "text": "Look"},
                    {"type": "image", "image": "data:image/png;base64,QUJD"},
                    {"type": "image", "image": "data:image/png;base64,!!not-base64!!"},
                ],
            },
            {"role": "assistant", "content": '{"actions": []}'},
        ]
    )

    assert [content.role for content in contents] == ["user", "model"]
    assert len(contents[0].parts) == 2
    assert contents[0].parts[1].inline_data.data == b"ABC"
    assert contents[0].parts[1].inline_data.mime_type == "image/png"


def test_build_config_requests_json():
    config = _provider().build_config(request_for())

    assert config.response_mime_type == "application/json"
    assert config.max_output_tokens == 256
    assert config.system_instruction == "Respond with JSON."


@pytest.mark.asyncio
async def test_stream_yields_chunk_text():
    provider = _provider()
    chunks = [
        SimpleNamespace(candidates=[], text='{"actions": ['),
        SimpleNamespace(candidates=[SimpleNamespace(finish_reason="STOP")], text="]}"),
    ]
    provider.client.aio.models.generate_content_stream = AsyncMock(return_value=aiter_of(chunks))

    assert await collect(provider.stream(request_for())) == ['{"actions": [', "]}"]


@pytest.mark.asyncio
async def test_stream_closes_response_when_cancelled():
    provider = _provider()
    response = BlockingStream([SimpleNamespace(candidates=[], text='{"actions": [')])
    provider.client.aio.models.generate_content_stream = AsyncMock(return_value=response)

    deltas = await read_until_cancelled(lambda token: provider.stream(request_for(), token), response)

    assert deltas == ['{"actions": [']
    assert response.closed


@pytest.mark.asyncio
async def test_list_models_keeps_gemini_models(mock_http):
    mock_http.handler = lambda request: httpx.Response(
        200,
        json={
            "models": [
                {"name": "models/gemini-2.5-flash", "displayName": "Gemini 2.5 Flash"},
                {"name": "models/embedding-001", "displayName": "Embedding 001"},
                {"name": "models/gemini-2.5-pro"},
            ]
        },
    )

    result = await _provider().test_connection("AIza-test-key")

    assert result.success is True
    assert [model.id for model in result.models] == ["gemini-2.5-flash", "gemini-2.5-pro"]
    assert result.models[1].display_name == "Gemini 2.5 Pro"
    request = mock_http.requests[0]
    assert request.url.path == "/v1beta/models"
    assert request.headers["x-goog-api-key"] == "AIza-test-key"


@pytest.mark.asyncio
async def test_test_connection_maps_invalid_key_to_credentials_error(mock_http):
    mock_http.handler = lambda request: httpx.Response(
        400,
        json={"error": {"code": 400, "message": "API key not valid. Please pass a valid API key.", "status": "INVALID_ARGUMENT"}},
    )

    result = await _provider().test_connection("bad-key")

    assert result.success is False
    assert result.error_kind == AgentErrorKind.INVALID_CREDENTIALS


@pytest.mark.asyncio
async def test_test_connection_requires_credentials():
    result = await _provider().test_connection("")
    assert result.success is False
    assert result.error_kind == AgentErrorKind.INVALID_CREDENTIALS
