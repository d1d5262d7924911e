"""Tests for shared provider helpers and the stream guard."""

from __future__ import annotations

import asyncio
from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from canvasagent.agent.cancellation import CancellationToken
from canvasagent.ai.provider_utils import (
    close_stream,
    content_length,
    content_text,
    guarded_stream,
    has_images,
    split_data_url,
    with_json_instructions,
)
from canvasagent.errors import AgentError, AgentErrorKind

from conftest import aiter_of, collect


def _classifier():
    return MagicMock(
        side_effect=lambda error: AgentError(
            AgentErrorKind.NETWORK, "Network error", retryable=True, provider="test"
        )
    )


def test_split_data_url():
    assert split_data_url("data:image/jpeg;base64,QUJD") == ("image/jpeg", "QUJD")
    assert split_data_url("QUJD") == ("image/png", "QUJD")


def test_content_helpers():
    blocks = [{"type": "text", "text": "abc"}, {"type": "image", "image": "data:image/png;base64,QUJD"}]
    assert content_text(blocks) == "abc"
    assert content_length(blocks) == 103
    assert content_length("hello") == 5
    assert has_images([{"role": "user", "content": blocks}])
    assert not has_images([{"role": "user", "content": "plain"}])


def test_with_json_instructions():
    assert with_json_instructions("").startswith("IMPORTANT")
    assert with_json_instructions("Base").startswith("Base\n\nIMPORTANT")


@pytest.mark.asyncio
async def test_guarded_stream_skips_empty_deltas():
    deltas = await collect(guarded_stream("test", aiter_of(["a", "", "b"]), None, _classifier()))
    assert deltas == ["a", "b"]


@pytest.mark.asyncio
async def test_guarded_stream_classifies_failures():
    classify = _classifier()
    received = []

    with pytest.raises(AgentError) as excinfo:
        async for delta in guarded_stream("test", aiter_of(["a"], ConnectionResetError("reset")), None, classify):
            received.append(delta)

    assert received == ["a"]
    assert excinfo.value.kind == AgentErrorKind.NETWORK
    assert isinstance(excinfo.value.__cause__, ConnectionResetError)
    classify.assert_called_once()


@pytest.mark.asyncio
async def test_guarded_stream_with_cancelled_token_yields_nothing():
    token = CancellationToken()
    token.cancel()

    assert await collect(guarded_stream("test", aiter_of(["a"]), token, _classifier())) == []


@pytest.mark.asyncio
async def test_guarded_stream_cancel_interrupts_pending_read():
    token = CancellationToken()
    received = []

    async def deltas():
        yield "a"
        await asyncio.sleep(60)
        yield "never"

    async def consume():
        async for delta in guarded_stream("test", deltas(), token, _classifier()):
            received.append(delta)
        return "done"

    task = asyncio.create_task(consume())
    while not received:
        await asyncio.sleep(0)
    token.cancel()

    assert await task == "done"
    assert received == ["a"]
    assert not task.cancelled()


@pytest.mark.asyncio
async def test_guarded_stream_discards_failure_after_cancel():
    token = CancellationToken()
    classify = _classifier()
    received = []

    async def deltas():
        yield "a"
        try:
            await asyncio.sleep(60)
        except asyncio.CancelledError:
            raise ConnectionResetError("connection reset by peer")
        yield "never"

    async def consume():
        async for delta in guarded_stream("test", deltas(), token, classify):
            received.append(delta)
        return "done"

    task = asyncio.create_task(consume())
    while not received:
        await asyncio.sleep(0)
    token.cancel()

    assert await task == "done"
    classify.assert_not_called()


@pytest.mark.asyncio
async def test_close_stream_handles_sync_async_and_failing_close():
    calls = []

    async def async_close():
        calls.append("async")

    def failing_close():
        raise RuntimeError("socket already gone")

    await close_stream(SimpleNamespace(close=async_close))
    await close_stream(SimpleNamespace(close=lambda: calls.append("sync")))
    await close_stream(object())
    with patch("canvasagent.ai.provider_utils.log_event") as mock_log_event:
        await close_stream(SimpleNamespace(close=failing_close))

    assert calls == ["async", "sync"]
    assert "socket already gone" in mock_log_event.call_args.kwargs["message"]
