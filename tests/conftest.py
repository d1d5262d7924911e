"""Pytest configuration and fixtures for canvasagent tests."""

from __future__ import annotations

import asyncio
import logging
from typing import Literal, Optional

import pytest
from pydantic import BaseModel

from canvasagent.agent.cancellation import CancellationToken
from canvasagent.agent.registry import ActionRegistry
from canvasagent.ai.errors import classify_error
from canvasagent.ai.provider_utils import guarded_stream
from canvasagent.ai.types import ConnectionResult
from canvasagent.domain.actions import ActionContext, ActionDefinition
from canvasagent.domain.config import AgentSettings, ProviderConfig


class NoteAction(BaseModel):
    kind: Literal["note"]
    text: str


class MoveAction(BaseModel):
    kind: Literal["move"]
    shape_id: str
    x: float
    y: float


class Recorder:
    """Collects every ``apply`` call in dispatch order."""

    def __init__(self) -> None:
        self.applied: list[BaseModel] = []
        self.contexts: list[ActionContext] = []
        self.on_apply = None

    def apply(self, action: BaseModel, context: ActionContext):
        self.applied.append(action)
        self.contexts.append(context)
        if self.on_apply is not None:
            self.on_apply(action)
        return {"applied": action.kind}

    @property
    def texts(self) -> list[str]:
        return [getattr(action, "text", "") for action in self.applied]


class ScriptedProvider:
    """Provider double replaying scripted deltas through ``guarded_stream``.

    Each ``stream`` call consumes the next script; the last one is reused.
    With ``block=True`` the stream waits forever after its deltas.
    """

    name = "scripted"

    def __init__(self, *scripts: list[str], error: Optional[BaseException] = None, block: bool = False):
        self.scripts = [list(script) for script in scripts] or [[]]
        self.error = error
        self.block = block
        self.blocked = asyncio.Event()
        self.requests = []

    def stream(self, request, cancellation=None):
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.scripts) - 1)
        return guarded_stream(self.name, self._iter(self.scripts[index]), cancellation, self.classify_error)

    async def _iter(self, deltas: list[str]):
        for delta in deltas:
            await asyncio.sleep(0)
            yield delta
        if self.error is not None:
            raise self.error
        if self.block:
            self.blocked.set()
            await asyncio.Event().wait()

    async def get_full_response(self, request) -> str:
        self.requests.append(request)
        index = min(len(self.requests) - 1, len(self.scripts) - 1)
        return "".join(self.scripts[index])

    async def test_connection(self, credentials, endpoint_override=None) -> ConnectionResult:
        return ConnectionResult(success=True)

    def classify_error(self, error):
        return classify_error(self.name, error)


class BlockingStream:
    """SDK stream double: yields ``items``, then blocks until closed.

    Closing (``close`` or ``aclose``) is recorded and never wakes a blocked
    reader, so only an explicit close by the adapter sets ``closed``.
    """

    def __init__(self, items):
        self.items = list(items)
        self.closed = False
        self.waiting = asyncio.Event()

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self.items:
            return self.items.pop(0)
        self.waiting.set()
        await asyncio.Event().wait()
        raise StopAsyncIteration

    async def close(self):
        self.closed = True

    async def aclose(self):
        self.closed = True


async def read_until_cancelled(stream_factory, source: BlockingStream) -> list[str]:
    """Consume a provider stream, cancelling its token once ``source`` blocks."""
    token = CancellationToken()

    async def consume():
        return [delta async for delta in stream_factory(token)]

    task = asyncio.create_task(consume())
    await source.waiting.wait()
    token.cancel()
    return await task


def note_doc(*texts: str) -> str:
    return '{"actions":[' + ",".join(f'{{"kind":"note","text":"{text}"}}' for text in texts) + "]}"


@pytest.fixture(autouse=True)
def _enable_logging():
    # CLI tests call setup_logging(None), which disables logging globally.
    logging.disable(logging.NOTSET)
    yield
    logging.disable(logging.NOTSET)


@pytest.fixture
def recorder() -> Recorder:
    return Recorder()


@pytest.fixture
def registry(recorder: Recorder) -> ActionRegistry:
    return ActionRegistry(
        [
            ActionDefinition(kind="note", validator=NoteAction, apply=recorder.apply),
            ActionDefinition(
                kind="move",
                validator=MoveAction,
                apply=recorder.apply,
                records_history=False,
                prompt="Move shapes with `move`.",
            ),
        ]
    )


@pytest.fixture
def settings() -> AgentSettings:
    return AgentSettings(
        provider=ProviderConfig(
            name="claude",
            model_id="claude-sonnet-4-5-20250929",
            credentials="sk-ant-REDACTED",
            max_output_tokens=1024,
        ),
        history_limit=20,
    )


async def aiter_of(items, error: Optional[BaseException] = None):
    """Async iterator over ``items`` that optionally raises at the end."""
    for item in items:
        yield item
    if error is not None:
        raise error


def request_for(*messages, system_prompt: str = "Respond with JSON.", model_id: str = "model-x"):
    from canvasagent.ai.types import GenerationRequest

    return GenerationRequest(
        system_prompt=system_prompt,
        messages=list(messages) or [{"role": "user", "content": "hi"}],
        model_id=model_id,
        max_output_tokens=256,
        temperature=0.2,
    )


async def collect(stream) -> list[str]:
    return [delta async for delta in stream]
