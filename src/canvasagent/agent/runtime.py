"""Agent runtime: one conversation's generation lifecycle and action dispatch."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Callable, Optional

from ..ai.base import AgentProvider
from ..ai.catalog import normalize_model_name
from ..ai.provider_utils import content_length
from ..ai.types import GenerationRequest, ProviderSessionState
from ..domain.actions import ActionContext, StreamingAction
from ..domain.config import AgentSettings
from ..domain.history import Acceptance, ActionItem, ContextRef, ContinuationItem, PromptItem
from ..errors import AgentError, GenerationInProgressError, SchemaUnavailableError
from ..logging import extract_http_error_context, log_event
from ..prompts import build_system_prompt
from .cancellation import CancellationToken, absorb_cancellation, cancel_current_task_on_cancel
from .messages import history_to_messages
from .parser import ActionStreamParser
from .registry import ActionRegistry
from .state import AgentState

logger = logging.getLogger(__name__)

ContextFactory = Callable[[], ActionContext]


class GenerationStatus(StrEnum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True, slots=True)
class GenerationResult:
    """Outcome of one ``prompt()`` call.

    ``dispatched`` lists the array indices applied by the prompt's own
    generation; scheduled follow-ups report through ``continuations``.
    """

    generation_id: str
    status: GenerationStatus
    dispatched: tuple[int, ...] = ()
    continuations: tuple[GenerationResult, ...] = ()

    @property
    def cancelled(self) -> bool:
        return self.status == GenerationStatus.CANCELLED or any(
            result.cancelled for result in self.continuations
        )


@dataclass(slots=True)
class _Generation:
    generation_id: str
    token: CancellationToken
    parser: ActionStreamParser
    started: float = field(default_factory=time.perf_counter)
    dispatched: list[int] = field(default_factory=list)
    delta_count: int = 0
    output_chars: int = 0

    def latency_ms(self) -> float:
        return round((time.perf_counter() - self.started) * 1000, 1)


class AgentRuntime:
    """Drives generations for one conversation.

    A prompt submitted while generating is rejected with
    ``GenerationInProgressError``; follow-up work goes through
    ``schedule()`` and runs after the current generation completes.
    Complete actions are applied exactly once per array index, in index
    order. Previews only update ``state.preview``.
    """

    def __init__(
        self,
        provider: AgentProvider,
        registry: ActionRegistry,
        settings: AgentSettings,
        *,
        context_factory: Optional[ContextFactory] = None,
        clock: Callable[[], float] = time.monotonic,
        streaming: bool = True,
    ) -> None:
        registry.freeze()
        self._provider = provider
        self._registry = registry
        self._settings = settings
        self._context_factory = context_factory or ActionContext
        self._clock = clock
        self._streaming = streaming

        model_id = settings.provider.model_id
        self.state = AgentState(normalize_model_name(model_id) or model_id)
        self.session = ProviderSessionState()

        self._current: Optional[_Generation] = None
        self._active_task: Optional[asyncio.Task[GenerationStatus]] = None
        self._scheduled: Optional[str] = None
        self._generation_count = 0
        self._disposed = False

    @property
    def registry(self) -> ActionRegistry:
        return self._registry

    @property
    def settings(self) -> AgentSettings:
        return self._settings

    @property
    def is_generating(self) -> bool:
        return self.state.is_generating

    @property
    def history(self):
        return self.state.history

    @property
    def scheduled(self) -> Optional[str]:
        return self._scheduled

    # ------------------------------------------------------------------
    # Request construction
    # ------------------------------------------------------------------

    def _combined_schema(self) -> dict:
        schema = self._registry.get_combined_schema(self._settings.override_schema)
        if schema is None:
            raise SchemaUnavailableError()
        return schema

    def build_request(self) -> GenerationRequest:
        """Build the provider request from current history and settings."""
        schema = self._combined_schema()
        system_prompt = build_system_prompt(
            schema,
            self._settings.system_prompt_template,
            [definition.prompt for definition in self._registry.definitions if definition.prompt],
        )
        provider_config = self._settings.provider
        return GenerationRequest(
            system_prompt=system_prompt,
            messages=history_to_messages(self.state.history, limit=self._settings.history_limit),
            model_id=provider_config.model_id,
            max_output_tokens=provider_config.max_output_tokens,
            temperature=provider_config.temperature,
            response_schema=schema,
            session=self.session,
        )

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def prompt(
        self, text: str, context_refs: Sequence[ContextRef] = ()
    ) -> GenerationResult:
        """Submit a user prompt and run it (plus any scheduled follow-ups).

        Raises:
            GenerationInProgressError: If a generation is already running
            SchemaUnavailableError: If no response schema can be built
            AgentError: If the provider fails (state is idle again by then)
        """
        if self._disposed:
            raise RuntimeError("Agent runtime has been disposed")
        if self.state.is_generating:
            raise GenerationInProgressError()
        self._combined_schema()

        self.state.append_history(PromptItem(text=text, context_refs=tuple(context_refs)))
        result = await self._run_generation()

        continuations: list[GenerationResult] = []
        while result.status == GenerationStatus.COMPLETED and self._scheduled is not None and not self._disposed:
            reason, self._scheduled = self._scheduled, None
            self.state.append_history(ContinuationItem(reason=reason))
            follow_up = await self._run_generation()
            continuations.append(follow_up)
            if follow_up.status != GenerationStatus.COMPLETED:
                break

        if continuations:
            result = dataclasses.replace(result, continuations=tuple(continuations))
        return result

    def schedule(self, text: str) -> None:
        """Queue a follow-up request run after the current generation completes.

        Scheduling again before it runs appends to the pending request.
        """
        if self._scheduled:
            self._scheduled = f"{self._scheduled}\n{text}"
        else:
            self._scheduled = text

    def cancel(self) -> None:
        """Cancel the in-flight generation, if any, and drop scheduled work.

        Idempotent and never raises. Actions already applied stay applied.
        """
        self._scheduled = None
        if self._current is not None:
            self._current.token.cancel()

    def dispose(self) -> None:
        """Cancel any generation and detach all state listeners."""
        self.cancel()
        self._disposed = True
        self.state.clear_listeners()

    async def aclose(self) -> None:
        """Dispose and wait for the in-flight generation to unwind."""
        task = self._active_task
        self.dispose()
        if task is not None and not task.done():
            try:
                await task
            except (AgentError, asyncio.CancelledError):
                pass

    def reset(self) -> None:
        """Cancel, then clear history, backend session state and the last error."""
        self.cancel()
        self.session.reset()
        self.state.clear_history()
        self.state.clear_preview()
        self.state.set_last_error(None)

    def set_acceptance(self, item_index: int, acceptance: Acceptance | str) -> None:
        """Mark a recorded action accepted or rejected; the item stays in history."""
        history = self.state.history
        if not 0 <= item_index < len(history):
            raise IndexError(f"No history item at index {item_index}")
        item = history[item_index]
        if not isinstance(item, ActionItem):
            raise ValueError(f"History item {item_index} is not an action")
        self.state.replace_history(item_index, dataclasses.replace(item, acceptance=Acceptance(acceptance)))

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def _run_generation(self) -> GenerationResult:
        request = self.build_request()
        self._generation_count += 1
        generation = _Generation(
            generation_id=f"gen-{self._generation_count}",
            token=CancellationToken(),
            parser=ActionStreamParser(
                self._registry,
                clock=self._clock,
                line_actions=getattr(self._provider, "line_actions", False),
            ),
        )
        provider_name = getattr(self._provider, "name", type(self._provider).__name__)

        log_event(
            "ai_request",
            level=logging.INFO,
            provider=provider_name,
            model=request.model_id,
            generation=generation.generation_id,
            message_count=len(request.messages),
            input_chars=sum(content_length(msg["content"]) for msg in request.messages),
            has_schema=request.response_schema is not None,
            has_session=self.session.response_id is not None,
            max_output_tokens=request.max_output_tokens,
        )

        self._current = generation
        if self.state.last_error is not None:
            self.state.set_last_error(None)
        self.state.clear_preview()
        self.state.set_generating(True)

        task = asyncio.create_task(self._consume(request, generation))
        self._active_task = task
        try:
            status = await task
        except asyncio.CancelledError:
            # A token cancel can still end the generation task cancelled when
            # it lands after the last await; only the caller's own
            # cancellation propagates.
            caller = asyncio.current_task()
            if not generation.token.cancelled or (caller is not None and caller.cancelling()):
                generation.token.cancel()
                raise
            status = GenerationStatus.CANCELLED
        except Exception as e:
            if generation.token.cancelled:
                status = GenerationStatus.CANCELLED
            else:
                error = e if isinstance(e, AgentError) else self._provider.classify_error(e)
                log_event(
                    "ai_error",
                    level=logging.ERROR,
                    provider=provider_name,
                    model=request.model_id,
                    generation=generation.generation_id,
                    latency_ms=generation.latency_ms(),
                    error_kind=error.kind.value,
                    retryable=error.retryable,
                    error_type=type(e).__name__,
                    error=str(e),
                    **extract_http_error_context(e.__cause__ or e),
                )
                self.state.set_last_error(error)
                if error is e:
                    raise
                raise error from e
        finally:
            if self._active_task is task:
                self._active_task = None
            if self._current is generation:
                self._current = None
            self.state.clear_preview()
            self.state.set_generating(False)

        if status == GenerationStatus.CANCELLED:
            log_event(
                "ai_cancelled",
                level=logging.INFO,
                provider=provider_name,
                model=request.model_id,
                generation=generation.generation_id,
                latency_ms=generation.latency_ms(),
                dispatched=len(generation.dispatched),
            )
        else:
            log_event(
                "ai_response",
                level=logging.INFO,
                provider=provider_name,
                model=request.model_id,
                generation=generation.generation_id,
                latency_ms=generation.latency_ms(),
                delta_count=generation.delta_count,
                output_chars=generation.output_chars,
                dispatched=len(generation.dispatched),
                cache_read_tokens=self.session.cache_read_tokens,
            )
        return GenerationResult(
            generation_id=generation.generation_id,
            status=status,
            dispatched=tuple(generation.dispatched),
        )

    async def _consume(self, request: GenerationRequest, generation: _Generation) -> GenerationStatus:
        token = generation.token
        try:
            if self._streaming:
                await self._consume_stream(request, generation)
            else:
                await self._consume_full_response(request, generation)
        except asyncio.CancelledError:
            if not absorb_cancellation(token):
                raise

        if token.cancelled:
            return GenerationStatus.CANCELLED
        self._handle(generation.parser.flush(), generation)
        return GenerationStatus.CANCELLED if token.cancelled else GenerationStatus.COMPLETED

    async def _consume_stream(self, request: GenerationRequest, generation: _Generation) -> None:
        token = generation.token
        stream = self._provider.stream(request, token)
        try:
            async for delta in stream:
                if token.cancelled:
                    break
                generation.delta_count += 1
                generation.output_chars += len(delta)
                self._handle(generation.parser.feed(delta), generation)
                if token.cancelled:
                    break
        finally:
            aclose = getattr(stream, "aclose", None)
            if aclose is not None:
                await aclose()

    async def _consume_full_response(self, request: GenerationRequest, generation: _Generation) -> None:
        # Single-delta transport: one feed, then flush completes the tail.
        unregister = cancel_current_task_on_cancel(generation.token)
        try:
            text = await self._provider.get_full_response(request)
        finally:
            unregister()
        if generation.token.cancelled:
            return
        generation.delta_count = 1
        generation.output_chars = len(text)
        self._handle(generation.parser.feed(text), generation)

    def _handle(self, actions: list[StreamingAction], generation: _Generation) -> None:
        for action in actions:
            if generation.token.cancelled:
                return
            if action.complete:
                self.state.drop_preview(action.index)
                self._dispatch(action, generation)
            else:
                self.state.set_preview(action)

    def _dispatch(self, action: StreamingAction, generation: _Generation) -> None:
        if action.index in generation.dispatched:
            return
        definition = self._registry.lookup(action.kind)
        if definition is None or action.model is None:
            return
        generation.dispatched.append(action.index)

        context = self._context_factory()
        context.generation_id = generation.generation_id
        context.schedule = self.schedule
        try:
            diff = definition.apply(action.model, context)
        except Exception as e:
            log_event(
                "action_apply_error",
                level=logging.ERROR,
                generation=generation.generation_id,
                index=action.index,
                action_kind=action.kind,
                error_type=type(e).__name__,
                error=str(e),
            )
            logger.debug("Action apply failed (kind=%s)", action.kind, exc_info=True)
            return

        log_event(
            "action_dispatch",
            level=logging.INFO,
            generation=generation.generation_id,
            index=action.index,
            action_kind=action.kind,
            records_history=definition.records_history,
            has_diff=diff is not None,
        )
        if definition.records_history:
            self.state.append_history(ActionItem(action=action.model, diff=diff))
