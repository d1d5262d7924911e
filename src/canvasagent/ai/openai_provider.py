"""OpenAI provider adapter.

This adapter uses the OpenAI Responses API with JSON output mode.
See: https://platform.openai.com/docs/guides/text
"""

from __future__ import annotations

import logging
import re
from typing import Any, AsyncIterator, Optional

from openai import (
    APIConnectionError,
    AsyncOpenAI,
    BadRequestError,
    InternalServerError,
    NotFoundError,
    RateLimitError,
)
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from ..agent.cancellation import CancellationToken
from ..constants import PROVIDER_OPENAI
from ..errors import AgentError, AgentErrorKind
from ..logging import before_sleep_log_event, log_event
from ..timeouts import (
    DEFAULT_PROVIDER_TIMEOUT_SEC,
    MODEL_LIST_TIMEOUT_SEC,
    RETRY_BACKOFF_EXP_BASE,
    RETRY_BACKOFF_INITIAL_SEC,
    RETRY_BACKOFF_JITTER,
    RETRY_BACKOFF_MAX_SEC,
    STANDARD_RETRY_ATTEMPTS,
    build_ai_httpx_timeout,
)
from .errors import classify_error
from .provider_logging import failure_message, log_provider_error, log_provider_warning
from .provider_utils import close_stream, content_text, guarded_stream, sort_models, with_json_instructions
from .types import ConnectionResult, FetchedModel, GenerationRequest, ProviderMessage, ProviderSessionState

_LISTED_PREFIXES = ("gpt-4", "gpt-5", "o1", "o3")


class ResponseFailedError(RuntimeError):
    """A streamed response ended with a ``response.failed``/``error`` event."""


def is_reasoning_model(model_id: str) -> bool:
    """Reasoning models reject the ``temperature`` parameter."""
    return model_id.startswith(("gpt-5", "o1", "o3", "o4"))


def format_model_name(model_id: str) -> str:
    """'gpt-4o-mini-2024-07-18' -> 'GPT-4o Mini'."""
    name = re.sub(r"-\d{4}-\d{2}-\d{2}$", "", model_id)
    name = re.sub(r"^gpt-", "GPT-", name)
    parts = name.split("-")
    parts = [parts[0]] + [part if part[:1].isdigit() else part.capitalize() for part in parts[1:]]
    name = "-".join(parts)
    return re.sub(r"-(Mini|Nano|Preview|Pro)", r" \1", name)


class OpenAIProvider:
    """OpenAI provider adapter using the Responses API."""

    name = PROVIDER_OPENAI

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT_SEC,
        endpoint_override: Optional[str] = None,
    ):
        # Disable default retries - we handle retries explicitly
        self.client = AsyncOpenAI(
            api_key=api_key,
            base_url=endpoint_override,
            timeout=build_ai_httpx_timeout(timeout),
            max_retries=0,
        )
        self.timeout = timeout

    def format_messages(self, messages: list[ProviderMessage]) -> list[dict[str, Any]]:
        """Convert provider messages to Responses API input items."""
        formatted: list[dict[str, Any]] = []
        for msg in messages:
            content = msg["content"]
            if isinstance(content, str):
                formatted.append({"role": msg["role"], "content": content})
            elif msg["role"] == "assistant":
                formatted.append({"role": "assistant", "content": content_text(content)})
            else:
                parts: list[dict[str, Any]] = []
                for block in content:
                    if block["type"] == "image":
                        parts.append({"type": "input_image", "image_url": block["image"]})
                    else:
                        parts.append({"type": "input_text", "text": block["text"]})
                formatted.append({"role": msg["role"], "content": parts})
        return formatted

    def build_params(self, request: GenerationRequest) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": request.model_id,
            "input": self.format_messages(request.messages),
            "instructions": with_json_instructions(request.system_prompt),
            "max_output_tokens": request.max_output_tokens,
            "text": {"format": {"type": "json_object"}},
        }
        if not is_reasoning_model(request.model_id):
            params["temperature"] = request.temperature
        session = request.session
        if session is not None:
            # Stored responses let the next call continue server-side state.
            params["store"] = True
            if session.response_id:
                params["previous_response_id"] = session.response_id
        return params

    def record_session(self, session: Optional[ProviderSessionState], response: Any) -> None:
        """Remember the response id and cached-token usage of a finished response."""
        if session is None or response is None:
            return
        response_id = getattr(response, "id", None)
        if isinstance(response_id, str) and response_id:
            session.response_id = response_id
        details = getattr(getattr(response, "usage", None), "input_tokens_details", None)
        cached = getattr(details, "cached_tokens", None)
        if isinstance(cached, int) and cached > 0:
            session.record_cache(read=cached)

    def stream(
        self,
        request: GenerationRequest,
        cancellation: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        return guarded_stream(self.name, self._iter_deltas(request), cancellation, self.classify_error)

    async def _open_stream(self, request: GenerationRequest):
        params = self.build_params(request)
        try:
            return await self.client.responses.create(**params, stream=True)
        except (BadRequestError, NotFoundError) as e:
            if "previous_response_id" not in params:
                raise
            # Expired or unknown previous response: start a new chain.
            log_provider_warning(self.name, f"Session continuation rejected, starting new session: {e}")
            request.session.response_id = None
            del params["previous_response_id"]
            return await self.client.responses.create(**params, stream=True)

    async def _iter_deltas(self, request: GenerationRequest) -> AsyncIterator[str]:
        response = await self._open_stream(request)
        try:
            async for event in response:
                if event.type == "response.output_text.delta":
                    if event.delta:
                        yield event.delta
                elif event.type == "response.completed":
                    self.record_session(request.session, getattr(event, "response", None))
                    usage = getattr(event.response, "usage", None)
                    if usage is not None:
                        log_event(
                            "provider_log",
                            level=logging.INFO,
                            provider=self.name,
                            message=f"Response: {usage.total_tokens} tokens",
                        )
                elif event.type == "response.incomplete":
                    details = getattr(event.response, "incomplete_details", None)
                    reason = getattr(details, "reason", None)
                    log_provider_warning(self.name, f"Response incomplete: {reason}")
                elif event.type == "response.failed":
                    error = getattr(event.response, "error", None)
                    raise ResponseFailedError(getattr(error, "message", None) or "Response failed")
                elif event.type == "error":
                    raise ResponseFailedError(getattr(event, "message", None) or "Stream error")
        finally:
            await close_stream(response)

    @retry(
        retry=retry_if_exception_type((APIConnectionError, RateLimitError, InternalServerError)),
        wait=wait_exponential_jitter(
            initial=RETRY_BACKOFF_INITIAL_SEC,
            max=RETRY_BACKOFF_MAX_SEC,
            exp_base=RETRY_BACKOFF_EXP_BASE,
            jitter=RETRY_BACKOFF_JITTER,
        ),
        stop=stop_after_attempt(STANDARD_RETRY_ATTEMPTS),
        before_sleep=before_sleep_log_event(
            provider=PROVIDER_OPENAI,
            operation="_create_response",
            level=logging.WARNING,
        ),
        reraise=True,
    )
    async def _create_response(self, **kwargs):
        return await self.client.responses.create(**kwargs)

    async def get_full_response(self, request: GenerationRequest) -> str:
        try:
            response = await self._create_response(**self.build_params(request))
        except Exception as e:
            classified = self.classify_error(e)
            log_provider_error(self.name, failure_message(e, classified))
            raise classified from e
        self.record_session(request.session, response)
        if getattr(response, "status", None) == "incomplete":
            log_provider_warning(self.name, "Response incomplete (max_output_tokens reached?)")
        return response.output_text or ""

    async def test_connection(
        self, credentials: str, endpoint_override: Optional[str] = None
    ) -> ConnectionResult:
        if not credentials or not credentials.strip():
            return ConnectionResult(
                success=False,
                error="API key is required",
                error_kind=AgentErrorKind.INVALID_CREDENTIALS,
            )

        try:
            async with AsyncOpenAI(
                api_key=credentials.strip(),
                base_url=endpoint_override,
                timeout=MODEL_LIST_TIMEOUT_SEC,
                max_retries=0,
            ) as client:
                models = [
                    FetchedModel(id=model.id, display_name=format_model_name(model.id))
                    async for model in client.models.list()
                    if model.id.startswith(_LISTED_PREFIXES)
                ]
        except Exception as e:
            classified = self.classify_error(e)
            log_event(
                "connection_test",
                level=logging.WARNING,
                provider=self.name,
                success=False,
                error_kind=classified.kind.value,
                error=str(e),
            )
            return ConnectionResult(success=False, error=classified.message, error_kind=classified.kind)

        log_event("connection_test", provider=self.name, success=True, model_count=len(models))
        return ConnectionResult(success=True, models=sort_models(models))

    def classify_error(self, error: BaseException) -> AgentError:
        return classify_error(self.name, error, network_types=(APIConnectionError,))
