"""Claude (Anthropic) provider adapter."""

from __future__ import annotations

import logging
import re
from typing import Any, AsyncIterator, Optional

from anthropic import APIConnectionError, AsyncAnthropic, BadRequestError, InternalServerError, RateLimitError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from ..agent.cancellation import CancellationToken
from ..constants import PROVIDER_CLAUDE
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
from .provider_utils import content_blocks, content_length, guarded_stream, sort_models, split_data_url
from .types import ConnectionResult, FetchedModel, GenerationRequest, ProviderMessage, ProviderSessionState

# Assistant prefill forcing the response to open the actions envelope.
JSON_PREFILL = '{"actions": ['

# Only substantial early user messages get a cache breakpoint.
MIN_CACHE_CONTENT_LENGTH = 100
MAX_CACHE_BREAKPOINTS = 3

_EPHEMERAL = {"type": "ephemeral"}


def format_model_name(model_id: str) -> str:
    """'claude-3-5-sonnet-20241022' -> 'Claude 3.5 Sonnet'."""
    base = re.sub(r"-\d{8}$", "", model_id)
    parts = [part if part.isdigit() else part.capitalize() for part in base.split("-")]
    return re.sub(r"(\d) (\d)", r"\1.\2", " ".join(parts))


def record_cache_usage(session: Optional[ProviderSessionState], usage: Any) -> None:
    """Add a response's prompt-cache token counts to the session."""
    if session is None or usage is None:
        return
    created = getattr(usage, "cache_creation_input_tokens", None)
    read = getattr(usage, "cache_read_input_tokens", None)
    session.record_cache(
        created=created if isinstance(created, int) else 0,
        read=read if isinstance(read, int) else 0,
    )


def _is_cache_error(error: BaseException) -> bool:
    message = str(error).lower()
    return "cache_control" in message or "cache control" in message or "caching" in message


class ClaudeProvider:
    """Claude (Anthropic) provider adapter."""

    name = PROVIDER_CLAUDE

    # Prefill the assistant turn with the envelope opening so the model
    # cannot answer with prose. The prefill is yielded as the first delta.
    json_prefill: bool = True

    # Cache breakpoints on the system prompt (which embeds the action
    # schema) and on up to three substantial early user messages. Falls back
    # to an uncached request when the endpoint rejects cache_control.
    prompt_caching: bool = True

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT_SEC,
        endpoint_override: Optional[str] = None,
    ):
        # Disable SDK retries - the fallback call retries with tenacity and
        # streaming never retries.
        self.client = AsyncAnthropic(
            api_key=api_key,
            base_url=endpoint_override,
            timeout=build_ai_httpx_timeout(timeout),
            max_retries=0,
        )
        self.timeout = timeout

    def format_messages(
        self, messages: list[ProviderMessage], *, caching: bool = False
    ) -> list[dict[str, Any]]:
        """Convert provider messages to Anthropic message params."""
        formatted: list[dict[str, Any]] = []
        breakpoints = 0
        for msg in messages:
            blocks: list[dict[str, Any]] = []
            for block in content_blocks(msg["content"]):
                if block["type"] == "image":
                    media_type, data = split_data_url(block["image"])
                    blocks.append(
                        {
                            "type": "image",
                            "source": {"type": "base64", "media_type": media_type, "data": data},
                        }
                    )
                else:
                    blocks.append({"type": "text", "text": block["text"]})

            if (
                caching
                and blocks
                and msg["role"] == "user"
                and breakpoints < MAX_CACHE_BREAKPOINTS
                and content_length(msg["content"]) >= MIN_CACHE_CONTENT_LENGTH
            ):
                blocks[-1] = {**blocks[-1], "cache_control": dict(_EPHEMERAL)}
                breakpoints += 1

            if not blocks:
                # Anthropic rejects empty content.
                continue
            if isinstance(msg["content"], str) and "cache_control" not in blocks[-1]:
                formatted.append({"role": msg["role"], "content": msg["content"]})
            else:
                formatted.append({"role": msg["role"], "content": blocks})
        return formatted

    def build_params(self, request: GenerationRequest, *, caching: bool) -> dict[str, Any]:
        messages = self.format_messages(request.messages, caching=caching)
        if self.json_prefill:
            messages.append({"role": "assistant", "content": JSON_PREFILL})

        params: dict[str, Any] = {
            "model": request.model_id,
            "max_tokens": request.max_output_tokens,
            "messages": messages,
            "temperature": request.temperature,
        }
        if request.system_prompt:
            if caching:
                params["system"] = [
                    {"type": "text", "text": request.system_prompt, "cache_control": dict(_EPHEMERAL)}
                ]
            else:
                params["system"] = request.system_prompt
        return params

    def stream(
        self,
        request: GenerationRequest,
        cancellation: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        return guarded_stream(self.name, self._iter_deltas(request), cancellation, self.classify_error)

    async def _iter_deltas(self, request: GenerationRequest) -> AsyncIterator[str]:
        caching = self.prompt_caching
        while True:
            params = self.build_params(request, caching=caching)
            opened = False
            try:
                async with self.client.messages.stream(**params) as response_stream:
                    opened = True
                    if self.json_prefill:
                        yield JSON_PREFILL
                    async for text in response_stream.text_stream:
                        yield text

                    final_message = await response_stream.get_final_message()
                    if final_message.stop_reason == "max_tokens":
                        log_provider_warning(self.name, "Response truncated due to max_tokens limit")
                    usage = final_message.usage
                    record_cache_usage(request.session, usage)
                    log_event(
                        "provider_log",
                        level=logging.INFO,
                        provider=self.name,
                        message=(
                            f"Response: {usage.input_tokens + usage.output_tokens} tokens, "
                            f"stop_reason={final_message.stop_reason}, "
                            f"cache_read={getattr(usage, 'cache_read_input_tokens', None) or 0}"
                        ),
                    )
                return
            except BadRequestError as e:
                if caching and not opened and _is_cache_error(e):
                    log_provider_warning(self.name, f"Prompt caching rejected, retrying uncached: {e}")
                    caching = False
                    continue
                raise

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
            provider=PROVIDER_CLAUDE,
            operation="_create_message",
            level=logging.WARNING,
        ),
        reraise=True,
    )
    async def _create_message(self, **kwargs):
        return await self.client.messages.create(**kwargs)

    async def get_full_response(self, request: GenerationRequest) -> str:
        """Non-streaming request; the prefill is prepended to the returned text."""
        try:
            response = await self._create_message(**self.build_params(request, caching=self.prompt_caching))
        except Exception as e:
            classified = self.classify_error(e)
            log_provider_error(self.name, failure_message(e, classified))
            raise classified from e

        record_cache_usage(request.session, getattr(response, "usage", None))
        content = "".join(block.text for block in response.content if hasattr(block, "text"))
        if response.stop_reason == "max_tokens":
            log_provider_warning(self.name, "Response truncated due to max_tokens limit")
        return (JSON_PREFILL if self.json_prefill else "") + content

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
            async with AsyncAnthropic(
                api_key=credentials.strip(),
                base_url=endpoint_override,
                timeout=MODEL_LIST_TIMEOUT_SEC,
                max_retries=0,
            ) as client:
                models = [
                    FetchedModel(id=model.id, display_name=format_model_name(model.id))
                    async for model in client.models.list()
                    if model.id.startswith("claude")
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
