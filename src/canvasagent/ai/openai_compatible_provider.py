"""OpenAI-compatible provider adapter (Ollama, LM Studio, vLLM, ...).

Uses the Chat Completions API, which every compatible server implements.
JSON output mode is requested on every call but not required: a server that
rejects ``response_format`` is retried once without it, and the next call
asks again.
"""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Optional

import httpx
from openai import APIConnectionError, AsyncOpenAI, BadRequestError, InternalServerError, RateLimitError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential_jitter

from ..agent.cancellation import CancellationToken
from ..constants import (
    DEFAULT_OPENAI_COMPATIBLE_ENDPOINT,
    OPENAI_COMPATIBLE_PLACEHOLDER_KEY,
    PROVIDER_OPENAI_COMPATIBLE,
)
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
from .types import ConnectionResult, FetchedModel, GenerationRequest, ProviderMessage


def normalize_endpoint(endpoint: Optional[str]) -> str:
    endpoint = (endpoint or "").strip()
    return endpoint or DEFAULT_OPENAI_COMPATIBLE_ENDPOINT


def is_valid_endpoint(endpoint: str) -> bool:
    try:
        url = httpx.URL(endpoint)
    except (httpx.InvalidURL, TypeError):
        return False
    return url.scheme in ("http", "https") and bool(url.host)


def is_json_mode_unsupported(error: BaseException) -> bool:
    message = str(error).lower()
    return "response_format" in message or "json mode" in message or "json_object" in message


def format_model_name(model_id: str) -> str:
    """'llama3.1:8b' -> 'Llama3.1 (8b)', 'mistral-nemo' -> 'Mistral Nemo'."""
    base, _, tag = model_id.rpartition("/")[2].partition(":")
    name = " ".join(part[:1].upper() + part[1:] for part in base.replace("_", "-").split("-") if part)
    if tag and tag != "latest":
        return f"{name} ({tag})"
    return name


class OpenAICompatibleProvider:
    """Chat Completions adapter for self-hosted OpenAI-compatible servers."""

    name = PROVIDER_OPENAI_COMPATIBLE

    # Small local models often ignore the envelope and emit one
    # "[ACTION]: {...}" line per action; the parser accepts that form too.
    line_actions: bool = True

    def __init__(
        self,
        api_key: str = "",
        timeout: float = DEFAULT_PROVIDER_TIMEOUT_SEC,
        endpoint_override: Optional[str] = None,
    ):
        self.endpoint = normalize_endpoint(endpoint_override)
        self.client = AsyncOpenAI(
            api_key=api_key.strip() or OPENAI_COMPATIBLE_PLACEHOLDER_KEY,
            base_url=self.endpoint,
            timeout=build_ai_httpx_timeout(timeout),
            max_retries=0,
        )
        self.timeout = timeout

    def format_messages(self, system_prompt: str, messages: list[ProviderMessage]) -> list[dict[str, Any]]:
        """Convert provider messages to Chat Completions messages."""
        formatted: list[dict[str, Any]] = [
            {"role": "system", "content": with_json_instructions(system_prompt)}
        ]
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
                        parts.append({"type": "image_url", "image_url": {"url": block["image"]}})
                    else:
                        parts.append({"type": "text", "text": block["text"]})
                formatted.append({"role": msg["role"], "content": parts})
        return formatted

    def build_params(self, request: GenerationRequest, *, json_mode: bool) -> dict[str, Any]:
        params: dict[str, Any] = {
            "model": request.model_id,
            "messages": self.format_messages(request.system_prompt, request.messages),
            "max_tokens": request.max_output_tokens,
            "temperature": request.temperature,
        }
        if json_mode:
            params["response_format"] = {"type": "json_object"}
        return params

    def stream(
        self,
        request: GenerationRequest,
        cancellation: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        return guarded_stream(self.name, self._iter_deltas(request), cancellation, self.classify_error)

    async def _open_stream(self, request: GenerationRequest):
        try:
            return await self.client.chat.completions.create(
                **self.build_params(request, json_mode=True), stream=True
            )
        except BadRequestError as e:
            if not is_json_mode_unsupported(e):
                raise
            log_provider_warning(self.name, f"JSON mode unsupported, retrying without response_format: {e}")
            return await self.client.chat.completions.create(
                **self.build_params(request, json_mode=False), stream=True
            )

    async def _iter_deltas(self, request: GenerationRequest) -> AsyncIterator[str]:
        response = await self._open_stream(request)
        try:
            async for chunk in response:
                if not chunk.choices:
                    continue
                choice = chunk.choices[0]
                if choice.delta is not None and choice.delta.content:
                    yield choice.delta.content
                if choice.finish_reason == "length":
                    log_provider_warning(self.name, "Response truncated due to max_tokens limit")
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
            provider=PROVIDER_OPENAI_COMPATIBLE,
            operation="_create_completion",
            level=logging.WARNING,
        ),
        reraise=True,
    )
    async def _create_completion(self, **kwargs):
        return await self.client.chat.completions.create(**kwargs)

    async def get_full_response(self, request: GenerationRequest) -> str:
        try:
            try:
                response = await self._create_completion(**self.build_params(request, json_mode=True))
            except BadRequestError as e:
                if not is_json_mode_unsupported(e):
                    raise
                log_provider_warning(
                    self.name, f"JSON mode unsupported, retrying without response_format: {e}"
                )
                response = await self._create_completion(**self.build_params(request, json_mode=False))
        except Exception as e:
            classified = self.classify_error(e)
            log_provider_error(self.name, failure_message(e, classified))
            raise classified from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def test_connection(
        self, credentials: str, endpoint_override: Optional[str] = None
    ) -> ConnectionResult:
        """List models served by the endpoint.

        Local servers need no key, so an empty credential is replaced by a
        placeholder; the endpoint URL is validated instead.
        """
        endpoint = normalize_endpoint(endpoint_override)
        if not is_valid_endpoint(endpoint):
            return ConnectionResult(
                success=False,
                error=f"Invalid endpoint URL: {endpoint}",
                error_kind=AgentErrorKind.NETWORK,
            )

        try:
            async with AsyncOpenAI(
                api_key=(credentials or "").strip() or OPENAI_COMPATIBLE_PLACEHOLDER_KEY,
                base_url=endpoint,
                timeout=MODEL_LIST_TIMEOUT_SEC,
                max_retries=0,
            ) as client:
                models = [
                    FetchedModel(id=model.id, display_name=format_model_name(model.id))
                    async for model in client.models.list()
                    if model.id
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
