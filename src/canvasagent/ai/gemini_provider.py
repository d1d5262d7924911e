"""Gemini (Google) provider adapter."""

from __future__ import annotations

import base64
import binascii
import logging
import re
from typing import Any, AsyncIterator, Optional

import httpx
from google import genai
from google.genai import types
from google.genai.errors import APIError, ClientError, ServerError
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential_jitter

from ..agent.cancellation import CancellationToken
from ..constants import PROVIDER_GEMINI
from ..errors import AgentError, AgentErrorKind
from ..logging import before_sleep_log_event, extract_http_error_context, log_event
from ..timeouts import (
    DEFAULT_PROVIDER_TIMEOUT_SEC,
    MODEL_LIST_TIMEOUT_SEC,
    RETRY_BACKOFF_EXP_BASE,
    RETRY_BACKOFF_INITIAL_SEC,
    RETRY_BACKOFF_JITTER,
    RETRY_BACKOFF_MAX_SEC,
    STANDARD_RETRY_ATTEMPTS,
    normalize_timeout,
)
from .errors import classify_error
from .provider_logging import failure_message, log_provider_error, log_provider_warning
from .provider_utils import close_stream, content_blocks, guarded_stream, sort_models, split_data_url
from .types import ConnectionResult, FetchedModel, GenerationRequest, ProviderMessage

GEMINI_API_BASE = "https://generativelanguage.googleapis.com"

# Gemini answers a bad key with 400 INVALID_ARGUMENT rather than 401.
_INVALID_KEY_HINTS = ("api key not valid", "api_key_invalid")


def format_model_name(model_name: str) -> str:
    """'models/gemini-2.5-flash' -> 'Gemini 2.5 Flash'."""
    base = re.sub(r"^models/", "", model_name)
    return " ".join(part[:1].upper() + part[1:] for part in base.split("-") if part)


def _is_transient(error: BaseException) -> bool:
    if isinstance(error, ServerError) or isinstance(error, httpx.TransportError):
        return True
    return isinstance(error, ClientError) and error.code == 429


class GeminiProvider:
    """Gemini (Google) provider adapter."""

    name = PROVIDER_GEMINI

    def __init__(
        self,
        api_key: str,
        timeout: float = DEFAULT_PROVIDER_TIMEOUT_SEC,
        endpoint_override: Optional[str] = None,
    ):
        # Gemini SDK timeouts are in milliseconds; 0 means no timeout.
        timeout_sec = normalize_timeout(timeout)
        http_options = types.HttpOptions(
            timeout=int(timeout_sec * 1000) if timeout_sec > 0 else None,
            base_url=endpoint_override or None,
        )
        self.client = genai.Client(api_key=api_key, http_options=http_options)
        self.api_base = (endpoint_override or GEMINI_API_BASE).rstrip("/")
        self.timeout = timeout

    def format_messages(self, messages: list[ProviderMessage]) -> list[types.Content]:
        """Convert provider messages to Gemini contents ("user"/"model" roles)."""
        formatted = []
        for msg in messages:
            parts: list[types.Part] = []
            for block in content_blocks(msg["content"]):
                if block["type"] == "image":
                    media_type, data = split_data_url(block["image"])
                    try:
                        raw = base64.b64decode(data, validate=True)
                    except (binascii.Error, ValueError):
                        log_provider_warning(self.name, "Skipping image with invalid base64 data")
                        continue
                    parts.append(types.Part.from_bytes(data=raw, mime_type=media_type))
                else:
                    parts.append(types.Part(text=block["text"]))
            role = "model" if msg["role"] == "assistant" else "user"
            formatted.append(types.Content(role=role, parts=parts))
        return formatted

    def build_config(self, request: GenerationRequest) -> types.GenerateContentConfig:
        config_kwargs: dict[str, Any] = {
            "system_instruction": request.system_prompt or None,
            "max_output_tokens": request.max_output_tokens,
            "temperature": request.temperature,
            "response_mime_type": "application/json",
        }
        return types.GenerateContentConfig(**config_kwargs)

    def stream(
        self,
        request: GenerationRequest,
        cancellation: Optional[CancellationToken] = None,
    ) -> AsyncIterator[str]:
        return guarded_stream(self.name, self._iter_deltas(request), cancellation, self.classify_error)

    async def _iter_deltas(self, request: GenerationRequest) -> AsyncIterator[str]:
        response = await self.client.aio.models.generate_content_stream(
            model=request.model_id,
            contents=self.format_messages(request.messages),
            config=self.build_config(request),
        )
        try:
            async for chunk in response:
                if chunk.candidates:
                    finish_reason = getattr(chunk.candidates[0], "finish_reason", None)
                    if finish_reason in ("SAFETY", "RECITATION"):
                        log_provider_warning(self.name, f"Response blocked (finish_reason={finish_reason})")
                    elif finish_reason == "MAX_TOKENS":
                        log_provider_warning(self.name, "Response truncated due to max tokens")
                if chunk.text:
                    yield chunk.text
        finally:
            await close_stream(response)

    @retry(
        retry=retry_if_exception(_is_transient),
        wait=wait_exponential_jitter(
            initial=RETRY_BACKOFF_INITIAL_SEC,
            max=RETRY_BACKOFF_MAX_SEC,
            exp_base=RETRY_BACKOFF_EXP_BASE,
            jitter=RETRY_BACKOFF_JITTER,
        ),
        stop=stop_after_attempt(STANDARD_RETRY_ATTEMPTS),
        before_sleep=before_sleep_log_event(
            provider=PROVIDER_GEMINI,
            operation="_generate_content",
            level=logging.WARNING,
        ),
        reraise=True,
    )
    async def _generate_content(self, **kwargs):
        return await self.client.aio.models.generate_content(**kwargs)

    async def get_full_response(self, request: GenerationRequest) -> str:
        try:
            response = await self._generate_content(
                model=request.model_id,
                contents=self.format_messages(request.messages),
                config=self.build_config(request),
            )
        except Exception as e:
            classified = self.classify_error(e)
            log_provider_error(self.name, failure_message(e, classified))
            raise classified from e
        return response.text or ""

    async def list_models(self, credentials: str, api_base: Optional[str] = None) -> list[FetchedModel]:
        """List Gemini models through the REST endpoint."""
        api_base = (api_base or self.api_base).rstrip("/")
        async with httpx.AsyncClient(timeout=MODEL_LIST_TIMEOUT_SEC) as http:
            response = await http.get(
                f"{api_base}/v1beta/models",
                params={"pageSize": 1000},
                headers={"x-goog-api-key": credentials},
            )
            response.raise_for_status()
            data = response.json()

        models = []
        for model in data.get("models") or []:
            name = str(model.get("name", ""))
            if "gemini" not in name.lower():
                continue
            models.append(
                FetchedModel(
                    id=re.sub(r"^models/", "", name),
                    display_name=model.get("displayName") or format_model_name(name),
                )
            )
        return sort_models(models)

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
            models = await self.list_models(credentials.strip(), endpoint_override)
        except Exception as e:
            classified = self.classify_error(e)
            log_event(
                "connection_test",
                level=logging.WARNING,
                provider=self.name,
                success=False,
                error_kind=classified.kind.value,
                error=str(e),
                **extract_http_error_context(e),
            )
            return ConnectionResult(success=False, error=classified.message, error_kind=classified.kind)

        log_event("connection_test", provider=self.name, success=True, model_count=len(models))
        return ConnectionResult(success=True, models=models)

    def classify_error(self, error: BaseException) -> AgentError:
        detail = str(error)
        response = getattr(error, "response", None)
        if isinstance(response, httpx.Response):
            try:
                detail = f"{detail} {response.text}"
            except httpx.ResponseNotRead:
                pass
        if any(hint in detail.lower() for hint in _INVALID_KEY_HINTS):
            return classify_error(self.name, error, status_code=401)
        if isinstance(error, APIError):
            return classify_error(self.name, error, status_code=error.code)
        return classify_error(self.name, error)
