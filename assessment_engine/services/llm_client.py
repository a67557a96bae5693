"""
Text Generation Client - Assessment Engine
assessment_engine/services/llm_client.py

Async client for an OpenAI-compatible chat-completions gateway.

- Per-call timeout (LLM_REQUEST_TIMEOUT_SECONDS by default)
- Bounded retries with exponential backoff plus jitter:
    wait = 0.3s * 2^(attempt-1) + U(0, 0.1s)
  only for timeouts/connection failures and HTTP 429/5xx
- Cooperative cancellation through an asyncio.Event; a cancelled call is
  never retried
- Streaming variant that parses SSE "data: {...}" lines
"""

import asyncio
import contextlib
import json
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from assessment_engine.config import get_settings
from assessment_engine.core.exceptions import ExternalServiceError, GenerationCancelledError

logger = structlog.get_logger(__name__)

DEFAULT_TEMPERATURE = 0.7
DEFAULT_MAX_TOKENS = 512
STREAM_TIMEOUT_FACTOR = 3

BACKOFF_BASE_SECONDS = 0.3
BACKOFF_JITTER_SECONDS = 0.1


@dataclass
class GenerationResult:
    """Text returned by one chat-completions call."""
    text: str
    model: str
    finish_reason: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


def is_retryable_error(exc: BaseException) -> bool:
    """Timeouts, connection failures, 429 and 5xx are transient. Cancellation never is."""
    if isinstance(exc, GenerationCancelledError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


def build_messages(system_prompt: Optional[str], user_prompt: str, context: Optional[str] = None) -> List[Dict[str, str]]:
    messages: List[Dict[str, str]] = []
    if system_prompt:
        messages.append({"role": "system", "content": system_prompt})
    if context:
        messages.append({"role": "system", "content": f"Context: {context}"})
    messages.append({"role": "user", "content": user_prompt})
    return messages


class LLMClient:
    """Chat-completions client with timeout, retry and cancellation."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        completions_path: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        max_retries: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        settings = get_settings()
        if api_key is None and settings.LLM_API_KEY is not None:
            api_key = settings.LLM_API_KEY.get_secret_value()
        self.api_key = api_key
        self.base_url = (base_url or settings.LLM_BASE_URL).rstrip("/")
        self.completions_path = completions_path or settings.LLM_CHAT_COMPLETIONS_PATH
        self.timeout_seconds = timeout_seconds or settings.LLM_REQUEST_TIMEOUT_SECONDS
        self.max_retries = settings.LLM_MAX_RETRIES if max_retries is None else max_retries
        self.default_model = settings.LLM_DEFAULT_MODEL
        self._transport = transport

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def generate(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        context: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        top_p: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
        extra_body: Optional[Dict[str, Any]] = None,
    ) -> GenerationResult:
        """
        Run one chat completion.

        Raises:
            GenerationCancelledError: cancel_event was set before or during the call
            ExternalServiceError: the gateway failed after all retries
        """
        payload = self._payload(
            system_prompt, user_prompt, context, model, temperature, max_tokens, top_p, extra_body
        )
        timeout = timeout_seconds or self.timeout_seconds

        try:
            async for attempt in AsyncRetrying(
                retry=retry_if_exception(is_retryable_error),
                stop=stop_after_attempt(self.max_retries + 1),
                wait=wait_exponential(multiplier=BACKOFF_BASE_SECONDS, exp_base=2)
                + wait_random(0, BACKOFF_JITTER_SECONDS),
                reraise=True,
            ):
                with attempt:
                    if cancel_event is not None and cancel_event.is_set():
                        raise GenerationCancelledError()
                    logger.debug(
                        "llm_call_attempt",
                        model=payload["model"],
                        attempt_number=attempt.retry_state.attempt_number,
                    )
                    data = await self._cancellable(self._post(payload, timeout), cancel_event)
        except GenerationCancelledError:
            logger.info("llm_call_cancelled", model=payload["model"])
            raise
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error("llm_call_failed", model=payload["model"], status=status)
            raise ExternalServiceError(
                f"Text generation failed with HTTP {status}: {e.response.text[:200]}",
                status=status,
            ) from e
        except httpx.HTTPError as e:
            logger.error("llm_call_failed", model=payload["model"], error=str(e))
            raise ExternalServiceError(f"Text generation request failed: {e}") from e

        return self._parse_completion(data, payload["model"])

    async def generate_stream(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        on_chunk: Callable[[str], Any],
        context: Optional[str] = None,
        model: Optional[str] = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> GenerationResult:
        """
        Stream a chat completion, calling ``on_chunk`` for every content delta.

        Returns:
            GenerationResult holding the concatenated text
        """
        payload = self._payload(system_prompt, user_prompt, context, model, temperature, max_tokens)
        payload["stream"] = True
        timeout = self.timeout_seconds * STREAM_TIMEOUT_FACTOR

        try:
            text, finish_reason = await self._cancellable(
                self._stream(payload, timeout, on_chunk), cancel_event
            )
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            raise ExternalServiceError(f"Streaming generation failed with HTTP {status}", status=status) from e
        except httpx.HTTPError as e:
            raise ExternalServiceError(f"Streaming generation request failed: {e}") from e

        return GenerationResult(text=text, model=payload["model"], finish_reason=finish_reason)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _payload(
        self,
        system_prompt: Optional[str],
        user_prompt: str,
        context: Optional[str],
        model: Optional[str],
        temperature: float,
        max_tokens: int,
        top_p: Optional[float] = None,
        extra_body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": model or self.default_model,
            "messages": build_messages(system_prompt, user_prompt, context),
            "temperature": temperature,
            "max_tokens": max_tokens,
            "stream": False,
        }
        if top_p is not None:
            payload["top_p"] = top_p
        if extra_body:
            payload.update(extra_body)
        return payload

    def _headers(self, stream: bool = False) -> Dict[str, str]:
        headers = {"Content-Type": "application/json; charset=utf-8"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if stream:
            headers["Accept"] = "text/event-stream"
        return headers

    def _client(self, timeout: float) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=self._transport)

    async def _post(self, payload: Dict[str, Any], timeout: float) -> Dict[str, Any]:
        async with self._client(timeout) as client:
            response = await client.post(self.completions_path, json=payload, headers=self._headers())
            response.raise_for_status()
            try:
                data = response.json()
            except ValueError as e:
                raise ExternalServiceError(
                    f"Text generation returned a non-JSON body: {response.text[:200]}"
                ) from e
            if not isinstance(data, dict):
                raise ExternalServiceError("Text generation returned a non-object JSON body")
            return data

    async def _stream(
        self,
        payload: Dict[str, Any],
        timeout: float,
        on_chunk: Callable[[str], Any],
    ) -> tuple:
        parts: List[str] = []
        finish_reason: Optional[str] = None
        async with self._client(timeout) as client:
            async with client.stream(
                "POST", self.completions_path, json=payload, headers=self._headers(stream=True)
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                response.raise_for_status()
                async for line in response.aiter_lines():
                    if not line.startswith("data: "):
                        continue
                    data = line[len("data: "):].strip()
                    if data == "[DONE]":
                        continue
                    try:
                        event = json.loads(data)
                    except json.JSONDecodeError:
                        continue
                    choice = (event.get("choices") or [{}])[0]
                    content = (choice.get("delta") or {}).get("content")
                    if choice.get("finish_reason"):
                        finish_reason = choice["finish_reason"]
                    if content:
                        parts.append(content)
                        result = on_chunk(content)
                        if asyncio.iscoroutine(result):
                            await result
        return "".join(parts), finish_reason

    async def _cancellable(self, coro: Awaitable[Any], cancel_event: Optional[asyncio.Event]) -> Any:
        """Await ``coro`` unless ``cancel_event`` fires first."""
        if cancel_event is None:
            return await coro
        if cancel_event.is_set():
            coro.close()
            raise GenerationCancelledError()

        work = asyncio.ensure_future(coro)
        waiter = asyncio.ensure_future(cancel_event.wait())
        done, _ = await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)

        if work in done:
            waiter.cancel()
            return work.result()

        work.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await work
        raise GenerationCancelledError()

    def _parse_completion(self, data: Dict[str, Any], requested_model: str) -> GenerationResult:
        choices = data.get("choices") or []
        if not isinstance(choices, list) or not choices:
            raise ExternalServiceError("Text generation returned no choices")
        choice = choices[0]
        if not isinstance(choice, dict):
            raise ExternalServiceError("Text generation returned a malformed choice")
        message = choice.get("message")
        text = (message.get("content") if isinstance(message, dict) else None) or ""
        if not isinstance(text, str):
            raise ExternalServiceError("Text generation returned non-text content")
        return GenerationResult(
            text=text,
            model=data.get("model") or requested_model,
            finish_reason=choice.get("finish_reason"),
            raw=data,
        )


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()
