"""Chat completion gateway with cost, timeout and retry bounds.

Wraps an OpenRouter-compatible ``/chat/completions`` endpoint. The gateway
never raises to its caller: every outcome, including an absent API key or a
request that would exceed the cost limit, comes back as a
CompletionResponse with ``success`` set accordingly.

Retries: transport errors, timeouts and 5xx responses are retried with
exponential backoff. 4xx responses are final.
"""

from __future__ import annotations

import asyncio
import logging
import math
import random
import time
from typing import Any, Literal

import httpx
from pydantic import BaseModel, Field

from import_mapper.config.settings import LLMConfig
from import_mapper.telemetry.errors import ErrorCode, emit_structured_error

logger = logging.getLogger(__name__)


class TransientServiceError(Exception):
    """A retryable failure: network error, timeout or 5xx response."""


class ChatMessage(BaseModel):
    role: Literal["system", "user", "assistant"]
    content: str


class CompletionRequest(BaseModel):
    model: str | None = None
    messages: list[ChatMessage]
    max_tokens: int = Field(default=500, ge=1)
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)


class CompletionOptions(BaseModel):
    timeout_s: float | None = Field(default=None, gt=0)
    retries: int | None = Field(default=None, ge=0)
    cost_limit: float | None = Field(default=None, ge=0)


class CompletionUsage(BaseModel):
    tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    cost: float = 0
    response_time_ms: float = 0


class CompletionResponse(BaseModel):
    success: bool
    data: dict[str, Any] | None = None
    usage: CompletionUsage | None = None
    error: str | None = None

    @property
    def content(self) -> str | None:
        """Text of the first choice, if the provider returned one."""
        if not self.data:
            return None
        try:
            return self.data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return None


class UsageStats(BaseModel):
    total_requests: int = 0
    total_tokens: int = 0
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_cost: float = 0
    average_response_time_ms: float = 0


def estimate_tokens(text: str) -> int:
    """Rough token count: four characters per token."""
    return math.ceil(len(text) / 4)


class CompletionGateway:
    """Bounded client for the external chat completion service."""

    def __init__(self, config: LLMConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._client = client
        self._owns_client = client is None
        self._stats = UsageStats()

    @property
    def is_available(self) -> bool:
        return bool(self._config.api_key)

    @property
    def config(self) -> LLMConfig:
        return self._config

    @property
    def stats(self) -> UsageStats:
        return self._stats.model_copy()

    def reset_stats(self) -> None:
        self._stats = UsageStats()

    def calculate_cost(self, prompt_tokens: int, completion_tokens: int) -> float:
        return (
            prompt_tokens / 1_000_000 * self._config.input_price_per_million
            + completion_tokens / 1_000_000 * self._config.output_price_per_million
        )

    def estimate_cost(self, request: CompletionRequest) -> float:
        prompt_tokens = sum(estimate_tokens(message.content) for message in request.messages)
        return self.calculate_cost(prompt_tokens, request.max_tokens)

    async def create_completion(
        self,
        request: CompletionRequest,
        options: CompletionOptions | None = None,
    ) -> CompletionResponse:
        options = options or CompletionOptions()
        if not self.is_available:
            return CompletionResponse(success=False, error="LLM gateway is not configured")

        cost_limit = self._config.cost_limit if options.cost_limit is None else options.cost_limit
        estimated = self.estimate_cost(request)
        if estimated > cost_limit:
            return CompletionResponse(
                success=False,
                error=f"Estimated cost ${estimated:.6f} exceeds limit ${cost_limit:.6f}",
            )

        retries = self._config.retry.max_retries if options.retries is None else options.retries
        timeout_s = self._config.timeout_s if options.timeout_s is None else options.timeout_s
        payload = {
            "model": request.model or self._config.model,
            "messages": [message.model_dump() for message in request.messages],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }

        last_error = "no attempt made"
        attempts = 0
        for attempt in range(retries + 1):
            attempts = attempt + 1
            start = time.perf_counter()
            try:
                data = await self._post(payload, timeout_s)
            except TransientServiceError as exc:
                last_error = str(exc)
                logger.warning("LLM request attempt %d failed: %s", attempts, exc)
                if attempt < retries:
                    await self._backoff(attempt)
                continue
            except httpx.HTTPStatusError as exc:
                last_error = f"HTTP {exc.response.status_code}: {self._error_detail(exc.response)}"
                break
            except ValueError as exc:
                last_error = f"Invalid JSON from LLM service: {exc}"
                break
            return self._success(data, request, (time.perf_counter() - start) * 1000)

        message = f"Failed after {attempts} attempts: {last_error}"
        emit_structured_error(
            logger,
            code=ErrorCode.LLM_REQUEST_FAILED,
            message=message,
            suppressed=True,
            strategy="llm",
        )
        return CompletionResponse(success=False, error=message)

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    # --- Internals ---

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
        return self._client

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._config.api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self._config.http_referer,
            "X-Title": self._config.app_title,
        }

    async def _post(self, payload: dict[str, Any], timeout_s: float) -> dict[str, Any]:
        client = self._get_client()
        url = f"{self._config.base_url}/chat/completions"
        try:
            response = await client.post(
                url, json=payload, headers=self._headers(), timeout=timeout_s
            )
        except httpx.TimeoutException as exc:
            raise TransientServiceError(f"Request timed out after {timeout_s}s") from exc
        except httpx.TransportError as exc:
            raise TransientServiceError(f"Request failed: {exc}") from exc

        if response.status_code >= 500:
            raise TransientServiceError(
                f"HTTP {response.status_code}: {self._error_detail(response)}"
            )
        response.raise_for_status()
        return response.json()

    def _success(
        self, data: dict[str, Any], request: CompletionRequest, elapsed_ms: float
    ) -> CompletionResponse:
        reported = data.get("usage") or {}
        prompt_tokens = int(
            reported.get("prompt_tokens")
            or sum(estimate_tokens(message.content) for message in request.messages)
        )
        completion_tokens = int(reported.get("completion_tokens") or 0)
        total_tokens = int(reported.get("total_tokens") or prompt_tokens + completion_tokens)
        cost = self.calculate_cost(prompt_tokens, completion_tokens)

        stats = self._stats
        previous = stats.total_requests
        stats.total_requests += 1
        stats.total_tokens += total_tokens
        stats.prompt_tokens += prompt_tokens
        stats.completion_tokens += completion_tokens
        stats.total_cost += cost
        stats.average_response_time_ms = (
            stats.average_response_time_ms * previous + elapsed_ms
        ) / stats.total_requests

        return CompletionResponse(
            success=True,
            data=data,
            usage=CompletionUsage(
                tokens=total_tokens,
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                cost=cost,
                response_time_ms=elapsed_ms,
            ),
        )

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        if isinstance(body, dict):
            error = body.get("error")
            if isinstance(error, dict):
                return str(error.get("message", error))
            if error:
                return str(error)
        return response.reason_phrase

    async def _backoff(self, attempt: int) -> None:
        """Exponential backoff with optional jitter."""
        retry = self._config.retry
        base = retry.backoff_base_ms / 1000.0
        max_delay = retry.backoff_max_ms / 1000.0
        delay = min(base * (2**attempt), max_delay)
        if retry.jitter:
            delay += random.uniform(0, base)
        await asyncio.sleep(delay)
