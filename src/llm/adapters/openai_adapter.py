# src/llm/adapters/openai_adapter.py — v2
"""OpenAI-compatible adapter implementing BaseLLMClient.

Uses the official openai SDK. A custom base_url points it at any server
speaking the chat completions API (vLLM, LM Studio, Azure proxies...).
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel

from docmapper.core.errors import (
    AuthFailure,
    InvalidResponse,
    ProviderError,
    ProviderServerError,
    ProviderTimeout,
    RateLimited,
)
from docmapper.llm.base_client import BaseLLMClient
from docmapper.llm.models import LLMResponse, Message


def _retry_after(exc: Any) -> float | None:
    response = getattr(exc, "response", None)
    headers = getattr(response, "headers", None) or {}
    value = headers.get("retry-after")
    try:
        return float(value) if value is not None else None
    except (TypeError, ValueError):
        return None


class OpenAIAdapter(BaseLLMClient):
    """OpenAI chat completions adapter."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: str = "",
        base_url: str = "",
        name: str = "openai",
        **kwargs: Any,
    ):
        try:
            import openai
        except ImportError as e:
            raise ImportError(
                "openai is required for OpenAIAdapter. "
                "Install with: pip install openai"
            ) from e
        self._openai = openai
        self._model = model
        self._name = name
        self._client = openai.AsyncOpenAI(api_key=api_key or None, base_url=base_url or None)

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        response_format: type[BaseModel] | None = None,
    ) -> LLMResponse:
        oai_messages: list[dict[str, Any]] = []
        if system:
            oai_messages.append({"role": "system", "content": system})
        for m in messages:
            oai_messages.append({"role": m.role, "content": m.content})

        kwargs: dict[str, Any] = {
            "model": self._model,
            "messages": oai_messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        if response_format is not None:
            kwargs["response_format"] = {"type": "json_object"}

        t0 = time.monotonic()
        try:
            resp = await self._client.chat.completions.create(**kwargs)
        except Exception as exc:
            raise self._translate(exc) from exc
        latency = int((time.monotonic() - t0) * 1000)

        if not resp.choices:
            raise InvalidResponse("Empty choices in completion", self._name)
        choice = resp.choices[0]
        usage = resp.usage
        return LLMResponse(
            content=choice.message.content or "",
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
            model=self._model,
            provider=self._name,
            latency_ms=latency,
            raw_response=resp,
        )

    def _translate(self, exc: Exception) -> ProviderError:
        """Map an SDK exception onto the provider error taxonomy."""
        openai = self._openai
        if isinstance(exc, openai.APITimeoutError):
            return ProviderTimeout(str(exc), self._name)
        if isinstance(exc, openai.RateLimitError):
            return RateLimited(str(exc), self._name, retry_after=_retry_after(exc))
        if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
            return AuthFailure(str(exc), self._name)
        if isinstance(exc, openai.APIConnectionError):
            return ProviderServerError(str(exc), self._name)
        if isinstance(exc, openai.APIStatusError):
            if exc.status_code >= 500:
                return ProviderServerError(str(exc), self._name)
            return InvalidResponse(str(exc), self._name)
        return ProviderError(str(exc), self._name)

    @property
    def provider_name(self) -> str:
        return self._name
