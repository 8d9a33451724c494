# src/llm/adapters/ollama_adapter.py — v2
"""Ollama local inference adapter implementing BaseLLMClient.

Uses the ollama Python SDK.
"""

from __future__ import annotations

import time
from typing import Any

from pydantic import BaseModel

from docmapper.core.errors import (
    InvalidResponse,
    ProviderError,
    ProviderServerError,
    RateLimited,
)
from docmapper.llm.base_client import BaseLLMClient
from docmapper.llm.models import LLMResponse, Message


class OllamaAdapter(BaseLLMClient):
    """Ollama local inference adapter."""

    def __init__(
        self,
        model: str = "llama3",
        host: str = "http://localhost:11434",
        name: str = "ollama",
        **kwargs: Any,
    ):
        try:
            import ollama
        except ImportError as e:
            raise ImportError(
                "ollama is required for OllamaAdapter. "
                "Install with: pip install ollama"
            ) from e
        self._ollama = ollama
        self._model = model
        self._name = name
        self._client = ollama.AsyncClient(host=host)

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        response_format: type[BaseModel] | None = None,
    ) -> LLMResponse:
        msgs: list[dict[str, str]] = []
        if system:
            msgs.append({"role": "system", "content": system})
        for m in messages:
            msgs.append({"role": m.role, "content": m.content})

        options: dict[str, Any] = {
            "num_predict": max_tokens,
            "temperature": temperature,
        }
        kwargs: dict[str, Any] = {"model": self._model, "messages": msgs, "options": options}
        if response_format is not None:
            kwargs["format"] = "json"

        t0 = time.monotonic()
        try:
            resp = await self._client.chat(**kwargs)
        except self._ollama.ResponseError as exc:
            if exc.status_code == 429:
                raise RateLimited(str(exc), self._name) from exc
            if exc.status_code >= 500:
                raise ProviderServerError(str(exc), self._name) from exc
            raise InvalidResponse(str(exc), self._name) from exc
        except ConnectionError as exc:
            raise ProviderServerError(f"Ollama unreachable: {exc}", self._name) from exc
        latency = int((time.monotonic() - t0) * 1000)

        try:
            content = resp["message"]["content"]
        except (KeyError, TypeError) as exc:
            raise ProviderError(f"Malformed chat response: {exc}", self._name) from exc
        return LLMResponse(
            content=content,
            input_tokens=resp.get("prompt_eval_count", 0) or 0,
            output_tokens=resp.get("eval_count", 0) or 0,
            model=self._model,
            provider=self._name,
            latency_ms=latency,
            raw_response=resp,
        )

    @property
    def provider_name(self) -> str:
        return self._name
