# src/llm/base_client.py — v2
"""Abstract provider client interface.

Adapters translate SDK exceptions into ProviderTimeout, RateLimited,
ProviderServerError, AuthFailure or InvalidResponse so the gateway can
apply one retry policy to every provider.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

from pydantic import BaseModel

from docmapper.llm.models import LLMResponse, Message

ProviderKind = Literal["openai_compatible", "local_inference", "custom"]


class BaseLLMClient(ABC):
    """Unified interface for all AI providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 1024,
        temperature: float = 0.0,
        response_format: type[BaseModel] | None = None,
    ) -> LLMResponse:
        """Text completion."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (openai, ollama, ...)."""
