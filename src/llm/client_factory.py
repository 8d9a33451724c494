# src/llm/client_factory.py — v3
"""Factory: instantiate provider clients and profiles from a ProviderKind.

Built-in kinds map to the bundled adapters; "custom" kinds are resolved
through register_provider().
"""

from __future__ import annotations

import importlib
import logging

from docmapper.config.settings import Settings
from docmapper.llm.base_client import BaseLLMClient, ProviderKind
from docmapper.llm.profiles import ProviderProfile

logger = logging.getLogger(__name__)

# Registry of adapter key → adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "openai_compatible": "docmapper.llm.adapters.openai_adapter.OpenAIAdapter",
    "local_inference": "docmapper.llm.adapters.ollama_adapter.OllamaAdapter",
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def create_llm_client(
    kind: ProviderKind | str,
    model: str,
    settings: Settings | None = None,
    **kwargs: object,
) -> BaseLLMClient:
    """Instantiate the adapter for a provider kind.

    Args:
        kind: "openai_compatible", "local_inference" or a key registered
            with register_provider().
        model: Model name (e.g. gpt-4o-mini).
        settings: Application settings (for API keys and endpoints).
        **kwargs: Additional adapter-specific arguments.

    Raises:
        UnsupportedProviderError: If the kind is not registered.
    """
    if kind not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported provider kind: {kind!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    adapter_cls = _import_class(_PROVIDER_REGISTRY[kind])
    init_kwargs = dict(kwargs)
    init_kwargs["model"] = model

    if settings is not None:
        if kind == "openai_compatible":
            init_kwargs.setdefault("api_key", settings.openai_api_key)
            init_kwargs.setdefault("base_url", settings.openai_base_url)
        elif kind == "local_inference":
            init_kwargs.setdefault("host", settings.ollama_base_url)

    logger.debug("Creating provider client: kind=%s, model=%s", kind, model)
    return adapter_cls(**init_kwargs)


def create_from_profile(profile: ProviderProfile, settings: Settings | None = None) -> BaseLLMClient:
    """Client for a profile; custom kinds are looked up by profile name."""
    key = profile.name if profile.kind == "custom" else profile.kind
    return create_llm_client(key, profile.model, settings, name=profile.name)


def default_profiles(settings: Settings) -> list[ProviderProfile]:
    """Profiles implied by configured credentials and endpoints."""
    profiles: list[ProviderProfile] = []
    if settings.openai_api_key or settings.openai_base_url:
        profiles.append(ProviderProfile(
            name="openai", kind="openai_compatible", model=settings.openai_model,
        ))
    if settings.ollama_model:
        profiles.append(ProviderProfile(
            name="ollama", kind="local_inference", model=settings.ollama_model,
        ))
    return profiles


def register_provider(name: str, class_path: str) -> None:
    """Register a custom provider adapter.

    Args:
        name: Provider identifier (a custom profile's name).
        class_path: Fully qualified class path implementing BaseLLMClient.
    """
    _PROVIDER_REGISTRY[name] = class_path
    logger.info("Registered provider adapter: %s → %s", name, class_path)


def _import_class(class_path: str) -> type:
    """Dynamically import a class from its fully qualified path."""
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)
