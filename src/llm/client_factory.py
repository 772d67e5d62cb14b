# src/llm/client_factory.py — v3
"""Factory: instantiate LLM clients from provider names.

LLMFactory resolves each step's provider:model through llm/config.py and
caches one client per assignment, so steps sharing a model share a client.
"""

from __future__ import annotations

import importlib
import logging

from specswarm.config.settings import Settings
from specswarm.llm.base_client import BaseLLMClient
from specswarm.llm.config import resolve_llm

logger = logging.getLogger(__name__)

# Registry of provider name → adapter class path (lazy import).
_PROVIDER_REGISTRY: dict[str, str] = {
    "anthropic": "specswarm.llm.adapters.anthropic_adapter.AnthropicAdapter",
    "openai": "specswarm.llm.adapters.openai_adapter.OpenAIAdapter",
}


class UnsupportedProviderError(ValueError):
    """Raised when a provider is not registered."""


def create_llm_client(
    provider: str,
    model: str,
    settings: Settings | None = None,
    **kwargs: object,
) -> BaseLLMClient:
    """Instantiate the correct adapter from provider name.

    Raises:
        UnsupportedProviderError: If provider is not registered.
    """
    if provider not in _PROVIDER_REGISTRY:
        raise UnsupportedProviderError(
            f"Unsupported LLM provider: {provider!r}. "
            f"Available: {', '.join(sorted(_PROVIDER_REGISTRY))}"
        )

    adapter_cls = _import_class(_PROVIDER_REGISTRY[provider])

    init_kwargs = dict(kwargs)
    init_kwargs["model"] = model
    if settings is not None:
        if provider == "anthropic":
            init_kwargs.setdefault("api_key", settings.anthropic_api_key)
            init_kwargs.setdefault("max_tokens_default", settings.llm_max_tokens_per_step)
        elif provider == "openai":
            init_kwargs.setdefault("api_key", settings.openai_api_key)

    logger.debug("Creating LLM client: provider=%s, model=%s", provider, model)
    return adapter_cls(**init_kwargs)


def register_provider(name: str, class_path: str) -> None:
    """Register a custom provider adapter by fully qualified class path."""
    _PROVIDER_REGISTRY[name] = class_path
    logger.info("Registered LLM provider: %s -> %s", name, class_path)


def _import_class(class_path: str) -> type:
    module_path, class_name = class_path.rsplit(".", 1)
    module = importlib.import_module(module_path)
    return getattr(module, class_name)


class LLMFactory:
    """Create and cache LLM clients per step."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._clients: dict[str, BaseLLMClient] = {}

    def get_client(self, step_id: str) -> BaseLLMClient:
        """Get or create the LLM client routed to a step."""
        assignment = resolve_llm(step_id, self._settings)
        if assignment.key not in self._clients:
            self._clients[assignment.key] = create_llm_client(
                assignment.provider, assignment.model, self._settings
            )
            logger.info(
                "Created LLM client for '%s': %s (source: %s)",
                step_id,
                assignment.key,
                assignment.source,
            )
        return self._clients[assignment.key]

    def __call__(self, step_id: str) -> BaseLLMClient:
        return self.get_client(step_id)
