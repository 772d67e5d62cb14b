# src/llm/base_client.py — v2
"""Abstract LLM client interface.

Analysis steps only ever see this interface: a system instruction plus a
user payload in, generated text out. Provider errors propagate as
exceptions and are turned into failed step results by the step itself.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from specswarm.llm.models import LLMResponse, Message


class BaseLLMClient(ABC):
    """Unified interface for all LLM providers."""

    @abstractmethod
    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        """Text completion."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Provider identifier (anthropic, openai)."""
