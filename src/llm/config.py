# src/llm/config.py — v2
"""Per-step LLM routing with cascade resolution.

Resolution order:
  1. Per-step override (LLM_STEP_OVERRIDES=api=openai:gpt-4o)
  2. Per-phase assignment (LLM_PHASE_ANALYSIS=anthropic:claude-sonnet-4-20250514)
  3. Default provider + model (LLM_DEFAULT_PROVIDER + LLM_DEFAULT_MODEL)
  4. Hardcoded fallback
"""

from __future__ import annotations

from dataclasses import dataclass

from specswarm.config.settings import Settings
from specswarm.config.steps import PHASE_STEP_MAP

_FALLBACK_PROVIDER = "anthropic"
_FALLBACK_MODEL = "claude-sonnet-4-20250514"


@dataclass(frozen=True)
class LLMAssignment:
    """Resolved LLM provider:model for a step."""

    provider: str
    model: str
    source: str  # "step", "phase", "default", or "fallback"

    @property
    def key(self) -> str:
        """Return 'provider:model' string."""
        return f"{self.provider}:{self.model}"


def _find_phase(step_id: str) -> str | None:
    for phase, steps in PHASE_STEP_MAP.items():
        if step_id in steps:
            return phase
    return None


def _parse_assignment(value: str) -> tuple[str, str] | None:
    """Parse 'provider:model' string. Returns None if empty."""
    if not value or ":" not in value:
        return None
    provider, model = value.split(":", 1)
    return (provider.strip(), model.strip())


def resolve_llm(step_id: str, settings: Settings) -> LLMAssignment:
    """Resolve the LLM assignment for a step.

    Args:
        step_id: Step id (e.g. "overview", "summary").
        settings: Application settings.

    Returns:
        Resolved LLMAssignment with provider, model, and resolution source.
    """
    parsed = _parse_assignment(settings.llm_step_overrides_map.get(step_id, ""))
    if parsed:
        return LLMAssignment(provider=parsed[0], model=parsed[1], source="step")

    phase = _find_phase(step_id)
    if phase:
        parsed = _parse_assignment(getattr(settings, f"llm_phase_{phase}", ""))
        if parsed:
            return LLMAssignment(provider=parsed[0], model=parsed[1], source="phase")

    if settings.llm_default_provider and settings.llm_default_model:
        return LLMAssignment(
            provider=settings.llm_default_provider,
            model=settings.llm_default_model,
            source="default",
        )

    return LLMAssignment(
        provider=_FALLBACK_PROVIDER,
        model=_FALLBACK_MODEL,
        source="fallback",
    )
