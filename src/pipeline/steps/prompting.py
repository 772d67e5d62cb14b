# src/pipeline/steps/prompting.py — v1
"""Prompt templates shipped in pipeline/prompts/ and their provenance."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from pathlib import Path

from specswarm.pipeline.plugin_kit.models import PromptProvenance

PROMPTS_DIR = Path(__file__).parent.parent / "prompts"
PROMPT_VERSION = "1"


@dataclass(frozen=True)
class PromptTemplate:
    prompt_id: str
    text: str
    version: str = PROMPT_VERSION

    @property
    def provenance(self) -> PromptProvenance:
        digest = hashlib.sha256(self.text.encode("utf-8")).hexdigest()[:16]
        return PromptProvenance(prompt_id=self.prompt_id, version=self.version, hash=digest)

    def render(self, **values: str) -> str:
        return self.text.format(**values)


_cache: dict[Path, PromptTemplate] = {}


def load_prompt(prompt_id: str, override: str | Path | None = None) -> PromptTemplate:
    """Load a template by id, or from an override file.

    Raises:
        FileNotFoundError: If the template does not exist.
    """
    path = Path(override) if override else PROMPTS_DIR / f"{prompt_id}.txt"
    if path not in _cache:
        version = "custom" if override else PROMPT_VERSION
        _cache[path] = PromptTemplate(
            prompt_id=prompt_id, text=path.read_text(encoding="utf-8"), version=version
        )
    return _cache[path]
