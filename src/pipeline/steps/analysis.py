# src/pipeline/steps/analysis.py — v1
"""Generic analysis step, instantiated once per AnalysisSpec.

Builds its prompt from the shared context (repository structure, key
files, summaries of its own dependencies only), calls the LLM routed to
its step id and registers a Markdown artifact for its AnalysisSpec output path.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import yaml

from specswarm.config.steps import AnalysisSpec
from specswarm.llm.base_client import BaseLLMClient
from specswarm.llm.models import Message
from specswarm.pipeline.plugin_kit.base_step import BaseStep, StepContext
from specswarm.pipeline.plugin_kit.models import StepOutput, StepResult
from specswarm.pipeline.steps.prompting import load_prompt

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a senior software architect writing precise technical "
    "specifications from source code. Respond with Markdown only."
)

LLMProvider = Callable[[str], BaseLLMClient]


def strip_fences(text: str) -> str:
    """Remove a ```markdown fence wrapping the whole response."""
    stripped = text.strip()
    if stripped.startswith("```") and stripped.endswith("```"):
        lines = stripped.split("\n")
        return "\n".join(lines[1:-1]).strip()
    return stripped


def with_frontmatter(content: str, title: str, step_id: str, generated: datetime) -> str:
    header = yaml.safe_dump(
        {"title": title, "step": step_id, "generated": generated.strftime("%Y-%m-%d")},
        sort_keys=False,
        allow_unicode=True,
    )
    return f"---\n{header}---\n\n{content.rstrip()}\n"


class AnalysisStep(BaseStep):
    """One documentation topic.

    Args:
        spec: Topic record from the step catalog.
        llm: Callable returning the LLM client for a step id (LLMFactory).
        max_tokens: Completion budget.
        temperature: Sampling temperature.
        prompt_override: Optional template file replacing the packaged one.
    """

    def __init__(
        self,
        spec: AnalysisSpec,
        llm: LLMProvider,
        max_tokens: int = 4096,
        temperature: float = 0.2,
        prompt_override: str | Path | None = None,
    ) -> None:
        self._spec = spec
        self._llm = llm
        self._max_tokens = max_tokens
        self._temperature = temperature
        self._prompt_override = prompt_override

    @property
    def id(self) -> str:
        return self._spec.id

    @property
    def spec(self) -> AnalysisSpec:
        return self._spec

    @property
    def description(self) -> str:
        return f"{self._spec.title}: {self._spec.focus}"

    def output_path(self, ctx: StepContext) -> str:
        prefix = str(ctx.overrides.get("output_prefix", "")).strip("/")
        return f"{prefix}/{self._spec.output_path}" if prefix else self._spec.output_path

    async def execute(self, ctx: StepContext) -> StepResult:
        template = load_prompt(self._spec.prompt, self._prompt_override)
        prompt = template.render(
            project=ctx.shared.project,
            repo_type=ctx.repo_type,
            title=self._spec.title,
            focus=self._spec.focus or self._spec.title,
            context=ctx.shared.build_context_for(ctx.dependencies),
        )

        start = time.monotonic()
        try:
            response = await self._llm(self.id).complete(
                messages=[Message(role="user", content=prompt)],
                system=SYSTEM_PROMPT,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except Exception as exc:
            logger.warning("LLM call failed for %s: %s", self.id, exc)
            return StepResult.fail(f"LLM call failed: {exc}")

        body = strip_fences(response.content)
        if not body:
            return StepResult.fail("LLM returned an empty response")

        logger.info(
            "%s: %d chars in %dms (%d+%d tokens)",
            self.id,
            len(body),
            int((time.monotonic() - start) * 1000),
            response.input_tokens,
            response.output_tokens,
        )
        return StepResult.ok(
            StepOutput(
                step_id=self.id,
                file_path=self.output_path(ctx),
                full_content=with_frontmatter(
                    body, self._spec.title, self.id, datetime.now(timezone.utc)
                ),
                provenance=template.provenance,
            )
        )
