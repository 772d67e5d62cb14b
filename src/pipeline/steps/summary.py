# src/pipeline/steps/summary.py — v1
"""Final synthesis step over every output registered so far."""

from __future__ import annotations

import logging

from specswarm.config.steps import SUMMARY
from specswarm.llm.models import Message
from specswarm.pipeline.plugin_kit.base_step import BaseStep, StepContext
from specswarm.pipeline.plugin_kit.models import StepOutput, StepResult
from specswarm.pipeline.steps.analysis import SYSTEM_PROMPT, LLMProvider, strip_fences
from specswarm.pipeline.steps.prompting import load_prompt

logger = logging.getLogger(__name__)


class SummaryStep(BaseStep):
    def __init__(self, llm: LLMProvider, max_tokens: int = 4096, temperature: float = 0.2) -> None:
        self._llm = llm
        self._max_tokens = max_tokens
        self._temperature = temperature

    @property
    def id(self) -> str:
        return SUMMARY

    @property
    def description(self) -> str:
        return "Synthesise an overall summary of the run"

    async def execute(self, ctx: StepContext) -> StepResult:
        template = load_prompt("summary")
        prompt = template.render(
            project=ctx.shared.project,
            context=ctx.shared.build_context_for(ctx.dependencies),
        )
        try:
            response = await self._llm(self.id).complete(
                messages=[Message(role="user", content=prompt)],
                system=SYSTEM_PROMPT,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
            )
        except Exception as exc:
            logger.warning("LLM call failed for summary: %s", exc)
            return StepResult.fail(f"LLM call failed: {exc}")

        body = strip_fences(response.content)
        if not body:
            return StepResult.fail("LLM returned an empty response")
        return StepResult.ok(
            StepOutput(step_id=self.id, full_content=body, provenance=template.provenance)
        )
