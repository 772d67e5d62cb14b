# src/pipeline/steps/existing_specs.py — v1
"""Audit-mode step feeding committed artifacts into the shared context."""

from __future__ import annotations

import logging

from specswarm.config.steps import EXISTING_SPECS
from specswarm.manifest.lifecycle import ManifestLifecycleManager
from specswarm.pipeline.plugin_kit.base_step import BaseStep, StepContext
from specswarm.pipeline.plugin_kit.models import StepOutput, StepResult

logger = logging.getLogger(__name__)

EXISTING_PREFIX = "existing-specs"


class ExistingSpecsStep(BaseStep):
    def __init__(self, lifecycle: ManifestLifecycleManager, max_chars: int = 15000) -> None:
        self._lifecycle = lifecycle
        self._max_chars = max_chars

    @property
    def id(self) -> str:
        return EXISTING_SPECS

    async def execute(self, ctx: StepContext) -> StepResult:
        state = self._lifecycle.state
        if state is None:
            return StepResult.fail("Artifact store has not been checked")

        truncated = 0
        for path, content in sorted(state.existing_specs.items()):
            excerpt = ctx.shared.add_file(f"{EXISTING_PREFIX}/{path}", content, self._max_chars)
            truncated += excerpt.truncated
        logger.info(
            "Loaded %d existing artifacts (%d truncated)", len(state.existing_specs), truncated
        )
        return StepResult.ok(
            StepOutput(
                step_id=self.id,
                summary=f"Loaded {len(state.existing_specs)} existing spec files for comparison",
                full_content="\n".join(sorted(state.existing_specs)),
            )
        )
