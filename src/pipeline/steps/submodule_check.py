# src/pipeline/steps/submodule_check.py — v1
"""Mode-detecting step: locate or create the artifact store.

Runs alone in the bootstrap DAG. Its result is what the orchestrator's
plan selector reads to redirect the scheduler to the generation or the
audit DAG.
"""

from __future__ import annotations

import logging

from specswarm.config.steps import SUBMODULE_CHECK
from specswarm.manifest.errors import LifecycleError, ManifestError
from specswarm.manifest.lifecycle import ManifestLifecycleManager
from specswarm.pipeline.plugin_kit.base_step import BaseStep, StepContext
from specswarm.pipeline.plugin_kit.models import StepOutput, StepResult

logger = logging.getLogger(__name__)


class SubmoduleCheckStep(BaseStep):
    """Run the lifecycle check and report the detected mode."""

    def __init__(self, lifecycle: ManifestLifecycleManager, require_existing: bool = False) -> None:
        self._lifecycle = lifecycle
        self._require_existing = require_existing
        self.error: LifecycleError | ManifestError | None = None

    @property
    def id(self) -> str:
        return SUBMODULE_CHECK

    @property
    def description(self) -> str:
        return "Locate the artifact store and detect generation or audit mode"

    async def execute(self, ctx: StepContext) -> StepResult:
        require = bool(ctx.overrides.get("require_existing", self._require_existing))
        try:
            state = await self._lifecycle.check(require_existing=require, repo_type=ctx.repo_type)
        except (LifecycleError, ManifestError) as exc:
            self.error = exc
            return StepResult.fail(str(exc))

        version = state.manifest.current_version if state.manifest else "0.0.0"
        lines = [
            f"mode: {state.mode}",
            f"store: {state.path}",
            f"version: {version}",
            f"created: {state.created}",
            f"existing artifacts: {len(state.existing_specs)}",
        ]
        return StepResult.ok(
            StepOutput(
                step_id=self.id,
                summary=f"Artifact store in {state.mode} mode at v{version}",
                full_content="\n".join(lines),
            )
        )
