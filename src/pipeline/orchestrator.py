# src/pipeline/orchestrator.py — v3
"""Pipeline orchestrator: one analysis run from mode detection to commit.

Flow:
  1. Scheduler starts on BOOTSTRAP_DAG (submodule_check only)
  2. The plan selector reads the detected mode and redirects the
     scheduler to GENERATION_DAG or AUDIT_DAG for the remaining layers
     (optionally trimmed to the features the repository shows)
  3. The lifecycle manager turns the run into artifacts (generation) or
     an audit report (audit)
  4. Store and submodule pointer are committed (and pushed)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path

from specswarm.config.settings import Settings
from specswarm.config.steps import (
    ANALYSIS_STEPS,
    BOOTSTRAP,
    EXISTING_SPECS,
    SUBMODULE_CHECK,
    SUMMARY,
)
from specswarm.manifest.errors import LifecycleError
from specswarm.manifest.lifecycle import CommitResult, ManifestLifecycleManager
from specswarm.manifest.migrator import build_file_locations
from specswarm.manifest.models import PluginConfig
from specswarm.manifest.report import AuditReport
from specswarm.pipeline.context import SharedContext
from specswarm.pipeline.dags import (
    BOOTSTRAP_DAG,
    create_custom_dag,
    plan_for_features,
    select_dag,
)
from specswarm.pipeline.features import detect_features
from specswarm.pipeline.models import DAGDefinition, ExecutionResult, ExecutionSummary
from specswarm.pipeline.output_validator import OutputValidator
from specswarm.pipeline.registry import StepRegistry
from specswarm.pipeline.scheduler import DAGScheduler, OutputCheck, RunOptions, SchedulerHooks
from specswarm.pipeline.steps.analysis import AnalysisStep, LLMProvider
from specswarm.pipeline.steps.bootstrap import BootstrapStep, detect_repo_type
from specswarm.pipeline.steps.existing_specs import ExistingSpecsStep
from specswarm.pipeline.steps.submodule_check import SubmoduleCheckStep
from specswarm.pipeline.steps.summary import SummaryStep
from specswarm.storage.store import ArtifactStore
from specswarm.vcs.base_client import BaseVCSClient

logger = logging.getLogger(__name__)

# Plumbing kept in a restricted (--steps) run.
_ALWAYS_RUN: frozenset[str] = frozenset({SUBMODULE_CHECK, BOOTSTRAP, EXISTING_SPECS, SUMMARY})


@dataclass
class RunOutcome:
    """What one analysis run produced."""

    mode: str
    dag_name: str
    summary: ExecutionSummary
    version: str
    audit: AuditReport | None = None
    commit: CommitResult | None = None
    overview: str = ""


class PipelineOrchestrator:
    """Wire scheduler, steps and lifecycle manager for one primary repository.

    Args:
        settings: Application settings.
        repo_path: Primary repository root.
        vcs: Version-control client.
        llm: Callable returning the LLM client for a step id.
        hooks: Optional scheduler hooks.
    """

    def __init__(
        self,
        settings: Settings,
        repo_path: str | Path,
        vcs: BaseVCSClient,
        llm: LLMProvider,
        hooks: SchedulerHooks | None = None,
    ) -> None:
        self._settings = settings
        self.repo_path = Path(repo_path).resolve()
        self._vcs = vcs
        self._llm = llm
        self._hooks = hooks
        self.store = ArtifactStore(self.repo_path / settings.specs_folder)
        self.lifecycle = ManifestLifecycleManager(
            self.store, vcs, settings, repo_path=self.repo_path
        )

    def build_registry(
        self,
        config: PluginConfig | None = None,
        require_existing: bool = False,
    ) -> StepRegistry:
        """Instantiate every step with the capabilities it needs."""
        prompt_overrides = config.prompt_overrides if config else {}
        registry = StepRegistry([
            SubmoduleCheckStep(self.lifecycle, require_existing=require_existing),
            BootstrapStep(self._settings.key_file_max_chars),
            ExistingSpecsStep(self.lifecycle, self._settings.existing_spec_max_chars),
            SummaryStep(
                self._llm,
                max_tokens=self._settings.llm_max_tokens_per_step,
                temperature=self._settings.llm_default_temperature,
            ),
        ])
        for spec in ANALYSIS_STEPS:
            override = prompt_overrides.get(spec.id)
            registry.register(
                AnalysisStep(
                    spec,
                    self._llm,
                    max_tokens=self._settings.llm_max_tokens_per_step,
                    temperature=self._settings.llm_default_temperature,
                    prompt_override=self.repo_path / override if override else None,
                )
            )
        return registry

    def _output_check(self) -> OutputCheck | None:
        mode = self._settings.output_validation
        if mode == "off":
            return None
        validator = OutputValidator(
            strict=mode == "strict",
            auto_fix=mode == "fix",
            titles={spec.id: spec.title for spec in ANALYSIS_STEPS},
        )
        return validator.check_output

    async def analyze(
        self,
        skip: Iterable[str] = (),
        only: Iterable[str] | None = None,
        require_existing: bool | None = None,
        push: bool | None = None,
        skip_parent: bool | None = None,
        commit: bool = True,
        plan_by_features: bool | None = None,
    ) -> RunOutcome:
        """Run generation or audit, whichever the artifact store calls for.

        With feature planning, analysis steps whose features the repository
        does not show are left out of the plan. A restricted (only) run is
        never trimmed, and steps that already have an artifact always run.

        Raises:
            LifecycleError: Mode detection or finalization failed.
            ManifestError: The store's manifest is unreadable.
            DAGError: A DAG definition is invalid.
        """
        require = self._settings.require_existing if require_existing is None else require_existing
        config = await self.store.read_config()
        skip_ids = {*self._settings.skip_steps_list, *skip}
        if config:
            skip_ids.update(config.skip_agents)

        repo_type = detect_repo_type(self.repo_path)
        context = SharedContext(
            project=self.repo_path.name,
            repo_type=repo_type,
            base_dir=self.repo_path,
            summary_max_chars=self._settings.summary_max_chars,
        )
        registry = self.build_registry(config, require_existing=require)
        selected = set(only) if only else None
        plan_features = (
            self._settings.feature_planning if plan_by_features is None else plan_by_features
        )

        def select_plan(results: Mapping[str, ExecutionResult]) -> DAGDefinition | None:
            state = self.lifecycle.state
            if state is None:
                return None
            if state.manifest is not None:
                context.project = state.manifest.project.name
            dag = select_dag(state.mode)
            if selected is not None:
                dag = create_custom_dag(selected | _ALWAYS_RUN, base=dag)
            elif plan_features:
                documented: set[str] = set()
                if state.mode == "audit" and state.manifest is not None:
                    documented = set(build_file_locations(state.manifest))
                dag = plan_for_features(dag, detect_features(self.repo_path), keep=documented)
            logger.info("Mode %s: continuing with DAG '%s'", state.mode, dag.name)
            return dag

        scheduler = DAGScheduler(BOOTSTRAP_DAG, registry, self._hooks)
        summary = await scheduler.run(
            context,
            RunOptions(
                skip=sorted(skip_ids),
                overrides={"require_existing": require},
                plan_selector=select_plan,
                output_check=self._output_check(),
            ),
        )

        state = self.lifecycle.state
        if state is None:
            check_step = registry.get(SUBMODULE_CHECK)
            error = getattr(check_step, "error", None)
            if error is not None:
                raise error
            result = summary.result_for(SUBMODULE_CHECK)
            raise LifecycleError(
                f"Mode detection failed: {result.error if result else 'not run'}"
            )
        if not summary.success:
            raise LifecycleError(
                f"All {summary.failed} attempted steps failed; artifact store left unchanged"
            )

        overview_output = context.get_output(SUMMARY)
        overview = overview_output.full_content if overview_output else ""

        if state.mode == "generation":
            manifest = await self.lifecycle.complete_generation(summary, context)
            outcome = RunOutcome(
                mode="generation",
                dag_name=scheduler.definition.name,
                summary=summary,
                version=manifest.current_version,
                overview=overview,
            )
            if commit:
                outcome.commit = await self.lifecycle.commit_push(
                    "generation", version=manifest.current_version,
                    push=push, skip_parent=skip_parent,
                )
            return outcome

        report = await self.lifecycle.complete_audit(summary, context)
        outcome = RunOutcome(
            mode="audit",
            dag_name=scheduler.definition.name,
            summary=summary,
            version=report.meta.current_version,
            audit=report,
            overview=overview,
        )
        if commit:
            outcome.commit = await self.lifecycle.commit_push(
                "audit", version=report.meta.current_version,
                changes=report.summary.total_changes,
                push=push, skip_parent=skip_parent,
            )
        return outcome
