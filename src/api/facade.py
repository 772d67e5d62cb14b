# src/api/facade.py — v3
"""Public API facade: analyze, apply, discard, status, migrate.

Usage:
    from specswarm.api.facade import analyze
    report = await analyze("path/to/repo")

Each entry point builds its collaborators from Settings unless they are
passed in (tests inject fakes).
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from specswarm.api.models import CommitInfo, LifecycleReport, RunReport, StatusReport
from specswarm.config.settings import Settings
from specswarm.llm.client_factory import LLMFactory
from specswarm.logging.context import set_mode_context, set_run_context
from specswarm.manifest.lifecycle import CommitResult, ManifestLifecycleManager
from specswarm.manifest.models import Manifest
from specswarm.pipeline.orchestrator import PipelineOrchestrator
from specswarm.pipeline.scheduler import SchedulerHooks
from specswarm.pipeline.steps.analysis import LLMProvider
from specswarm.storage.layout import AUDIT_REPORT_FILE
from specswarm.storage.store import ArtifactStore
from specswarm.vcs.base_client import BaseVCSClient
from specswarm.vcs.git_client import GitClient

logger = logging.getLogger(__name__)


def generate_run_id(timestamp: datetime | None = None) -> str:
    """Generate a run_id: yyyymmdd_hhmm_{uuid4_short}."""
    ts = timestamp or datetime.now(timezone.utc)
    return f"{ts.strftime('%Y%m%d_%H%M')}_{uuid.uuid4().hex[:5]}"


def _commit_info(result: CommitResult | None) -> CommitInfo | None:
    if result is None:
        return None
    return CommitInfo(
        specs_sha=result.specs_sha,
        parent_sha=result.parent_sha,
        pushed=result.pushed,
        message=result.message,
    )


def _lifecycle(
    repo_path: str | Path, settings: Settings, vcs: BaseVCSClient | None
) -> ManifestLifecycleManager:
    repo = Path(repo_path).resolve()
    return ManifestLifecycleManager(
        ArtifactStore(repo / settings.specs_folder), vcs or GitClient(), settings, repo_path=repo
    )


async def analyze(
    repo_path: str | Path,
    settings: Settings | None = None,
    vcs: BaseVCSClient | None = None,
    llm: LLMProvider | None = None,
    skip: list[str] | None = None,
    only: list[str] | None = None,
    require_existing: bool | None = None,
    push: bool | None = None,
    skip_parent: bool | None = None,
    hooks: SchedulerHooks | None = None,
    plan_by_features: bool | None = None,
) -> RunReport:
    """Run a generation or audit on a repository and commit the result.

    Args:
        repo_path: Primary repository root.
        settings: Global settings. Loaded from .env if None.
        vcs: Version-control client. GitClient if None.
        llm: Step id -> LLM client callable. LLMFactory if None.
        skip: Step ids to record as skipped.
        only: Restrict the run to these analysis steps (plumbing always runs).
        require_existing: Fail instead of creating a missing artifact store.
        push: Push after committing. Defaults to settings.auto_push.
        skip_parent: Do not commit the submodule pointer in the primary repo.
        hooks: Scheduler observation hooks.
        plan_by_features: Leave out analysis steps for features the
            repository does not show. Defaults to settings.feature_planning.

    Returns:
        RunReport with step outcomes, version and commit information.
    """
    settings = settings or Settings()
    repo = Path(repo_path).resolve()
    run_id = generate_run_id()
    set_run_context(repo.name, run_id)
    logger.info("Starting analysis: repo=%s, run_id=%s", repo, run_id)

    orchestrator = PipelineOrchestrator(
        settings, repo, vcs or GitClient(), llm or LLMFactory(settings), hooks
    )
    outcome = await orchestrator.analyze(
        skip=skip or (),
        only=only,
        require_existing=require_existing,
        push=push,
        skip_parent=skip_parent,
        plan_by_features=plan_by_features,
    )

    summary = outcome.summary
    manifest = orchestrator.lifecycle.state.manifest if orchestrator.lifecycle.state else None
    report = RunReport(
        run_id=run_id,
        project=manifest.project.name if manifest else repo.name,
        mode=outcome.mode,
        dag_name=outcome.dag_name,
        version=outcome.version,
        success=summary.success,
        total=summary.total,
        successful=summary.successful,
        failed=summary.failed,
        skipped=summary.skipped,
        duration_ms=summary.duration_ms,
        results=list(summary.results),
        commit=_commit_info(outcome.commit),
        overview=outcome.overview,
    )
    if outcome.audit is not None:
        report.changes_detected = outcome.audit.summary.total_changes
        report.proposed_version = outcome.audit.meta.proposed_version
        report.report_path = str(Path(settings.specs_folder) / AUDIT_REPORT_FILE)
    logger.info(
        "Analysis complete: mode=%s, %d/%d steps succeeded",
        report.mode, report.successful, report.total,
    )
    return report


async def apply(
    repo_path: str | Path,
    settings: Settings | None = None,
    vcs: BaseVCSClient | None = None,
    push: bool | None = None,
    skip_parent: bool | None = None,
) -> LifecycleReport:
    """Apply the pending audit and commit the new version.

    Raises:
        ArtifactStoreMissingError: No artifact store.
        NoPendingAuditError: Nothing to apply.
        ReportParseError: The audit report is unusable.
    """
    settings = settings or Settings()
    set_mode_context("apply")
    lifecycle = _lifecycle(repo_path, settings, vcs)
    await lifecycle.check(require_existing=True)
    manifest = await lifecycle.apply()
    commit = await lifecycle.commit_push(
        "apply", version=manifest.current_version, push=push, skip_parent=skip_parent
    )
    applied = manifest.audits[-1] if manifest.audits else None
    return LifecycleReport(
        operation="apply",
        project=manifest.project.name,
        version=manifest.current_version,
        audit_date=applied.date.isoformat() if applied else None,
        archived_to=applied.archived_to if applied else None,
        commit=_commit_info(commit),
    )


async def discard(
    repo_path: str | Path,
    settings: Settings | None = None,
    vcs: BaseVCSClient | None = None,
    push: bool | None = None,
    skip_parent: bool | None = None,
) -> LifecycleReport:
    """Discard the pending audit and commit the archived report.

    Raises:
        ArtifactStoreMissingError: No artifact store.
        NoPendingAuditError: Nothing to discard.
    """
    settings = settings or Settings()
    set_mode_context("discard")
    lifecycle = _lifecycle(repo_path, settings, vcs)
    await lifecycle.check(require_existing=True)
    manifest = await lifecycle.discard()
    commit = await lifecycle.commit_push(
        "discard", version=manifest.current_version, push=push, skip_parent=skip_parent
    )
    discarded = next((a for a in reversed(manifest.audits) if a.status == "discarded"), None)
    return LifecycleReport(
        operation="discard",
        project=manifest.project.name,
        version=manifest.current_version,
        audit_date=discarded.date.isoformat() if discarded else None,
        archived_to=discarded.archived_to if discarded else None,
        commit=_commit_info(commit),
    )


def _status_from(store: ArtifactStore, manifest: Manifest | None) -> StatusReport:
    if manifest is None:
        return StatusReport(store_path=str(store.root), initialized=False)
    pending = manifest.pending_audit_entry
    return StatusReport(
        store_path=str(store.root),
        initialized=True,
        project=manifest.project.name,
        schema_version=manifest.schema_version,
        current_version=manifest.current_version,
        mode=manifest.mode,
        pending_audit=manifest.pending_audit,
        pending_changes=pending.changes_detected if pending else None,
        proposed_version=pending.proposed_version if pending else None,
        analyses=len(manifest.analyses),
        audits=len(manifest.audits),
    )


async def status(repo_path: str | Path, settings: Settings | None = None) -> StatusReport:
    """Describe the artifact store without modifying it."""
    settings = settings or Settings()
    store = ArtifactStore(Path(repo_path).resolve() / settings.specs_folder)
    raw = await store.read_raw_manifest()
    if raw is None:
        return _status_from(store, None)

    validation = store.validator.validate(raw)
    manifest = await store.read_manifest(persist_migration=False)
    report = _status_from(store, manifest)
    report.errors = list(validation.errors)
    report.warnings = list(validation.warnings)
    if manifest is not None:
        report.warnings.extend(
            store.validator.validate_file_locations(manifest, store.root).errors
        )
    return report


async def migrate(repo_path: str | Path, settings: Settings | None = None) -> StatusReport:
    """Upgrade the manifest to the current schema and persist it."""
    settings = settings or Settings()
    store = ArtifactStore(Path(repo_path).resolve() / settings.specs_folder)
    raw = await store.read_raw_manifest()
    if raw is None:
        return _status_from(store, None)

    before = raw.get("schema_version") if isinstance(raw, dict) else None
    manifest = await store.read_manifest(persist_migration=True)
    report = _status_from(store, manifest)
    report.migrated = manifest is not None and before != manifest.schema_version
    logger.info(
        "Manifest %s: %s -> %s",
        "migrated" if report.migrated else "already current",
        before, report.schema_version,
    )
    return report
