# src/manifest/lifecycle.py — v3
"""ManifestLifecycleManager: generation, audit, apply, discard, commit/push.

Owns the artifact store, a secondary repository linked into the primary
repository as a git submodule at settings.specs_folder.

    check()               store presence + mode detection (generation | audit)
    complete_generation() first artifact set, index, manifest at 1.0.0
    complete_audit()      diff report + pending audit entry, artifacts untouched
    apply()               write the audited changes, bump the version
    discard()             drop a pending audit
    commit_push()         commit the store, then the submodule pointer

Every precondition is checked before the first write, so a LifecycleError
leaves both repositories as they were.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Literal

from specswarm.config.settings import Settings
from specswarm.config.steps import ANALYSIS_BY_ID, STEP_LOCATIONS
from specswarm.logging.context import set_mode_context
from specswarm.manifest.errors import (
    ArtifactStoreMissingError,
    CLIUnavailableError,
    GitHubOwnerError,
    LifecycleError,
    NoPendingAuditError,
    ReportParseError,
)
from specswarm.manifest.index import IndexEntry, render_index
from specswarm.manifest.migrator import (
    build_file_locations,
    calculate_structure_hash,
    infer_step_ids,
)
from specswarm.manifest.models import (
    CURRENT_FOLDER_STRUCTURE_VERSION,
    CURRENT_SCHEMA_VERSION,
    FIRST_RELEASE_VERSION,
    AnalysisEntry,
    ArtifactStoreState,
    AuditEntry,
    Manifest,
    PluginConfig,
    ProjectInfo,
    utcnow,
)
from specswarm.manifest.report import (
    AuditReport,
    AuditSummary,
    ReportMeta,
    compare_specs,
    parse_report,
    render_report,
)
from specswarm.manifest.versioning import get_version_bump, next_version, parse_version
from specswarm.pipeline.context import SharedContext, extract_summary
from specswarm.pipeline.diagrams import diagram_files, diagram_prefix
from specswarm.pipeline.models import ExecutionSummary
from specswarm.storage.layout import archive_path, strip_generated
from specswarm.storage.store import ArtifactStore
from specswarm.vcs.base_client import (
    BaseVCSClient,
    extract_github_owner,
    extract_project_name,
)
from specswarm.version import __version__

logger = logging.getLogger(__name__)

CommitKind = Literal["generation", "audit", "apply", "discard"]


@dataclass
class CommitResult:
    kind: CommitKind
    specs_sha: str | None
    parent_sha: str | None
    pushed: bool
    message: str


def commit_messages(
    kind: CommitKind, project_slug: str, version: str, changes: int | None = None
) -> tuple[str, str]:
    """(store message, primary repository message) for an operation."""
    if kind == "generation":
        return (
            f"specs: v{version} - Initial generation",
            f"chore: add {project_slug}-specs submodule (v{version})",
        )
    if kind == "audit":
        return (
            f"audit: detected {changes if changes is not None else 'N'} changes vs v{version}",
            "chore: update specs submodule (audit report)",
        )
    if kind == "apply":
        return (
            f"specs: v{version} - Applied audit changes",
            f"chore: update specs submodule to v{version}",
        )
    return (
        f"audit: discarded pending audit vs v{version}",
        "chore: update specs submodule (audit discarded)",
    )


class ManifestLifecycleManager:
    """Artifact-store lifecycle for one primary repository.

    Args:
        store: Artifact store rooted at <repo>/<settings.specs_folder>.
        vcs: Version-control client.
        settings: Application settings.
        repo_path: Primary repository root. Derived from the store path
            and specs_folder when omitted.
    """

    def __init__(
        self,
        store: ArtifactStore,
        vcs: BaseVCSClient,
        settings: Settings,
        repo_path: str | Path | None = None,
    ) -> None:
        self.store = store
        self.vcs = vcs
        self.settings = settings
        if repo_path is None:
            repo = store.root
            for _ in PurePosixPath(settings.specs_folder).parts:
                repo = repo.parent
            repo_path = repo
        self.repo_path = Path(repo_path)
        self._state: ArtifactStoreState | None = None

    @property
    def state(self) -> ArtifactStoreState | None:
        """Result of the last check(), None before the first."""
        return self._state

    # --- Check ---

    async def check(
        self, require_existing: bool = False, repo_type: str = "generic"
    ) -> ArtifactStoreState:
        """Locate or create the artifact store and detect the mode.

        Raises:
            ArtifactStoreMissingError: Store absent and require_existing set.
            CLIUnavailableError: Store must be created but gh is missing.
            GitHubOwnerError: Store must be created but no owner is known.
        """
        folder = self.settings.specs_folder
        declared = folder in await self.vcs.submodule_paths(self.repo_path)
        created = False

        if declared and not await self.vcs.is_repository(self.store.root):
            logger.info("Initializing artifact store submodule %s", folder)
            await self.vcs.init_submodule(self.repo_path, folder)
        elif not declared and not await self.store.exists():
            if require_existing:
                raise ArtifactStoreMissingError(
                    f"No artifact store at {folder} and creation is disabled"
                )
            await self._create_store()
            created = True

        await self.store.ensure_layout(repo_type)
        manifest = await self.store.read_manifest()
        if manifest is None:
            manifest = await self._initialize_store()
        config = await self.store.read_config()

        mode = "audit" if manifest.analyses else "generation"
        existing = await self.store.read_existing_specs() if mode == "audit" else {}

        self._state = ArtifactStoreState(
            exists=True,
            initialized=True,
            mode=mode,
            path=str(self.store.root),
            manifest=manifest,
            config=config,
            existing_specs=existing,
            created=created,
        )
        set_mode_context(mode)
        logger.info(
            "Artifact store %s: mode=%s version=%s (%d existing artifacts)",
            folder, mode, manifest.current_version, len(existing),
        )
        return self._state

    async def _create_store(self) -> None:
        if not await self.vcs.is_gh_available():
            raise CLIUnavailableError(
                "The gh CLI is required to create the artifact store repository"
            )
        remote = await self.vcs.remote_url(self.repo_path)
        owner = self.settings.github_owner or extract_github_owner(remote)
        if not owner:
            raise GitHubOwnerError(
                "Cannot determine the GitHub owner; set GITHUB_OWNER or add a GitHub remote"
            )
        slug = extract_project_name(remote, fallback=self.repo_path.name)
        url = await self.vcs.create_remote_repo(
            owner,
            f"{slug}-specs",
            private=self.settings.specs_repo_private,
            description=f"Generated specifications for {slug}",
        )
        await self.vcs.add_submodule(
            self.repo_path, url, self.settings.specs_folder, self.settings.specs_branch
        )
        logger.info("Created artifact store %s at %s", url, self.settings.specs_folder)

    async def _initialize_store(self) -> Manifest:
        remote = await self.vcs.remote_url(self.repo_path)
        specs_remote = await self.vcs.remote_url(self.store.root) or ""
        manifest = Manifest(
            project=ProjectInfo(
                name=extract_project_name(remote, fallback=self.repo_path.name),
                repo_url=remote or "",
                specs_repo_url=specs_remote,
            ),
            folder_structure_version=CURRENT_FOLDER_STRUCTURE_VERSION,
            file_locations={},
            structure_hash=calculate_structure_hash({}),
        )
        await self.store.write_manifest(manifest)
        if await self.store.read_config() is None:
            await self.store.write_config(
                PluginConfig(
                    specs_repo_private=self.settings.specs_repo_private,
                    auto_push=self.settings.auto_push,
                    specs_folder=self.settings.specs_folder,
                    specs_branch=self.settings.specs_branch,
                    specs_repo_url=specs_remote,
                    github_owner=self.settings.github_owner
                    or extract_github_owner(remote) or "",
                )
            )
        logger.info("Initialized artifact store at %s", self.store.root)
        return manifest

    async def _require_manifest(self) -> Manifest:
        if self._state is not None and self._state.manifest is not None:
            return self._state.manifest
        manifest = await self.store.read_manifest()
        if manifest is None:
            raise ArtifactStoreMissingError(
                f"No manifest in {self.store.root}; run an analysis first"
            )
        return manifest

    def _remember(self, manifest: Manifest) -> None:
        if self._state is not None:
            self._state = self._state.model_copy(update={"manifest": manifest})

    # --- Generation ---

    async def complete_generation(
        self, summary: ExecutionSummary, context: SharedContext
    ) -> Manifest:
        """Write the first artifact set, the index and a 1.0.0 manifest entry.

        Mermaid blocks found in the artifacts are published under _generated/_diagrams/.

        Raises:
            LifecycleError: If no analysis step produced an artifact.
        """
        manifest = await self._require_manifest()
        fresh = _fresh_artifacts(summary, context)
        if not fresh:
            raise LifecycleError("Generation produced no artifacts; nothing written")

        locations = {step_id: path for step_id, (path, _) in fresh.items()}
        written: list[str] = []
        for step_id, (path, content) in sorted(fresh.items()):
            written.append(await self.store.write_artifact(path, content))
            await self._publish_diagrams(step_id, path, content)

        version = FIRST_RELEASE_VERSION
        await self._write_index(manifest.project.name, version, locations)

        entry = AnalysisEntry(
            version=version,
            type="generation",
            repo_sha=await self.vcs.commit_sha(self.repo_path),
            repo_branch=await self.vcs.branch(self.repo_path),
            plugin_version=__version__,
            agents_run=summary.executed - summary.skipped,
            agents_succeeded=summary.successful,
            files_generated=written,
        )
        manifest = manifest.model_copy(
            update={
                "schema_version": CURRENT_SCHEMA_VERSION,
                "current_version": version,
                "mode": "audit",
                "analyses": [*manifest.analyses, entry],
                "folder_structure_version": CURRENT_FOLDER_STRUCTURE_VERSION,
                "file_locations": dict(sorted(locations.items())),
                "structure_hash": calculate_structure_hash(locations),
            },
            deep=True,
        )
        await self.store.write_manifest(manifest)
        self._remember(manifest)
        logger.info("Generation complete: v%s, %d artifacts", version, len(written))
        return manifest

    # --- Audit ---

    async def complete_audit(
        self, summary: ExecutionSummary, context: SharedContext
    ) -> AuditReport:
        """Compare fresh outputs with committed artifacts and write the report.

        Only artifacts owned by steps that succeeded in this run are
        compared. Committed artifacts are left untouched; fresh content of
        affected files is staged for apply().
        """
        manifest = await self._require_manifest()
        if not manifest.analyses:
            raise LifecycleError("Audit requires a previous generation")

        existing_all = (
            self._state.existing_specs
            if self._state is not None and self._state.existing_specs
            else await self.store.read_existing_specs()
        )
        previous = manifest.file_locations or build_file_locations(manifest)
        fresh = _fresh_artifacts(summary, context)

        existing: dict[str, str] = {}
        for step_id in fresh:
            old_path = previous.get(step_id, STEP_LOCATIONS.get(step_id))
            if old_path and old_path in existing_all:
                existing[old_path] = existing_all[old_path]
        fresh_by_path = {path: content for path, content in fresh.values()}

        changes = compare_specs(existing, fresh_by_path)
        proposed_locations = {
            **{k: v for k, v in previous.items() if k not in fresh},
            **{step_id: path for step_id, (path, _) in fresh.items()},
        }
        bump = get_version_bump(previous, proposed_locations)
        current = manifest.current_version
        proposed = next_version(current, bump) if changes or bump != "patch" else current

        audit_summary = AuditSummary.from_changes(changes)
        now = utcnow()
        report = AuditReport(
            meta=ReportMeta(
                uid=uuid.uuid4().hex[:12],
                generated=now,
                repo_sha=await self.vcs.commit_sha(self.repo_path),
                repo_branch=await self.vcs.branch(self.repo_path),
                plugin_version=__version__,
                current_version=current,
                proposed_version=proposed,
                bump=bump,
                total_changes=audit_summary.total_changes,
                affected_files=[c.store_path for c in changes],
                removed_files=[c.store_path for c in changes if c.status == "removed"],
            ),
            summary=audit_summary,
            changes=changes,
        )

        audits = [a.model_copy() for a in manifest.audits]
        for stale in audits:
            if stale.status == "pending":
                logger.warning("Replacing pending audit from %s", stale.date.isoformat())
                stale.status = "discarded"

        await self.store.clear_pending()
        for change in changes:
            if change.status != "removed":
                await self.store.stage_pending(change.file, fresh_by_path[change.file])
        await self.store.write_report(render_report(report))

        audits.append(
            AuditEntry(
                date=now,
                repo_sha=report.meta.repo_sha,
                specs_version_compared=current,
                changes_detected=audit_summary.total_changes,
                proposed_version=proposed,
            )
        )
        manifest = manifest.model_copy(
            update={"audits": audits, "pending_audit": True}, deep=True
        )
        await self.store.write_manifest(manifest)
        self._remember(manifest)
        logger.info(
            "Audit complete: %d changes in %d files, proposed v%s (%s)",
            audit_summary.total_changes, len(changes), proposed, bump,
        )
        return report

    # --- Apply ---

    async def apply(self, fresh_outputs: dict[str, str] | None = None) -> Manifest:
        """Apply the pending audit.

        Args:
            fresh_outputs: Content by path under _generated/, taking
                precedence over what the audit staged.

        Raises:
            NoPendingAuditError: No pending audit or no report on disk.
            ReportParseError: The report lacks fields needed here.
        """
        manifest = await self._require_manifest()
        entry = manifest.pending_audit_entry
        if not manifest.pending_audit or entry is None:
            raise NoPendingAuditError("No pending audit to apply")
        text = await self.store.read_report()
        if text is None:
            raise NoPendingAuditError("Pending audit has no report in the artifact store")

        parsed = parse_report(text)
        try:
            parse_version(parsed.proposed_version)
        except ValueError as exc:
            raise ReportParseError(str(exc)) from exc
        version = parsed.proposed_version

        # Resolve every write before touching the store.
        removed = {strip_generated(p) for p in parsed.removed_files}
        writes: dict[str, str] = {}
        removals: list[str] = []
        for store_path in parsed.affected_files:
            relative = strip_generated(store_path)
            if relative in removed:
                removals.append(relative)
                continue
            content = (fresh_outputs or {}).get(relative)
            if content is None:
                content = await self.store.read_pending(relative)
            if content is None:
                raise LifecycleError(
                    f"No staged content for {store_path}; re-run the audit"
                )
            writes[relative] = content

        locations = dict(manifest.file_locations or build_file_locations(manifest))
        for relative in removals:
            locations = {k: v for k, v in locations.items() if v != relative}
        for relative in writes:
            for step_id in infer_step_ids([relative]):
                locations[step_id] = relative

        for relative, content in sorted(writes.items()):
            await self.store.write_artifact(relative, content)
            for step_id in infer_step_ids([relative]):
                await self._publish_diagrams(step_id, relative, content)
        for relative in removals:
            await self.store.delete_artifact(relative)
            for step_id in infer_step_ids([relative]):
                await self.store.delete_diagrams(diagram_prefix(step_id))
        await self._write_index(manifest.project.name, version, locations)

        archived = await self.store.archive_report(archive_path(entry.date, version))
        await self.store.clear_pending()

        applied = AnalysisEntry(
            version=version,
            type="apply",
            repo_sha=parsed.repo_sha,
            repo_branch=parsed.repo_branch,
            plugin_version=__version__,
            files_changed=list(parsed.affected_files),
            from_audit=entry.date,
            summary=f"Applied {parsed.total_changes} changes from audit of "
            f"{entry.date.strftime('%Y-%m-%d')}",
        )
        audits = [a.model_copy() for a in manifest.audits]
        for audit in audits:
            if audit.status == "pending":
                audit.status = "applied"
                audit.applied_as_version = version
                audit.archived_to = archived
        manifest = manifest.model_copy(
            update={
                "current_version": version,
                "pending_audit": False,
                "analyses": [*manifest.analyses, applied],
                "audits": audits,
                "file_locations": dict(sorted(locations.items())),
                "structure_hash": calculate_structure_hash(locations),
            },
            deep=True,
        )
        await self.store.write_manifest(manifest)
        self._remember(manifest)
        logger.info(
            "Applied audit: v%s (%d written, %d removed)", version, len(writes), len(removals)
        )
        return manifest

    # --- Discard ---

    async def discard(self) -> Manifest:
        """Mark the pending audit discarded and archive its report.

        Raises:
            NoPendingAuditError: No pending audit.
        """
        manifest = await self._require_manifest()
        entry = manifest.pending_audit_entry
        if not manifest.pending_audit or entry is None:
            raise NoPendingAuditError("No pending audit to discard")

        archived: str | None = None
        if await self.store.has_report():
            archived = await self.store.archive_report(
                archive_path(entry.date, entry.proposed_version or manifest.current_version)
            )
        await self.store.clear_pending()

        audits = [a.model_copy() for a in manifest.audits]
        for audit in audits:
            if audit.status == "pending":
                audit.status = "discarded"
                audit.archived_to = archived
        manifest = manifest.model_copy(
            update={"audits": audits, "pending_audit": False}, deep=True
        )
        await self.store.write_manifest(manifest)
        self._remember(manifest)
        logger.info("Discarded pending audit from %s", entry.date.isoformat())
        return manifest

    # --- Commit / push ---

    async def commit_push(
        self,
        kind: CommitKind,
        version: str | None = None,
        changes: int | None = None,
        push: bool | None = None,
        skip_parent: bool | None = None,
    ) -> CommitResult:
        """Commit the store, then the submodule pointer in the primary repository.

        Nothing is committed in either repository when the store has no
        uncommitted changes. The manifest is not modified here.
        """
        push = self.settings.auto_push if push is None else push
        skip_parent = self.settings.skip_parent_commit if skip_parent is None else skip_parent
        manifest = await self._require_manifest()
        version = version or manifest.current_version
        slug = manifest.project.name
        store_message, parent_message = commit_messages(kind, slug, version, changes)

        store_root = self.store.root
        if not await self.vcs.has_changes(store_root):
            logger.info("Artifact store has no changes; nothing to commit")
            return CommitResult(
                kind=kind, specs_sha=None, parent_sha=None, pushed=False, message=store_message
            )

        async with self.vcs.repo_lock(store_root):
            await self.vcs.stage_all(store_root)
            specs_sha = await self.vcs.commit(store_root, store_message)
            pushed = False
            if specs_sha and push:
                await self.vcs.push(store_root, self.settings.specs_branch)
                pushed = True

        parent_sha: str | None = None
        if skip_parent:
            logger.info("Skipping primary repository commit")
        elif not await self.vcs.is_repository(self.repo_path):
            logger.info("Primary repository %s is not a git working copy", self.repo_path)
        else:
            folder = self.settings.specs_folder
            async with self.vcs.repo_lock(self.repo_path):
                await self.vcs.stage_path(self.repo_path, folder)
                if await self.vcs.has_changes(self.repo_path, folder):
                    parent_sha = await self.vcs.commit(self.repo_path, parent_message)
                    if parent_sha and push:
                        await self.vcs.push(
                            self.repo_path, await self.vcs.branch(self.repo_path)
                        )

        logger.info(
            "Committed %s: specs=%s parent=%s pushed=%s",
            kind, (specs_sha or "-")[:8], (parent_sha or "-")[:8], pushed,
        )
        return CommitResult(
            kind=kind,
            specs_sha=specs_sha,
            parent_sha=parent_sha,
            pushed=pushed,
            message=store_message,
        )

    # --- Helpers ---

    async def _publish_diagrams(self, step_id: str, relative: str, content: str) -> list[str]:
        """Replace the .mmd files of a step with the diagrams in its artifact."""
        spec = ANALYSIS_BY_ID.get(step_id)
        files = diagram_files(step_id, spec.title if spec else step_id, relative, content)
        await self.store.delete_diagrams(diagram_prefix(step_id))
        written = [
            await self.store.write_diagram(name, text) for name, text in sorted(files.items())
        ]
        if written:
            logger.info("%s: %d diagram(s) published", step_id, len(written))
        return written

    async def _write_index(
        self, project: str, version: str, locations: dict[str, str]
    ) -> None:
        contents = await self.store.read_existing_specs()
        entries = []
        for step_id, path in locations.items():
            spec = ANALYSIS_BY_ID.get(step_id)
            entries.append(
                IndexEntry(
                    step_id=step_id,
                    title=spec.title if spec else step_id,
                    path=path,
                    summary=extract_summary(
                        contents.get(path, ""), self.settings.summary_max_chars
                    ),
                )
            )
        await self.store.write_index(
            render_index(project, version, entries, utcnow(), await self.store.read_index())
        )


def _fresh_artifacts(
    summary: ExecutionSummary, context: SharedContext
) -> dict[str, tuple[str, str]]:
    """step id -> (path under _generated/, content) for successful artifact steps."""
    fresh: dict[str, tuple[str, str]] = {}
    for step_id in summary.successful_ids:
        output = context.get_output(step_id)
        if output is None or not output.file_path or step_id not in STEP_LOCATIONS:
            continue
        fresh[step_id] = (strip_generated(output.file_path), output.full_content)
    return fresh
