# src/manifest/models.py — v1
"""Manifest domain models: Manifest, AnalysisEntry, AuditEntry, PluginConfig.

The manifest is persisted as JSON at .meta/manifest.json inside the
artifact store; see storage/layout.py.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Literal

from pydantic import BaseModel, Field

SchemaVersion = Literal["2.0", "2.1"]
Mode = Literal["generation", "audit"]
AuditStatus = Literal["pending", "applied", "discarded"]

CURRENT_SCHEMA_VERSION: SchemaVersion = "2.1"
KNOWN_SCHEMA_VERSIONS: tuple[str, ...] = ("2.0", "2.1")
KNOWN_MODES: tuple[str, ...] = ("generation", "audit")
FOLDER_STRUCTURE_VERSIONS: tuple[str, ...] = ("1.0", "2.0")
CURRENT_FOLDER_STRUCTURE_VERSION = "2.0"
INITIAL_VERSION = "0.0.0"
FIRST_RELEASE_VERSION = "1.0.0"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProjectInfo(BaseModel):
    """Project descriptor."""

    name: str
    repo_url: str = ""
    specs_repo_url: str = ""
    created: datetime = Field(default_factory=utcnow)


class AnalysisEntry(BaseModel):
    """One completed generation or apply."""

    version: str
    type: Literal["generation", "apply"]
    date: datetime = Field(default_factory=utcnow)
    repo_sha: str = "unknown"
    repo_branch: str = "main"
    specs_sha: str = ""
    plugin_version: str = ""
    agents_run: int = 0
    agents_succeeded: int = 0
    files_generated: list[str] = Field(default_factory=list)
    files_changed: list[str] = Field(default_factory=list)
    from_audit: datetime | None = None
    summary: str | None = None

    @property
    def files(self) -> list[str]:
        """Files this entry touched (generated for generation, changed for apply)."""
        return self.files_changed or self.files_generated


class AuditEntry(BaseModel):
    """One audit report and its resolution."""

    date: datetime = Field(default_factory=utcnow)
    repo_sha: str = "unknown"
    status: AuditStatus = "pending"
    specs_version_compared: str
    changes_detected: int = 0
    proposed_version: str | None = None
    applied_as_version: str | None = None
    archived_to: str | None = None


class Manifest(BaseModel):
    """Persistent record of artifact-store state and version history."""

    schema_version: SchemaVersion = CURRENT_SCHEMA_VERSION
    project: ProjectInfo
    current_version: str = INITIAL_VERSION
    mode: Mode = "generation"
    pending_audit: bool = False
    analyses: list[AnalysisEntry] = Field(default_factory=list)
    audits: list[AuditEntry] = Field(default_factory=list)

    # Schema 2.1
    folder_structure_version: str | None = None
    structure_hash: str | None = None
    file_locations: dict[str, str] | None = None

    @property
    def latest_analysis(self) -> AnalysisEntry | None:
        return self.analyses[-1] if self.analyses else None

    @property
    def pending_audit_entry(self) -> AuditEntry | None:
        for entry in reversed(self.audits):
            if entry.status == "pending":
                return entry
        return None


class PluginConfig(BaseModel):
    """Per-store configuration persisted at .meta/config.json."""

    schema_version: SchemaVersion = CURRENT_SCHEMA_VERSION
    specs_repo_private: bool = True
    auto_push: bool = True
    non_interactive: bool = False
    specs_folder: str = "specs"
    specs_branch: str = "main"
    specs_repo_url: str = ""
    github_owner: str = ""
    skip_agents: list[str] = Field(default_factory=list)
    prompt_overrides: dict[str, str] = Field(default_factory=dict)


class ArtifactStoreState(BaseModel):
    """What Check found: store presence, mode, manifest, prior artifacts."""

    exists: bool
    initialized: bool
    mode: Mode = "generation"
    path: str
    manifest: Manifest | None = None
    config: PluginConfig | None = None
    # Path under _generated/ -> committed content (audit mode only).
    existing_specs: dict[str, str] = Field(default_factory=dict)
    created: bool = False
