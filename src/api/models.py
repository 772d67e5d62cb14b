# src/api/models.py — v2
"""API-level result models returned by the facade and printed by the CLI."""

from __future__ import annotations

from pydantic import BaseModel, Field

from specswarm.pipeline.models import ExecutionResult


class CommitInfo(BaseModel):
    specs_sha: str | None = None
    parent_sha: str | None = None
    pushed: bool = False
    message: str = ""


class RunReport(BaseModel):
    """Return value of facade.analyze()."""

    run_id: str
    project: str
    mode: str
    dag_name: str
    version: str
    success: bool
    total: int
    successful: int
    failed: int
    skipped: int
    duration_ms: int
    results: list[ExecutionResult] = Field(default_factory=list)
    changes_detected: int | None = None
    proposed_version: str | None = None
    report_path: str | None = None
    commit: CommitInfo | None = None
    overview: str = ""


class LifecycleReport(BaseModel):
    """Return value of facade.apply() and facade.discard()."""

    operation: str
    project: str
    version: str
    audit_date: str | None = None
    archived_to: str | None = None
    commit: CommitInfo | None = None


class StatusReport(BaseModel):
    """Return value of facade.status() and facade.migrate()."""

    store_path: str
    initialized: bool
    project: str | None = None
    schema_version: str | None = None
    current_version: str | None = None
    mode: str | None = None
    pending_audit: bool = False
    pending_changes: int | None = None
    proposed_version: str | None = None
    analyses: int = 0
    audits: int = 0
    migrated: bool = False
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
