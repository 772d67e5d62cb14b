# src/manifest/report.py — v1
"""Audit report: section-level diff, Markdown rendering and parsing.

The report is a Markdown document with a YAML frontmatter block. Apply
reads the frontmatter (a fixed schema); the Markdown body is for humans.
Reports from older versions without the structured fields are still
parsed from their prose, using the "Version Change", "Metadata" and
"Changes by File" sections.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime
from typing import Literal

import yaml
from pydantic import BaseModel, Field, ValidationError

from specswarm.manifest.errors import ReportParseError
from specswarm.manifest.models import utcnow
from specswarm.storage.layout import generated_path

logger = logging.getLogger(__name__)

ChangeKind = Literal["added", "removed", "modified"]

_FRONTMATTER_RE = re.compile(r"\A---\s*\n(.*?)\n---\s*\n?", re.DOTALL)
_H2_SPLIT_RE = re.compile(r"(?=^## )", re.MULTILINE)
_H2_TITLE_RE = re.compile(r"^## (.+)$", re.MULTILINE)
_DATE_RE = re.compile(r"\d{4}-\d{2}-\d{2}(T\d{2}:\d{2}:\d{2})?")
_VERSION_RE = re.compile(r"v\d+\.\d+\.\d+")

# Prose fallbacks.
_CHANGES_BY_FILE_RE = re.compile(
    r"^## Changes by File\s*\n(.*?)(?=^## (?!#)|\Z)", re.MULTILINE | re.DOTALL
)
_FILE_HEADING_RE = re.compile(r"^### (_generated/[\w./-]+)\s*$", re.MULTILINE)
_PROSE_FIELDS: dict[str, re.Pattern[str]] = {
    "current_version": re.compile(r"\*\*Current version:\*\*\s*`?([\w.\-]+)`?"),
    "proposed_version": re.compile(r"\*\*Proposed version:\*\*\s*`?([\w.\-]+)`?"),
    "repo_sha": re.compile(r"\*\*Repo SHA:\*\*\s*`?([\w]+)`?"),
    "repo_branch": re.compile(r"\*\*Repo Branch:\*\*\s*`?([\w./\-]+)`?"),
    "generated": re.compile(r"\*\*Generated:\*\*\s*`?([\w:.+\-]+)`?"),
    "total_changes": re.compile(r"detected \*\*(\d+) changes?\*\*"),
}


class ChangeItem(BaseModel):
    item: str
    description: str
    previous_value: str | None = None
    new_value: str | None = None


class FileChange(BaseModel):
    """Changes detected in one artifact (path relative to _generated/)."""

    file: str
    added: list[ChangeItem] = Field(default_factory=list)
    removed: list[ChangeItem] = Field(default_factory=list)
    modified: list[ChangeItem] = Field(default_factory=list)

    @property
    def store_path(self) -> str:
        return generated_path(self.file)

    @property
    def change_count(self) -> int:
        return len(self.added) + len(self.removed) + len(self.modified)

    @property
    def status(self) -> ChangeKind:
        """File-level verdict: a file that is all-added is new, all-removed is gone."""
        if self.added and not self.removed and not self.modified and self.added[0].item == self.file:
            return "added"
        if self.removed and not self.added and not self.modified and self.removed[0].item == self.file:
            return "removed"
        return "modified"


class AuditSummary(BaseModel):
    total_changes: int = 0
    added: int = 0
    removed: int = 0
    modified: int = 0
    files_affected: int = 0

    @classmethod
    def from_changes(cls, changes: list[FileChange]) -> AuditSummary:
        added = sum(len(c.added) for c in changes)
        removed = sum(len(c.removed) for c in changes)
        modified = sum(len(c.modified) for c in changes)
        return cls(
            total_changes=added + removed + modified,
            added=added,
            removed=removed,
            modified=modified,
            files_affected=len(changes),
        )


class ReportMeta(BaseModel):
    """Structured frontmatter of an audit report."""

    uid: str
    title: str = "Spec Audit Report"
    status: str = "pending"
    generated: datetime = Field(default_factory=utcnow)
    repo_sha: str = "unknown"
    repo_branch: str = "main"
    plugin_version: str = ""
    current_version: str
    proposed_version: str
    bump: str = "patch"
    total_changes: int = 0
    affected_files: list[str] = Field(default_factory=list)
    removed_files: list[str] = Field(default_factory=list)


class AuditReport(BaseModel):
    meta: ReportMeta
    summary: AuditSummary
    changes: list[FileChange] = Field(default_factory=list)


class ParsedReport(BaseModel):
    """Fields Apply needs, recovered from a report."""

    repo_sha: str
    repo_branch: str
    current_version: str
    proposed_version: str
    total_changes: int
    affected_files: list[str]
    removed_files: list[str] = []
    generated: datetime | None = None


# --- Comparison ---


def normalize_content(content: str) -> str:
    """Collapse noise that should not count as drift (dates, versions, whitespace, case)."""
    text = _DATE_RE.sub("DATE", content)
    text = _VERSION_RE.sub("VERSION", text)
    return " ".join(text.split()).lower()


def strip_frontmatter(content: str) -> str:
    return _FRONTMATTER_RE.sub("", content, count=1)


def extract_sections(content: str) -> dict[str, str]:
    """Map H2 title -> section text (heading included), frontmatter removed."""
    sections: dict[str, str] = {}
    for part in _H2_SPLIT_RE.split(strip_frontmatter(content)):
        match = _H2_TITLE_RE.match(part)
        if match:
            sections[match.group(1).strip()] = part
    return sections


def compare_content(existing: str, fresh: str) -> FileChange:
    """Section-level comparison of two versions of one artifact."""
    change = FileChange(file="")
    old_sections = extract_sections(existing)
    new_sections = extract_sections(fresh)

    for name in list(old_sections) + [n for n in new_sections if n not in old_sections]:
        old = old_sections.get(name)
        new = new_sections.get(name)
        if old is None and new is not None:
            change.added.append(
                ChangeItem(item=name, description="New section detected", new_value=new[:200])
            )
        elif old is not None and new is None:
            change.removed.append(
                ChangeItem(
                    item=name, description="Section no longer present", previous_value=old[:200]
                )
            )
        elif old is not None and new is not None:
            if normalize_content(old) != normalize_content(new):
                delta = len(new) - len(old)
                if delta > 0:
                    description = f"Content expanded by ~{delta} chars"
                elif delta < 0:
                    description = f"Content reduced by ~{-delta} chars"
                else:
                    description = "Content modified"
                change.modified.append(
                    ChangeItem(
                        item=name,
                        description=description,
                        previous_value=old[:100],
                        new_value=new[:100],
                    )
                )

    if not change.change_count and normalize_content(existing) != normalize_content(fresh):
        change.modified.append(ChangeItem(item="content", description="File content has changed"))
    return change


def compare_specs(existing: dict[str, str], fresh: dict[str, str]) -> list[FileChange]:
    """Compare artifacts keyed by path under _generated/.

    A path only in fresh is added, a path only in existing is removed.
    Files without drift are left out.
    """
    changes: list[FileChange] = []
    for path in sorted(set(existing) | set(fresh)):
        old = existing.get(path)
        new = fresh.get(path)
        if old is None and new is not None:
            change = FileChange(
                file=path,
                added=[ChangeItem(item=path, description="New spec file detected")],
            )
        elif old is not None and new is None:
            change = FileChange(
                file=path,
                removed=[ChangeItem(item=path, description="Spec file no longer generated")],
            )
        else:
            change = compare_content(old or "", new or "").model_copy(update={"file": path})
        if change.change_count:
            logger.debug("Drift in %s: %d changes", path, change.change_count)
            changes.append(change)
    return changes


# --- Rendering ---


def _table(items: list[ChangeItem]) -> list[str]:
    lines = ["| Item | Description |", "|------|-------------|"]
    for item in items:
        description = item.description.replace("|", "\\|")
        lines.append(f"| {item.item} | {description} |")
    return lines


def render_report(report: AuditReport) -> str:
    """Render the Markdown report, frontmatter first."""
    meta = report.meta
    summary = report.summary
    frontmatter = meta.model_dump(mode="json")
    lines = [
        "---",
        yaml.safe_dump(frontmatter, sort_keys=False, allow_unicode=True).rstrip(),
        "---",
        "",
        "# Spec Audit Report",
        "",
        "## Executive Summary",
        "",
        f"This audit compared a fresh analysis against specs version "
        f"`{meta.current_version}` and detected **{summary.total_changes} changes** "
        f"across {summary.files_affected} files.",
        "",
        "| Metric | Count |",
        "|--------|-------|",
        f"| Added items | {summary.added} |",
        f"| Removed items | {summary.removed} |",
        f"| Modified items | {summary.modified} |",
        f"| Files affected | {summary.files_affected} |",
        "",
        "## Action Required",
        "",
        "Review the changes below, then run `specswarm apply` to update the specs "
        "or `specswarm discard` to drop this report.",
        "",
        "## Version Change",
        "",
        f"- **Current version:** {meta.current_version}",
        f"- **Proposed version:** {meta.proposed_version} ({meta.bump})",
        "",
        "## Changes by File",
        "",
    ]

    if not report.changes:
        lines.extend(["No changes detected.", ""])
    for change in report.changes:
        lines.extend([f"### {change.store_path}", ""])
        for label, items in (
            ("ADDED", change.added),
            ("REMOVED", change.removed),
            ("MODIFIED", change.modified),
        ):
            if items:
                lines.extend([f"#### {label}", "", *_table(items), ""])

    lines.extend([
        "## Metadata",
        "",
        f"- **Generated:** {frontmatter['generated']}",
        f"- **Plugin Version:** {meta.plugin_version}",
        f"- **Repo SHA:** {meta.repo_sha}",
        f"- **Repo Branch:** {meta.repo_branch}",
        "",
    ])
    return "\n".join(lines)


# --- Parsing ---


def parse_report(text: str) -> ParsedReport:
    """Recover Apply's inputs from a report.

    Raises:
        ReportParseError: If a required field cannot be found.
    """
    match = _FRONTMATTER_RE.match(text)
    if match:
        try:
            data = yaml.safe_load(match.group(1)) or {}
        except yaml.YAMLError as exc:
            logger.warning("Audit report frontmatter is not valid YAML: %s", exc)
            data = {}
        if isinstance(data, dict) and "proposed_version" in data:
            try:
                return ParsedReport(
                    repo_sha=str(data.get("repo_sha", "unknown")),
                    repo_branch=str(data.get("repo_branch", "main")),
                    current_version=str(data["current_version"]),
                    proposed_version=str(data["proposed_version"]),
                    total_changes=int(data.get("total_changes", 0)),
                    affected_files=[str(f) for f in data.get("affected_files") or []]
                    or _affected_from_body(text),
                    removed_files=[str(f) for f in data.get("removed_files") or []],
                    generated=data.get("generated"),
                )
            except (KeyError, TypeError, ValueError, ValidationError) as exc:
                raise ReportParseError(f"Malformed audit report frontmatter: {exc}") from exc

    return _parse_prose(text)


def _affected_from_body(text: str) -> list[str]:
    section = _CHANGES_BY_FILE_RE.search(text)
    if not section:
        return []
    found: list[str] = []
    for path in _FILE_HEADING_RE.findall(section.group(1)):
        if path not in found:
            found.append(path)
    return found


def _parse_prose(text: str) -> ParsedReport:
    values: dict[str, str] = {}
    for key, pattern in _PROSE_FIELDS.items():
        match = pattern.search(text)
        if match:
            values[key] = match.group(1)

    missing = [k for k in ("current_version", "proposed_version") if k not in values]
    if missing:
        raise ReportParseError(f"Audit report is missing: {', '.join(missing)}")

    affected = _affected_from_body(text)
    return ParsedReport(
        repo_sha=values.get("repo_sha", "unknown"),
        repo_branch=values.get("repo_branch", "main"),
        current_version=values["current_version"],
        proposed_version=values["proposed_version"],
        total_changes=int(values.get("total_changes", len(affected))),
        affected_files=affected,
        generated=values.get("generated"),
    )
