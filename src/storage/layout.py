# src/storage/layout.py — v3
"""Artifact store directory structure.

All paths are relative to the artifact store root (the submodule folder
inside the primary repository):

    .meta/manifest.json      versioned manifest
    .meta/config.json        per-store plugin configuration
    .meta/pending/           fresh content staged by an audit, consumed by apply
    _generated/<subdir>/...  generated artifacts
    _generated/_diagrams/    Mermaid diagrams taken from the artifacts
    _audits/                 archived audit reports
    domains/                 hand-written documentation, never touched
    AUDIT_REPORT.md          the active (pending) audit report
    index.md                 summary index (AUTO + MANUAL sections)
"""

from __future__ import annotations

from datetime import datetime
from pathlib import PurePosixPath

META_DIR = ".meta"
GENERATED_DIR = "_generated"
DIAGRAMS_DIR = f"{GENERATED_DIR}/_diagrams"
AUDITS_DIR = "_audits"
DOMAINS_DIR = "domains"
PENDING_DIR = f"{META_DIR}/pending"

MANIFEST_FILE = f"{META_DIR}/manifest.json"
CONFIG_FILE = f"{META_DIR}/config.json"
AUDIT_REPORT_FILE = "AUDIT_REPORT.md"
INDEX_FILE = "index.md"
GITKEEP = ".gitkeep"

TOP_LEVEL_DIRS: tuple[str, ...] = (META_DIR, GENERATED_DIR, AUDITS_DIR, DOMAINS_DIR)

# Split module folders for multi-sided repositories.
MODULE_SIDES: tuple[str, ...] = ("backend", "frontend")


def generated_path(relative: str) -> str:
    """Return store path of an artifact given its path under _generated/."""
    return str(PurePosixPath(GENERATED_DIR) / relative)


def strip_generated(path: str) -> str:
    """Inverse of generated_path(); paths outside _generated/ are returned as-is."""
    prefix = f"{GENERATED_DIR}/"
    return path[len(prefix):] if path.startswith(prefix) else path


def diagram_path(name: str) -> str:
    return str(PurePosixPath(DIAGRAMS_DIR) / name)


def pending_path(relative: str) -> str:
    """Staging path of fresh content for an artifact under _generated/."""
    return str(PurePosixPath(PENDING_DIR) / relative)


def archive_path(date: datetime, version: str) -> str:
    """Archive location of an audit report: _audits/YYYY-MM-DD_v<version>_audit.md."""
    return f"{AUDITS_DIR}/{date.strftime('%Y-%m-%d')}_v{version}_audit.md"
