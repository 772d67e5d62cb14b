# src/manifest/index.py — v1
"""Summary index (index.md) with generated and hand-written sections.

Everything between the AUTO markers is regenerated on every generation or
apply; the MANUAL block is carried over verbatim.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from specswarm.storage.layout import generated_path

AUTO_START = "<!-- AUTO:START - Do not edit this section manually -->"
AUTO_END = "<!-- AUTO:END -->"
MANUAL_START = "<!-- MANUAL:START - Your custom content below -->"
MANUAL_END = "<!-- MANUAL:END -->"

_DEFAULT_MANUAL = "\n_Add project-specific notes here. This section is preserved._\n"


class IndexEntry(BaseModel):
    step_id: str
    title: str
    path: str  # relative to _generated/
    summary: str = ""


def extract_manual(existing: str | None) -> str:
    """Return the MANUAL block body of an existing index, or the default."""
    if not existing:
        return _DEFAULT_MANUAL
    start = existing.find(MANUAL_START)
    end = existing.find(MANUAL_END, start + 1)
    if start == -1 or end == -1:
        return _DEFAULT_MANUAL
    return existing[start + len(MANUAL_START):end]


def render_index(
    project: str,
    version: str,
    entries: list[IndexEntry],
    updated: datetime,
    existing: str | None = None,
) -> str:
    """Render index.md, preserving the manual section of a previous index."""
    day = updated.strftime("%Y-%m-%d")
    lines = [
        "---",
        f"title: {project} Specifications",
        f"version: {version}",
        f"updated: {day}",
        "---",
        AUTO_START,
        "",
        f"# {project} Specifications",
        "",
        f"**Version:** {version} | **Last updated:** {day}",
        "",
        "## Contents",
        "",
        "| Section | Document | Summary |",
        "|---------|----------|---------|",
    ]
    for entry in sorted(entries, key=lambda e: e.path):
        summary = " ".join(entry.summary.split()).replace("|", "\\|")
        lines.append(
            f"| {entry.title} | [{entry.path}]({generated_path(entry.path)}) | {summary} |"
        )
    lines.extend([
        "",
        AUTO_END,
        "",
        MANUAL_START,
        extract_manual(existing).strip("\n"),
        MANUAL_END,
        "",
    ])
    return "\n".join(lines)
