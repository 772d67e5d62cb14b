# tests/unit/manifest/test_report.py — v1
"""Tests for manifest/report.py: comparison, rendering and parsing."""

from __future__ import annotations

import pytest

from specswarm.manifest.errors import ReportParseError
from specswarm.manifest.report import (
    AuditReport,
    AuditSummary,
    ReportMeta,
    compare_content,
    compare_specs,
    extract_sections,
    normalize_content,
    parse_report,
    render_report,
)

DOC = (
    "---\ntitle: API\ngenerated: 2026-01-01\n---\n\n"
    "# API\n\n"
    "## Executive Summary\n\nREST endpoints.\n\n"
    "## Endpoints\n\nGET /items\n"
)


def build_report(changes) -> AuditReport:
    return AuditReport(
        meta=ReportMeta(
            uid="abc123",
            repo_sha="deadbeef",
            repo_branch="main",
            current_version="1.0.0",
            proposed_version="1.0.1",
            total_changes=sum(c.change_count for c in changes),
            affected_files=[c.store_path for c in changes],
            removed_files=[c.store_path for c in changes if c.status == "removed"],
        ),
        summary=AuditSummary.from_changes(changes),
        changes=changes,
    )


class TestNormalize:
    def test_dates_versions_case_whitespace(self):
        a = "Generated 2026-01-01 for v1.2.3\n\nHello   World"
        b = "generated 2027-05-09 for v2.0.0 hello world"
        assert normalize_content(a) == normalize_content(b)


class TestSections:
    def test_frontmatter_removed(self):
        sections = extract_sections(DOC)
        assert list(sections) == ["Executive Summary", "Endpoints"]
        assert "title: API" not in "".join(sections.values())


class TestCompareContent:
    def test_identical_modulo_noise(self):
        assert compare_content(DOC, DOC.replace("2026-01-01", "2026-02-02")).change_count == 0

    def test_added_removed_modified(self):
        fresh = DOC.replace("GET /items", "GET /items\nPOST /items") + "\n## Auth\n\nTokens.\n"
        fresh = fresh.replace("## Executive Summary\n\nREST endpoints.\n\n", "")
        change = compare_content(DOC, fresh)
        assert [i.item for i in change.added] == ["Auth"]
        assert [i.item for i in change.removed] == ["Executive Summary"]
        assert [i.item for i in change.modified] == ["Endpoints"]
        assert change.modified[0].description.startswith("Content expanded by")

    def test_content_outside_sections(self):
        change = compare_content("# Title\n\nOne", "# Title\n\nTwo")
        assert [i.item for i in change.modified] == ["content"]


class TestCompareSpecs:
    def test_only_drifted_files_listed(self):
        existing = {"a.md": DOC, "b.md": DOC, "gone.md": DOC}
        fresh = {"a.md": DOC, "b.md": DOC + "\n## New\n\nx\n", "new.md": DOC}
        changes = compare_specs(existing, fresh)
        assert [c.file for c in changes] == ["b.md", "gone.md", "new.md"]
        statuses = {c.file: c.status for c in changes}
        assert statuses == {"b.md": "modified", "gone.md": "removed", "new.md": "added"}


class TestRenderParse:
    def test_frontmatter_round_trip(self):
        changes = compare_specs(
            {"03-api/endpoints.md": DOC, "01-domain/events.md": DOC},
            {"03-api/endpoints.md": DOC + "\n## New\n\nx\n"},
        )
        text = render_report(build_report(changes))
        parsed = parse_report(text)
        assert parsed.current_version == "1.0.0"
        assert parsed.proposed_version == "1.0.1"
        assert parsed.repo_sha == "deadbeef"
        assert parsed.affected_files == [
            "_generated/01-domain/events.md",
            "_generated/03-api/endpoints.md",
        ]
        assert parsed.removed_files == ["_generated/01-domain/events.md"]
        assert text.count("### _generated/") == 2

    def test_no_changes(self):
        text = render_report(build_report([]))
        assert "No changes detected." in text
        assert parse_report(text).affected_files == []

    def test_prose_fallback(self):
        text = (
            "# Spec Audit Report\n\n"
            "This audit detected **3 changes** across 2 files.\n\n"
            "## Version Change\n\n"
            "- **Current version:** 1.2.0\n"
            "- **Proposed version:** 1.3.0 (minor)\n\n"
            "## Changes by File\n\n"
            "### _generated/03-api/endpoints.md\n\n#### ADDED\n\n"
            "### _generated/04-data/database.md\n\n"
            "## Metadata\n\n"
            "- **Repo SHA:** cafe123\n"
            "- **Repo Branch:** develop\n"
        )
        parsed = parse_report(text)
        assert parsed.current_version == "1.2.0"
        assert parsed.proposed_version == "1.3.0"
        assert parsed.total_changes == 3
        assert parsed.repo_branch == "develop"
        assert parsed.affected_files == [
            "_generated/03-api/endpoints.md",
            "_generated/04-data/database.md",
        ]

    def test_unparseable(self):
        with pytest.raises(ReportParseError):
            parse_report("# Just a heading\n")

    def test_parse_error_is_value_error(self):
        with pytest.raises(ValueError):
            parse_report("---\nproposed_version: 1.0.1\n---\n")
