# tests/unit/manifest/test_index.py — v1
"""Tests for manifest/index.py."""

from __future__ import annotations

from datetime import datetime, timezone

from specswarm.manifest.index import (
    AUTO_END,
    AUTO_START,
    MANUAL_END,
    MANUAL_START,
    IndexEntry,
    extract_manual,
    render_index,
)

WHEN = datetime(2026, 3, 4, tzinfo=timezone.utc)


def entries() -> list[IndexEntry]:
    return [
        IndexEntry(step_id="api", title="API", path="03-api/endpoints.md", summary="REST | JSON"),
        IndexEntry(step_id="overview", title="Overview", path="00-foundation/overview.md"),
    ]


class TestRenderIndex:
    def test_structure(self):
        text = render_index("shop", "1.0.0", entries(), WHEN)
        assert text.startswith("---\ntitle: shop Specifications\nversion: 1.0.0\nupdated: 2026-03-04\n---")
        assert text.index(AUTO_START) < text.index(AUTO_END) < text.index(MANUAL_START)
        assert "[03-api/endpoints.md](_generated/03-api/endpoints.md)" in text
        assert "REST \\| JSON" in text

    def test_entries_sorted_by_path(self):
        text = render_index("shop", "1.0.0", entries(), WHEN)
        assert text.index("00-foundation/overview.md") < text.index("03-api/endpoints.md")

    def test_manual_section_preserved(self):
        first = render_index("shop", "1.0.0", entries(), WHEN)
        edited = first.replace(
            extract_manual(first), "\nOur team notes.\n"
        )
        second = render_index("shop", "1.1.0", entries()[:1], WHEN, existing=edited)
        assert "Our team notes." in second
        assert "version: 1.1.0" in second
        assert second.count(MANUAL_END) == 1


class TestExtractManual:
    def test_default_when_missing(self):
        assert "preserved" in extract_manual(None)
        assert "preserved" in extract_manual("# no markers")

    def test_body_between_markers(self):
        text = f"x\n{MANUAL_START}\nmine\n{MANUAL_END}\n"
        assert extract_manual(text) == "\nmine\n"
