# tests/unit/manifest/test_versioning.py — v1
"""Tests for manifest/versioning.py."""

from __future__ import annotations

import pytest

from specswarm.manifest.versioning import get_version_bump, next_version, parse_version


class TestParse:
    def test_plain_and_prefixed(self):
        assert parse_version("1.2.3") == (1, 2, 3)
        assert parse_version("v0.0.1") == (0, 0, 1)

    @pytest.mark.parametrize("bad", ["1.2", "a.b.c", "1.2.3-beta", ""])
    def test_invalid(self, bad):
        with pytest.raises(ValueError):
            parse_version(bad)


class TestNextVersion:
    def test_bumps(self):
        assert next_version("1.4.2", "major") == "2.0.0"
        assert next_version("1.4.2", "minor") == "1.5.0"
        assert next_version("1.4.2", "patch") == "1.4.3"


class TestVersionBump:
    def test_removed_key_is_major(self):
        assert get_version_bump({"a": "x.md", "b": "y.md"}, {"a": "x.md", "c": "z.md"}) == "major"

    def test_added_key_is_minor(self):
        assert get_version_bump({"a": "x.md"}, {"a": "x.md", "b": "y.md"}) == "minor"

    def test_moved_path_is_minor(self):
        assert get_version_bump({"a": "x.md"}, {"a": "sub/x.md"}) == "minor"

    def test_identical_is_patch(self):
        assert get_version_bump({"a": "x.md"}, {"a": "x.md"}) == "patch"

    def test_order_independent(self):
        old = {"a": "1.md", "b": "2.md"}
        new = {"b": "2.md", "a": "1.md"}
        assert get_version_bump(old, new) == "patch"

    def test_none_mappings(self):
        assert get_version_bump(None, None) == "patch"
        assert get_version_bump(None, {"a": "x.md"}) == "minor"
        assert get_version_bump({"a": "x.md"}, None) == "major"
