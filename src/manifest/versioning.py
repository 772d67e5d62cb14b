# src/manifest/versioning.py — v1
"""Semantic version helpers and the version-bump rule."""

from __future__ import annotations

import re
from collections.abc import Mapping
from typing import Literal, NamedTuple

BumpKind = Literal["major", "minor", "patch"]

_SEMVER_RE = re.compile(r"^v?(\d+)\.(\d+)\.(\d+)$")


class SemVer(NamedTuple):
    major: int
    minor: int
    patch: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def parse_version(version: str) -> SemVer:
    """Parse 'X.Y.Z' (optionally 'vX.Y.Z').

    Raises:
        ValueError: If the string is not a semantic version.
    """
    match = _SEMVER_RE.match(version.strip())
    if not match:
        raise ValueError(f"Invalid semantic version: {version!r}")
    return SemVer(*(int(part) for part in match.groups()))


def format_version(version: SemVer) -> str:
    return str(version)


def next_version(current: str, bump: BumpKind) -> str:
    """Apply a bump to a version string."""
    v = parse_version(current)
    if bump == "major":
        return str(SemVer(v.major + 1, 0, 0))
    if bump == "minor":
        return str(SemVer(v.major, v.minor + 1, 0))
    return str(SemVer(v.major, v.minor, v.patch + 1))


def get_version_bump(
    previous: Mapping[str, str] | None,
    current: Mapping[str, str] | None,
) -> BumpKind:
    """Classify the change between two step-id -> path mappings.

    Any removed key is major; otherwise any added key or changed path is
    minor; otherwise patch.
    """
    old = dict(previous or {})
    new = dict(current or {})
    if set(old) - set(new):
        return "major"
    if set(new) - set(old):
        return "minor"
    if any(old[key] != new[key] for key in old):
        return "minor"
    return "patch"
