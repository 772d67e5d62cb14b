# src/vcs/base_client.py — v1
"""Abstract version-control interface.

Covers what the lifecycle manager needs from git and the repository
hosting CLI. Every method takes the working copy it operates on, so one
client serves both the primary repository and the artifact store.
"""

from __future__ import annotations

import asyncio
import re
from abc import ABC, abstractmethod
from pathlib import Path


class BaseVCSClient(ABC):
    """Unified interface for version-control backends."""

    def __init__(self) -> None:
        self._locks: dict[Path, asyncio.Lock] = {}

    def repo_lock(self, repo: Path) -> asyncio.Lock:
        """Lock serialising mutating sequences (stage, commit, push) per repository."""
        key = Path(repo).resolve()
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    @abstractmethod
    async def is_repository(self, repo: Path) -> bool:
        """Whether the folder is a git working copy (.git file or directory)."""

    @abstractmethod
    async def clone_or_update(self, url: str, dest: Path, branch: str = "main") -> None:
        """Clone url into dest, or fetch and fast-forward if dest exists."""

    @abstractmethod
    async def submodule_paths(self, repo: Path) -> list[str]:
        """Paths declared in the repository's .gitmodules."""

    @abstractmethod
    async def add_submodule(
        self, repo: Path, url: str, path: str, branch: str = "main"
    ) -> None:
        """Link a remote repository as a submodule at path."""

    @abstractmethod
    async def init_submodule(self, repo: Path, path: str) -> None:
        """Initialise and check out a declared submodule."""

    @abstractmethod
    async def stage_all(self, repo: Path) -> None:
        """Stage every change in the working copy."""

    @abstractmethod
    async def stage_path(self, repo: Path, path: str) -> None:
        """Stage one path (e.g. a submodule pointer)."""

    @abstractmethod
    async def commit(self, repo: Path, message: str) -> str | None:
        """Commit staged changes. Returns the new sha, or None if nothing to commit."""

    @abstractmethod
    async def push(self, repo: Path, branch: str) -> None:
        """Push branch to origin."""

    @abstractmethod
    async def remote_url(self, repo: Path) -> str | None:
        """URL of the origin remote, if any."""

    @abstractmethod
    async def commit_sha(self, repo: Path) -> str:
        """Current HEAD sha ("unknown" if unavailable)."""

    @abstractmethod
    async def branch(self, repo: Path) -> str:
        """Current branch name ("main" if unavailable)."""

    @abstractmethod
    async def has_changes(self, repo: Path, path: str | None = None) -> bool:
        """Whether the working copy (or one path in it) has uncommitted changes."""

    @abstractmethod
    async def is_gh_available(self) -> bool:
        """Whether the repository hosting CLI is installed."""

    @abstractmethod
    async def create_remote_repo(
        self, owner: str, name: str, private: bool = True, description: str = ""
    ) -> str:
        """Create a hosted repository and return its clone URL."""


_GITHUB_OWNER_RE = re.compile(r"github\.com[:/]([^/]+)/")


def extract_github_owner(remote_url: str | None) -> str | None:
    """Owner segment of a GitHub remote (https or ssh form)."""
    if not remote_url:
        return None
    match = _GITHUB_OWNER_RE.search(remote_url)
    return match.group(1) if match else None


def extract_project_name(remote_url: str | None, fallback: str = "project") -> str:
    """Repository name from a remote URL, without the .git suffix."""
    if not remote_url:
        return fallback
    name = remote_url.rstrip("/").rsplit("/", 1)[-1].rsplit(":", 1)[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    return name or fallback
