# tests/conftest.py — v2
"""Shared test fixtures for all unit and integration tests.

Provides a scripted LLM client, an in-memory version-control client and
temporary primary repositories with an artifact store folder.
No external processes: git, gh and LLM providers are all faked.
"""

from __future__ import annotations

import itertools
from pathlib import Path

import pytest

from specswarm.config.settings import Settings
from specswarm.llm.base_client import BaseLLMClient
from specswarm.llm.models import LLMResponse, Message
from specswarm.vcs.base_client import BaseVCSClient


def spec_markdown(title: str, summary: str, details: str = "Details.") -> str:
    """Markdown shaped like an analysis step response."""
    return (
        f"# {title}\n\n"
        f"## Executive Summary\n\n{summary}\n\n"
        f"## Details\n\n{details}\n"
    )


# === Fake LLM ===


class FakeLLM:
    """Scripted LLM provider. Responses are keyed by step id.

    Calling it with a step id returns a client bound to that step, the
    same shape LLMFactory has.
    """

    def __init__(
        self,
        responses: dict[str, str] | None = None,
        failures: dict[str, Exception] | None = None,
    ) -> None:
        self.responses = responses or {}
        self.failures = failures or {}
        self.calls: list[tuple[str, list[Message], str | None]] = []

    def __call__(self, step_id: str) -> FakeStepClient:
        return FakeStepClient(self, step_id)

    @property
    def called_steps(self) -> list[str]:
        return [c[0] for c in self.calls]

    def prompt_for(self, step_id: str) -> str:
        for called, messages, _system in self.calls:
            if called == step_id:
                return messages[-1].content
        raise KeyError(step_id)


class FakeStepClient(BaseLLMClient):
    def __init__(self, script: FakeLLM, step_id: str) -> None:
        self._script = script
        self._step_id = step_id

    @property
    def provider_name(self) -> str:
        return "fake"

    async def complete(
        self,
        messages: list[Message],
        system: str | None = None,
        max_tokens: int = 4096,
        temperature: float = 0.2,
    ) -> LLMResponse:
        script = self._script
        script.calls.append((self._step_id, messages, system))
        if self._step_id in script.failures:
            raise script.failures[self._step_id]
        content = script.responses.get(
            self._step_id, spec_markdown(self._step_id, f"Summary of {self._step_id}.")
        )
        return LLMResponse(
            content=content,
            input_tokens=100,
            output_tokens=50,
            model="fake-model",
            provider="fake",
        )


# === Fake VCS ===


class FakeVCS(BaseVCSClient):
    """In-memory version-control client recording every call."""

    def __init__(
        self,
        submodules: list[str] | None = None,
        gh_available: bool = True,
        remotes: dict[Path, str] | None = None,
    ) -> None:
        super().__init__()
        self.submodules = list(submodules or [])
        self.gh_available = gh_available
        self.remotes = {Path(k).resolve(): v for k, v in (remotes or {}).items()}
        self.repositories: set[Path] = set()
        self.calls: list[tuple] = []
        self.created_repos: list[str] = []
        self.nothing_to_commit = False
        # (repo, path) pairs reported as having no changes; path None is the whole repo.
        self.unchanged: set[tuple[Path, str | None]] = set()
        self._sha = itertools.count(1)

    def _log(self, *call: object) -> None:
        self.calls.append(call)

    def calls_named(self, name: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == name]

    async def is_repository(self, repo: Path) -> bool:
        return Path(repo).resolve() in self.repositories or (Path(repo) / ".git").exists()

    async def clone_or_update(self, url: str, dest: Path, branch: str = "main") -> None:
        self._log("clone_or_update", url, Path(dest), branch)
        Path(dest).mkdir(parents=True, exist_ok=True)
        self.repositories.add(Path(dest).resolve())

    async def submodule_paths(self, repo: Path) -> list[str]:
        return list(self.submodules)

    async def add_submodule(self, repo: Path, url: str, path: str, branch: str = "main") -> None:
        self._log("add_submodule", Path(repo), url, path, branch)
        (Path(repo) / path).mkdir(parents=True, exist_ok=True)
        self.submodules.append(path)
        self.repositories.add((Path(repo) / path).resolve())

    async def init_submodule(self, repo: Path, path: str) -> None:
        self._log("init_submodule", Path(repo), path)
        (Path(repo) / path).mkdir(parents=True, exist_ok=True)
        self.repositories.add((Path(repo) / path).resolve())

    async def stage_all(self, repo: Path) -> None:
        self._log("stage_all", Path(repo))

    async def stage_path(self, repo: Path, path: str) -> None:
        self._log("stage_path", Path(repo), path)

    async def commit(self, repo: Path, message: str) -> str | None:
        self._log("commit", Path(repo), message)
        if self.nothing_to_commit:
            return None
        return f"{next(self._sha):040x}"

    async def push(self, repo: Path, branch: str) -> None:
        self._log("push", Path(repo), branch)

    async def remote_url(self, repo: Path) -> str | None:
        return self.remotes.get(Path(repo).resolve())

    async def commit_sha(self, repo: Path) -> str:
        return "abc1234def"

    async def branch(self, repo: Path) -> str:
        return "main"

    async def has_changes(self, repo: Path, path: str | None = None) -> bool:
        return (Path(repo).resolve(), path) not in self.unchanged

    async def is_gh_available(self) -> bool:
        return self.gh_available

    async def create_remote_repo(
        self, owner: str, name: str, private: bool = True, description: str = ""
    ) -> str:
        self._log("create_remote_repo", owner, name, private)
        url = f"git@github.com:{owner}/{name}.git"
        self.created_repos.append(url)
        return url


# === FIXTURES ===


@pytest.fixture
def settings() -> Settings:
    """Settings independent of any local .env file."""
    return Settings(_env_file=None, github_owner="acme", auto_push=True)


@pytest.fixture
def fake_llm() -> FakeLLM:
    return FakeLLM()


@pytest.fixture
def primary_repo(tmp_path: Path) -> Path:
    """Primary repository with a README and a pyproject, registered as a git repo."""
    repo = tmp_path / "shop"
    repo.mkdir()
    (repo / "README.md").write_text("# Shop\n\nA small web shop.\n", encoding="utf-8")
    (repo / "pyproject.toml").write_text('[project]\nname = "shop"\n', encoding="utf-8")
    (repo / "app").mkdir()
    (repo / "app" / "main.py").write_text("print('hello')\n", encoding="utf-8")
    return repo


@pytest.fixture
def fake_vcs(primary_repo: Path) -> FakeVCS:
    vcs = FakeVCS(remotes={primary_repo: "git@github.com:acme/shop.git"})
    vcs.repositories.add(primary_repo.resolve())
    return vcs


@pytest.fixture
def markdown():
    """Builder for analysis-shaped Markdown."""
    return spec_markdown


@pytest.fixture
def vcs_factory():
    """Build additional FakeVCS instances."""
    return FakeVCS
