# tests/unit/vcs/test_git_client.py — v1
"""Tests for vcs/git_client.py and vcs/base_client.py: mocked subprocesses."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from specswarm.vcs.base_client import extract_github_owner, extract_project_name
from specswarm.vcs.git_client import GitClient, GitCommandError

EXEC = "specswarm.vcs.git_client.asyncio.create_subprocess_exec"


def process(returncode: int = 0, stdout: str = "", stderr: str = "") -> MagicMock:
    proc = MagicMock()
    proc.returncode = returncode
    proc.communicate = AsyncMock(return_value=(stdout.encode(), stderr.encode()))
    return proc


class TestRemoteHelpers:
    @pytest.mark.parametrize("url,owner", [
        ("git@github.com:acme/shop.git", "acme"),
        ("https://github.com/acme/shop", "acme"),
        ("https://gitlab.com/acme/shop.git", None),
        (None, None),
    ])
    def test_owner(self, url, owner):
        assert extract_github_owner(url) == owner

    @pytest.mark.parametrize("url,name", [
        ("git@github.com:acme/shop.git", "shop"),
        ("https://github.com/acme/shop/", "shop"),
        ("git@host:shop.git", "shop"),
        (None, "fallback"),
    ])
    def test_project_name(self, url, name):
        assert extract_project_name(url, fallback="fallback") == name


class TestGitClient:
    @pytest.mark.asyncio
    async def test_commit_returns_sha(self, tmp_path):
        with patch(EXEC, AsyncMock(side_effect=[process(), process(stdout="abc123\n")])) as run:
            sha = await GitClient().commit(tmp_path, "msg")
        assert sha == "abc123"
        assert run.call_args_list[0].args == ("git", "commit", "-m", "msg")
        assert run.call_args_list[0].kwargs["cwd"] == str(tmp_path)

    @pytest.mark.asyncio
    async def test_nothing_to_commit(self, tmp_path):
        proc = process(1, stdout="nothing to commit, working tree clean")
        with patch(EXEC, AsyncMock(return_value=proc)):
            assert await GitClient().commit(tmp_path, "msg") is None

    @pytest.mark.asyncio
    async def test_commit_failure(self, tmp_path):
        with patch(EXEC, AsyncMock(return_value=process(128, stderr="fatal: bad"))):
            with pytest.raises(GitCommandError, match="fatal: bad") as exc_info:
                await GitClient().commit(tmp_path, "msg")
        assert exc_info.value.returncode == 128

    @pytest.mark.asyncio
    async def test_commit_sha_unknown_on_failure(self, tmp_path):
        with patch(EXEC, AsyncMock(return_value=process(128))):
            assert await GitClient().commit_sha(tmp_path) == "unknown"

    @pytest.mark.asyncio
    async def test_detached_head_branch(self, tmp_path):
        with patch(EXEC, AsyncMock(return_value=process(stdout="HEAD"))):
            assert await GitClient().branch(tmp_path) == "main"

    @pytest.mark.asyncio
    async def test_has_changes_scoped(self, tmp_path):
        with patch(EXEC, AsyncMock(return_value=process(stdout=" M specs"))) as run:
            assert await GitClient().has_changes(tmp_path, "specs") is True
        assert run.call_args.args == ("git", "status", "--porcelain", "--", "specs")

    @pytest.mark.asyncio
    async def test_submodule_paths(self, tmp_path):
        (tmp_path / ".gitmodules").write_text("[submodule]\n", encoding="utf-8")
        out = "submodule.specs.path specs\nsubmodule.docs/x.path docs/x"
        with patch(EXEC, AsyncMock(return_value=process(stdout=out))):
            assert await GitClient().submodule_paths(tmp_path) == ["specs", "docs/x"]

    @pytest.mark.asyncio
    async def test_no_gitmodules(self, tmp_path):
        with patch(EXEC, AsyncMock()) as run:
            assert await GitClient().submodule_paths(tmp_path) == []
        run.assert_not_called()

    @pytest.mark.asyncio
    async def test_gh_missing(self):
        with patch(EXEC, AsyncMock(side_effect=FileNotFoundError("gh"))):
            assert await GitClient().is_gh_available() is False

    @pytest.mark.asyncio
    async def test_create_remote_repo(self):
        with patch(EXEC, AsyncMock(return_value=process())) as run:
            url = await GitClient().create_remote_repo("acme", "shop-specs", private=False)
        assert url == "git@github.com:acme/shop-specs.git"
        args = run.call_args.args
        assert args[:4] == ("gh", "repo", "create", "acme/shop-specs")
        assert "--public" in args

    @pytest.mark.asyncio
    async def test_create_remote_repo_exists(self):
        proc = process(1, stderr="GraphQL: Name already exists on this account")
        with patch(EXEC, AsyncMock(return_value=proc)):
            url = await GitClient().create_remote_repo("acme", "shop-specs")
        assert url == "git@github.com:acme/shop-specs.git"

    @pytest.mark.asyncio
    async def test_clone_when_absent(self, tmp_path):
        dest = tmp_path / "clone"
        with patch(EXEC, AsyncMock(return_value=process())) as run:
            await GitClient().clone_or_update("git@github.com:acme/x.git", dest, "dev")
        assert run.call_args.args == (
            "git", "clone", "--branch", "dev", "git@github.com:acme/x.git", str(dest)
        )

    @pytest.mark.asyncio
    async def test_update_when_present(self, tmp_path):
        (tmp_path / ".git").mkdir()
        with patch(EXEC, AsyncMock(return_value=process())) as run:
            await GitClient().clone_or_update("url", tmp_path)
        calls = [c.args[1:] for c in run.call_args_list]
        assert calls == [("fetch", "origin", "main"), ("merge", "--ff-only", "origin/main")]

    def test_repo_lock_shared_per_path(self, tmp_path):
        client = GitClient()
        assert client.repo_lock(tmp_path) is client.repo_lock(Path(str(tmp_path) + "/"))
        assert client.repo_lock(tmp_path) is not client.repo_lock(tmp_path / "other")
