# src/vcs/git_client.py — v1
"""git + gh implementation of BaseVCSClient using asyncio subprocesses."""

from __future__ import annotations

import asyncio
import logging
import subprocess
from pathlib import Path

from specswarm.vcs.base_client import BaseVCSClient

logger = logging.getLogger(__name__)


class GitCommandError(RuntimeError):
    """Raised when a git or gh invocation exits non-zero."""

    def __init__(self, args: list[str], returncode: int, stderr: str) -> None:
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr
        super().__init__(
            f"{' '.join(args)} failed (exit {returncode}): {stderr.strip() or 'no output'}"
        )


class GitClient(BaseVCSClient):
    """Drive the git and gh executables."""

    def __init__(self, git: str = "git", gh: str = "gh") -> None:
        super().__init__()
        self._git = git
        self._gh = gh

    async def _run(
        self, args: list[str], cwd: Path | None = None, check: bool = True
    ) -> tuple[int, str, str]:
        logger.debug("exec %s (cwd=%s)", " ".join(args), cwd)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd) if cwd else None,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise GitCommandError(args, 127, f"{args[0]} not found") from exc
        stdout, stderr = await process.communicate()
        out = stdout.decode("utf-8", errors="replace").strip()
        err = stderr.decode("utf-8", errors="replace").strip()
        returncode = process.returncode if process.returncode is not None else -1
        if check and returncode != 0:
            raise GitCommandError(args, returncode, err or out)
        return returncode, out, err

    async def git(self, repo: Path, *args: str, check: bool = True) -> str:
        """Run a git subcommand inside repo and return stdout."""
        _, out, _ = await self._run([self._git, *args], cwd=repo, check=check)
        return out

    async def is_repository(self, repo: Path) -> bool:
        return (Path(repo) / ".git").exists()

    async def clone_or_update(self, url: str, dest: Path, branch: str = "main") -> None:
        dest = Path(dest)
        if await self.is_repository(dest):
            await self.git(dest, "fetch", "origin", branch)
            await self.git(dest, "merge", "--ff-only", f"origin/{branch}")
            return
        dest.parent.mkdir(parents=True, exist_ok=True)
        await self._run([self._git, "clone", "--branch", branch, url, str(dest)])

    async def submodule_paths(self, repo: Path) -> list[str]:
        if not (Path(repo) / ".gitmodules").exists():
            return []
        code, out, _ = await self._run(
            [self._git, "config", "--file", ".gitmodules", "--get-regexp", "path"],
            cwd=repo,
            check=False,
        )
        if code != 0:
            return []
        paths = []
        for line in out.splitlines():
            parts = line.split(maxsplit=1)
            if len(parts) == 2:
                paths.append(parts[1].strip())
        return paths

    async def add_submodule(
        self, repo: Path, url: str, path: str, branch: str = "main"
    ) -> None:
        await self.git(repo, "submodule", "add", "-b", branch, url, path)
        logger.info("Added submodule %s -> %s", path, url)

    async def init_submodule(self, repo: Path, path: str) -> None:
        await self.git(repo, "submodule", "update", "--init", "--recursive", path)
        logger.info("Initialized submodule %s", path)

    async def stage_all(self, repo: Path) -> None:
        await self.git(repo, "add", "-A")

    async def stage_path(self, repo: Path, path: str) -> None:
        await self.git(repo, "add", path)

    async def commit(self, repo: Path, message: str) -> str | None:
        code, out, err = await self._run(
            [self._git, "commit", "-m", message], cwd=repo, check=False
        )
        if code != 0:
            if "nothing to commit" in f"{out}\n{err}":
                logger.info("Nothing to commit in %s", repo)
                return None
            raise GitCommandError([self._git, "commit", "-m", message], code, err or out)
        return await self.commit_sha(repo)

    async def push(self, repo: Path, branch: str) -> None:
        await self.git(repo, "push", "origin", branch)
        logger.info("Pushed %s (%s)", repo, branch)

    async def remote_url(self, repo: Path) -> str | None:
        code, out, _ = await self._run(
            [self._git, "remote", "get-url", "origin"], cwd=repo, check=False
        )
        return out if code == 0 and out else None

    async def commit_sha(self, repo: Path) -> str:
        code, out, _ = await self._run(
            [self._git, "rev-parse", "HEAD"], cwd=repo, check=False
        )
        return out if code == 0 and out else "unknown"

    async def branch(self, repo: Path) -> str:
        code, out, _ = await self._run(
            [self._git, "rev-parse", "--abbrev-ref", "HEAD"], cwd=repo, check=False
        )
        return out if code == 0 and out and out != "HEAD" else "main"

    async def has_changes(self, repo: Path, path: str | None = None) -> bool:
        args = ["status", "--porcelain"]
        if path:
            args.extend(["--", path])
        return bool(await self.git(repo, *args))

    async def is_gh_available(self) -> bool:
        try:
            code, _, _ = await self._run([self._gh, "--version"], check=False)
        except GitCommandError:
            return False
        return code == 0

    async def create_remote_repo(
        self, owner: str, name: str, private: bool = True, description: str = ""
    ) -> str:
        args = [
            self._gh, "repo", "create", f"{owner}/{name}",
            "--private" if private else "--public",
            "--description", description or f"Specifications for {name}",
            "--clone=false",
        ]
        code, out, err = await self._run(args, check=False)
        if code != 0:
            if "already exists" not in f"{out}\n{err}":
                raise GitCommandError(args, code, err or out)
            logger.info("Remote repository %s/%s already exists", owner, name)
        return f"git@github.com:{owner}/{name}.git"
