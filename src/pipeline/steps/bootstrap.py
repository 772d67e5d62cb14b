# src/pipeline/steps/bootstrap.py — v1
"""Bootstrap step: repository structure and key-file excerpts.

Also holds the small repository helpers the orchestrator uses before a
run starts: repository kind detection and the textual tree.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from specswarm.config.steps import BOOTSTRAP, key_files_for
from specswarm.pipeline.plugin_kit.base_step import BaseStep, StepContext
from specswarm.pipeline.plugin_kit.models import StepOutput, StepResult

logger = logging.getLogger(__name__)

IGNORED_DIRS: frozenset[str] = frozenset({
    ".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build",
    ".mypy_cache", ".pytest_cache", ".tox", ".idea", ".vscode", "coverage",
})


def detect_repo_type(base_dir: Path) -> str:
    """Classify a repository as monorepo, fullstack, python, node or generic."""
    package_json = base_dir / "package.json"
    if (base_dir / "pnpm-workspace.yaml").exists() or (base_dir / "lerna.json").exists():
        return "monorepo"
    if package_json.exists():
        try:
            if "workspaces" in json.loads(package_json.read_text(encoding="utf-8")):
                return "monorepo"
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            logger.debug("Unreadable package.json: %s", exc)
    if (base_dir / "backend").is_dir() and (base_dir / "frontend").is_dir():
        return "fullstack"
    if any((base_dir / f).exists() for f in ("pyproject.toml", "setup.py", "setup.cfg")):
        return "python"
    if package_json.exists():
        return "node"
    return "generic"


def render_tree(base_dir: Path, max_depth: int = 3, max_entries: int = 400) -> str:
    """Indented listing of the repository, directories first."""
    lines = [f"{base_dir.name}/"]

    def walk(folder: Path, depth: int) -> None:
        if depth > max_depth or len(lines) >= max_entries:
            return
        try:
            entries = sorted(folder.iterdir(), key=lambda p: (not p.is_dir(), p.name.lower()))
        except OSError as exc:
            logger.debug("Cannot list %s: %s", folder, exc)
            return
        for entry in entries:
            if entry.name in IGNORED_DIRS:
                continue
            if len(lines) >= max_entries:
                lines.append("  " * depth + "...")
                return
            if entry.is_dir():
                lines.append("  " * depth + f"{entry.name}/")
                walk(entry, depth + 1)
            else:
                lines.append("  " * depth + entry.name)

    walk(base_dir, 1)
    return "\n".join(lines)


class BootstrapStep(BaseStep):
    """Load key files for the repository kind into the shared context."""

    def __init__(self, key_file_max_chars: int = 5000, ignore: frozenset[str] = frozenset()) -> None:
        self._max_chars = key_file_max_chars
        self._ignore = ignore

    @property
    def id(self) -> str:
        return BOOTSTRAP

    @property
    def description(self) -> str:
        return "Collect repository structure and key-file excerpts"

    async def execute(self, ctx: StepContext) -> StepResult:
        shared = ctx.shared
        if not shared.structure:
            shared.structure = render_tree(shared.base_dir)

        loaded: list[str] = []
        for rule in key_files_for(ctx.repo_type).files:
            if rule.path in self._ignore:
                continue
            path = shared.base_dir / rule.path
            if not path.is_file():
                continue
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning("Skipping key file %s: %s", rule.path, exc)
                continue
            shared.add_file(rule.path, content, min(rule.max_chars, self._max_chars))
            loaded.append(rule.path)

        logger.info("Loaded %d key files for %s repository", len(loaded), ctx.repo_type)
        return StepResult.ok(
            StepOutput(
                step_id=self.id,
                summary=f"{ctx.repo_type} repository; key files: {', '.join(loaded) or 'none'}",
                full_content=shared.structure,
            )
        )
