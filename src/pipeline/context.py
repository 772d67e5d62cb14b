# src/pipeline/context.py — v2
"""SharedContext: run-scoped accumulator of file excerpts and step outputs.

Steps append to it; downstream steps read it through view builders that
keep prompts token-bounded (dependency summaries rather than full content).
"""

from __future__ import annotations

import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from specswarm.pipeline.plugin_kit.models import PromptProvenance, StepOutput

DEFAULT_SUMMARY_MAX_CHARS = 500
DEFAULT_EXCERPT_MAX_CHARS = 5000

_FRONTMATTER_RE = re.compile(r"^---\s*\n.*?\n---\s*\n", re.DOTALL)
_EXEC_SUMMARY_RE = re.compile(
    r"^##\s+Executive Summary\s*\n(.*?)(?=^##\s|\Z)", re.MULTILINE | re.DOTALL
)


class FileExcerpt(BaseModel):
    model_config = ConfigDict(frozen=True)

    path: str
    content: str
    truncated: bool = False


class ContextSnapshot(BaseModel):
    """Immutable, serialisable view of a SharedContext for audit trails."""

    model_config = ConfigDict(frozen=True)

    project: str
    repo_type: str
    base_dir: str
    started_at: datetime
    elapsed_ms: int
    steps_with_output: tuple[str, ...] = ()
    files: tuple[FileExcerpt, ...] = ()
    outputs: tuple[StepOutput, ...] = ()
    provenance: tuple[PromptProvenance, ...] = Field(default_factory=tuple)


def extract_summary(content: str, max_chars: int = DEFAULT_SUMMARY_MAX_CHARS) -> str:
    """Derive a short summary from a Markdown artifact.

    Prefers the body of an "## Executive Summary" section, otherwise the
    first prose paragraph after any YAML frontmatter and headings.
    """
    body = _FRONTMATTER_RE.sub("", content, count=1)
    match = _EXEC_SUMMARY_RE.search(body)
    if match and match.group(1).strip():
        text = match.group(1).strip()
    else:
        text = ""
        for block in re.split(r"\n\s*\n", body):
            block = block.strip()
            if block and not block.startswith("#"):
                text = block
                break
    text = " ".join(text.split())
    return _clip(text, max_chars)


def _clip(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    if max_chars <= 3:
        return text[:max_chars]
    return text[: max_chars - 3].rstrip() + "..."


class SharedContext:
    """Append-only knowledge accumulated during one scheduler run.

    Args:
        project: Project slug used in prompts and snapshots.
        repo_type: Detected repository kind (generic, python, fullstack...).
        base_dir: Root of the analysed repository.
        structure: Pre-rendered repository tree.
        summary_max_chars: Upper bound enforced on every registered summary.
    """

    def __init__(
        self,
        project: str,
        repo_type: str = "generic",
        base_dir: str | Path = ".",
        structure: str = "",
        summary_max_chars: int = DEFAULT_SUMMARY_MAX_CHARS,
    ) -> None:
        self.project = project
        self.repo_type = repo_type
        self.base_dir = Path(base_dir)
        self.structure = structure
        self.summary_max_chars = summary_max_chars
        self.started_at = datetime.now(timezone.utc)
        self._start = time.monotonic()
        self._files: dict[str, FileExcerpt] = {}
        self._outputs: dict[str, StepOutput] = {}
        self._provenance: list[PromptProvenance] = []

    # --- File excerpts ---

    def add_file(
        self, path: str, content: str, max_chars: int = DEFAULT_EXCERPT_MAX_CHARS
    ) -> FileExcerpt:
        """Store a (possibly truncated) excerpt of a file."""
        excerpt = FileExcerpt(
            path=path,
            content=content[:max_chars],
            truncated=len(content) > max_chars,
        )
        self._files[path] = excerpt
        return excerpt

    def get_file(self, path: str) -> FileExcerpt | None:
        return self._files.get(path)

    @property
    def files(self) -> dict[str, FileExcerpt]:
        return dict(self._files)

    # --- Step outputs ---

    def register_output(self, output: StepOutput) -> StepOutput:
        """Record a step's output.

        The latest registration for a step id wins for lookups; the
        provenance log keeps every registration.
        """
        summary = output.summary or extract_summary(
            output.full_content, self.summary_max_chars
        )
        summary = _clip(summary, self.summary_max_chars)
        if summary != output.summary:
            output = output.model_copy(update={"summary": summary})
        self._outputs[output.step_id] = output
        if output.provenance is not None:
            self._provenance.append(output.provenance)
        return output

    def has_output(self, step_id: str) -> bool:
        return step_id in self._outputs

    def get_output(self, step_id: str) -> StepOutput | None:
        return self._outputs.get(step_id)

    def get_outputs(self, step_ids: list[str]) -> list[StepOutput]:
        return [self._outputs[s] for s in step_ids if s in self._outputs]

    @property
    def outputs(self) -> dict[str, StepOutput]:
        return dict(self._outputs)

    @property
    def executed_step_ids(self) -> list[str]:
        return list(self._outputs)

    @property
    def provenance(self) -> list[PromptProvenance]:
        return list(self._provenance)

    # --- Views ---

    def summaries(self, step_ids: list[str]) -> str:
        return "\n\n".join(
            f"## {o.step_id}\n{o.summary}" for o in self.get_outputs(step_ids)
        )

    def build_context_for(self, dependency_ids: list[str]) -> str:
        """File excerpts plus the summaries of the named dependencies only.

        Dependencies without output (skipped, failed) are silently omitted.
        """
        parts = [f"## Repository Structure\n```\n{self.structure}\n```"]

        if self._files:
            parts.append("\n## Key Files\n")
            for path, excerpt in self._files.items():
                note = " (truncated)" if excerpt.truncated else ""
                parts.append(f"### {path}{note}\n```\n{excerpt.content}\n```")

        summaries = self.summaries(dependency_ids)
        if summaries:
            parts.append("\n## Previous Analysis Results\n")
            parts.append(summaries)

        return "\n".join(parts)

    def build_full_context(self, include_content: bool = False) -> str:
        """File excerpts plus everything produced so far.

        With include_content the full step outputs replace the summaries.
        """
        if not include_content:
            return self.build_context_for(self.executed_step_ids)
        parts = [self.build_context_for([])]
        if self._outputs:
            parts.append("\n## Previous Analysis Results\n")
            parts.extend(
                f"## {o.step_id}\n{o.full_content}" for o in self._outputs.values()
            )
        return "\n".join(parts)

    # --- Audit trail ---

    @property
    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self._start) * 1000)

    def to_snapshot(self) -> ContextSnapshot:
        return ContextSnapshot(
            project=self.project,
            repo_type=self.repo_type,
            base_dir=str(self.base_dir),
            started_at=self.started_at,
            elapsed_ms=self.elapsed_ms,
            steps_with_output=tuple(self._outputs),
            files=tuple(self._files.values()),
            outputs=tuple(self._outputs.values()),
            provenance=tuple(self._provenance),
        )

    def metadata(self) -> dict[str, Any]:
        """Compact run metadata (no file or output bodies)."""
        return {
            "project": self.project,
            "repo_type": self.repo_type,
            "base_dir": str(self.base_dir),
            "analysis_date": self.started_at.isoformat(),
            "duration_ms": self.elapsed_ms,
            "steps_executed": self.executed_step_ids,
            "key_files_loaded": list(self._files),
            "prompt_versions": [p.model_dump() for p in self._provenance],
        }
