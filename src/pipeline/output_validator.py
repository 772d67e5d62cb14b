# src/pipeline/output_validator.py — v1
"""Structural checks on Markdown artifacts before they enter the context.

Errors make an output unusable (no frontmatter, missing required fields,
empty body, unterminated code fence). Warnings flag content that is usable
but off-convention. With auto_fix, what can be repaired mechanically is
repaired and the checks run again on the repaired text.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any

import yaml
from pydantic import BaseModel

from specswarm.pipeline.diagrams import extract_diagrams, is_valid_mermaid
from specswarm.pipeline.plugin_kit.models import StepOutput

logger = logging.getLogger(__name__)

REQUIRED_FIELDS: tuple[str, ...] = ("title", "step", "generated")

_FRONTMATTER_RE = re.compile(r"\A---[ \t]*\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)
_FENCE_RE = re.compile(r"^(`{3,}|~{3,})\s*([\w+-]*)")


class OutputValidationError(ValueError):
    """Raised when an output still has errors after any auto-fix."""


class ValidationOutcome(BaseModel):
    valid: bool
    errors: list[str] = []
    warnings: list[str] = []
    content: str
    fixes: list[str] = []


class OutputValidator:
    """Validate (and optionally repair) analysis artifacts.

    Args:
        strict: Treat warnings as errors.
        auto_fix: Repair frontmatter and code fences where possible.
        titles: Step id -> title, used when frontmatter must be rebuilt.
    """

    def __init__(
        self,
        strict: bool = False,
        auto_fix: bool = True,
        titles: Mapping[str, str] | None = None,
    ) -> None:
        self.strict = strict
        self.auto_fix = auto_fix
        self._titles = dict(titles or {})

    def validate(self, content: str, step_id: str | None = None) -> ValidationOutcome:
        errors, warnings = self._check(content, step_id)
        fixes: list[str] = []
        if self.auto_fix and (errors or warnings):
            fixed, fixes = self._fix(content, step_id)
            if fixes:
                content = fixed
                errors, warnings = self._check(content, step_id)
        valid = not errors and (not self.strict or not warnings)
        return ValidationOutcome(
            valid=valid, errors=errors, warnings=warnings, content=content, fixes=fixes
        )

    def check_output(self, output: StepOutput) -> StepOutput:
        """Validate a step output that carries a Markdown artifact.

        Outputs without a .md file path pass through unchanged.

        Raises:
            OutputValidationError: The artifact is not usable.
        """
        if not output.file_path or not output.file_path.endswith(".md"):
            return output
        outcome = self.validate(output.full_content, output.step_id)
        for warning in outcome.warnings:
            logger.info("%s: %s", output.step_id, warning)
        if outcome.fixes:
            logger.info("%s: auto-fixed %s", output.step_id, ", ".join(outcome.fixes))
        if not outcome.valid:
            problems = outcome.errors + (outcome.warnings if self.strict else [])
            raise OutputValidationError("; ".join(problems))
        if outcome.content != output.full_content:
            return output.model_copy(update={"full_content": outcome.content})
        return output

    # --- Checks ---

    def _check(self, content: str, step_id: str | None) -> tuple[list[str], list[str]]:
        errors: list[str] = []
        warnings: list[str] = []

        meta, body = split_frontmatter(content)
        if meta is None:
            if content.startswith("---"):
                errors.append("Unclosed or invalid YAML frontmatter")
            else:
                errors.append("Missing YAML frontmatter")
        else:
            for name in REQUIRED_FIELDS:
                if not meta.get(name):
                    errors.append(f"Missing frontmatter field: {name}")
            if step_id and meta.get("step") and meta["step"] != step_id:
                errors.append(f"Frontmatter step {meta['step']!r} does not match {step_id!r}")

        if not body.strip():
            errors.append("Empty document body")

        open_fence, bare_fences = _scan_fences(body)
        if open_fence:
            errors.append("Unterminated code fence")
        if bare_fences:
            warnings.append(f"{bare_fences} code block(s) without a language tag")

        if "## Executive Summary" not in body:
            warnings.append("Missing '## Executive Summary' section")

        for diagram in extract_diagrams(body, validate=False):
            if not is_valid_mermaid(diagram.source):
                warnings.append(f"Mermaid block {diagram.index} is not valid Mermaid")

        return errors, warnings

    # --- Repairs ---

    def _fix(self, content: str, step_id: str | None) -> tuple[str, list[str]]:
        fixes: list[str] = []
        meta, body = split_frontmatter(content)

        if meta is None:
            # Invalid frontmatter is kept in the body rather than dropped.
            meta = {}
            body = content
            fixes.append("frontmatter added")
        defaults = {
            "title": self._titles.get(step_id or "", step_id or "Untitled"),
            "step": step_id or "unknown",
            "generated": datetime.now(timezone.utc).strftime("%Y-%m-%d"),
        }
        missing = [k for k in REQUIRED_FIELDS if not meta.get(k)]
        if missing and "frontmatter added" not in fixes:
            fixes.append(f"frontmatter fields filled: {', '.join(missing)}")
        for name in missing:
            meta[name] = defaults[name]
        if step_id and meta.get("step") != step_id:
            meta["step"] = step_id
            fixes.append("frontmatter step corrected")

        lines = body.split("\n")
        in_fence = False
        tagged = 0
        for i, line in enumerate(lines):
            match = _FENCE_RE.match(line.strip())
            if not match:
                continue
            if in_fence:
                in_fence = False
            else:
                in_fence = True
                if not match.group(2):
                    lines[i] = line.replace(match.group(1), f"{match.group(1)}text", 1)
                    tagged += 1
        if tagged:
            fixes.append(f"language tag added to {tagged} code block(s)")
        body = "\n".join(lines)
        if in_fence:
            body = body.rstrip("\n") + "\n```\n"
            fixes.append("code fence closed")

        if not fixes:
            return content, fixes
        return render_frontmatter(meta) + "\n" + body.lstrip("\n"), fixes


def split_frontmatter(content: str) -> tuple[dict[str, Any] | None, str]:
    """(frontmatter mapping or None, body). None also covers unparsable YAML."""
    match = _FRONTMATTER_RE.match(content)
    if not match:
        return None, content
    try:
        meta = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        logger.debug("Unparsable frontmatter: %s", exc)
        return None, content
    if meta is None:
        meta = {}
    if not isinstance(meta, dict):
        return None, content
    return meta, content[match.end():]


def render_frontmatter(meta: Mapping[str, Any]) -> str:
    header = yaml.safe_dump(dict(meta), sort_keys=False, allow_unicode=True)
    return f"---\n{header}---\n"


def _scan_fences(body: str) -> tuple[bool, int]:
    """(a fence is left open, number of opening fences without a language)."""
    in_fence = False
    bare = 0
    for line in body.split("\n"):
        match = _FENCE_RE.match(line.strip())
        if not match:
            continue
        if in_fence:
            in_fence = False
        else:
            in_fence = True
            if not match.group(2):
                bare += 1
    return in_fence, bare
