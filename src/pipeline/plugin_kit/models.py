# src/pipeline/plugin_kit/models.py — v2
"""Step plugin models: PromptProvenance, StepOutput, StepResult."""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


class PromptProvenance(BaseModel):
    """Which prompt produced an output: id, version and content hash."""

    model_config = ConfigDict(frozen=True)

    prompt_id: str
    version: str
    hash: str


class StepOutput(BaseModel):
    """Output record a step registers into the shared context."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    file_path: str | None = None
    summary: str = ""
    full_content: str = ""
    provenance: PromptProvenance | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class StepResult(BaseModel):
    """Standard return type for all BaseStep.execute() calls."""

    success: bool
    output: StepOutput | None = None
    error: str | None = None

    @classmethod
    def ok(cls, output: StepOutput | None = None) -> StepResult:
        return cls(success=True, output=output)

    @classmethod
    def fail(cls, error: str) -> StepResult:
        return cls(success=False, error=error)
