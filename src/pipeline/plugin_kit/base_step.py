# src/pipeline/plugin_kit/base_step.py — v1
"""Standard step interface for scheduler plugins."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from specswarm.pipeline.plugin_kit.models import StepResult

if TYPE_CHECKING:
    from specswarm.pipeline.context import SharedContext


@dataclass
class StepContext:
    """Everything the scheduler hands a step for one invocation.

    dependencies holds the step's resolved dependency ids (wildcard
    expanded); overrides carries per-run options such as an output path
    prefix.
    """

    step_id: str
    shared: SharedContext
    dependencies: list[str] = field(default_factory=list)
    layer: int = 0
    skip: frozenset[str] = frozenset()
    overrides: dict[str, Any] = field(default_factory=dict)

    @property
    def repo_type(self) -> str:
        return self.shared.repo_type

    @property
    def base_dir(self) -> Path:
        return self.shared.base_dir


class BaseStep(ABC):
    """Standard interface for all scheduled steps.

    Capabilities (LLM client, artifact store, lifecycle manager) are passed
    to the constructor of each concrete step; execute() only receives the
    per-invocation StepContext.
    """

    @property
    @abstractmethod
    def id(self) -> str:
        """Unique step identifier, matching its DAG node id."""

    @property
    def version(self) -> str:
        return "1.0.0"

    @property
    def description(self) -> str:
        return ""

    @abstractmethod
    async def execute(self, ctx: StepContext) -> StepResult:
        """Run the step.

        Implementations report failures through StepResult.fail(); an
        exception escaping here is converted into a failed result by the
        scheduler.
        """
