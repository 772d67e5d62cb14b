# src/pipeline/registry.py — v2
"""Step registry: id -> step instance lookup handed to the scheduler.

The registry is built by the orchestrator from explicitly constructed
steps. Nothing is imported dynamically and steps receive their
capabilities through their constructors.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from specswarm.pipeline.models import DAGDefinition
from specswarm.pipeline.plugin_kit.base_step import BaseStep

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """Raised when a step lookup or registration fails."""


class StepRegistry:
    """Registry of the steps available to a run."""

    def __init__(self, steps: Iterable[BaseStep] = ()) -> None:
        self._steps: dict[str, BaseStep] = {}
        for step in steps:
            self.register(step)

    @property
    def step_ids(self) -> list[str]:
        """Return sorted list of registered step ids."""
        return sorted(self._steps)

    def register(self, step: BaseStep) -> None:
        """Register a step instance, replacing any step with the same id."""
        if step.id in self._steps:
            logger.warning("Overwriting existing step: %s", step.id)
        self._steps[step.id] = step

    def get(self, step_id: str) -> BaseStep | None:
        """Get step by id, or None if not registered."""
        return self._steps.get(step_id)

    def get_or_raise(self, step_id: str) -> BaseStep:
        step = self._steps.get(step_id)
        if step is None:
            raise RegistryError(f"Step '{step_id}' not found in registry")
        return step

    def missing_for(self, definition: DAGDefinition) -> list[str]:
        """Return DAG node ids with no registered step."""
        return [s for s in definition.node_ids if s not in self._steps]

    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __len__(self) -> int:
        return len(self._steps)
