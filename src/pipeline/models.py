# src/pipeline/models.py — v1
"""Scheduler data model: StepNode, DAGDefinition, ExecutionResult, ExecutionSummary."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from specswarm.pipeline.plugin_kit.models import StepOutput

StepStatus = Literal["success", "failed", "skipped"]

# Dependency wildcard: every node of the graph that does not itself depend
# (directly or transitively) on the declaring node.
ALL_PREVIOUS = "*"


class StepNode(BaseModel):
    """A node of a DAG definition. The layer index is derived, never authored."""

    model_config = ConfigDict(frozen=True)

    id: str
    dependencies: tuple[str, ...] = ()
    optional: bool = False
    parallel: bool = True


class DAGDefinition(BaseModel):
    """Named, versioned set of steps."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str = "1.0.0"
    nodes: tuple[StepNode, ...] = ()

    @property
    def node_ids(self) -> list[str]:
        return [n.id for n in self.nodes]

    def get(self, step_id: str) -> StepNode | None:
        for node in self.nodes:
            if node.id == step_id:
                return node
        return None

    def __contains__(self, step_id: object) -> bool:
        return any(n.id == step_id for n in self.nodes)


class ExecutionResult(BaseModel):
    """Outcome of one step in one run."""

    model_config = ConfigDict(frozen=True)

    step_id: str
    status: StepStatus
    duration_ms: int = 0
    error: str | None = None
    layer: int | None = None
    optional: bool = False
    output: StepOutput | None = None


class ExecutionSummary(BaseModel):
    """Aggregate outcome of a scheduler run. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    dag_name: str
    total: int
    executed: int
    successful: int
    failed: int
    skipped: int
    duration_ms: int
    success: bool
    results: tuple[ExecutionResult, ...] = Field(default_factory=tuple)

    @classmethod
    def from_results(
        cls,
        dag_name: str,
        results: list[ExecutionResult],
        duration_ms: int,
    ) -> ExecutionSummary:
        """Derive counts and the overall verdict from ordered results.

        A run fails only when at least one required step was attempted and
        no attempted step succeeded while every attempted required step failed.
        """
        successful = sum(1 for r in results if r.status == "success")
        failed = sum(1 for r in results if r.status == "failed")
        skipped = sum(1 for r in results if r.status == "skipped")
        attempted_required = [
            r for r in results if r.status != "skipped" and not r.optional
        ]
        all_failed = bool(attempted_required) and successful == 0 and all(
            r.status == "failed" for r in attempted_required
        )
        return cls(
            dag_name=dag_name,
            total=len(results),
            executed=len(results),
            successful=successful,
            failed=failed,
            skipped=skipped,
            duration_ms=duration_ms,
            success=not all_failed,
            results=tuple(results),
        )

    def result_for(self, step_id: str) -> ExecutionResult | None:
        for r in self.results:
            if r.step_id == step_id:
                return r
        return None

    @property
    def successful_ids(self) -> list[str]:
        return [r.step_id for r in self.results if r.status == "success"]
