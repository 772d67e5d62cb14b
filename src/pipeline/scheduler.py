# src/pipeline/scheduler.py — v2
"""DAG scheduler: execute a layered step plan against a SharedContext.

Walks the ExecutionPlan layer by layer. Within a layer, parallel steps are
started together and awaited as a group; steps flagged parallel=False then
run one at a time. A layer is complete once every started step concluded.

Failure handling:
  - a step in the skip list is recorded as skipped and never invoked
  - a step raising or returning a failure is recorded as failed
  - an output rejected by the output check is recorded as failed and
    never registered
  - dependents of skipped or failed steps still run, with that
    dependency's output absent from the shared context

After each layer the scheduler may be redirected to another DAG
definition; already recorded steps are kept and not run again.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from specswarm.logging.context import set_step_context
from specswarm.pipeline.context import SharedContext
from specswarm.pipeline.dag_builder import ExecutionPlan, build_plan
from specswarm.pipeline.models import (
    DAGDefinition,
    ExecutionResult,
    ExecutionSummary,
    StepNode,
)
from specswarm.pipeline.plugin_kit.base_step import BaseStep, StepContext
from specswarm.pipeline.plugin_kit.models import StepOutput
from specswarm.pipeline.registry import StepRegistry

logger = logging.getLogger(__name__)

PlanSelector = Callable[[Mapping[str, ExecutionResult]], DAGDefinition | None]
OutputCheck = Callable[[StepOutput], StepOutput]


@dataclass
class SchedulerHooks:
    """Observation callbacks. Sync or async; they never affect control flow.

    on_step receives (step_id, event) with event in start, success, error, skip.
    """

    on_step: Callable[[str, str], Any] | None = None
    on_layer_start: Callable[[int, list[str]], Any] | None = None
    on_layer_complete: Callable[[int, list[ExecutionResult]], Any] | None = None


@dataclass
class RunOptions:
    """Per-run options.

    plan_selector is consulted after every layer until it returns a
    definition; the scheduler then continues on that definition.
    output_check runs on every successful output before it is registered;
    it returns the output to register or raises ValueError to reject it.
    """

    skip: Iterable[str] = ()
    overrides: dict[str, Any] = field(default_factory=dict)
    plan_selector: PlanSelector | None = None
    output_check: OutputCheck | None = None


class DAGScheduler:
    """Execute a DAG definition.

    Args:
        definition: Initial DAG definition.
        steps: Registry (or plain mapping) of step id -> step instance.
        hooks: Optional observation hooks.
    """

    def __init__(
        self,
        definition: DAGDefinition,
        steps: StepRegistry | Mapping[str, BaseStep],
        hooks: SchedulerHooks | None = None,
    ) -> None:
        self._definition = definition
        self._steps = steps if isinstance(steps, StepRegistry) else StepRegistry(
            steps.values()
        )
        self._hooks = hooks or SchedulerHooks()
        self._redirect_to: DAGDefinition | None = None

    @property
    def definition(self) -> DAGDefinition:
        return self._definition

    def redirect(self, definition: DAGDefinition) -> None:
        """Continue with another definition once the current layer completes.

        Raises:
            DAGError: If the new definition is invalid.
        """
        build_plan(definition)
        self._redirect_to = definition

    async def run(
        self,
        context: SharedContext,
        options: RunOptions | None = None,
    ) -> ExecutionSummary:
        """Execute all layers and return the run summary.

        Raises:
            DAGError: If the initial definition is invalid. No step runs.
        """
        options = options or RunOptions()
        skip = frozenset(options.skip)
        selector = options.plan_selector

        full_plan = build_plan(self._definition)
        remaining = full_plan
        results: dict[str, ExecutionResult] = {}
        start_ns = time.monotonic_ns()
        layer_index = 0

        while remaining.layers:
            layer = remaining.layers[0]
            logger.info("Layer %d: executing %s", layer_index, layer)
            await self._emit(self._hooks.on_layer_start, layer_index, list(layer))

            layer_results = await self._run_layer(
                layer_index,
                layer,
                full_plan,
                context,
                skip,
                options.overrides,
                options.output_check,
            )
            for r in layer_results:
                results[r.step_id] = r
            await self._emit(self._hooks.on_layer_complete, layer_index, layer_results)
            layer_index += 1

            next_definition = self._redirect_to
            self._redirect_to = None
            if next_definition is None and selector is not None:
                next_definition = selector(dict(results))
                if next_definition is not None:
                    selector = None

            if next_definition is not None:
                logger.info(
                    "Plan substitution: '%s' -> '%s'",
                    self._definition.name,
                    next_definition.name,
                )
                self._definition = next_definition
                full_plan = build_plan(next_definition)
                remaining = full_plan.without(results)
            else:
                remaining = ExecutionPlan(
                    layers=remaining.layers[1:], dependencies=remaining.dependencies
                )

        summary = ExecutionSummary.from_results(
            dag_name=self._definition.name,
            results=list(results.values()),
            duration_ms=(time.monotonic_ns() - start_ns) // 1_000_000,
        )
        logger.info(
            "DAG '%s' complete: %d steps, %d succeeded, %d failed, %d skipped, %dms",
            summary.dag_name,
            summary.total,
            summary.successful,
            summary.failed,
            summary.skipped,
            summary.duration_ms,
        )
        return summary

    async def _run_layer(
        self,
        layer_index: int,
        layer: list[str],
        plan: ExecutionPlan,
        context: SharedContext,
        skip: frozenset[str],
        overrides: dict[str, Any],
        output_check: OutputCheck | None = None,
    ) -> list[ExecutionResult]:
        nodes = {s: self._definition.get(s) or StepNode(id=s) for s in layer}
        concurrent = [s for s in layer if nodes[s].parallel]
        serial = [s for s in layer if not nodes[s].parallel]

        def _invoke(step_id: str) -> asyncio.Task[ExecutionResult]:
            # Each step runs in its own task so its logging context stays local.
            return asyncio.create_task(
                self._run_step(
                    nodes[step_id],
                    layer_index,
                    plan.dependencies.get(step_id, []),
                    context,
                    skip,
                    overrides,
                    output_check,
                )
            )

        results = list(await asyncio.gather(*(_invoke(s) for s in concurrent)))
        for step_id in serial:
            results.append(await _invoke(step_id))
        return results

    async def _run_step(
        self,
        node: StepNode,
        layer_index: int,
        dependencies: list[str],
        context: SharedContext,
        skip: frozenset[str],
        overrides: dict[str, Any],
        output_check: OutputCheck | None = None,
    ) -> ExecutionResult:
        step_id = node.id
        set_step_context(step_id, layer_index)

        if step_id in skip:
            logger.info("Step '%s' skipped", step_id)
            await self._emit(self._hooks.on_step, step_id, "skip")
            return ExecutionResult(
                step_id=step_id, status="skipped", layer=layer_index, optional=node.optional
            )

        step = self._steps.get(step_id)
        if step is None:
            error = f"Step '{step_id}' not found in registry"
            logger.error(error)
            await self._emit(self._hooks.on_step, step_id, "error")
            return ExecutionResult(
                step_id=step_id,
                status="failed",
                error=error,
                layer=layer_index,
                optional=node.optional,
            )

        await self._emit(self._hooks.on_step, step_id, "start")
        start_ns = time.monotonic_ns()
        error: str | None = None
        registered = None
        try:
            outcome = await step.execute(
                StepContext(
                    step_id=step_id,
                    shared=context,
                    dependencies=list(dependencies),
                    layer=layer_index,
                    skip=skip,
                    overrides=dict(overrides),
                )
            )
        except Exception as exc:
            logger.exception("Step '%s' raised", step_id)
            error = str(exc) or type(exc).__name__
        else:
            if outcome.success:
                if outcome.output is not None:
                    output = outcome.output
                    try:
                        if output_check is not None:
                            output = output_check(output)
                    except ValueError as exc:
                        error = f"Output rejected: {exc}"
                    else:
                        registered = context.register_output(output)
            else:
                error = outcome.error or f"Step '{step_id}' reported failure"
        duration_ms = (time.monotonic_ns() - start_ns) // 1_000_000

        if error is None:
            logger.info("Step '%s' succeeded in %dms", step_id, duration_ms)
            await self._emit(self._hooks.on_step, step_id, "success")
            return ExecutionResult(
                step_id=step_id,
                status="success",
                duration_ms=duration_ms,
                layer=layer_index,
                optional=node.optional,
                output=registered,
            )

        log = logger.info if node.optional else logger.warning
        log("Step '%s' failed after %dms: %s", step_id, duration_ms, error)
        await self._emit(self._hooks.on_step, step_id, "error")
        return ExecutionResult(
            step_id=step_id,
            status="failed",
            duration_ms=duration_ms,
            error=error,
            layer=layer_index,
            optional=node.optional,
        )

    @staticmethod
    async def _emit(hook: Callable[..., Any] | None, *args: Any) -> None:
        if hook is None:
            return
        try:
            value = hook(*args)
            if inspect.isawaitable(value):
                await value
        except Exception:
            logger.warning("Scheduler hook %r raised", hook, exc_info=True)
