# src/pipeline/dag_builder.py — v2
"""DAG builder: validate a DAG definition and partition it into layers.

Layer 0 holds steps without dependencies; layer n holds steps whose
dependencies all sit in layers < n. Validation happens entirely before
execution so a bad definition never runs a single step.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

import networkx as nx

from specswarm.pipeline.models import ALL_PREVIOUS, DAGDefinition

logger = logging.getLogger(__name__)


class DAGError(Exception):
    """Raised when a DAG definition is invalid (cycle, unknown or self dependency)."""


@dataclass
class ExecutionPlan:
    """Layered execution plan.

    Steps within the same layer have no mutual dependencies and may run
    concurrently. Layers execute sequentially.
    """

    layers: list[list[str]] = field(default_factory=list)
    dependencies: dict[str, list[str]] = field(default_factory=dict)

    @property
    def total_steps(self) -> int:
        return sum(len(layer) for layer in self.layers)

    @property
    def flat_order(self) -> list[str]:
        """Return a flat topological ordering (no concurrency info)."""
        return [step for layer in self.layers for step in layer]

    def layer_of(self, step_id: str) -> int | None:
        for index, layer in enumerate(self.layers):
            if step_id in layer:
                return index
        return None

    def without(self, done: Iterable[str]) -> ExecutionPlan:
        """Return the plan minus already-recorded steps, dropping empty layers."""
        done_set = set(done)
        layers = [
            [s for s in layer if s not in done_set] for layer in self.layers
        ]
        return ExecutionPlan(
            layers=[layer for layer in layers if layer],
            dependencies=dict(self.dependencies),
        )


def validate_dag(definition: DAGDefinition) -> list[str]:
    """Return every structural error of a definition (empty list if valid)."""
    errors: list[str] = []
    ids = definition.node_ids
    known = set(ids)

    seen: set[str] = set()
    for step_id in ids:
        if step_id in seen:
            errors.append(f"Step '{step_id}' is declared more than once")
        seen.add(step_id)

    for node in definition.nodes:
        for dep in node.dependencies:
            if dep == ALL_PREVIOUS:
                continue
            if dep == node.id:
                errors.append(f"Step '{node.id}' depends on itself")
            elif dep not in known:
                errors.append(
                    f"Step '{node.id}' depends on '{dep}' which is not defined"
                )

    if errors:
        return errors

    graph = _build_graph(resolve_dependencies(definition))
    try:
        cycle = nx.find_cycle(graph)
    except nx.NetworkXNoCycle:
        return errors
    path = [edge[0] for edge in cycle] + [cycle[0][0]]
    errors.append(f"Cycle detected involving steps: {' -> '.join(path)}")
    return errors


def resolve_dependencies(definition: DAGDefinition) -> dict[str, list[str]]:
    """Expand the '*' wildcard into concrete dependency lists.

    A wildcard node depends on every other node that is not one of its own
    descendants. Two wildcard nodes do not depend on each other.
    """
    wildcard = {n.id for n in definition.nodes if ALL_PREVIOUS in n.dependencies}
    explicit = {
        n.id: [d for d in n.dependencies if d != ALL_PREVIOUS]
        for n in definition.nodes
    }
    if not wildcard:
        return explicit

    graph = _build_graph(explicit)
    resolved: dict[str, list[str]] = {}
    for node in definition.nodes:
        deps = list(explicit[node.id])
        if node.id in wildcard:
            descendants = nx.descendants(graph, node.id)
            for other in definition.node_ids:
                if other == node.id or other in wildcard or other in descendants:
                    continue
                if other not in deps:
                    deps.append(other)
        resolved[node.id] = deps
    return resolved


def build_plan(definition: DAGDefinition) -> ExecutionPlan:
    """Validate a definition and partition it into execution layers.

    Raises:
        DAGError: If the definition has a cycle or a dangling/self dependency.
    """
    errors = validate_dag(definition)
    if errors:
        raise DAGError("; ".join(errors))

    if not definition.nodes:
        return ExecutionPlan()

    dependencies = resolve_dependencies(definition)
    graph = _build_graph(dependencies)
    layers = [sorted(generation) for generation in nx.topological_generations(graph)]

    plan = ExecutionPlan(layers=layers, dependencies=dependencies)
    logger.info(
        "DAG '%s' built: %d steps in %d layers",
        definition.name,
        plan.total_steps,
        len(plan.layers),
    )
    logger.debug("DAG '%s' layers: %s", definition.name, plan.layers)
    return plan


def _build_graph(dependencies: dict[str, list[str]]) -> nx.DiGraph:
    """Edges point from a dependency to its dependent."""
    graph = nx.DiGraph()
    graph.add_nodes_from(dependencies)
    for step_id, deps in dependencies.items():
        for dep in deps:
            graph.add_edge(dep, step_id)
    return graph
