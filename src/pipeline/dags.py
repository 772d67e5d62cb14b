# src/pipeline/dags.py — v2
"""Built-in DAG definitions.

A run starts on BOOTSTRAP_DAG, whose only step resolves the operating
mode. The scheduler is then redirected to GENERATION_DAG or AUDIT_DAG for
the remaining layers. Both contain the bootstrap node so the already
recorded result carries over.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from specswarm.config.steps import (
    ANALYSIS_BY_ID,
    ANALYSIS_STEPS,
    BOOTSTRAP,
    EXISTING_SPECS,
    SUBMODULE_CHECK,
    SUMMARY,
)
from specswarm.pipeline.features import DetectedFeatures
from specswarm.pipeline.models import ALL_PREVIOUS, DAGDefinition, StepNode

logger = logging.getLogger(__name__)

_MODE_CHECK = StepNode(id=SUBMODULE_CHECK, parallel=False)


def _analysis_nodes(extra_root_deps: tuple[str, ...] = ()) -> list[StepNode]:
    nodes: list[StepNode] = []
    for spec in ANALYSIS_STEPS:
        deps = spec.dependencies
        if BOOTSTRAP in deps:
            deps = deps + extra_root_deps
        nodes.append(StepNode(id=spec.id, dependencies=deps, optional=spec.optional))
    return nodes


BOOTSTRAP_DAG = DAGDefinition(name="bootstrap", version="2.0.0", nodes=(_MODE_CHECK,))

GENERATION_DAG = DAGDefinition(
    name="generation",
    version="2.0.0",
    nodes=(
        _MODE_CHECK,
        StepNode(id=BOOTSTRAP, dependencies=(SUBMODULE_CHECK,)),
        *_analysis_nodes(),
        StepNode(id=SUMMARY, dependencies=(ALL_PREVIOUS,)),
    ),
)

# Audit runs additionally feed the previously committed artifacts into the
# shared context before the first analysis step.
AUDIT_DAG = DAGDefinition(
    name="audit",
    version="2.0.0",
    nodes=(
        _MODE_CHECK,
        StepNode(id=BOOTSTRAP, dependencies=(SUBMODULE_CHECK,)),
        StepNode(id=EXISTING_SPECS, dependencies=(SUBMODULE_CHECK,)),
        *_analysis_nodes(extra_root_deps=(EXISTING_SPECS,)),
        StepNode(id=SUMMARY, dependencies=(ALL_PREVIOUS,)),
    ),
)


def select_dag(mode: str) -> DAGDefinition:
    """Return the DAG definition for an operating mode."""
    if mode == "generation":
        return GENERATION_DAG
    if mode == "audit":
        return AUDIT_DAG
    raise ValueError(f"Unknown mode: {mode!r}")


def create_custom_dag(
    step_ids: Iterable[str],
    base: DAGDefinition = GENERATION_DAG,
    name: str | None = None,
) -> DAGDefinition:
    """Restrict a base DAG to the given step ids.

    A dependency on a dropped step is replaced by that step's own
    dependencies, so the ordering the base DAG implies is kept; the
    wildcard is kept and re-expanded over the remaining nodes.
    """
    selected = set(step_ids)
    nodes = tuple(
        node.model_copy(
            update={"dependencies": _rerouted(node.dependencies, selected, base)}
        )
        for node in base.nodes
        if node.id in selected
    )
    return DAGDefinition(
        name=name or f"{base.name}-custom", version=base.version, nodes=nodes
    )


def _rerouted(
    dependencies: tuple[str, ...], selected: set[str], base: DAGDefinition
) -> tuple[str, ...]:
    result: list[str] = []
    pending = list(dependencies)
    seen: set[str] = set()
    while pending:
        dep = pending.pop(0)
        if dep in seen:
            continue
        seen.add(dep)
        if dep == ALL_PREVIOUS or dep in selected:
            result.append(dep)
            continue
        node = base.get(dep)
        if node is not None:
            pending.extend(node.dependencies)
    return tuple(result)


def plan_for_features(
    base: DAGDefinition,
    features: DetectedFeatures,
    keep: Iterable[str] = (),
) -> DAGDefinition:
    """Drop analysis steps whose required feature flags were not detected.

    Args:
        base: Mode DAG to narrow.
        features: Detection result for the primary repository.
        keep: Step ids retained regardless of features (for instance
            steps whose artifacts already exist in the store).

    Returns:
        The base definition itself when nothing is dropped, else a
        "<base>-planned" definition.
    """
    kept = set(keep)
    dropped = [
        node.id
        for node in base.nodes
        if node.id in ANALYSIS_BY_ID
        and node.id not in kept
        and ANALYSIS_BY_ID[node.id].requires
        and not features.has_any(ANALYSIS_BY_ID[node.id].requires)
    ]
    if not dropped:
        return base
    logger.info("Feature planning drops %d steps: %s", len(dropped), ", ".join(dropped))
    return create_custom_dag(
        [n for n in base.node_ids if n not in dropped], base=base, name=f"{base.name}-planned"
    )
