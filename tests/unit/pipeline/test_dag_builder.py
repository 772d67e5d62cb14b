# tests/unit/pipeline/test_dag_builder.py — v2
"""Tests for pipeline/dag_builder.py: validation, wildcard expansion, layering."""

from __future__ import annotations

import pytest

from specswarm.pipeline.dag_builder import (
    DAGError,
    ExecutionPlan,
    build_plan,
    resolve_dependencies,
    validate_dag,
)
from specswarm.pipeline.models import DAGDefinition, StepNode


def dag(*nodes: tuple[str, tuple[str, ...]]) -> DAGDefinition:
    return DAGDefinition(
        name="test", nodes=tuple(StepNode(id=i, dependencies=d) for i, d in nodes)
    )


class TestBuildPlan:
    def test_empty_definition(self):
        plan = build_plan(DAGDefinition(name="empty"))
        assert plan.total_steps == 0
        assert plan.layers == []

    def test_linear_chain(self):
        plan = build_plan(dag(("a", ()), ("b", ("a",)), ("c", ("b",))))
        assert plan.layers == [["a"], ["b"], ["c"]]
        assert plan.flat_order == ["a", "b", "c"]

    def test_independent_steps_share_layer_zero(self):
        plan = build_plan(dag(("x", ()), ("y", ()), ("z", ())))
        assert plan.layers == [["x", "y", "z"]]

    def test_diamond(self):
        plan = build_plan(dag(("a", ()), ("b", ("a",)), ("c", ("a",)), ("d", ("b", "c"))))
        assert plan.layers == [["a"], ["b", "c"], ["d"]]
        assert plan.layer_of("d") == 2
        assert plan.layer_of("missing") is None

    def test_layer_is_longest_dependency_path(self):
        plan = build_plan(dag(("a", ()), ("b", ("a",)), ("c", ("a", "b"))))
        assert plan.layer_of("c") == 2

    def test_cycle_raises_before_anything(self):
        with pytest.raises(DAGError, match="Cycle detected"):
            build_plan(dag(("a", ("b",)), ("b", ("a",))))

    def test_unknown_dependency_raises(self):
        with pytest.raises(DAGError, match="'ghost' which is not defined"):
            build_plan(dag(("a", ("ghost",))))

    def test_self_dependency_raises(self):
        with pytest.raises(DAGError, match="depends on itself"):
            build_plan(dag(("a", ("a",))))


class TestValidateDAG:
    def test_valid_returns_no_errors(self):
        assert validate_dag(dag(("a", ()), ("b", ("a",)))) == []

    def test_duplicate_ids_reported(self):
        errors = validate_dag(dag(("a", ()), ("a", ())))
        assert any("more than once" in e for e in errors)

    def test_cycle_message_names_path(self):
        errors = validate_dag(dag(("a", ("c",)), ("b", ("a",)), ("c", ("b",))))
        assert len(errors) == 1
        assert errors[0].startswith("Cycle detected involving steps: ")
        assert {"a", "b", "c"} <= set(errors[0].split(": ")[1].split(" -> "))


class TestWildcard:
    def test_wildcard_depends_on_every_other_node(self):
        definition = dag(("a", ()), ("b", ("a",)), ("final", ("*",)))
        assert sorted(resolve_dependencies(definition)["final"]) == ["a", "b"]
        assert build_plan(definition).layers[-1] == ["final"]

    def test_wildcard_excludes_own_descendants(self):
        definition = dag(("a", ()), ("final", ("*",)), ("after", ("final",)))
        resolved = resolve_dependencies(definition)
        assert resolved["final"] == ["a"]
        assert build_plan(definition).layers == [["a"], ["final"], ["after"]]


class TestExecutionPlanWithout:
    def test_drops_done_steps_and_empty_layers(self):
        plan = ExecutionPlan(layers=[["a"], ["b", "c"], ["d"]])
        remaining = plan.without({"a", "b"})
        assert remaining.layers == [["c"], ["d"]]
