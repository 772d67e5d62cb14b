# tests/unit/pipeline/test_unit_dags.py — v2
"""Tests for pipeline/dags.py: built-in definitions, custom and feature-planned DAGs."""

from __future__ import annotations

import pytest

from specswarm.config.steps import ANALYSIS_STEPS
from specswarm.pipeline.dag_builder import build_plan
from specswarm.pipeline.dags import (
    AUDIT_DAG,
    BOOTSTRAP_DAG,
    GENERATION_DAG,
    create_custom_dag,
    plan_for_features,
    select_dag,
)
from specswarm.pipeline.features import DetectedFeatures


class TestBuiltinDAGs:
    @pytest.mark.parametrize("definition", [BOOTSTRAP_DAG, GENERATION_DAG, AUDIT_DAG])
    def test_definitions_are_valid(self, definition):
        plan = build_plan(definition)
        assert plan.total_steps == len(definition.nodes)

    def test_bootstrap_only_runs_mode_check(self):
        assert BOOTSTRAP_DAG.node_ids == ["submodule_check"]

    def test_generation_layers(self):
        plan = build_plan(GENERATION_DAG)
        assert plan.layers[0] == ["submodule_check"]
        assert plan.layers[1] == ["bootstrap"]
        assert plan.layers[-1] == ["summary"]
        assert plan.layer_of("overview") == 2

    def test_every_analysis_step_is_scheduled(self):
        for definition in (GENERATION_DAG, AUDIT_DAG):
            for spec in ANALYSIS_STEPS:
                assert spec.id in definition

    def test_audit_loads_existing_specs_before_overview(self):
        plan = build_plan(AUDIT_DAG)
        assert "existing_specs" not in GENERATION_DAG
        assert plan.layer_of("existing_specs") < plan.layer_of("overview")

    def test_optional_flags_carried(self):
        assert GENERATION_DAG.get("ml").optional is True
        assert GENERATION_DAG.get("api").optional is False


class TestSelectDAG:
    def test_modes(self):
        assert select_dag("generation") is GENERATION_DAG
        assert select_dag("audit") is AUDIT_DAG

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            select_dag("replay")


class TestCustomDAG:
    def test_filters_nodes_and_dependencies(self):
        custom = create_custom_dag(["submodule_check", "bootstrap", "overview", "summary"])
        assert custom.node_ids == ["submodule_check", "bootstrap", "overview", "summary"]
        plan = build_plan(custom)
        assert plan.layers == [["submodule_check"], ["bootstrap"], ["overview"], ["summary"]]

    def test_dropped_dependency_does_not_dangle(self):
        custom = create_custom_dag(["api"])
        assert custom.get("api").dependencies == ()
        assert build_plan(custom).layers == [["api"]]

    def test_dependency_on_dropped_step_is_rerouted(self):
        custom = create_custom_dag(
            ["submodule_check", "bootstrap", "overview", "module", "entity", "security"]
        )
        assert set(custom.get("security").dependencies) == {"module", "entity"}
        plan = build_plan(custom)
        assert plan.layer_of("security") > plan.layer_of("module")

    def test_name_defaults_to_base(self):
        assert create_custom_dag(["overview"]).name == "generation-custom"
        assert create_custom_dag(["overview"], base=AUDIT_DAG, name="x").name == "x"


NO_FEATURES = DetectedFeatures()
REST_ONLY = DetectedFeatures(flags=frozenset({"has_rest_api"}))


class TestFeaturePlanning:
    def test_everything_detected_returns_base(self):
        every = DetectedFeatures(flags=frozenset(
            f for spec in ANALYSIS_STEPS for f in spec.requires
        ))
        assert plan_for_features(GENERATION_DAG, every) is GENERATION_DAG

    def test_featureless_repository_keeps_core_steps(self):
        planned = plan_for_features(GENERATION_DAG, NO_FEATURES)
        assert planned.name == "generation-planned"
        for step in ("overview", "module", "entity", "dependency", "security", "summary"):
            assert step in planned
        for step in ("db", "api", "auth", "authz", "event", "ml", "flag", "prompt_sec"):
            assert step not in planned
        build_plan(planned)

    def test_rest_api_keeps_api_after_entities(self):
        planned = plan_for_features(GENERATION_DAG, REST_ONLY)
        assert "api" in planned and "db" not in planned
        assert set(planned.get("api").dependencies) == {"module", "entity"}
        assert "data_map" in planned
        plan = build_plan(planned)
        assert plan.layer_of("api") > plan.layer_of("entity")
        assert plan.layer_of("service_dep") > plan.layer_of("api")

    def test_keep_overrides_missing_features(self):
        planned = plan_for_features(AUDIT_DAG, NO_FEATURES, keep={"db", "api"})
        assert planned.name == "audit-planned"
        assert "db" in planned and "api" in planned
        assert "auth" not in planned
        assert "existing_specs" in planned

    def test_summary_still_runs_last(self):
        plan = build_plan(plan_for_features(GENERATION_DAG, NO_FEATURES))
        assert plan.layers[-1] == ["summary"]
