# tests/integration/manifest/test_int_lifecycle_flow.py — v2
"""End-to-end generation -> audit -> apply/discard against a temporary store.

Runs the real scheduler, steps, store and lifecycle manager. Only git/gh
and the LLM are faked (see tests/conftest.py).
"""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from specswarm.api.facade import analyze, apply, discard, status
from specswarm.config.steps import ANALYSIS_STEPS
from specswarm.manifest.errors import ArtifactStoreMissingError, LifecycleError, NoPendingAuditError
from specswarm.pipeline.scheduler import SchedulerHooks
from tests.conftest import FakeLLM, spec_markdown

pytestmark = pytest.mark.integration

AUDITED = ["overview", "module", "entity", "db", "api"]
CHANGED = {
    "db": spec_markdown("db", "Summary of db.", "Adds an orders table."),
    "api": spec_markdown("api", "Summary of api.", "Adds POST /orders."),
}


def read_manifest(repo: Path) -> dict:
    return json.loads((repo / "specs" / ".meta" / "manifest.json").read_text(encoding="utf-8"))


def snapshot(folder: Path) -> dict[str, str]:
    return {
        p.relative_to(folder).as_posix(): p.read_text(encoding="utf-8")
        for p in sorted(folder.rglob("*.md"))
    }


async def generate(repo, settings, vcs):
    return await analyze(repo, settings, vcs=vcs, llm=FakeLLM())


async def audit(repo, settings, vcs, responses=None):
    return await analyze(repo, settings, vcs=vcs, llm=FakeLLM(responses or {}), only=AUDITED)


class TestGeneration:
    @pytest.mark.asyncio
    async def test_first_run_generates_v1(self, primary_repo, settings, fake_vcs):
        report = await generate(primary_repo, settings, fake_vcs)

        assert report.mode == "generation"
        assert report.dag_name == "generation"
        assert report.version == "1.0.0"
        assert report.project == "shop"
        assert report.failed == 0

        manifest = read_manifest(primary_repo)
        assert manifest["current_version"] == "1.0.0"
        assert manifest["mode"] == "audit"
        assert [a["type"] for a in manifest["analyses"]] == ["generation"]
        assert len(manifest["analyses"][0]["files_generated"]) == len(ANALYSIS_STEPS)
        assert manifest["file_locations"]["api"] == "03-api/endpoints.md"
        assert len(manifest["structure_hash"]) == 12

        generated = primary_repo / "specs" / "_generated"
        api = (generated / "03-api" / "endpoints.md").read_text(encoding="utf-8")
        assert api.startswith("---\ntitle: API\nstep: api\n")
        assert "Summary of api." in api
        index = (primary_repo / "specs" / "index.md").read_text(encoding="utf-8")
        assert "[03-api/endpoints.md](_generated/03-api/endpoints.md)" in index

        messages = [c[2] for c in fake_vcs.calls_named("commit")]
        assert messages == [
            "specs: v1.0.0 - Initial generation",
            "chore: add shop-specs submodule (v1.0.0)",
        ]
        assert report.commit.pushed is True

    @pytest.mark.asyncio
    async def test_failed_step_leaves_its_artifact_out(self, primary_repo, settings, fake_vcs):
        llm = FakeLLM(failures={"ml": RuntimeError("boom")})
        report = await analyze(primary_repo, settings, vcs=fake_vcs, llm=llm)

        assert report.failed == 1
        assert report.version == "1.0.0"
        manifest = read_manifest(primary_repo)
        assert "ml" not in manifest["file_locations"]
        assert not (primary_repo / "specs" / "_generated" / "07-ops" / "ml_services.md").exists()

    @pytest.mark.asyncio
    async def test_skipped_steps_never_called(self, primary_repo, settings, fake_vcs):
        llm = FakeLLM()
        report = await analyze(primary_repo, settings, vcs=fake_vcs, llm=llm, skip=["ml", "flag"])
        assert report.skipped == 2
        assert "ml" not in llm.called_steps
        assert "flag" not in llm.called_steps

    @pytest.mark.asyncio
    async def test_no_artifacts_leaves_store_unchanged(self, primary_repo, settings, fake_vcs):
        failures = {s.id: RuntimeError("down") for s in ANALYSIS_STEPS}
        with pytest.raises(LifecycleError, match="no artifacts"):
            await analyze(primary_repo, settings, vcs=fake_vcs, llm=FakeLLM(failures=failures))
        manifest = read_manifest(primary_repo)
        assert manifest["current_version"] == "0.0.0"
        assert manifest["analyses"] == []
        assert fake_vcs.calls_named("commit") == []

    @pytest.mark.asyncio
    async def test_require_existing_without_store(self, primary_repo, settings, fake_vcs):
        llm = FakeLLM()
        with pytest.raises(ArtifactStoreMissingError):
            await analyze(primary_repo, settings, vcs=fake_vcs, llm=llm, require_existing=True)
        assert llm.calls == []
        assert not (primary_repo / "specs").exists()

    @pytest.mark.asyncio
    async def test_hooks_observe_run(self, primary_repo, settings, fake_vcs):
        events: list[tuple[str, str]] = []
        hooks = SchedulerHooks(on_step=lambda step_id, event: events.append((step_id, event)))
        await analyze(primary_repo, settings, vcs=fake_vcs, llm=FakeLLM(), hooks=hooks)
        assert events[0] == ("submodule_check", "start")
        assert ("summary", "success") in events


class TestAudit:
    @pytest.mark.asyncio
    async def test_drift_reported_without_touching_artifacts(
        self, primary_repo, settings, fake_vcs
    ):
        await generate(primary_repo, settings, fake_vcs)
        generated = primary_repo / "specs" / "_generated"
        before = snapshot(generated)
        fake_vcs.calls.clear()

        report = await audit(primary_repo, settings, fake_vcs, CHANGED)

        assert report.mode == "audit"
        assert report.dag_name == "audit-custom"
        assert report.changes_detected == 2
        assert report.proposed_version == "1.0.1"
        assert snapshot(generated) == before

        manifest = read_manifest(primary_repo)
        assert manifest["pending_audit"] is True
        assert manifest["current_version"] == "1.0.0"
        (entry,) = manifest["audits"]
        assert entry["status"] == "pending"
        assert entry["specs_version_compared"] == "1.0.0"
        assert entry["changes_detected"] == 2

        text = (primary_repo / "specs" / "AUDIT_REPORT.md").read_text(encoding="utf-8")
        assert text.count("### _generated/") == 2
        assert "### _generated/03-api/endpoints.md" in text
        assert "### _generated/04-data/database.md" in text

        messages = [c[2] for c in fake_vcs.calls_named("commit")]
        assert messages[0] == "audit: detected 2 changes vs v1.0.0"

    @pytest.mark.asyncio
    async def test_existing_specs_reach_the_prompts(self, primary_repo, settings, fake_vcs):
        await generate(primary_repo, settings, fake_vcs)
        llm = FakeLLM()
        await analyze(primary_repo, settings, vcs=fake_vcs, llm=llm, only=["overview"])
        assert "existing-specs/00-foundation/overview.md" in llm.prompt_for("overview")

    @pytest.mark.asyncio
    async def test_no_drift_keeps_version(self, primary_repo, settings, fake_vcs):
        await generate(primary_repo, settings, fake_vcs)
        report = await audit(primary_repo, settings, fake_vcs)
        assert report.changes_detected == 0
        assert report.proposed_version == "1.0.0"
        assert read_manifest(primary_repo)["pending_audit"] is True

    @pytest.mark.asyncio
    async def test_new_audit_replaces_pending(self, primary_repo, settings, fake_vcs):
        await generate(primary_repo, settings, fake_vcs)
        await audit(primary_repo, settings, fake_vcs, CHANGED)
        await audit(primary_repo, settings, fake_vcs, {"api": CHANGED["api"]})
        statuses = [a["status"] for a in read_manifest(primary_repo)["audits"]]
        assert statuses == ["discarded", "pending"]
        assert (await status(primary_repo, settings)).pending_changes == 1


class TestApply:
    @pytest.mark.asyncio
    async def test_apply_writes_new_version(self, primary_repo, settings, fake_vcs):
        await generate(primary_repo, settings, fake_vcs)
        await audit(primary_repo, settings, fake_vcs, CHANGED)
        fake_vcs.calls.clear()

        report = await apply(primary_repo, settings, vcs=fake_vcs)

        assert report.version == "1.0.1"
        store = primary_repo / "specs"
        assert not (store / "AUDIT_REPORT.md").exists()
        assert not (store / ".meta" / "pending").exists()
        assert report.archived_to.startswith("_audits/")
        assert report.archived_to.endswith("_v1.0.1_audit.md")
        assert (store / report.archived_to).exists()

        api = (store / "_generated" / "03-api" / "endpoints.md").read_text(encoding="utf-8")
        assert "Adds POST /orders." in api

        manifest = read_manifest(primary_repo)
        assert manifest["current_version"] == "1.0.1"
        assert manifest["pending_audit"] is False
        assert [a["type"] for a in manifest["analyses"]] == ["generation", "apply"]
        applied = manifest["analyses"][-1]
        assert sorted(applied["files_changed"]) == [
            "_generated/03-api/endpoints.md",
            "_generated/04-data/database.md",
        ]
        assert applied["from_audit"] is not None
        (entry,) = manifest["audits"]
        assert entry["status"] == "applied"
        assert entry["applied_as_version"] == "1.0.1"
        assert entry["archived_to"] == report.archived_to

        index = (store / "index.md").read_text(encoding="utf-8")
        assert "version: 1.0.1" in index

        messages = [c[2] for c in fake_vcs.calls_named("commit")]
        assert messages == [
            "specs: v1.0.1 - Applied audit changes",
            "chore: update specs submodule to v1.0.1",
        ]

    @pytest.mark.asyncio
    async def test_apply_twice(self, primary_repo, settings, fake_vcs):
        await generate(primary_repo, settings, fake_vcs)
        await audit(primary_repo, settings, fake_vcs, CHANGED)
        await apply(primary_repo, settings, vcs=fake_vcs)
        with pytest.raises(NoPendingAuditError):
            await apply(primary_repo, settings, vcs=fake_vcs)

    @pytest.mark.asyncio
    async def test_missing_staged_content(self, primary_repo, settings, fake_vcs):
        await generate(primary_repo, settings, fake_vcs)
        await audit(primary_repo, settings, fake_vcs, CHANGED)
        staged = primary_repo / "specs" / ".meta" / "pending" / "03-api" / "endpoints.md"
        staged.unlink()
        before = snapshot(primary_repo / "specs" / "_generated")

        with pytest.raises(LifecycleError, match="No staged content"):
            await apply(primary_repo, settings, vcs=fake_vcs)
        assert snapshot(primary_repo / "specs" / "_generated") == before
        assert read_manifest(primary_repo)["pending_audit"] is True

    @pytest.mark.asyncio
    async def test_apply_without_store(self, primary_repo, settings, fake_vcs):
        with pytest.raises(ArtifactStoreMissingError):
            await apply(primary_repo, settings, vcs=fake_vcs)


class TestDiscard:
    @pytest.mark.asyncio
    async def test_discard_keeps_version(self, primary_repo, settings, fake_vcs):
        await generate(primary_repo, settings, fake_vcs)
        await audit(primary_repo, settings, fake_vcs, CHANGED)
        before = snapshot(primary_repo / "specs" / "_generated")

        report = await discard(primary_repo, settings, vcs=fake_vcs)

        assert report.version == "1.0.0"
        store = primary_repo / "specs"
        assert not (store / "AUDIT_REPORT.md").exists()
        assert (store / report.archived_to).exists()
        assert snapshot(store / "_generated") == before
        manifest = read_manifest(primary_repo)
        assert manifest["pending_audit"] is False
        assert manifest["audits"][0]["status"] == "discarded"
        assert [a["type"] for a in manifest["analyses"]] == ["generation"]

    @pytest.mark.asyncio
    async def test_discard_then_apply(self, primary_repo, settings, fake_vcs):
        await generate(primary_repo, settings, fake_vcs)
        await audit(primary_repo, settings, fake_vcs, CHANGED)
        await discard(primary_repo, settings, vcs=fake_vcs)
        with pytest.raises(NoPendingAuditError):
            await apply(primary_repo, settings, vcs=fake_vcs)


class TestFeaturePlanning:
    @pytest.mark.asyncio
    async def test_undetected_features_not_documented(self, primary_repo, settings, fake_vcs):
        llm = FakeLLM()
        report = await analyze(
            primary_repo, settings, vcs=fake_vcs, llm=llm, plan_by_features=True
        )

        assert report.dag_name == "generation-planned"
        assert report.failed == 0
        assert "overview" in llm.called_steps and "security" in llm.called_steps
        for step in ("api", "db", "auth", "ml"):
            assert step not in llm.called_steps
        assert "api" not in read_manifest(primary_repo)["file_locations"]

    @pytest.mark.asyncio
    async def test_detected_framework_enables_api(self, primary_repo, settings, fake_vcs):
        (primary_repo / "requirements.txt").write_text("fastapi>=0.110\n", encoding="utf-8")
        llm = FakeLLM()
        await analyze(
            primary_repo,
            settings.model_copy(update={"feature_planning": True}),
            vcs=fake_vcs,
            llm=llm,
        )
        assert "api" in llm.called_steps
        assert "db" not in llm.called_steps

    @pytest.mark.asyncio
    async def test_audit_keeps_documented_steps(self, primary_repo, settings, fake_vcs):
        await generate(primary_repo, settings, fake_vcs)
        llm = FakeLLM()
        report = await analyze(
            primary_repo, settings, vcs=fake_vcs, llm=llm, plan_by_features=True
        )
        assert report.mode == "audit"
        assert report.dag_name == "audit"
        assert "api" in llm.called_steps


class TestOutputValidation:
    @pytest.mark.asyncio
    async def test_unterminated_fence_repaired(self, primary_repo, settings, fake_vcs):
        llm = FakeLLM({"api": spec_markdown("api", "Summary of api.", "```\nGET /orders\n")})
        report = await analyze(primary_repo, settings, vcs=fake_vcs, llm=llm)

        assert report.failed == 0
        api = (primary_repo / "specs" / "_generated" / "03-api" / "endpoints.md").read_text(
            encoding="utf-8"
        )
        assert api.startswith("---\ntitle: API\nstep: api\n")
        assert "```text\nGET /orders" in api
        assert api.endswith("```\n")

    @pytest.mark.asyncio
    async def test_strict_mode_rejects_output(self, primary_repo, settings, fake_vcs):
        strict = settings.model_copy(update={"output_validation": "strict"})
        llm = FakeLLM({"api": "# api\n\nNo summary section.\n"})
        report = await analyze(primary_repo, strict, vcs=fake_vcs, llm=llm)

        assert report.failed == 1
        (result,) = [r for r in report.results if r.step_id == "api"]
        assert result.error.startswith("Output rejected:")
        assert not (primary_repo / "specs" / "_generated" / "03-api" / "endpoints.md").exists()
        assert "api" not in read_manifest(primary_repo)["file_locations"]


ER_DIAGRAM = "```mermaid\nerDiagram\n    ORDER ||--|{ LINE : contains\n```"
SEQUENCE_DIAGRAM = "```mermaid\nsequenceDiagram\n    Client->>API: GET /orders\n```"


class TestDiagrams:
    @pytest.mark.asyncio
    async def test_generation_publishes_diagrams(self, primary_repo, settings, fake_vcs):
        llm = FakeLLM({"db": spec_markdown("db", "Summary of db.", ER_DIAGRAM)})
        await analyze(primary_repo, settings, vcs=fake_vcs, llm=llm)

        diagrams = primary_repo / "specs" / "_generated" / "_diagrams"
        assert sorted(p.name for p in diagrams.iterdir()) == ["db-erd-1.mmd"]
        text = (diagrams / "db-erd-1.mmd").read_text(encoding="utf-8")
        assert "%% source: 04-data/database.md" in text
        assert "ORDER ||--|{ LINE : contains" in text
        files = read_manifest(primary_repo)["analyses"][0]["files_generated"]
        assert len(files) == len(ANALYSIS_STEPS)

    @pytest.mark.asyncio
    async def test_apply_replaces_step_diagrams(self, primary_repo, settings, fake_vcs):
        llm = FakeLLM({"db": spec_markdown("db", "Summary of db.", ER_DIAGRAM)})
        await analyze(primary_repo, settings, vcs=fake_vcs, llm=llm)
        diagrams = primary_repo / "specs" / "_generated" / "_diagrams"

        await audit(
            primary_repo, settings, fake_vcs,
            {"db": spec_markdown("db", "Summary of db.", SEQUENCE_DIAGRAM)},
        )
        assert sorted(p.name for p in diagrams.iterdir()) == ["db-erd-1.mmd"]

        await apply(primary_repo, settings, vcs=fake_vcs)
        assert sorted(p.name for p in diagrams.iterdir()) == ["db-sequence-1.mmd"]
