import json
from pathlib import Path

import pytest
from conftest import drive_to_stage_c, write_docs, write_sync_script

from init_pipeline import InitPipeline, Stage
from init_pipeline.errors import (
    CleanupRefusedError,
    ExternalToolError,
    GateNotSatisfiedError,
    ValidationFailedError,
    WrongStageError,
)
from init_pipeline.models import StageCProgress
from init_pipeline.stage_c import ApplyOptions


def _stage_c(pipeline: InitPipeline):
    state = pipeline.store.load()
    assert state is not None
    return state.stage_c


def test_apply_runs_scaffold_manifest_and_sync(pipeline: InitPipeline, repo: Path) -> None:
    drive_to_stage_c(pipeline)
    write_sync_script(repo)

    result = pipeline.apply(ApplyOptions(providers="codex"))
    assert result.ok
    assert (repo / "src" / "backend" / "README.md").is_file()
    manifest = json.loads((repo / ".ai" / "skills" / "_meta" / "sync-manifest.json").read_text(encoding="utf-8"))
    assert manifest["includePrefixes"] == ["workflows/", "backend/"]
    assert json.loads((repo / "sync-args.json").read_text(encoding="utf-8")) == [
        "--scope",
        "current",
        "--providers",
        "codex",
        "--mode",
        "reset",
        "--yes",
    ]
    assert result.payload["sync"]["mode"] == "applied"
    assert any("not installed" in warning for warning in result.payload["warnings"])

    progress = _stage_c(pipeline)
    assert progress.scaffold_applied and progress.manifest_updated and progress.wrappers_synced
    assert not progress.skill_retention_reviewed


def test_full_flow_to_complete(pipeline: InitPipeline, repo: Path) -> None:
    drive_to_stage_c(pipeline)
    write_sync_script(repo)
    pipeline.apply(ApplyOptions())

    with pytest.raises(GateNotSatisfiedError):
        pipeline.approve(Stage.C)
    pipeline.review_skill_retention()
    pipeline.approve(Stage.C)

    state = pipeline.store.load()
    assert state.stage == Stage.COMPLETE
    assert state.stage_c.user_approved
    assert pipeline.status().lines[1] == "Current stage: complete - Complete"


def test_reapply_without_changes_keeps_retention_review(pipeline: InitPipeline, repo: Path) -> None:
    drive_to_stage_c(pipeline)
    write_sync_script(repo)
    pipeline.apply(ApplyOptions())
    pipeline.review_skill_retention()
    events = len(pipeline.store.load().history)

    second = pipeline.apply(ApplyOptions())
    assert second.payload["manifest"]["mode"] == "skipped"
    assert {entry["mode"] for entry in second.payload["scaffold"]} == {"skipped"}
    assert _stage_c(pipeline).skill_retention_reviewed
    assert len(pipeline.store.load().history) == events


def test_sync_failure_raises_and_records_nothing(pipeline: InitPipeline, repo: Path) -> None:
    drive_to_stage_c(pipeline)
    write_sync_script(repo, exit_code=3)

    with pytest.raises(ExternalToolError) as excinfo:
        pipeline.apply(ApplyOptions())
    assert excinfo.value.exit_code == 3
    assert "sync exploded" in str(excinfo.value)

    progress = _stage_c(pipeline)
    assert not progress.scaffold_applied
    assert not progress.wrappers_synced
    assert (repo / "src" / "README.md").is_file()


def test_missing_sync_script_is_skipped_and_not_synced(pipeline: InitPipeline) -> None:
    drive_to_stage_c(pipeline)

    result = pipeline.apply(ApplyOptions())
    assert result.payload["sync"]["mode"] == "skipped"
    progress = _stage_c(pipeline)
    assert progress.scaffold_applied
    assert not progress.wrappers_synced
    with pytest.raises(GateNotSatisfiedError):
        pipeline.review_skill_retention()


def test_apply_is_stage_scoped(pipeline: InitPipeline, repo: Path) -> None:
    pipeline.start()
    pipeline.set_language("English")
    with pytest.raises(WrongStageError):
        pipeline.apply(ApplyOptions())
    assert not (repo / "src").exists()
    assert _stage_c(pipeline) == StageCProgress()


def test_docs_gate_blocks_before_any_write(pipeline: InitPipeline, repo: Path) -> None:
    drive_to_stage_c(pipeline)
    write_sync_script(repo)
    write_docs(pipeline.workspace.docs_root, {"requirements.md": "# Requirements\n"})

    with pytest.raises(ValidationFailedError) as excinfo:
        pipeline.apply(ApplyOptions(require_stage_a=True))
    assert any("## Goals" in error for error in excinfo.value.errors)
    assert not (repo / "src").exists()
    assert not (repo / "sync-args.json").exists()


def test_strict_docs_gate_fails_on_warnings(pipeline: InitPipeline, repo: Path) -> None:
    drive_to_stage_c(pipeline)
    write_sync_script(repo)
    write_docs(
        pipeline.workspace.docs_root,
        {"risk-open-questions.md": "# Risks and Open Questions\n\n## Open questions\n\n- Hosting: TBD\n"},
    )
    assert pipeline.apply(ApplyOptions(require_stage_a=True)).ok

    with pytest.raises(ValidationFailedError) as excinfo:
        pipeline.apply(ApplyOptions(require_stage_a_strict=True))
    assert excinfo.value.errors[0].startswith("Strict mode: ")


def test_skip_agent_builder_needs_acknowledgement(pipeline: InitPipeline, repo: Path) -> None:
    drive_to_stage_c(pipeline)
    write_sync_script(repo)
    agent_dir = repo / ".ai" / "skills" / "workflows" / "agent"
    agent_dir.mkdir(parents=True)
    (agent_dir / "SKILL.md").write_text("# Agent builder\n", encoding="utf-8")

    with pytest.raises(CleanupRefusedError):
        pipeline.apply(ApplyOptions(skip_agent_builder=True))
    assert agent_dir.exists()

    pipeline.apply(ApplyOptions())
    pipeline.review_skill_retention()
    result = pipeline.apply(ApplyOptions(skip_agent_builder=True), i_understand=True)
    assert result.payload["prune"]["mode"] == "applied"
    assert not agent_dir.exists()
    assert not _stage_c(pipeline).skill_retention_reviewed


def test_standalone_prune_resets_retention_review(pipeline: InitPipeline, repo: Path) -> None:
    drive_to_stage_c(pipeline)
    write_sync_script(repo)
    pipeline.apply(ApplyOptions())
    pipeline.review_skill_retention()
    agent_dir = repo / ".ai" / "skills" / "workflows" / "agent"
    agent_dir.mkdir(parents=True)

    dry_run = pipeline.prune_agent_builder()
    assert dry_run.payload["prune"]["mode"] == "dry-run"
    with pytest.raises(CleanupRefusedError):
        pipeline.prune_agent_builder(apply=True)

    result = pipeline.prune_agent_builder(apply=True, i_understand=True)
    assert result.payload["sync"]["mode"] == "applied"
    assert not agent_dir.exists()
    progress = _stage_c(pipeline)
    assert progress.wrappers_synced
    assert not progress.skill_retention_reviewed
