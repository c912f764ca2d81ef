import json
from pathlib import Path

import pytest
from conftest import VALID_BLUEPRINT, drive_to_stage_c, write_blueprint, write_docs

from init_pipeline import InitPipeline, Stage
from init_pipeline.errors import (
    GateNotSatisfiedError,
    LanguageNotSetError,
    PipelineHaltedError,
    StateNotInitializedError,
    ValidationFailedError,
    WrongStageError,
)
from init_pipeline.models import MUST_ASK_KEYS


def _events(pipeline: InitPipeline) -> list[str]:
    state = pipeline.store.load()
    assert state is not None
    return [entry.event for entry in state.history]


def test_commands_require_initialized_state(pipeline: InitPipeline) -> None:
    with pytest.raises(StateNotInitializedError):
        pipeline.approve(Stage.A)
    assert not pipeline.status().payload["initialized"]


def test_start_is_idempotent(pipeline: InitPipeline) -> None:
    assert pipeline.start().payload["created"]
    assert not pipeline.start().payload["created"]
    assert _events(pipeline) == ["init_started"]


def test_set_language_creates_templates_once(pipeline: InitPipeline) -> None:
    pipeline.start()
    result = pipeline.set_language("English")
    assert {entry["mode"] for entry in result.payload["templates"]} == {"applied"}
    assert (pipeline.workspace.docs_root / "requirements.md").is_file()
    assert pipeline.workspace.blueprint_path.is_file()

    again = pipeline.set_language("English")
    assert {entry["mode"] for entry in again.payload["templates"]} == {"skipped"}
    assert _events(pipeline) == ["init_started", "language_set"]


def test_check_docs_self_heals_validated_flag(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    docs_root = pipeline.workspace.docs_root

    assert not pipeline.check_docs().ok
    write_docs(docs_root)
    assert pipeline.check_docs().ok
    state = pipeline.store.load()
    assert state.stage_a.validated
    assert state.stage_a.docs_written.count() == 4
    for key in MUST_ASK_KEYS:
        item = state.stage_a.must_ask[key]
        assert item.asked and item.answered
    assert state.stage_a.must_ask["constraints"].written_to == "non-functional-requirements.md"
    assert state.stage_a.must_ask["onePurpose"].written_to == "requirements.md"

    write_docs(docs_root, {"requirements.md": "# Requirements\n\n## Goals\n\n- <fill me>\n"})
    assert not pipeline.check_docs().ok
    state = pipeline.store.load()
    assert not state.stage_a.validated
    assert state.stage == Stage.A
    assert _events(pipeline)[-2:] == ["stage_a_validated", "stage_a_invalidated"]


def test_repeated_check_docs_does_not_grow_history(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    write_docs(pipeline.workspace.docs_root)
    pipeline.check_docs()
    count = len(_events(pipeline))
    pipeline.check_docs()
    pipeline.check_docs()
    assert len(_events(pipeline)) == count


def test_strict_check_docs_fails_but_keeps_docs_approvable(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    write_docs(pipeline.workspace.docs_root, {"domain-glossary.md": "# Domain Glossary\n\n## Terms\n\n- FIXME\n"})
    assert pipeline.check_docs().ok
    strict = pipeline.check_docs(strict=True)
    assert not strict.ok
    assert pipeline.store.load().stage_a.validated

    pipeline.approve(Stage.A)
    assert pipeline.store.load().stage == Stage.B


def test_approve_stage_b_revalidates_current_blueprint(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    write_docs(pipeline.workspace.docs_root)
    pipeline.check_docs()
    pipeline.approve(Stage.A)
    write_blueprint(pipeline.workspace.blueprint_path)
    assert pipeline.validate().ok
    pipeline.suggest_packs()
    write_blueprint(pipeline.workspace.blueprint_path, {**VALID_BLUEPRINT, "version": 0})

    with pytest.raises(ValidationFailedError) as excinfo:
        pipeline.approve(Stage.B)
    assert "Blueprint.version must be an integer >= 1." in excinfo.value.errors
    state = pipeline.store.load()
    assert state.stage == Stage.B
    assert not state.stage_b.user_approved


def test_approve_stage_a_revalidates_current_files(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    write_docs(pipeline.workspace.docs_root)
    pipeline.check_docs()
    (pipeline.workspace.docs_root / "domain-glossary.md").unlink()

    with pytest.raises(ValidationFailedError) as excinfo:
        pipeline.approve(Stage.A)
    assert any("domain-glossary.md" in error for error in excinfo.value.errors)
    state = pipeline.store.load()
    assert state.stage == Stage.A
    assert not state.stage_a.user_approved


def test_approve_requires_validation_and_current_stage(pipeline: InitPipeline) -> None:
    pipeline.start()
    with pytest.raises(GateNotSatisfiedError):
        pipeline.approve(Stage.A)
    with pytest.raises(WrongStageError) as excinfo:
        pipeline.approve(Stage.B)
    assert "Current stage is A" in str(excinfo.value)


def test_stage_b_requires_pack_review_before_approval(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    write_docs(pipeline.workspace.docs_root)
    pipeline.check_docs()
    pipeline.approve(Stage.A)
    write_blueprint(pipeline.workspace.blueprint_path)
    assert pipeline.validate().ok

    with pytest.raises(GateNotSatisfiedError):
        pipeline.approve(Stage.B)
    pipeline.suggest_packs()
    pipeline.approve(Stage.B)
    assert pipeline.store.load().stage == Stage.C


def test_blueprint_validation_self_heals_in_stage_b(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    write_docs(pipeline.workspace.docs_root)
    pipeline.check_docs()
    pipeline.approve(Stage.A)
    write_blueprint(pipeline.workspace.blueprint_path)
    pipeline.validate()
    assert pipeline.store.load().stage_b.validated

    write_blueprint(pipeline.workspace.blueprint_path, {**VALID_BLUEPRINT, "repo": {"layout": "single"}})
    assert not pipeline.validate().ok
    assert not pipeline.store.load().stage_b.validated
    assert _events(pipeline)[-1] == "stage_b_invalidated"


def test_suggest_packs_write_is_stage_scoped_and_safe(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    blueprint = {**VALID_BLUEPRINT, "skills": {"packs": ["workflows", "custom"]}, "notes": "keep"}
    write_blueprint(pipeline.workspace.blueprint_path, blueprint)

    with pytest.raises(WrongStageError):
        pipeline.suggest_packs(write=True)

    write_docs(pipeline.workspace.docs_root)
    pipeline.check_docs()
    pipeline.approve(Stage.A)
    result = pipeline.suggest_packs(write=True)
    assert result.payload["written"]
    written = json.loads(pipeline.workspace.blueprint_path.read_text(encoding="utf-8"))
    assert written["skills"]["packs"] == ["workflows", "backend", "custom"]
    assert written["notes"] == "keep"
    assert pipeline.store.load().stage_b.packs_reviewed


def test_scaffold_apply_is_refused_outside_stage_c(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    write_blueprint(pipeline.workspace.blueprint_path)
    with pytest.raises(WrongStageError) as excinfo:
        pipeline.scaffold(apply=True)
    assert excinfo.value.required == "C"
    assert not (pipeline.workspace.repo_root / "src").exists()

    dry_run = pipeline.scaffold(apply=False)
    assert {entry["mode"] for entry in dry_run.payload["plan"]} == {"dry-run"}


def test_language_must_be_set_before_scaffold(pipeline: InitPipeline, repo: Path) -> None:
    drive_to_stage_c(pipeline)
    state = pipeline.store.load()
    pipeline.store.save(state.model_copy(update={"language": None}))
    with pytest.raises(LanguageNotSetError):
        pipeline.scaffold(apply=True)
    assert not (repo / "src").exists()


def test_emergency_stop_blocks_mutations_until_resume(pipeline: InitPipeline) -> None:
    pipeline.start()
    pipeline.set_language("English")
    write_docs(pipeline.workspace.docs_root)
    pipeline.check_docs()
    pipeline.stop("waiting on legal review")
    pipeline.stop("again")
    assert _events(pipeline).count("emergency_stop") == 1

    with pytest.raises(PipelineHaltedError):
        pipeline.approve(Stage.A)
    assert pipeline.check_docs().ok

    pipeline.resume()
    pipeline.approve(Stage.A)
    assert pipeline.store.load().stage == Stage.B


def test_advance_reports_checkpoint(pipeline: InitPipeline) -> None:
    pipeline.start()
    with pytest.raises(GateNotSatisfiedError):
        pipeline.advance()
    pipeline.set_language("English")
    write_docs(pipeline.workspace.docs_root)
    pipeline.check_docs()
    lines = pipeline.advance().lines
    assert lines[0] == "== Stage A -> B Checkpoint =="
