"""Checkpoint and approval gate.

Every function takes a ``PipelineState`` and returns a new one; nothing here
touches the state file. Callers compare the result against what they loaded
and persist only on change. History events are appended only when the
transition actually changes a flag or the stage.
"""

from __future__ import annotations

import logging

from .blueprint import validate_blueprint
from .docs_check import check_docs, docs_written
from .errors import (
    GateNotSatisfiedError,
    LanguageNotSetError,
    PipelineHaltedError,
    ValidationFailedError,
    WrongStageError,
)
from .models import MUST_ASK_KEYS, BlueprintReport, CheckResult, MustAskItem, PipelineState, Stage
from .stage_c import ApplyOutcome
from .state_store import add_event, create_initial_state
from .workspace import Workspace

logger = logging.getLogger(__name__)

PRIOR_STEP_HINTS = {
    Stage.A: "Run: init-pipeline check-docs, then init-pipeline approve --stage A",
    Stage.B: "Run: init-pipeline validate, init-pipeline suggest-packs, then init-pipeline approve --stage B",
    Stage.C: "Run: init-pipeline apply, init-pipeline review-skill-retention, then init-pipeline approve --stage C",
    Stage.COMPLETE: "Initialization is complete. Optional: init-pipeline cleanup --apply --i-understand",
}


def start(state: PipelineState | None) -> PipelineState:
    if state is not None:
        return state
    logger.info("Initializing pipeline state")
    return create_initial_state()


def set_language(state: PipelineState, language: str) -> PipelineState:
    value = language.strip()
    if not value:
        raise ValidationFailedError("Language must be a non-empty string.", [], hint='Example: --language "English"')
    if state.language == value:
        return state
    updated = state.model_copy(update={"language": value})
    return add_event(updated, "language_set", value)


def require_stage(state: PipelineState, required: Stage, command: str) -> None:
    if state.stage != required:
        raise WrongStageError(command, state.stage.value, required.value, hint=PRIOR_STEP_HINTS.get(state.stage))


def require_not_halted(state: PipelineState, command: str) -> None:
    if state.halted:
        raise PipelineHaltedError(command)


def require_language(state: PipelineState, action: str) -> None:
    if not state.language:
        raise LanguageNotSetError(action)


def _backfill_must_ask(items: dict[str, MustAskItem]) -> dict[str, MustAskItem]:
    filled = {key: item.model_copy() for key, item in items.items()}
    for key in MUST_ASK_KEYS:
        item = filled.get(key, MustAskItem())
        default_doc = "non-functional-requirements.md" if key == "constraints" else "requirements.md"
        filled[key] = MustAskItem(asked=True, answered=True, written_to=item.written_to or default_doc)
    return filled


def apply_docs_check(state: PipelineState, result: CheckResult, workspace: Workspace) -> PipelineState:
    """Reconcile Stage A progress with a fresh docs check.

    Only applies while the pipeline sits in Stage A. A pass marks the stage
    validated and back-fills the must-ask checklist; a failure after an
    earlier pass revokes ``validated``. Never changes ``stage``.

    ``validated`` follows the non-strict result, the same check ``approve``
    re-runs; strict mode only affects the command's exit status.
    """
    if state.stage != Stage.A:
        return state
    progress = state.stage_a.model_copy(deep=True)
    progress.docs_written = docs_written(workspace.docs_root)
    passed = result.ok
    event: tuple[str, str] | None = None
    if passed:
        progress.must_ask = _backfill_must_ask(progress.must_ask)
        if not progress.validated:
            progress.validated = True
            event = ("stage_a_validated", "Stage A docs passed validation")
    elif progress.validated:
        progress.validated = False
        event = ("stage_a_invalidated", f"Stage A docs failed validation ({len(result.errors)} error(s))")

    if progress == state.stage_a:
        return state
    updated = state.model_copy(update={"stage_a": progress})
    if event is not None:
        logger.info("Stage A validated flag set to %s", progress.validated)
        updated = add_event(updated, *event)
    return updated


def apply_blueprint_check(state: PipelineState, report: BlueprintReport) -> PipelineState:
    if state.stage != Stage.B:
        return state
    progress = state.stage_b.model_copy()
    event: tuple[str, str] | None = None
    if report.ok:
        progress.drafted = True
        if not progress.validated:
            progress.validated = True
            event = ("stage_b_validated", "Blueprint passed validation")
    elif progress.validated:
        progress.validated = False
        event = ("stage_b_invalidated", f"Blueprint failed validation ({len(report.errors)} error(s))")

    if progress == state.stage_b:
        return state
    updated = state.model_copy(update={"stage_b": progress})
    if event is not None:
        logger.info("Stage B validated flag set to %s", progress.validated)
        updated = add_event(updated, *event)
    return updated


def mark_packs_reviewed(state: PipelineState, report: BlueprintReport) -> PipelineState:
    if state.stage != Stage.B or not report.ok:
        return state
    if state.stage_b.drafted and state.stage_b.packs_reviewed:
        return state
    progress = state.stage_b.model_copy(update={"drafted": True, "packs_reviewed": True})
    updated = state.model_copy(update={"stage_b": progress})
    return add_event(updated, "stage_b_packs_reviewed", "Pack selection reviewed")


def approve(state: PipelineState, stage: Stage, workspace: Workspace) -> PipelineState:
    """Record explicit user approval of *stage* and advance to the next one.

    Stage A and B approvals re-run their validator against the current files
    so an edit made after the last check cannot slip through.

    Raises:
        PipelineHaltedError: If an emergency stop is in effect.
        WrongStageError: If *stage* is not the current stage.
        GateNotSatisfiedError: If a prerequisite flag is not set.
        ValidationFailedError: If re-validation fails. The state is not modified.
    """
    command = f"approve --stage {stage.value}"
    require_not_halted(state, command)
    if stage == Stage.COMPLETE:
        raise WrongStageError(command, state.stage.value, "A, B or C")
    require_stage(state, stage, command)

    if stage == Stage.A:
        if not state.stage_a.validated:
            raise GateNotSatisfiedError(
                "Stage A docs have not been validated.", hint="Run: init-pipeline check-docs"
            )
        result = check_docs(workspace.docs_root)
        if not result.ok:
            raise ValidationFailedError(
                "Stage A docs no longer pass validation; refusing to approve.",
                result.errors,
                hint="Fix the docs and run: init-pipeline check-docs",
            )
        progress = state.stage_a.model_copy(update={"user_approved": True})
        updated = state.model_copy(update={"stage_a": progress, "stage": Stage.B})
        return add_event(updated, "stage_a_approved", "Stage A approved; moving to Stage B")

    if stage == Stage.B:
        if not state.stage_b.validated:
            raise GateNotSatisfiedError("Blueprint has not been validated.", hint="Run: init-pipeline validate")
        if not state.stage_b.packs_reviewed:
            raise GateNotSatisfiedError("Pack selection has not been reviewed.", hint="Run: init-pipeline suggest-packs")
        report = validate_blueprint(workspace.load_blueprint())
        if not report.ok:
            raise ValidationFailedError(
                "Blueprint no longer passes validation; refusing to approve.",
                report.errors,
                hint="Fix the blueprint and run: init-pipeline validate",
            )
        progress = state.stage_b.model_copy(update={"user_approved": True})
        updated = state.model_copy(update={"stage_b": progress, "stage": Stage.C})
        return add_event(updated, "stage_b_approved", "Stage B approved; moving to Stage C")

    if not state.stage_c.wrappers_synced:
        raise GateNotSatisfiedError("Wrappers have not been synced.", hint="Run: init-pipeline apply")
    if not state.stage_c.skill_retention_reviewed:
        raise GateNotSatisfiedError(
            "Skill retention has not been reviewed.", hint="Run: init-pipeline review-skill-retention"
        )
    progress = state.stage_c.model_copy(update={"user_approved": True})
    updated = state.model_copy(update={"stage_c": progress, "stage": Stage.COMPLETE})
    return add_event(updated, "stage_c_approved", "Stage C approved; initialization complete")


def record_stage_c_apply(state: PipelineState, outcome: ApplyOutcome) -> PipelineState:
    """Fold a finished apply run into Stage C progress.

    ``wrappersSynced`` is set only when the sync actually ran and succeeded.
    Any change to the manifest or skills tree revokes an earlier skill
    retention review.
    """
    if not outcome.completed:
        return state
    progress = state.stage_c.model_copy()
    progress.scaffold_applied = True
    progress.manifest_updated = True
    if outcome.sync is not None and outcome.sync.succeeded:
        progress.wrappers_synced = True
    if outcome.skills_changed:
        progress.skill_retention_reviewed = False

    if progress == state.stage_c:
        return state
    updated = state.model_copy(update={"stage_c": progress})
    return add_event(updated, "stage_c_applied", "Scaffold, manifest and wrapper sync applied")


def record_scaffold_applied(state: PipelineState) -> PipelineState:
    if state.stage_c.scaffold_applied:
        return state
    progress = state.stage_c.model_copy(update={"scaffold_applied": True})
    updated = state.model_copy(update={"stage_c": progress})
    return add_event(updated, "stage_c_scaffold_applied", "Scaffold applied")


def record_skills_pruned(state: PipelineState, *, wrappers_synced: bool) -> PipelineState:
    """The skills tree changed outside ``apply``; an earlier retention review no longer holds."""
    if state.stage != Stage.C:
        return state
    progress = state.stage_c.model_copy(
        update={
            "skill_retention_reviewed": False,
            "wrappers_synced": state.stage_c.wrappers_synced and wrappers_synced,
        }
    )
    if progress == state.stage_c:
        return state
    updated = state.model_copy(update={"stage_c": progress})
    return add_event(updated, "stage_c_skills_pruned", "Agent builder skills pruned")


def review_skill_retention(state: PipelineState) -> PipelineState:
    command = "review-skill-retention"
    require_not_halted(state, command)
    require_stage(state, Stage.C, command)
    if not state.stage_c.wrappers_synced:
        raise GateNotSatisfiedError("Wrappers have not been synced.", hint="Run: init-pipeline apply")
    if state.stage_c.skill_retention_reviewed:
        return state
    progress = state.stage_c.model_copy(update={"skill_retention_reviewed": True})
    updated = state.model_copy(update={"stage_c": progress})
    return add_event(updated, "stage_c_skill_retention_reviewed", "Skill retention reviewed")


def emergency_stop(state: PipelineState, reason: str = "") -> PipelineState:
    if state.halted:
        return state
    logger.warning("Emergency stop requested: %s", reason or "(no reason given)")
    return add_event(state, "emergency_stop", reason)


def resume(state: PipelineState) -> PipelineState:
    if not state.halted:
        return state
    return add_event(state, "resumed", "Pipeline resumed")
