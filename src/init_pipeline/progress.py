from __future__ import annotations

from typing import Any

from .errors import GateNotSatisfiedError
from .models import STAGE_NAMES, PipelineState, Stage
from .workspace import Workspace

CLI = "init-pipeline"


def _yes_no(flag: bool) -> str:
    return "yes" if flag else "no"


def get_stage_progress(state: PipelineState) -> dict[str, Any]:
    stage_a = state.stage_a
    stage_b = state.stage_b
    stage_c = state.stage_c
    return {
        "stage": state.stage.value,
        "language": state.language,
        "halted": state.halted,
        "stage-a": {
            "mustAskTotal": len(stage_a.must_ask),
            "mustAskAnswered": sum(1 for item in stage_a.must_ask.values() if item.answered),
            "docsTotal": 4,
            "docsWritten": stage_a.docs_written.count(),
            "validated": stage_a.validated,
            "userApproved": stage_a.user_approved,
        },
        "stage-b": stage_b.model_dump(by_alias=True),
        "stage-c": stage_c.model_dump(by_alias=True),
    }


def next_steps(state: PipelineState, workspace: Workspace) -> list[str]:
    docs_rel = workspace.relative(workspace.docs_root)
    blueprint_rel = workspace.relative(workspace.blueprint_path)
    if state.halted:
        return ["Pipeline is halted by an emergency stop.", f"Run: {CLI} resume"]
    if not state.language:
        return [f'Run: {CLI} set-language --language "<your language>"']

    if state.stage == Stage.A:
        if not state.stage_a.validated:
            return [
                "Complete the interview and draft the Stage A docs.",
                f"Run: {CLI} check-docs --docs-root {docs_rel}",
            ]
        return ["Ask the user to review the Stage A docs.", f"After approval run: {CLI} approve --stage A"]
    if state.stage == Stage.B:
        if not state.stage_b.validated:
            return [f"Fill in {blueprint_rel}", f"Run: {CLI} validate --blueprint {blueprint_rel}"]
        if not state.stage_b.packs_reviewed:
            return [f"Run: {CLI} suggest-packs"]
        return ["Ask the user to review the blueprint.", f"After approval run: {CLI} approve --stage B"]
    if state.stage == Stage.C:
        if not state.stage_c.wrappers_synced:
            return [f"Run: {CLI} apply"]
        if not state.stage_c.skill_retention_reviewed:
            return ["Review skill retention (keep vs prune).", f"Then run: {CLI} review-skill-retention"]
        return ["Initialization ready for review.", f"After approval run: {CLI} approve --stage C"]
    return ["Initialization complete!", f"Optional: {CLI} cleanup --apply --i-understand"]


def status_lines(state: PipelineState, workspace: Workspace) -> list[str]:
    progress = get_stage_progress(state)
    lines = [
        "== Init Status ==",
        f"Current stage: {state.stage.value} - {STAGE_NAMES[state.stage]}",
        f"Language: {state.language or '(not set)'}",
    ]
    if state.halted:
        lines.append("Halted: yes (emergency stop)")

    if state.stage in (Stage.A, Stage.B, Stage.C):
        stage_a = progress["stage-a"]
        lines += [
            "",
            "Stage A:",
            f"  Must-ask: {stage_a['mustAskAnswered']}/{stage_a['mustAskTotal']}",
            f"  Docs written: {stage_a['docsWritten']}/{stage_a['docsTotal']}",
            f"  Validated: {_yes_no(state.stage_a.validated)}",
            f"  User approved: {_yes_no(state.stage_a.user_approved)}",
        ]
    if state.stage in (Stage.B, Stage.C):
        lines += [
            "",
            "Stage B:",
            f"  Drafted: {_yes_no(state.stage_b.drafted)}",
            f"  Validated: {_yes_no(state.stage_b.validated)}",
            f"  Packs reviewed: {_yes_no(state.stage_b.packs_reviewed)}",
            f"  User approved: {_yes_no(state.stage_b.user_approved)}",
        ]
    if state.stage in (Stage.C, Stage.COMPLETE):
        lines += [
            "",
            "Stage C:",
            f"  Scaffold applied: {_yes_no(state.stage_c.scaffold_applied)}",
            f"  Manifest updated: {_yes_no(state.stage_c.manifest_updated)}",
            f"  Wrappers synced: {_yes_no(state.stage_c.wrappers_synced)}",
            f"  Skill retention reviewed: {_yes_no(state.stage_c.skill_retention_reviewed)}",
        ]

    lines += ["", "Next steps:"]
    lines += [f"- {step}" for step in next_steps(state, workspace)]
    return lines


def checkpoint_lines(state: PipelineState, workspace: Workspace) -> list[str]:
    """Describe the checkpoint the user must confirm before the next ``approve``.

    Raises:
        GateNotSatisfiedError: If the current stage has not reached its checkpoint.
    """
    if state.stage == Stage.A:
        if not state.stage_a.validated:
            raise GateNotSatisfiedError("Stage A docs not validated yet.", hint=f"Run: {CLI} check-docs")
        return [
            "== Stage A -> B Checkpoint ==",
            "Stage A docs validated.",
            f"Confirm the user reviewed and approved docs under {workspace.relative(workspace.docs_root)}/",
            f"If confirmed, run: {CLI} approve --stage A",
        ]
    if state.stage == Stage.B:
        if not state.stage_b.validated:
            raise GateNotSatisfiedError("Stage B blueprint not validated yet.", hint=f"Run: {CLI} validate")
        if not state.stage_b.packs_reviewed:
            return [
                "== Stage B Pack Review Checkpoint ==",
                "Blueprint validated, but skill pack selection has not been reviewed yet.",
                f"Review recommended packs by running: {CLI} suggest-packs",
            ]
        return [
            "== Stage B -> C Checkpoint ==",
            "Stage B blueprint validated.",
            f"Confirm the user reviewed and approved {workspace.relative(workspace.blueprint_path)}.",
            f"If confirmed, run: {CLI} approve --stage B",
        ]
    if state.stage == Stage.C:
        if not state.stage_c.wrappers_synced:
            raise GateNotSatisfiedError("Stage C not complete yet.", hint=f"Run: {CLI} apply")
        if not state.stage_c.skill_retention_reviewed:
            return [
                "== Stage C Skill Retention Review Checkpoint ==",
                "Scaffold and skill wrappers are generated.",
                "Before approving Stage C, review which skills to keep vs prune.",
                f"When done, run: {CLI} review-skill-retention",
            ]
        return [
            "== Stage C Completion Checkpoint ==",
            "Scaffold and skill packs applied.",
            "Confirm the user reviewed the initialization result.",
            f"If confirmed, run: {CLI} approve --stage C",
        ]
    return ["Initialization complete. No checkpoint pending."]
