from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from . import gate
from .blueprint import (
    check_pack_install,
    current_packs,
    recommend_packs,
    safe_add_packs,
    validate_blueprint,
    with_packs,
)
from .canonical import render_json_document
from .cleanup import archive_artifacts, cleanup_bootstrap, migrate_workdir, prune_agent_builder
from .docs_check import check_docs
from .errors import (
    CleanupRefusedError,
    ExternalToolError,
    StateNotInitializedError,
    ValidationFailedError,
)
from .models import CheckResult, PipelineState, PlanEntry, PlanMode, Stage
from .progress import checkpoint_lines, get_stage_progress, next_steps, status_lines
from .scaffold import ensure_init_templates, plan_scaffold, scaffold_changed
from .settings import RuntimeSettings
from .stage_c import ApplyOptions, ApplyOutcome, StageCApply
from .state_store import StateStore, atomic_write_text
from .sync import sync_wrappers
from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """What one command reports: ``payload`` for ``--format json``, ``lines`` for text."""

    ok: bool
    payload: dict[str, Any] = field(default_factory=dict)
    lines: list[str] = field(default_factory=list)


def _report_lines(summary: str, result: CheckResult) -> list[str]:
    lines = [summary]
    if result.errors:
        lines += ["", "Errors:"] + [f"- {error}" for error in result.errors]
    if result.warnings:
        lines += ["", "Warnings:"] + [f"- {warning}" for warning in result.warnings]
    return lines


def _plan_lines(plan: list[PlanEntry], workspace: Workspace) -> list[str]:
    lines = []
    for entry in plan:
        suffix = f" ({entry.reason})" if entry.reason else ""
        lines.append(f"- {entry.op} {workspace.relative(entry.path)} [{entry.mode.value}]{suffix}")
    return lines


class InitPipeline:
    """Command driver.

    Each public method is one CLI command: load state, run a pure transition,
    persist at most once (and only when the state changed), report a
    ``CommandResult``.
    """

    def __init__(
        self,
        repo_root: Path,
        *,
        settings: RuntimeSettings | None = None,
        docs_root: str | Path | None = None,
        blueprint_path: str | Path | None = None,
    ) -> None:
        self.workspace = Workspace.resolve(
            repo_root,
            settings=settings,
            docs_root=docs_root,
            blueprint_path=blueprint_path,
        )
        self.store = StateStore(self.workspace.state_path)
        self.workspace.warn_legacy_paths()

    @property
    def settings(self) -> RuntimeSettings:
        return self.workspace.settings

    def _load_required(self) -> PipelineState:
        state = self.store.load()
        if state is None:
            raise StateNotInitializedError()
        return state

    def _commit(self, before: PipelineState | None, after: PipelineState) -> bool:
        if before is not None and after == before:
            return False
        self.store.save(after)
        return True

    def start(self) -> CommandResult:
        before = self.store.load()
        state = gate.start(before)
        created = self._commit(before, state)
        rel = self.workspace.relative(self.store.path)
        lines = [f"[ok] Init state created: {rel}" if created else f"[info] Init state already exists: {rel}"]
        if not state.language:
            lines.append('Next: init-pipeline set-language --language "<your language>"')
        return CommandResult(ok=True, payload={"created": created, "statePath": rel}, lines=lines)

    def set_language(self, language: str) -> CommandResult:
        before = self._load_required()
        state = gate.set_language(before, language)
        templates = ensure_init_templates(self.workspace.docs_root, self.workspace.blueprint_path, apply=True)
        self._commit(before, state)
        lines = [f"[ok] Language: {state.language}", "Init templates:"] + _plan_lines(templates, self.workspace)
        payload = {
            "language": state.language,
            "templates": [entry.to_dict(self.workspace.repo_root) for entry in templates],
        }
        return CommandResult(ok=True, payload=payload, lines=lines)

    def status(self) -> CommandResult:
        state = self.store.load()
        if state is None:
            return CommandResult(
                ok=True,
                payload={"initialized": False},
                lines=["No init state detected.", "Next: init-pipeline start"],
            )
        payload = {"initialized": True, **get_stage_progress(state)}
        return CommandResult(ok=True, payload=payload, lines=status_lines(state, self.workspace))

    def advance(self) -> CommandResult:
        state = self._load_required()
        lines = checkpoint_lines(state, self.workspace)
        return CommandResult(ok=True, payload={"stage": state.stage.value, "checkpoint": lines}, lines=lines)

    def check_docs(self, *, strict: bool = False) -> CommandResult:
        result = check_docs(self.workspace.docs_root)
        before = self.store.load()
        if before is not None:
            self._commit(before, gate.apply_docs_check(before, result, self.workspace))
        ok = result.passes(strict=strict)
        summary = "[ok] Stage A docs check passed." if ok else "[error] Stage A docs check failed."
        if result.ok and not ok:
            summary = "[error] Stage A docs check failed in strict mode (warnings present)."
        payload = {**result.to_dict(), "ok": ok, "strict": strict}
        return CommandResult(ok=ok, payload=payload, lines=_report_lines(summary, result))

    def validate(self) -> CommandResult:
        report = validate_blueprint(self.workspace.load_blueprint())
        before = self.store.load()
        if before is not None:
            self._commit(before, gate.apply_blueprint_check(before, report))
        summary = "[ok] Blueprint is valid." if report.ok else "[error] Blueprint validation failed."
        return CommandResult(ok=report.ok, payload=report.to_dict(), lines=_report_lines(summary, report))

    def suggest_packs(self, *, write: bool = False) -> CommandResult:
        blueprint = self.workspace.load_blueprint()
        report = validate_blueprint(blueprint)
        recommended = recommend_packs(blueprint)
        current = current_packs(blueprint)
        missing = [pack for pack in recommended if pack not in current]
        installs = [check_pack_install(self.workspace.skills_root, pack) for pack in recommended]
        warnings = [
            f'Recommended pack "{item.pack}" is not installed ({item.reason}).' for item in installs if not item.installed
        ]
        for message in warnings:
            logger.warning("%s", message)

        before = self.store.load()
        if write:
            if before is None:
                raise StateNotInitializedError()
            gate.require_not_halted(before, "suggest-packs --write")
            gate.require_stage(before, Stage.B, "suggest-packs --write")
            if not report.ok:
                raise ValidationFailedError(
                    "Blueprint has errors; refusing to write packs.",
                    report.errors,
                    hint="Run: init-pipeline validate",
                )

        written = False
        packs = current
        if write and missing:
            packs = safe_add_packs(current, missing)
            atomic_write_text(self.workspace.blueprint_path, render_json_document(with_packs(blueprint, packs)))
            written = True
            logger.info("Blueprint packs updated: %s", packs)

        if before is not None:
            state = gate.apply_blueprint_check(before, report)
            self._commit(before, gate.mark_packs_reviewed(state, report))

        lines = [
            f"Current packs: {', '.join(current) or '(none)'}",
            f"Recommended packs: {', '.join(recommended)}",
            f"Missing recommended packs: {', '.join(missing) or '(none)'}",
        ]
        if written:
            lines.append(f"[ok] Wrote skills.packs: {', '.join(packs)}")
        elif missing:
            lines.append("Run with --write to add the missing packs to the blueprint.")
        if warnings:
            lines += ["", "Warnings:"] + [f"- {message}" for message in warnings]
        payload = {
            "ok": report.ok,
            "current": current,
            "recommended": recommended,
            "missing": missing,
            "installChecks": [item.to_dict() for item in installs],
            "written": written,
            "packs": packs,
            "warnings": warnings,
        }
        return CommandResult(ok=report.ok, payload=payload, lines=lines)

    def scaffold(self, *, apply: bool = False) -> CommandResult:
        before: PipelineState | None = None
        if apply:
            before = self._load_required()
            gate.require_not_halted(before, "scaffold --apply")
            gate.require_stage(before, Stage.C, "scaffold --apply")
            gate.require_language(before, "create the scaffold")

        blueprint = self.workspace.load_blueprint()
        report = validate_blueprint(blueprint)
        if not report.ok:
            raise ValidationFailedError(
                "Blueprint is not valid; refusing to scaffold.", report.errors, hint="Run: init-pipeline validate"
            )
        plan = plan_scaffold(self.workspace.repo_root, blueprint, apply)
        if before is not None:
            self._commit(before, gate.record_scaffold_applied(before))

        header = "Scaffold applied:" if apply else "Scaffold plan (dry-run):"
        if apply and not scaffold_changed(plan):
            header = "Scaffold already in place:"
        payload = {"apply": apply, "plan": [entry.to_dict(self.workspace.repo_root) for entry in plan]}
        return CommandResult(ok=True, payload=payload, lines=[header] + _plan_lines(plan, self.workspace))

    def apply(self, options: ApplyOptions, *, i_understand: bool = False) -> CommandResult:
        """Run Stage C end to end.

        A failed wrapper sync raises after the scaffold and manifest writes
        have landed; those are idempotent, so re-running after the fix is safe.
        No Stage C flag is recorded for a failed run.
        """
        before = self._load_required()
        gate.require_not_halted(before, "apply")
        gate.require_stage(before, Stage.C, "apply")
        gate.require_language(before, "apply Stage C")
        if options.skip_agent_builder and not i_understand:
            raise CleanupRefusedError(
                "--skip-agent-builder deletes the agent builder skills; refusing without acknowledgement.",
                hint="Re-run with --i-understand",
            )

        outcome = StageCApply(self.workspace, options).run(self.workspace.load_blueprint())
        self._raise_for_failure(outcome)
        self._commit(before, gate.record_stage_c_apply(before, outcome))

        lines = self._apply_lines(outcome)
        return CommandResult(ok=True, payload=outcome.to_dict(self.workspace.repo_root), lines=lines)

    def _raise_for_failure(self, outcome: ApplyOutcome) -> None:
        if outcome.failure == "validate":
            raise ValidationFailedError(
                "Blueprint is not valid; refusing to apply.",
                outcome.failure_errors,
                hint="Run: init-pipeline validate",
            )
        if outcome.failure == "docs_gate":
            raise ValidationFailedError(
                "Stage A docs check failed; refusing to apply.",
                outcome.failure_errors,
                hint="Run: init-pipeline check-docs",
            )
        sync = outcome.sync
        if sync is not None and sync.mode == PlanMode.FAILED:
            message = f"Wrapper sync failed: {' '.join(sync.command)} ({sync.reason})"
            if sync.output_tail:
                message += f"\n{sync.output_tail}"
            raise ExternalToolError(
                message,
                exit_code=sync.exit_code,
                hint="Fix the wrapper-sync error, then re-run: init-pipeline apply",
            )

    def _apply_lines(self, outcome: ApplyOutcome) -> list[str]:
        lines = ["Scaffold:"] + _plan_lines(outcome.scaffold, self.workspace)
        if outcome.manifest is not None:
            reason = f" ({outcome.manifest.reason})" if outcome.manifest.reason else ""
            lines.append(
                f"Manifest: {self.workspace.relative(outcome.manifest.path)} [{outcome.manifest.mode.value}]{reason}"
            )
        if outcome.prune is not None:
            lines += ["Agent builder:"] + _plan_lines([outcome.prune], self.workspace)
        if outcome.sync is not None:
            reason = f" ({outcome.sync.reason})" if outcome.sync.reason else ""
            lines.append(f"Wrapper sync: {outcome.sync.mode.value}{reason}")
        if outcome.warnings:
            lines += ["", "Warnings:"] + [f"- {warning}" for warning in outcome.warnings]
        return lines

    def approve(self, stage: Stage) -> CommandResult:
        before = self._load_required()
        state = gate.approve(before, stage, self.workspace)
        self._commit(before, state)
        lines = [f"[ok] Stage {stage.value} approved. Current stage: {state.stage.value}"]
        lines += ["Next:"] + [f"- {step}" for step in next_steps(state, self.workspace)]
        return CommandResult(ok=True, payload={"approved": stage.value, "stage": state.stage.value}, lines=lines)

    def review_skill_retention(self) -> CommandResult:
        before = self._load_required()
        state = gate.review_skill_retention(before)
        self._commit(before, state)
        return CommandResult(
            ok=True,
            payload={"skillRetentionReviewed": True},
            lines=["[ok] Skill retention review recorded.", "Next: init-pipeline approve --stage C"],
        )

    def stop(self, reason: str = "") -> CommandResult:
        before = self._load_required()
        state = gate.emergency_stop(before, reason)
        changed = self._commit(before, state)
        line = "[ok] Emergency stop recorded." if changed else "[info] Pipeline is already halted."
        return CommandResult(ok=True, payload={"halted": True}, lines=[line, "Resume with: init-pipeline resume"])

    def resume(self) -> CommandResult:
        before = self._load_required()
        state = gate.resume(before)
        changed = self._commit(before, state)
        line = "[ok] Pipeline resumed." if changed else "[info] Pipeline is not halted."
        return CommandResult(ok=True, payload={"halted": False}, lines=[line])

    def cleanup(
        self,
        *,
        apply: bool = False,
        archive_docs: bool = False,
        archive_blueprint: bool = False,
        archive_dir: str | None = None,
        i_understand: bool = False,
    ) -> CommandResult:
        """Archive requested artifacts, then remove the bootstrap directory.

        The safety gate is checked before anything is copied; a failed archive
        aborts before anything is deleted.
        """
        repo_root = self.workspace.repo_root
        preview = cleanup_bootstrap(repo_root, self.settings, acknowledged=i_understand, apply=False)

        lines: list[str] = []
        payload: dict[str, Any] = {"apply": apply}
        if archive_docs or archive_blueprint:
            archive_root = self.settings.resolve(repo_root, archive_dir or self.settings.archive_dir)
            archive = archive_artifacts(
                repo_root,
                self.workspace.docs_root,
                self.workspace.blueprint_path,
                archive_root,
                docs=archive_docs,
                blueprint=archive_blueprint,
                apply=apply,
            )
            payload["archive"] = archive.to_dict(repo_root)
            if archive.errors:
                raise CleanupRefusedError(
                    "Archive failed; refusing to clean up: " + "; ".join(archive.errors),
                    hint="Fix the archive errors or drop the --archive options",
                )
            lines += [f"Archive to {self.workspace.relative(archive_root)}:"]
            lines += _plan_lines(archive.actions, self.workspace)

        entry = preview
        if apply and preview.mode != PlanMode.SKIPPED:
            entry = cleanup_bootstrap(repo_root, self.settings, acknowledged=i_understand, apply=True)
        payload["cleanup"] = entry.to_dict(repo_root)
        lines += ["Cleanup:"] + _plan_lines([entry], self.workspace)
        return CommandResult(ok=True, payload=payload, lines=lines)

    def migrate_workdir(self, *, apply: bool = False) -> CommandResult:
        plan = migrate_workdir(self.workspace.repo_root, self.settings, apply)
        header = "Workdir migration:" if apply else "Workdir migration (dry-run):"
        payload = {"apply": apply, "plan": [entry.to_dict(self.workspace.repo_root) for entry in plan]}
        return CommandResult(ok=True, payload=payload, lines=[header] + _plan_lines(plan, self.workspace))

    def prune_agent_builder(
        self,
        *,
        apply: bool = False,
        sync: bool = True,
        providers: str | None = None,
        i_understand: bool = False,
    ) -> CommandResult:
        before = self.store.load()
        if apply:
            if not i_understand:
                raise CleanupRefusedError(
                    "Pruning deletes the agent builder skills; refusing without acknowledgement.",
                    hint="Re-run with --i-understand",
                )
            if before is not None:
                gate.require_not_halted(before, "prune-agent-builder --apply")

        entry = prune_agent_builder(self.workspace.skills_root, apply)
        lines = ["Agent builder:"] + _plan_lines([entry], self.workspace)
        payload: dict[str, Any] = {"apply": apply, "prune": entry.to_dict(self.workspace.repo_root)}
        if entry.mode != PlanMode.APPLIED:
            return CommandResult(ok=True, payload=payload, lines=lines)

        synced = False
        if sync:
            result = sync_wrappers(
                self.workspace.repo_root,
                self.settings,
                providers or self.settings.default_providers,
                apply=True,
            )
            payload["sync"] = result.to_dict()
            if result.mode == PlanMode.FAILED:
                if before is not None:
                    self._commit(before, gate.record_skills_pruned(before, wrappers_synced=False))
                raise ExternalToolError(
                    f"Wrapper sync failed after pruning ({result.reason})",
                    exit_code=result.exit_code,
                    hint="Fix the wrapper-sync error, then re-run: init-pipeline apply",
                )
            synced = result.succeeded
            lines.append(f"Wrapper sync: {result.mode.value}")
        if before is not None:
            self._commit(before, gate.record_skills_pruned(before, wrappers_synced=synced))
        return CommandResult(ok=True, payload=payload, lines=lines)
