from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, TypedDict

from langgraph.graph import END, START, StateGraph

from .blueprint import check_pack_install, missing_recommended_packs, recommend_packs, validate_blueprint
from .cleanup import prune_agent_builder
from .docs_check import check_docs
from .manifest import reconcile_manifest
from .models import BlueprintReport, CheckResult, ManifestResult, PlanEntry, PlanMode, SyncResult
from .scaffold import plan_scaffold, scaffold_changed
from .sync import sync_wrappers
from .workspace import Workspace

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApplyOptions:
    providers: str = "both"
    require_stage_a: bool = False
    require_stage_a_strict: bool = False
    skip_agent_builder: bool = False


@dataclass
class ApplyOutcome:
    """Everything one Stage C apply run did, in graph order.

    ``failure`` names the step that stopped the run; later steps are absent.
    """

    blueprint: BlueprintReport | None = None
    docs: CheckResult | None = None
    scaffold: list[PlanEntry] = field(default_factory=list)
    manifest: ManifestResult | None = None
    prune: PlanEntry | None = None
    sync: SyncResult | None = None
    failure: str | None = None
    failure_errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.failure is None and self.sync is not None

    @property
    def skills_changed(self) -> bool:
        manifest_changed = self.manifest is not None and self.manifest.changed
        pruned = self.prune is not None and self.prune.mode == PlanMode.APPLIED
        return manifest_changed or pruned

    def to_dict(self, repo_root: Path | None = None) -> dict[str, Any]:
        return {
            "ok": self.failure is None and not (self.sync is not None and self.sync.mode == PlanMode.FAILED),
            "failure": self.failure,
            "errors": list(self.failure_errors),
            "warnings": list(self.warnings),
            "blueprint": self.blueprint.to_dict() if self.blueprint else None,
            "docs": self.docs.to_dict() if self.docs else None,
            "scaffold": [entry.to_dict(repo_root) for entry in self.scaffold],
            "manifest": self.manifest.to_dict() if self.manifest else None,
            "prune": self.prune.to_dict(repo_root) if self.prune else None,
            "sync": self.sync.to_dict() if self.sync else None,
        }


class ApplyGraphState(TypedDict, total=False):
    blueprint: dict[str, Any]
    outcome: ApplyOutcome


class StageCApply:
    """Stage C apply as a StateGraph: validate, docs gate, scaffold, manifest, prune, sync.

    Each node records into a shared ``ApplyOutcome``. A blocking failure in
    the validate or docs gate routes straight to END with nothing written.
    """

    def __init__(self, workspace: Workspace, options: ApplyOptions) -> None:
        self.workspace = workspace
        self.options = options
        self.graph = self._build_graph().compile()

    def _build_graph(self) -> StateGraph:
        graph = StateGraph(ApplyGraphState)
        graph.add_node("validate", self._validate_node)
        graph.add_node("docs_gate", self._docs_gate_node)
        graph.add_node("scaffold", self._scaffold_node)
        graph.add_node("manifest", self._manifest_node)
        graph.add_node("prune", self._prune_node)
        graph.add_node("sync", self._sync_node)

        graph.add_edge(START, "validate")
        graph.add_conditional_edges("validate", self._route, {"continue": "docs_gate", "end": END})
        graph.add_conditional_edges("docs_gate", self._route, {"continue": "scaffold", "end": END})
        graph.add_edge("scaffold", "manifest")
        graph.add_edge("manifest", "prune")
        graph.add_edge("prune", "sync")
        graph.add_edge("sync", END)
        return graph

    def _route(self, state: ApplyGraphState) -> str:
        return "end" if state["outcome"].failure else "continue"

    def _validate_node(self, state: ApplyGraphState) -> dict[str, Any]:
        outcome = state["outcome"]
        blueprint = state["blueprint"]
        report = validate_blueprint(blueprint)
        outcome.blueprint = report
        if not report.ok:
            outcome.failure = "validate"
            outcome.failure_errors = list(report.errors)
            return {"outcome": outcome}

        for pack in missing_recommended_packs(blueprint):
            message = f'Recommended pack "{pack}" is not listed in skills.packs'
            logger.warning("%s", message)
            outcome.warnings.append(message)
        for pack in recommend_packs(blueprint):
            install = check_pack_install(self.workspace.skills_root, pack)
            if not install.installed:
                message = f'Recommended pack "{pack}" is not installed ({install.reason})'
                logger.warning("%s", message)
                outcome.warnings.append(message)
        return {"outcome": outcome}

    def _docs_gate_node(self, state: ApplyGraphState) -> dict[str, Any]:
        outcome = state["outcome"]
        strict = self.options.require_stage_a_strict
        if not (self.options.require_stage_a or strict):
            return {"outcome": outcome}
        result = check_docs(self.workspace.docs_root)
        outcome.docs = result
        if not result.passes(strict=strict):
            outcome.failure = "docs_gate"
            outcome.failure_errors = list(result.errors)
            if strict and result.ok:
                outcome.failure_errors = [f"Strict mode: {warning}" for warning in result.warnings]
        return {"outcome": outcome}

    def _scaffold_node(self, state: ApplyGraphState) -> dict[str, Any]:
        outcome = state["outcome"]
        outcome.scaffold = plan_scaffold(self.workspace.repo_root, state["blueprint"], apply=True)
        if not scaffold_changed(outcome.scaffold):
            logger.info("Scaffold already in place")
        return {"outcome": outcome}

    def _manifest_node(self, state: ApplyGraphState) -> dict[str, Any]:
        outcome = state["outcome"]
        outcome.manifest = reconcile_manifest(self.workspace.manifest_path, state["blueprint"], apply=True)
        outcome.warnings.extend(outcome.manifest.warnings)
        return {"outcome": outcome}

    def _prune_node(self, state: ApplyGraphState) -> dict[str, Any]:
        outcome = state["outcome"]
        if self.options.skip_agent_builder:
            outcome.prune = prune_agent_builder(self.workspace.skills_root, apply=True)
        return {"outcome": outcome}

    def _sync_node(self, state: ApplyGraphState) -> dict[str, Any]:
        outcome = state["outcome"]
        outcome.sync = sync_wrappers(
            self.workspace.repo_root,
            self.workspace.settings,
            self.options.providers,
            apply=True,
        )
        return {"outcome": outcome}

    def run(self, blueprint: dict[str, Any]) -> ApplyOutcome:
        initial: ApplyGraphState = {"blueprint": blueprint, "outcome": ApplyOutcome()}
        result = self.graph.invoke(initial)
        return result["outcome"]
