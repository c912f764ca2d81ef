from __future__ import annotations

import logging
from importlib.resources import files
from pathlib import Path
from typing import Any

from .blueprint import capability_enabled
from .models import PlanEntry, PlanMode

logger = logging.getLogger(__name__)

FRONTEND_NOTE = "This folder is a scaffold placeholder. Populate it based on your selected frontend stack.\n"
BACKEND_NOTE = "This folder is a scaffold placeholder. Populate it based on your selected backend stack.\n"


def ensure_dir(path: Path, apply: bool) -> PlanEntry:
    if path.exists():
        return PlanEntry(op="skip", path=path, mode=PlanMode.SKIPPED, reason="exists")
    if not apply:
        return PlanEntry(op="mkdir", path=path, mode=PlanMode.DRY_RUN)
    path.mkdir(parents=True, exist_ok=True)
    return PlanEntry(op="mkdir", path=path, mode=PlanMode.APPLIED)


def write_if_missing(path: Path, content: str, apply: bool) -> PlanEntry:
    if path.exists():
        return PlanEntry(op="skip", path=path, mode=PlanMode.SKIPPED, reason="exists")
    if not apply:
        return PlanEntry(op="write", path=path, mode=PlanMode.DRY_RUN)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
    return PlanEntry(op="write", path=path, mode=PlanMode.APPLIED)


def _monorepo_tree(frontend: bool, backend: bool) -> list[tuple[str, str | None]]:
    tree: list[tuple[str, str | None]] = [
        ("apps", None),
        ("packages", None),
        ("apps/README.md", "# Apps\n\nApp entry points for this monorepo.\n"),
        ("packages/README.md", "# Packages\n\nShared packages/libraries for this monorepo.\n"),
    ]
    if frontend:
        tree += [("apps/frontend", None), ("apps/frontend/README.md", "# Frontend app\n\n" + FRONTEND_NOTE)]
    if backend:
        tree += [("apps/backend", None), ("apps/backend/README.md", "# Backend app\n\n" + BACKEND_NOTE)]
    if frontend and backend:
        tree += [
            ("packages/shared", None),
            (
                "packages/shared/README.md",
                "# Shared package\n\nThis folder is a scaffold placeholder for shared types/utilities.\n",
            ),
        ]
    return tree


def _single_tree(frontend: bool, backend: bool) -> list[tuple[str, str | None]]:
    tree: list[tuple[str, str | None]] = [
        ("src", None),
        ("src/README.md", "# src\n\nApplication source code.\n"),
    ]
    if frontend:
        tree += [("src/frontend", None), ("src/frontend/README.md", "# Frontend\n\n" + FRONTEND_NOTE)]
    if backend:
        tree += [("src/backend", None), ("src/backend/README.md", "# Backend\n\n" + BACKEND_NOTE)]
    return tree


def plan_scaffold(repo_root: Path, blueprint: dict[str, Any], apply: bool) -> list[PlanEntry]:
    """Plan (and with *apply*, create) the minimal directory skeleton.

    Strictly additive: existing paths are reported as ``skip(exists)`` and left
    untouched, so a second apply over the same inputs changes nothing.
    """
    repo = blueprint.get("repo") if isinstance(blueprint.get("repo"), dict) else {}
    frontend = capability_enabled(blueprint, "frontend")
    backend = capability_enabled(blueprint, "backend")
    if repo.get("layout") == "monorepo":
        tree = _monorepo_tree(frontend, backend)
    else:
        tree = _single_tree(frontend, backend)

    plan: list[PlanEntry] = []
    for rel, content in tree:
        path = repo_root / rel
        entry = ensure_dir(path, apply) if content is None else write_if_missing(path, content, apply)
        if entry.mode == PlanMode.APPLIED:
            logger.info("Scaffold %s: %s", entry.op, rel)
        plan.append(entry)
    return plan


def scaffold_changed(plan: list[PlanEntry]) -> bool:
    return any(entry.mode == PlanMode.APPLIED for entry in plan)


DOC_TEMPLATES = {
    "requirements.md": "requirements.template.md",
    "non-functional-requirements.md": "non-functional-requirements.template.md",
    "domain-glossary.md": "domain-glossary.template.md",
    "risk-open-questions.md": "risk-open-questions.template.md",
}
BLUEPRINT_TEMPLATE = "project-blueprint.example.json"


def read_template(name: str) -> str:
    return files("init_pipeline").joinpath("templates").joinpath(name).read_text(encoding="utf-8")


def ensure_init_templates(docs_root: Path, blueprint_path: Path, apply: bool) -> list[PlanEntry]:
    """Copy the Stage A doc templates and the example blueprint into place if missing."""
    plan = [ensure_dir(docs_root, apply)]
    for target, template in DOC_TEMPLATES.items():
        plan.append(write_if_missing(docs_root / target, read_template(template), apply))
    plan.append(write_if_missing(blueprint_path, read_template(BLUEPRINT_TEMPLATE), apply))
    return plan
