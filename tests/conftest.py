import json
import sys
from pathlib import Path
from typing import Any

import pytest

from init_pipeline import InitPipeline, RuntimeSettings, Stage


VALID_DOCS = {
    "requirements.md": (
        "# Requirements\n\n"
        "## Conclusions\n\n"
        "- Purpose: send and track invoices for small repair shops\n\n"
        "## Goals\n\n"
        "- Create invoices from completed jobs\n\n"
        "## Non-goals\n\n"
        "- Payroll\n"
    ),
    "non-functional-requirements.md": (
        "# Non-functional Requirements\n\n"
        "## Conclusions\n\n"
        "- Runs on a single small VM\n"
    ),
    "domain-glossary.md": (
        "# Domain Glossary\n\n"
        "## Terms\n\n"
        "| Term | Definition |\n"
        "|---|---|\n"
        "| Invoice | A bill sent to a customer |\n"
    ),
    "risk-open-questions.md": (
        "# Risks and Open Questions\n\n"
        "## Open questions\n\n"
        "- Which payment provider should we use? Owner: Sam, decision due 2026-11-01\n"
    ),
}

VALID_BLUEPRINT: dict[str, Any] = {
    "version": 1,
    "project": {"name": "shop-invoices", "description": "Invoicing for repair shops"},
    "repo": {"layout": "single", "language": "python"},
    "capabilities": {"backend": {"enabled": True}},
    "skills": {"packs": ["workflows", "backend"]},
}

SYNC_SCRIPT_REL = ".ai/scripts/sync_skills.py"


def write_docs(docs_root: Path, overrides: dict[str, str] | None = None) -> None:
    docs_root.mkdir(parents=True, exist_ok=True)
    for name, content in {**VALID_DOCS, **(overrides or {})}.items():
        (docs_root / name).write_text(content, encoding="utf-8")


def write_blueprint(path: Path, blueprint: dict[str, Any] | None = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(blueprint if blueprint is not None else VALID_BLUEPRINT, indent=2), encoding="utf-8")


def write_sync_script(repo_root: Path, exit_code: int = 0) -> Path:
    """Install a stand-in wrapper-sync tool that records its argv and exits with *exit_code*."""
    script = repo_root / SYNC_SCRIPT_REL
    script.parent.mkdir(parents=True, exist_ok=True)
    script.write_text(
        "import json, pathlib, sys\n"
        "pathlib.Path('sync-args.json').write_text(json.dumps(sys.argv[1:]))\n"
        "if " + str(exit_code) + ":\n"
        "    print('sync exploded', file=sys.stderr)\n"
        "sys.exit(" + str(exit_code) + ")\n",
        encoding="utf-8",
    )
    return script


@pytest.fixture
def settings() -> RuntimeSettings:
    return RuntimeSettings(sync_executable=sys.executable, sync_script=SYNC_SCRIPT_REL).normalized()


@pytest.fixture
def repo(tmp_path: Path) -> Path:
    root = tmp_path / "repo"
    root.mkdir()
    return root


@pytest.fixture
def pipeline(repo: Path, settings: RuntimeSettings) -> InitPipeline:
    return InitPipeline(repo, settings=settings)


def drive_to_stage_c(pipeline: InitPipeline) -> None:
    workspace = pipeline.workspace
    pipeline.start()
    pipeline.set_language("English")
    write_docs(workspace.docs_root)
    assert pipeline.check_docs().ok
    pipeline.approve(Stage.A)
    write_blueprint(workspace.blueprint_path)
    assert pipeline.validate().ok
    pipeline.suggest_packs()
    pipeline.approve(Stage.B)
