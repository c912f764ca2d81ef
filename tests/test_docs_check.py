from pathlib import Path

from conftest import write_docs

from init_pipeline.docs_check import check_docs, docs_written, has_heading
from init_pipeline.scaffold import ensure_init_templates


def test_valid_docs_pass_without_warnings(tmp_path: Path) -> None:
    write_docs(tmp_path)
    result = check_docs(tmp_path)
    assert result.ok, result.errors
    assert result.warnings == []
    assert result.passes(strict=True)


def test_missing_doc_and_missing_heading_are_errors(tmp_path: Path) -> None:
    write_docs(tmp_path, {"requirements.md": "# Requirements\n\n## Conclusions\n\n- fine\n\n## Goals\n\n- g\n"})
    (tmp_path / "domain-glossary.md").unlink()
    result = check_docs(tmp_path)
    assert not result.ok
    assert any("Missing required Stage A doc" in error and "domain-glossary.md" in error for error in result.errors)
    assert 'requirements.md is missing required section/heading: "## Non-goals"' in result.errors


def test_heading_match_is_containment() -> None:
    assert has_heading("## Goals\n", "## Goals")
    assert has_heading("  ## Goals (v1)\n", "## Goals")
    assert has_heading("## Goals/Scope\n", "## Goals")
    assert not has_heading("## Goal\n", "## Goals")
    assert not has_heading("# Goals\n", "## Goals")


def test_heading_followed_by_punctuation_passes(tmp_path: Path) -> None:
    write_docs(tmp_path, {"domain-glossary.md": "# Domain Glossary\n\n## Terms:\n\n- Invoice: a bill\n"})
    result = check_docs(tmp_path)
    assert result.ok, result.errors


def test_untouched_templates_fail_with_one_error_per_rule(tmp_path: Path) -> None:
    docs_root = tmp_path / "docs"
    ensure_init_templates(docs_root, tmp_path / "blueprint.json", apply=True)
    result = check_docs(docs_root)
    assert not result.ok
    angle_errors = [error for error in result.errors if error.startswith("requirements.md") and "<...>" in error]
    assert len(angle_errors) == 1
    assert any('placeholder bullet "- ..."' in error for error in result.errors)
    assert any('placeholder value ": ..."' in error for error in result.errors)


def test_soft_signals_are_warnings_and_fail_strict(tmp_path: Path) -> None:
    write_docs(
        tmp_path,
        {"non-functional-requirements.md": "# Non-functional Requirements\n\n## Conclusions\n\n- Hosting TBD\n"},
    )
    result = check_docs(tmp_path)
    assert result.ok
    assert result.warnings == [
        "non-functional-requirements.md contains TBD items. Ensure each TBD is linked to an owner/options/decision due."
    ]
    assert result.passes()
    assert not result.passes(strict=True)


def test_docs_written_reflects_files_on_disk(tmp_path: Path) -> None:
    write_docs(tmp_path)
    (tmp_path / "risk-open-questions.md").unlink()
    written = docs_written(tmp_path)
    assert written.requirements and written.nfr and written.glossary
    assert not written.risk_questions
    assert written.count() == 3
