from __future__ import annotations

import logging
from pathlib import Path

from .canonical import strip_bom
from .models import CheckResult, DocsWritten
from .placeholders import RULES, scan

logger = logging.getLogger(__name__)

REQUIRED_DOCS: dict[str, tuple[str, ...]] = {
    "requirements.md": ("# Requirements", "## Conclusions", "## Goals", "## Non-goals"),
    "non-functional-requirements.md": ("# Non-functional Requirements", "## Conclusions"),
    "domain-glossary.md": ("# Domain Glossary", "## Terms"),
    "risk-open-questions.md": ("# Risks and Open Questions", "## Open questions"),
}

# DocsWritten field for each required document.
DOC_FLAGS = {
    "requirements.md": "requirements",
    "non-functional-requirements.md": "nfr",
    "domain-glossary.md": "glossary",
    "risk-open-questions.md": "risk_questions",
}


def has_heading(content: str, heading: str) -> bool:
    """A heading is present when its text appears anywhere in the document."""
    return heading in content


def check_doc(name: str, content: str, result: CheckResult) -> None:
    for heading in REQUIRED_DOCS[name]:
        if not has_heading(content, heading):
            result.errors.append(f'{name} is missing required section/heading: "{heading}"')

    tags = {hit.tag for hit in scan(content)}
    for rule in RULES:
        if rule.tag not in tags:
            continue
        if rule.blocking:
            result.errors.append(f"{name} still contains {rule.message}. Replace all template placeholders.")
        else:
            result.warnings.append(f"{name} contains {rule.message}")


def check_docs(docs_root: Path) -> CheckResult:
    """Validate the four Stage A documents under *docs_root*.

    Never raises for bad content: missing files, missing headings and
    placeholders all land in ``errors``; soft signals land in ``warnings``.
    """
    result = CheckResult()
    for name in REQUIRED_DOCS:
        path = docs_root / name
        if not path.is_file():
            result.errors.append(f"Missing required Stage A doc: {path.as_posix()}")
            continue
        try:
            content = strip_bom(path.read_text(encoding="utf-8"))
        except UnicodeDecodeError as exc:
            result.errors.append(f"{name} is not valid UTF-8 text: {exc}")
            continue
        check_doc(name, content, result)
    logger.debug("Stage A check: %d error(s), %d warning(s)", len(result.errors), len(result.warnings))
    return result


def docs_written(docs_root: Path) -> DocsWritten:
    return DocsWritten(**{flag: (docs_root / name).is_file() for name, flag in DOC_FLAGS.items()})
