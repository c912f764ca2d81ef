"""Lexical scan for unresolved template placeholders in Markdown.

Each rule carries a tag so callers can report one message per rule. Rules are
purely lexical: they flag template debris, not missing meaning.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable

HTML_TAG_NAMES = frozenset(
    {
        "a",
        "blockquote",
        "br",
        "code",
        "details",
        "div",
        "em",
        "h1",
        "h2",
        "h3",
        "h4",
        "h5",
        "h6",
        "hr",
        "img",
        "kbd",
        "li",
        "ol",
        "p",
        "pre",
        "small",
        "span",
        "strong",
        "sub",
        "summary",
        "sup",
        "table",
        "tbody",
        "td",
        "th",
        "thead",
        "tr",
        "ul",
    }
)

_ANGLE_RE = re.compile(r"<([^>\n]{1,80})>")
_TAG_NAME_RE = re.compile(r"^([a-zA-Z][a-zA-Z0-9-]*)\b")
_WHITESPACE_RE = re.compile(r"\s")


@dataclass(frozen=True)
class PlaceholderHit:
    tag: str
    line: int
    text: str


@dataclass(frozen=True)
class PlaceholderRule:
    tag: str
    pattern: re.Pattern[str]
    message: str
    blocking: bool = True
    accept: Callable[[re.Match[str]], bool] | None = None


def is_autolink(inner: str) -> bool:
    """True for CommonMark autolinks such as ``<https://...>`` or ``<a@b.c>``."""
    value = inner.strip()
    if not value:
        return False
    lower = value.lower()
    if lower.startswith(("http://", "https://", "mailto:", "tel:")):
        return True
    return "@" in value and not _WHITESPACE_RE.search(value)


def is_html_construct(inner: str) -> bool:
    value = inner.strip()
    if not value:
        return False
    if value.startswith(("!--", "?xml")) or value.lower().startswith("!doctype"):
        return True
    if value.startswith("/"):
        value = value[1:].strip()
    if value.endswith("/"):
        value = value[:-1].strip()
    match = _TAG_NAME_RE.match(value)
    return bool(match) and match.group(1).lower() in HTML_TAG_NAMES


def _angle_is_placeholder(match: re.Match[str]) -> bool:
    inner = match.group(1)
    return not (is_autolink(inner) or is_html_construct(inner))


RULES: tuple[PlaceholderRule, ...] = (
    PlaceholderRule(
        tag="angle",
        pattern=_ANGLE_RE,
        message='template placeholder "<...>"',
        accept=_angle_is_placeholder,
    ),
    PlaceholderRule(
        tag="ellipsis-bullet",
        pattern=re.compile(r"^\s*[-*]\s*\.\.\.\s*$", re.MULTILINE),
        message='placeholder bullet "- ..."',
    ),
    PlaceholderRule(
        tag="ellipsis-value",
        pattern=re.compile(r":\s*\.\.\.\s*$", re.MULTILINE),
        message='placeholder value ": ..."',
    ),
    PlaceholderRule(
        tag="todo",
        pattern=re.compile(r"TODO|FIXME"),
        message="TODO/FIXME markers. Ensure they are tracked in risk-open-questions.md or removed.",
        blocking=False,
    ),
    PlaceholderRule(
        tag="tbd",
        pattern=re.compile(r"\bTBD\b", re.IGNORECASE),
        message="TBD items. Ensure each TBD is linked to an owner/options/decision due.",
        blocking=False,
    ),
)

RULES_BY_TAG = {rule.tag: rule for rule in RULES}


def scan(content: str, rules: tuple[PlaceholderRule, ...] = RULES) -> list[PlaceholderHit]:
    """Return every rule hit in *content*, ordered by rule then position."""
    hits: list[PlaceholderHit] = []
    for rule in rules:
        for match in rule.pattern.finditer(content):
            if rule.accept is not None and not rule.accept(match):
                continue
            line = content.count("\n", 0, match.start()) + 1
            hits.append(PlaceholderHit(tag=rule.tag, line=line, text=match.group(0)))
    return hits
