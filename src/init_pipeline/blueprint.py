from __future__ import annotations

import copy
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .models import BlueprintReport

logger = logging.getLogger(__name__)

PACK_PREFIXES: dict[str, str] = {
    "workflows": "workflows/",
    "standards": "standards/",
    "testing": "testing/",
    "backend": "backend/",
    "frontend": "frontend/",
}

PACK_ORDER: tuple[str, ...] = ("workflows", "standards", "testing", "backend", "frontend")

BASELINE_PACKS: tuple[str, ...] = ("workflows",)

VALID_LAYOUTS: tuple[str, ...] = ("single", "monorepo")


def _section(value: Any, key: str) -> dict[str, Any]:
    if not isinstance(value, dict):
        return {}
    section = value.get(key)
    return section if isinstance(section, dict) else {}


def capability_enabled(blueprint: dict[str, Any], name: str) -> bool:
    return _section(_section(blueprint, "capabilities"), name).get("enabled") is True


def testing_enabled(blueprint: dict[str, Any]) -> bool:
    return _section(_section(blueprint, "quality"), "testing").get("enabled") is True


def _dedupe(items: list[str]) -> list[str]:
    return list(dict.fromkeys(items))


def normalize_pack_list(packs: Any) -> list[str]:
    """Clean a pack list: known packs in canonical order, then unknown packs as given."""
    if not isinstance(packs, list):
        return []
    cleaned = _dedupe([item.strip() for item in packs if isinstance(item, str) and item.strip()])
    known = [pack for pack in PACK_ORDER if pack in cleaned]
    unknown = [pack for pack in cleaned if pack not in PACK_PREFIXES]
    return known + unknown


def blueprint_packs(blueprint: dict[str, Any]) -> list[str]:
    return normalize_pack_list(_section(blueprint, "skills").get("packs"))


def current_packs(blueprint: dict[str, Any]) -> list[str]:
    """Pack names exactly as the user listed them, trimmed and deduplicated."""
    packs = _section(blueprint, "skills").get("packs")
    if not isinstance(packs, list):
        return []
    return _dedupe([item.strip() for item in packs if isinstance(item, str) and item.strip()])


def recommend_packs(blueprint: dict[str, Any]) -> list[str]:
    recommended = set(BASELINE_PACKS)
    if capability_enabled(blueprint, "frontend"):
        recommended.add("frontend")
    if capability_enabled(blueprint, "backend"):
        recommended.add("backend")
    if testing_enabled(blueprint):
        recommended.add("testing")
    return [pack for pack in PACK_ORDER if pack in recommended]


def missing_recommended_packs(blueprint: dict[str, Any]) -> list[str]:
    current = set(blueprint_packs(blueprint))
    return [pack for pack in recommend_packs(blueprint) if pack not in current]


def _is_non_empty_string(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def validate_blueprint(blueprint: Any) -> BlueprintReport:
    """Check a parsed blueprint document.

    Hard-rule violations become ``errors`` and advisory findings become
    ``warnings``. The input is never mutated and malformed shapes never raise.
    """
    report = BlueprintReport()
    if not isinstance(blueprint, dict):
        report.errors.append("Blueprint must be a JSON object.")
        return report

    version = blueprint.get("version")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        report.errors.append("Blueprint.version must be an integer >= 1.")

    project = _section(blueprint, "project")
    if not _is_non_empty_string(project.get("name")):
        report.errors.append("project.name is required (string).")
    if not _is_non_empty_string(project.get("description")):
        report.errors.append("project.description is required (string).")

    repo = _section(blueprint, "repo")
    if repo.get("layout") not in VALID_LAYOUTS:
        report.errors.append(f"repo.layout is required and must be one of: {', '.join(VALID_LAYOUTS)}")
    if not _is_non_empty_string(repo.get("language")):
        report.errors.append("repo.language is required (string).")

    capabilities = _section(blueprint, "capabilities")
    database = _section(capabilities, "database")
    if database.get("enabled") is True and not _is_non_empty_string(database.get("kind")):
        report.warnings.append("capabilities.database.enabled=true but capabilities.database.kind is missing.")
    api = _section(capabilities, "api")
    if api.get("style") is not None and not isinstance(api.get("style"), str):
        report.warnings.append("capabilities.api.style should be a string.")
    bpmn = capabilities.get("bpmn")
    if isinstance(bpmn, dict) and not isinstance(bpmn.get("enabled"), bool):
        report.warnings.append("capabilities.bpmn.enabled should be boolean when present.")

    raw_packs = _section(blueprint, "skills").get("packs")
    if raw_packs is not None:
        if not isinstance(raw_packs, list) or not all(isinstance(item, str) for item in raw_packs):
            report.errors.append("skills.packs must be an array of strings when present.")

    report.packs = normalize_pack_list(raw_packs)
    for pack in report.packs:
        if pack not in PACK_PREFIXES:
            report.warnings.append(
                f'skills.packs includes unknown pack "{pack}". '
                "It will be ignored by manifest update unless a prefix mapping exists."
            )
    for pack in missing_recommended_packs(blueprint):
        report.warnings.append(f'skills.packs does not include recommended pack "{pack}".')
    return report


def safe_add_packs(current: list[str], missing: list[str]) -> list[str]:
    """Insert *missing* packs into *current* without removing or reordering anything.

    Each addition lands right after the last existing known pack of lower
    canonical rank, or at the front when there is none.
    """
    result = list(current)
    rank = {pack: index for index, pack in enumerate(PACK_ORDER)}
    for pack in missing:
        if pack in result:
            continue
        pack_rank = rank.get(pack, len(PACK_ORDER))
        insert_at = 0
        for index, existing in enumerate(result):
            if existing in rank and rank[existing] < pack_rank:
                insert_at = index + 1
        result.insert(insert_at, pack)
    return result


def with_packs(blueprint: dict[str, Any], packs: list[str]) -> dict[str, Any]:
    """Return a copy of *blueprint* with ``skills.packs`` replaced, other keys kept in place."""
    updated = copy.deepcopy(blueprint)
    skills = updated.get("skills")
    if not isinstance(skills, dict):
        skills = {}
        updated["skills"] = skills
    skills["packs"] = list(packs)
    return updated


@dataclass(frozen=True)
class PackInstall:
    pack: str
    installed: bool
    reason: str | None = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"pack": self.pack, "installed": self.installed}
        if self.reason:
            payload["reason"] = self.reason
        return payload


def check_pack_install(skills_root: Path, pack: str) -> PackInstall:
    prefix = PACK_PREFIXES.get(pack)
    if prefix is None:
        return PackInstall(pack=pack, installed=False, reason="unknown-pack")
    pack_dir = skills_root / prefix.rstrip("/")
    if not pack_dir.is_dir():
        return PackInstall(pack=pack, installed=False, reason=f"missing {pack_dir.as_posix()}")
    return PackInstall(pack=pack, installed=True)
