from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .blueprint import PACK_PREFIXES, blueprint_packs
from .canonical import render_json_document, strip_bom, to_canonical_json
from .errors import ManifestError
from .models import Manifest, ManifestResult, PlanMode
from .state_store import atomic_write_text

logger = logging.getLogger(__name__)

# Flat field -> key inside the legacy ``collections.current`` block.
_LEGACY_FIELDS = {
    "includePrefixes": "includePrefixes",
    "excludePrefixes": "excludePrefixes",
    "excludeSkills": "excludeSkillNames",
}


def normalize_manifest(raw: dict[str, Any]) -> dict[str, Any]:
    """Migrate a manifest document to the flat shape.

    Values from the legacy ``collections.current`` block fill flat fields that
    are missing; flat values win. ``collections`` is dropped afterwards and any
    other unknown keys are preserved. The input is not modified.
    """
    document = copy.deepcopy(raw)
    collections = document.pop("collections", None)
    current = collections.get("current") if isinstance(collections, dict) else None
    if isinstance(current, dict):
        for flat_key, legacy_key in _LEGACY_FIELDS.items():
            if not isinstance(document.get(flat_key), list) and isinstance(current.get(legacy_key), list):
                document[flat_key] = current[legacy_key]
    try:
        manifest = Manifest.model_validate(
            {key: value for key, value in document.items() if not _is_malformed_list(key, value)}
        )
    except ValidationError as exc:
        raise ManifestError(f"Sync manifest has an unexpected shape: {exc}") from exc
    return manifest.model_dump(by_alias=True)


def _is_malformed_list(key: str, value: Any) -> bool:
    list_keys = {"includePrefixes", "includeSkills", "excludePrefixes", "excludeSkills"}
    return key in list_keys and not isinstance(value, list)


def include_prefixes_for(packs: list[str]) -> tuple[list[str], list[str]]:
    prefixes: list[str] = []
    warnings: list[str] = []
    for pack in packs:
        prefix = PACK_PREFIXES.get(pack)
        if prefix is None:
            warnings.append(f'Unknown pack "{pack}" (no prefix mapping). Ignoring for manifest.includePrefixes.')
            continue
        if prefix not in prefixes:
            prefixes.append(prefix)
    return prefixes, warnings


def load_manifest(path: Path) -> dict[str, Any] | None:
    if not path.is_file():
        return None
    try:
        payload = json.loads(strip_bom(path.read_text(encoding="utf-8")))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ManifestError(
            f"Failed to read sync manifest JSON: {path.as_posix()}: {exc}",
            hint="Fix or delete the manifest and re-run apply",
        ) from exc
    if not isinstance(payload, dict):
        raise ManifestError(f"Sync manifest must be a JSON object: {path.as_posix()}")
    return payload


def reconcile_manifest(path: Path, blueprint: dict[str, Any], apply: bool) -> ManifestResult:
    """Derive ``includePrefixes`` from the blueprint packs and write the manifest if it changed.

    Equality is judged on RFC 8785 canonical forms, so key order and
    whitespace differences in the existing file never trigger a rewrite.
    """
    include_prefixes, warnings = include_prefixes_for(blueprint_packs(blueprint))
    previous = load_manifest(path)
    document = normalize_manifest(previous if previous is not None else {})
    document["includePrefixes"] = include_prefixes

    if previous is not None and to_canonical_json(previous) == to_canonical_json(document):
        return ManifestResult(
            path=path,
            mode=PlanMode.SKIPPED,
            include_prefixes=include_prefixes,
            warnings=warnings,
            reason="no change",
        )
    if not apply:
        return ManifestResult(path=path, mode=PlanMode.DRY_RUN, include_prefixes=include_prefixes, warnings=warnings)

    atomic_write_text(path, render_json_document(document))
    logger.info("Manifest updated: %s (includePrefixes=%s)", path, include_prefixes)
    return ManifestResult(path=path, mode=PlanMode.APPLIED, include_prefixes=include_prefixes, warnings=warnings)
