"""Guarded filesystem housekeeping: bootstrap removal, archiving, workdir migration, pruning.

Every operation supports a dry run that reports the plan without touching the
filesystem, and every destructive operation is opt-in.
"""

from __future__ import annotations

import logging
import shutil
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from .docs_check import REQUIRED_DOCS
from .errors import CleanupRefusedError, PipelineError
from .models import PlanEntry, PlanMode
from .settings import RuntimeSettings
from .workspace import LEGACY_BLUEPRINT_REL, LEGACY_DOCS_REL, LEGACY_STATE_REL

logger = logging.getLogger(__name__)

AGENT_BUILDER_REL = Path("workflows") / "agent"


@dataclass
class ArchiveResult:
    target_root: Path
    actions: list[PlanEntry] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self, repo_root: Path | None = None) -> dict[str, Any]:
        return {
            "targetRoot": self.target_root.as_posix(),
            "actions": [entry.to_dict(repo_root) for entry in self.actions],
            "errors": list(self.errors),
        }


def find_marker(repo_root: Path, settings: RuntimeSettings) -> Path | None:
    for marker in settings.marker_paths(repo_root):
        if marker.is_file():
            return marker
    return None


def trash_dir_name(now: datetime | None = None) -> str:
    stamp = (now or datetime.now(UTC)).isoformat().replace(":", "-").replace(".", "-").replace("+", "-")
    return f".init-trash-{stamp}"


def cleanup_bootstrap(repo_root: Path, settings: RuntimeSettings, *, acknowledged: bool, apply: bool) -> PlanEntry:
    """Remove the bootstrap directory once initialization is finished.

    Refuses (in dry-run as well as apply) unless the caller acknowledged the
    deletion and the bootstrap-kit marker file is present. Applying renames
    the directory to a ``.init-trash-<ts>`` sibling first, then deletes it.

    Raises:
        CleanupRefusedError: If acknowledgement or the marker is missing.
        PipelineError: If the renamed directory could not be deleted.
    """
    bootstrap = settings.bootstrap_path(repo_root)
    if not acknowledged:
        raise CleanupRefusedError(
            f"Refusing to remove {bootstrap.name}/ without explicit acknowledgement.",
            hint="Re-run with --i-understand",
        )
    if not bootstrap.exists():
        return PlanEntry(op="skip", path=bootstrap, mode=PlanMode.SKIPPED, reason=f"{bootstrap.name}/ not present")
    if find_marker(repo_root, settings) is None:
        current, _legacy = settings.marker_paths(repo_root)
        raise CleanupRefusedError(
            f"Refusing to remove {bootstrap.name}/: marker {current.relative_to(repo_root).as_posix()} is missing.",
            hint="Only directories created by the init kit can be cleaned up",
        )

    trash = repo_root / trash_dir_name()
    if not apply:
        return PlanEntry(op="rm", path=bootstrap, mode=PlanMode.DRY_RUN, reason=f"will move to {trash.name} then delete")

    bootstrap.rename(trash)
    try:
        shutil.rmtree(trash)
    except OSError as exc:
        raise PipelineError(
            f"Renamed {bootstrap.name}/ to {trash.name} but could not delete it: {exc}",
            hint=f"Delete {trash.name} manually",
        ) from exc
    logger.info("Removed bootstrap directory %s", bootstrap)
    return PlanEntry(op="rm", path=bootstrap, mode=PlanMode.APPLIED)


def copy_file(src: Path, dest: Path, apply: bool) -> PlanEntry:
    if not src.is_file():
        return PlanEntry(op="copy", path=dest, mode=PlanMode.SKIPPED, reason="missing source")
    if not apply:
        return PlanEntry(op="copy", path=dest, mode=PlanMode.DRY_RUN)
    try:
        dest.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(src, dest)
    except OSError as exc:
        return PlanEntry(op="copy", path=dest, mode=PlanMode.FAILED, reason=str(exc))
    return PlanEntry(op="copy", path=dest, mode=PlanMode.APPLIED)


def archive_artifacts(
    repo_root: Path,
    docs_root: Path,
    blueprint_path: Path,
    archive_root: Path,
    *,
    docs: bool,
    blueprint: bool,
    apply: bool,
) -> ArchiveResult:
    result = ArchiveResult(target_root=archive_root)
    sources: list[tuple[str, Path]] = []
    if docs:
        sources += [("Stage A doc", docs_root / name) for name in REQUIRED_DOCS]
    if blueprint:
        sources.append(("blueprint", blueprint_path))

    for label, src in sources:
        entry = copy_file(src, archive_root / src.name, apply)
        result.actions.append(entry)
        rel = src.relative_to(repo_root).as_posix() if src.is_relative_to(repo_root) else src.as_posix()
        if entry.mode == PlanMode.SKIPPED:
            result.errors.append(f"Missing {label}: {rel}")
        elif entry.mode == PlanMode.FAILED:
            result.errors.append(f"Failed to archive {label}: {rel} ({entry.reason})")
    return result


def move_path(src: Path, dest: Path, apply: bool) -> PlanEntry:
    if not src.exists():
        return PlanEntry(op="mv", path=src, mode=PlanMode.SKIPPED, reason="missing source")
    if dest.exists():
        return PlanEntry(op="mv", path=src, mode=PlanMode.SKIPPED, reason="destination exists")
    if not apply:
        return PlanEntry(op="mv", path=src, mode=PlanMode.DRY_RUN, reason=f"-> {dest.as_posix()}")
    dest.parent.mkdir(parents=True, exist_ok=True)
    src.rename(dest)
    return PlanEntry(op="mv", path=src, mode=PlanMode.APPLIED, reason=f"-> {dest.as_posix()}")


def migrate_workdir(repo_root: Path, settings: RuntimeSettings, apply: bool) -> list[PlanEntry]:
    """Move legacy bootstrap artifacts into the work directory, never overwriting."""
    moves = [
        (repo_root / LEGACY_STATE_REL, settings.resolve(repo_root, settings.state_path)),
        (repo_root / LEGACY_DOCS_REL, settings.resolve(repo_root, settings.docs_dir)),
        (repo_root / LEGACY_BLUEPRINT_REL, settings.resolve(repo_root, settings.blueprint_path)),
    ]
    plan = [move_path(src, dest, apply) for src, dest in moves]
    for entry in plan:
        if entry.mode == PlanMode.APPLIED:
            logger.info("Migrated %s %s", entry.path, entry.reason)
    return plan


def prune_agent_builder(skills_root: Path, apply: bool) -> PlanEntry:
    agent_dir = skills_root / AGENT_BUILDER_REL
    if not agent_dir.exists():
        return PlanEntry(op="skip", path=agent_dir, mode=PlanMode.SKIPPED, reason="agent workflow not present")
    if not apply:
        return PlanEntry(op="rm", path=agent_dir, mode=PlanMode.DRY_RUN)
    try:
        shutil.rmtree(agent_dir)
    except OSError as exc:
        raise PipelineError(f"Failed to remove {agent_dir}: {exc}") from exc
    logger.info("Pruned agent builder skills: %s", agent_dir)
    return PlanEntry(op="rm", path=agent_dir, mode=PlanMode.APPLIED)
