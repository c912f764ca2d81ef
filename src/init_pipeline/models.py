from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Stage(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    COMPLETE = "complete"


STAGE_NAMES = {
    Stage.A: "Requirements",
    Stage.B: "Blueprint",
    Stage.C: "Scaffold",
    Stage.COMPLETE: "Complete",
}

MUST_ASK_KEYS = (
    "onePurpose",
    "userRoles",
    "mustRequirements",
    "outOfScope",
    "userJourneys",
    "constraints",
    "successMetrics",
)


class _StateModel(BaseModel):
    """Persisted records use camelCase keys on disk and snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class MustAskItem(_StateModel):
    asked: bool = False
    answered: bool = False
    written_to: str | None = None


class DocsWritten(_StateModel):
    requirements: bool = False
    nfr: bool = False
    glossary: bool = False
    risk_questions: bool = False

    def count(self) -> int:
        return sum((self.requirements, self.nfr, self.glossary, self.risk_questions))


def _default_must_ask() -> dict[str, MustAskItem]:
    return {key: MustAskItem() for key in MUST_ASK_KEYS}


class StageAProgress(_StateModel):
    must_ask: dict[str, MustAskItem] = Field(default_factory=_default_must_ask)
    docs_written: DocsWritten = Field(default_factory=DocsWritten)
    validated: bool = False
    user_approved: bool = False


class StageBProgress(_StateModel):
    drafted: bool = False
    validated: bool = False
    packs_reviewed: bool = False
    user_approved: bool = False


class StageCProgress(_StateModel):
    scaffold_applied: bool = False
    manifest_updated: bool = False
    wrappers_synced: bool = False
    skill_retention_reviewed: bool = False
    user_approved: bool = False


class HistoryEvent(_StateModel):
    timestamp: datetime
    event: str
    details: str = ""


class PipelineState(_StateModel):
    """Single persisted record of pipeline progress for one repository."""

    version: int = 1
    language: str | None = None
    stage: Stage = Stage.A
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    stage_a: StageAProgress = Field(
        default_factory=StageAProgress,
        validation_alias=AliasChoices("stage-a", "stageA", "stage_a"),
        serialization_alias="stage-a",
    )
    stage_b: StageBProgress = Field(
        default_factory=StageBProgress,
        validation_alias=AliasChoices("stage-b", "stageB", "stage_b"),
        serialization_alias="stage-b",
    )
    stage_c: StageCProgress = Field(
        default_factory=StageCProgress,
        validation_alias=AliasChoices("stage-c", "stageC", "stage_c"),
        serialization_alias="stage-c",
    )
    history: list[HistoryEvent] = Field(default_factory=list)

    def last_event(self, *names: str) -> HistoryEvent | None:
        for entry in reversed(self.history):
            if not names or entry.event in names:
                return entry
        return None

    @property
    def halted(self) -> bool:
        marker = self.last_event("emergency_stop", "resumed")
        return marker is not None and marker.event == "emergency_stop"

    @property
    def updated_at(self) -> datetime:
        if self.history:
            return max(entry.timestamp for entry in self.history)
        return self.created_at


class Manifest(BaseModel):
    """Flat include/exclude manifest consumed by the wrapper-sync tool."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    version: int = 1
    include_prefixes: list[str] = Field(default_factory=list)
    include_skills: list[str] = Field(default_factory=list)
    exclude_prefixes: list[str] = Field(default_factory=list)
    exclude_skills: list[str] = Field(default_factory=list)


@dataclass
class CheckResult:
    """Structured outcome of a validator run; validators never raise for bad input."""

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def passes(self, strict: bool = False) -> bool:
        """Shared strictness predicate: strict mode also requires zero warnings."""
        return self.ok and (not strict or not self.warnings)

    def to_dict(self) -> dict[str, Any]:
        return {"ok": self.ok, "errors": list(self.errors), "warnings": list(self.warnings)}


@dataclass
class BlueprintReport(CheckResult):
    packs: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        payload = super().to_dict()
        payload["packs"] = list(self.packs)
        return payload


class PlanMode(str, Enum):
    APPLIED = "applied"
    DRY_RUN = "dry-run"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass(frozen=True)
class PlanEntry:
    """One planned filesystem operation."""

    op: str
    path: Path
    mode: PlanMode
    reason: str | None = None

    def to_dict(self, repo_root: Path | None = None) -> dict[str, Any]:
        path = self.path
        if repo_root is not None and path.is_relative_to(repo_root):
            path = path.relative_to(repo_root)
        payload: dict[str, Any] = {"op": self.op, "path": path.as_posix(), "mode": self.mode.value}
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass(frozen=True)
class ManifestResult:
    path: Path
    mode: PlanMode
    include_prefixes: list[str]
    warnings: list[str] = field(default_factory=list)
    reason: str | None = None

    @property
    def changed(self) -> bool:
        return self.mode == PlanMode.APPLIED

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "path": self.path.as_posix(),
            "mode": self.mode.value,
            "includePrefixes": list(self.include_prefixes),
            "warnings": list(self.warnings),
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


@dataclass(frozen=True)
class SyncResult:
    command: list[str]
    mode: PlanMode
    exit_code: int | None = None
    reason: str | None = None
    output_tail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.mode == PlanMode.APPLIED

    def to_dict(self) -> dict[str, Any]:
        return {
            "cmd": " ".join(self.command),
            "mode": self.mode.value,
            "exitCode": self.exit_code,
            "reason": self.reason,
        }
