from importlib.metadata import version

from .blueprint import (
    PACK_ORDER,
    PACK_PREFIXES,
    check_pack_install,
    normalize_pack_list,
    recommend_packs,
    safe_add_packs,
    validate_blueprint,
)
from .docs_check import REQUIRED_DOCS, check_docs
from .errors import (
    BlueprintNotFoundError,
    BlueprintParseError,
    CleanupRefusedError,
    ExternalToolError,
    GateNotSatisfiedError,
    LanguageNotSetError,
    ManifestError,
    PipelineError,
    PipelineHaltedError,
    StateCorruptError,
    StateNotInitializedError,
    ValidationFailedError,
    WrongStageError,
)
from .manifest import normalize_manifest, reconcile_manifest
from .models import (
    BlueprintReport,
    CheckResult,
    Manifest,
    ManifestResult,
    PipelineState,
    PlanEntry,
    PlanMode,
    Stage,
    SyncResult,
)
from .pipeline import CommandResult, InitPipeline
from .placeholders import PlaceholderHit, scan
from .scaffold import plan_scaffold
from .settings import RuntimeSettings
from .stage_c import ApplyOptions, ApplyOutcome, StageCApply
from .state_store import StateStore, add_event, create_initial_state
from .workspace import Workspace


def get_version() -> str:
    try:
        return version("init-pipeline")
    except Exception:
        return "0.0.0"


__all__ = [
    "PACK_ORDER",
    "PACK_PREFIXES",
    "REQUIRED_DOCS",
    "ApplyOptions",
    "ApplyOutcome",
    "BlueprintNotFoundError",
    "BlueprintParseError",
    "BlueprintReport",
    "CheckResult",
    "CleanupRefusedError",
    "CommandResult",
    "ExternalToolError",
    "GateNotSatisfiedError",
    "InitPipeline",
    "LanguageNotSetError",
    "Manifest",
    "ManifestError",
    "ManifestResult",
    "PipelineError",
    "PipelineHaltedError",
    "PipelineState",
    "PlaceholderHit",
    "PlanEntry",
    "PlanMode",
    "RuntimeSettings",
    "Stage",
    "StageCApply",
    "StateCorruptError",
    "StateNotInitializedError",
    "StateStore",
    "SyncResult",
    "ValidationFailedError",
    "Workspace",
    "WrongStageError",
    "add_event",
    "check_docs",
    "check_pack_install",
    "create_initial_state",
    "get_version",
    "normalize_manifest",
    "normalize_pack_list",
    "plan_scaffold",
    "reconcile_manifest",
    "recommend_packs",
    "safe_add_packs",
    "scan",
    "validate_blueprint",
]
