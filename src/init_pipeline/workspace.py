from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .canonical import strip_bom
from .errors import BlueprintNotFoundError, BlueprintParseError
from .settings import RuntimeSettings

logger = logging.getLogger(__name__)

LEGACY_DOCS_REL = Path("init") / "stage-a-docs"
LEGACY_BLUEPRINT_REL = Path("init") / "project-blueprint.json"
LEGACY_STATE_REL = Path("init") / ".init-state.json"


def _prefer_existing(modern: Path, legacy: Path) -> Path:
    if not modern.exists() and legacy.exists():
        return legacy
    return modern


@dataclass(frozen=True)
class Workspace:
    """Read-side view of one repository checkout.

    Gate transitions receive a Workspace instead of touching paths directly so
    they can be exercised against any directory tree.
    """

    repo_root: Path
    docs_root: Path
    blueprint_path: Path
    state_path: Path
    manifest_path: Path
    settings: RuntimeSettings

    @classmethod
    def resolve(
        cls,
        repo_root: Path,
        *,
        settings: RuntimeSettings | None = None,
        docs_root: str | Path | None = None,
        blueprint_path: str | Path | None = None,
    ) -> "Workspace":
        settings = settings if settings is not None else RuntimeSettings.from_env()
        root = repo_root.resolve()

        if docs_root is not None:
            docs = settings.resolve(root, str(docs_root))
        else:
            docs = _prefer_existing(settings.resolve(root, settings.docs_dir), root / LEGACY_DOCS_REL)

        if blueprint_path is not None:
            blueprint = settings.resolve(root, str(blueprint_path))
        else:
            blueprint = _prefer_existing(settings.resolve(root, settings.blueprint_path), root / LEGACY_BLUEPRINT_REL)

        state = _prefer_existing(settings.resolve(root, settings.state_path), root / LEGACY_STATE_REL)
        return cls(
            repo_root=root,
            docs_root=docs,
            blueprint_path=blueprint,
            state_path=state,
            manifest_path=settings.resolve(root, settings.manifest_path),
            settings=settings,
        )

    def relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.repo_root).as_posix()
        except ValueError:
            return path.as_posix()

    def legacy_paths_in_use(self) -> list[str]:
        legacy = {
            self.repo_root / LEGACY_DOCS_REL: self.docs_root,
            self.repo_root / LEGACY_BLUEPRINT_REL: self.blueprint_path,
            self.repo_root / LEGACY_STATE_REL: self.state_path,
        }
        return [self.relative(path) for path, used in legacy.items() if path == used]

    def warn_legacy_paths(self) -> None:
        used = self.legacy_paths_in_use()
        if used:
            logger.warning(
                "Legacy init workdir path(s) detected: %s. Recommended: init-pipeline migrate-workdir --apply",
                ", ".join(used),
            )

    @property
    def skills_root(self) -> Path:
        return self.settings.resolve(self.repo_root, self.settings.skills_root)

    @property
    def bootstrap_root(self) -> Path:
        return self.settings.bootstrap_path(self.repo_root)

    def load_blueprint(self) -> dict[str, Any]:
        """Read the blueprint JSON.

        A missing or unparseable blueprint is fatal at command time; structural
        problems inside a parsed document are left to ``validate_blueprint``.

        Raises:
            BlueprintNotFoundError: If the blueprint file does not exist.
            BlueprintParseError: If the file is not valid JSON.
        """
        if not self.blueprint_path.is_file():
            raise BlueprintNotFoundError(
                f"Blueprint not found: {self.relative(self.blueprint_path)}",
                hint="Run: init-pipeline set-language --language <lang> (creates the template), or pass --blueprint <path>",
            )
        try:
            text = strip_bom(self.blueprint_path.read_text(encoding="utf-8"))
            payload = json.loads(text)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise BlueprintParseError(
                f"Failed to read blueprint JSON: {self.relative(self.blueprint_path)}: {exc}",
                hint="Fix the JSON syntax and re-run validate",
            ) from exc
        return payload
