from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


PROVIDER_CHOICES = frozenset({"both", "codex", "claude", "codex,claude"})


@dataclass(frozen=True)
class RuntimeSettings:
    """Runtime settings loaded from environment with fail-fast validation."""

    bootstrap_dir: str = "init"
    work_dir: str = "init/_work"
    docs_dir: str = "init/_work/stage-a-docs"
    blueprint_path: str = "init/_work/project-blueprint.json"
    state_path: str = "init/_work/.init-state.json"
    manifest_path: str = ".ai/skills/_meta/sync-manifest.json"
    skills_root: str = ".ai/skills"
    sync_executable: str = "node"
    sync_script: str = ".ai/scripts/sync-skills.mjs"
    archive_dir: str = "docs/project/overview"
    default_providers: str = "both"

    @classmethod
    def from_env(cls) -> "RuntimeSettings":
        return cls(
            bootstrap_dir=os.getenv("INIT_PIPELINE_BOOTSTRAP_DIR", "init"),
            work_dir=os.getenv("INIT_PIPELINE_WORK_DIR", "init/_work"),
            docs_dir=os.getenv("INIT_PIPELINE_DOCS_DIR", "init/_work/stage-a-docs"),
            blueprint_path=os.getenv("INIT_PIPELINE_BLUEPRINT_PATH", "init/_work/project-blueprint.json"),
            state_path=os.getenv("INIT_PIPELINE_STATE_PATH", "init/_work/.init-state.json"),
            manifest_path=os.getenv("INIT_PIPELINE_MANIFEST_PATH", ".ai/skills/_meta/sync-manifest.json"),
            skills_root=os.getenv("INIT_PIPELINE_SKILLS_ROOT", ".ai/skills"),
            sync_executable=os.getenv("INIT_PIPELINE_SYNC_EXECUTABLE", "node"),
            sync_script=os.getenv("INIT_PIPELINE_SYNC_SCRIPT", ".ai/scripts/sync-skills.mjs"),
            archive_dir=os.getenv("INIT_PIPELINE_ARCHIVE_DIR", "docs/project/overview"),
            default_providers=os.getenv("INIT_PIPELINE_DEFAULT_PROVIDERS", "both"),
        ).normalized()

    def normalized(self) -> "RuntimeSettings":
        """Validate and normalize all fields. Raises ValueError on invalid configuration."""
        paths = {
            "INIT_PIPELINE_BOOTSTRAP_DIR": self.bootstrap_dir,
            "INIT_PIPELINE_WORK_DIR": self.work_dir,
            "INIT_PIPELINE_DOCS_DIR": self.docs_dir,
            "INIT_PIPELINE_BLUEPRINT_PATH": self.blueprint_path,
            "INIT_PIPELINE_STATE_PATH": self.state_path,
            "INIT_PIPELINE_MANIFEST_PATH": self.manifest_path,
            "INIT_PIPELINE_SKILLS_ROOT": self.skills_root,
            "INIT_PIPELINE_SYNC_SCRIPT": self.sync_script,
            "INIT_PIPELINE_ARCHIVE_DIR": self.archive_dir,
        }
        for name, value in paths.items():
            if not value.strip():
                raise ValueError(f"{name} must be non-empty")

        sync_executable = self.sync_executable.strip()
        if not sync_executable:
            raise ValueError("INIT_PIPELINE_SYNC_EXECUTABLE must be non-empty")

        providers = normalize_providers(self.default_providers)
        return RuntimeSettings(
            bootstrap_dir=self.bootstrap_dir.strip(),
            work_dir=self.work_dir.strip(),
            docs_dir=self.docs_dir.strip(),
            blueprint_path=self.blueprint_path.strip(),
            state_path=self.state_path.strip(),
            manifest_path=self.manifest_path.strip(),
            skills_root=self.skills_root.strip(),
            sync_executable=sync_executable,
            sync_script=self.sync_script.strip(),
            archive_dir=self.archive_dir.strip(),
            default_providers=providers,
        )

    def resolve(self, repo_root: Path, value: str) -> Path:
        path = Path(value)
        return path if path.is_absolute() else repo_root / path

    def bootstrap_path(self, repo_root: Path) -> Path:
        return self.resolve(repo_root, self.bootstrap_dir)

    def marker_paths(self, repo_root: Path) -> tuple[Path, Path]:
        """Return the current and legacy bootstrap-kit marker locations."""
        bootstrap = self.bootstrap_path(repo_root)
        return bootstrap / "_tools" / ".init-kit", bootstrap / ".init-kit"


def normalize_providers(value: str) -> str:
    providers = ",".join(part.strip().lower() for part in value.split(",") if part.strip())
    if providers not in PROVIDER_CHOICES:
        choices = ", ".join(sorted(PROVIDER_CHOICES))
        raise ValueError(f"providers must be one of: {choices}; got {value!r}")
    return providers
