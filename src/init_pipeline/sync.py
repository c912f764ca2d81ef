from __future__ import annotations

import logging
import subprocess
from pathlib import Path

from .models import PlanMode, SyncResult
from .settings import RuntimeSettings, normalize_providers

logger = logging.getLogger(__name__)

TAIL_CHARS = 4000


def tail_text(text: str | None, max_chars: int = TAIL_CHARS) -> str:
    value = text or ""
    if len(value) <= max_chars:
        return value
    return f"...(truncated {len(value) - max_chars} chars)\n" + value[-max_chars:]


def sync_command(script: Path, executable: str, providers: str) -> list[str]:
    return [
        executable,
        str(script),
        "--scope",
        "current",
        "--providers",
        providers,
        "--mode",
        "reset",
        "--yes",
    ]


def sync_wrappers(repo_root: Path, settings: RuntimeSettings, providers: str, apply: bool) -> SyncResult:
    """Run the external wrapper-sync tool for the current repository.

    A missing script is reported as ``skipped`` rather than an error. A
    non-zero exit is reported as ``failed`` with the tail of its output; the
    caller decides whether that aborts the command. No retries, no timeout.
    """
    script = settings.resolve(repo_root, settings.sync_script)
    command = sync_command(script, settings.sync_executable, normalize_providers(providers))
    if not script.is_file():
        logger.warning("Wrapper sync script not found: %s", script)
        return SyncResult(command=command, mode=PlanMode.SKIPPED, reason=f"{script.name} not found")
    if not apply:
        return SyncResult(command=command, mode=PlanMode.DRY_RUN)

    logger.info("Running wrapper sync: %s", " ".join(command))
    try:
        completed = subprocess.run(command, cwd=repo_root, capture_output=True, text=True, check=False)
    except OSError as exc:
        logger.error("Wrapper sync could not start: %s", exc)
        return SyncResult(command=command, mode=PlanMode.FAILED, reason=str(exc))

    if completed.returncode != 0:
        output = tail_text("\n".join(part for part in (completed.stdout, completed.stderr) if part))
        logger.error("Wrapper sync exited with %s", completed.returncode)
        return SyncResult(
            command=command,
            mode=PlanMode.FAILED,
            exit_code=completed.returncode,
            reason=f"exit code {completed.returncode}",
            output_tail=output,
        )
    return SyncResult(command=command, mode=PlanMode.APPLIED, exit_code=0)
