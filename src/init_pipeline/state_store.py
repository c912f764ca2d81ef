from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from pydantic import ValidationError

from .canonical import render_json_document, strip_bom
from .errors import StateCorruptError
from .models import HistoryEvent, PipelineState

logger = logging.getLogger(__name__)


def atomic_write_text(path: Path, content: str) -> None:
    """Write *content* to *path* atomically.

    Writes to a temporary file in the same directory, then renames
    (``os.replace``) into place.  This prevents partial/corrupt reads
    if the process crashes mid-write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(
        dir=str(path.parent),
        prefix=f".{path.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as tmp_handle:
            tmp_handle.write(content)
            tmp_handle.flush()
            os.fsync(tmp_handle.fileno())
        os.replace(tmp_path, str(path))
    except BaseException:
        # Clean up the temp file on any failure.
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


def create_initial_state() -> PipelineState:
    return add_event(PipelineState(), "init_started", "Initialization started")


def add_event(state: PipelineState, event: str, details: str = "") -> PipelineState:
    """Return a copy of *state* with one history entry appended."""
    entry = HistoryEvent(timestamp=datetime.now(UTC), event=event, details=details)
    return state.model_copy(update={"history": [*state.history, entry]})


class StateStore:
    """Whole-file JSON persistence for ``PipelineState``.

    Single writer by contract: there is no locking, and concurrent invocations
    against the same file are unsupported.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> PipelineState | None:
        """Read the persisted state.

        Returns:
            The deserialized state, or ``None`` when no state file exists.

        Raises:
            StateCorruptError: If the file is unreadable, not JSON, or fails validation.
        """
        if not self.path.is_file():
            return None
        try:
            text = strip_bom(self.path.read_text(encoding="utf-8"))
        except UnicodeDecodeError as exc:
            raise self._corrupt(f"contains invalid UTF-8 data ({exc})") from exc
        if not text.strip():
            raise self._corrupt("is empty")
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise self._corrupt(f"is not valid JSON ({exc})") from exc
        try:
            return PipelineState.model_validate(payload)
        except ValidationError as exc:
            raise self._corrupt(f"failed validation: {exc}") from exc

    def save(self, state: PipelineState) -> None:
        atomic_write_text(self.path, render_json_document(state))
        logger.debug("State saved: %s", self.path)

    def delete(self) -> bool:
        if not self.path.is_file():
            return False
        self.path.unlink()
        return True

    def _corrupt(self, reason: str) -> StateCorruptError:
        return StateCorruptError(
            f"Init state at {self.path} {reason}",
            hint="Restore the file from backup, or delete it and run: init-pipeline start",
        )
