"""Local state persistence.

One JSON document per project under the configured state directory. The
document is the serialized ProjectState: the tracked identity, every declared
field and the computed fields written by the last read.
"""

from __future__ import annotations

import logging
import os
import re
from pathlib import Path

from pydantic import ValidationError

from .config import MAX_STATE_FILE_SIZE_BYTES
from .models import STORED_STATE_CONTEXT, VALID_PROJECT_ID_PATTERN, ProjectState

logger = logging.getLogger(__name__)


class StateStoreError(Exception):
    """Raised when a state file cannot be read or written."""

    pass


class StateStore:
    """Reads and writes ProjectState documents."""

    def __init__(self, state_dir: Path) -> None:
        self._state_dir = state_dir

    @property
    def state_dir(self) -> Path:
        return self._state_dir

    def path_for(self, project_id: str) -> Path:
        # Project ids double as file names; reject anything that could escape the directory
        if not re.match(VALID_PROJECT_ID_PATTERN, project_id):
            raise StateStoreError(f"Invalid project id: {project_id!r}")
        return self._state_dir / f"{project_id}.json"

    def load(self, project_id: str) -> ProjectState | None:
        """Load the state for a project, or None if nothing is stored."""
        path = self.path_for(project_id)
        if not path.exists():
            return None

        try:
            if path.stat().st_size > MAX_STATE_FILE_SIZE_BYTES:
                raise StateStoreError(
                    f"State file exceeds maximum size of {MAX_STATE_FILE_SIZE_BYTES} bytes: {path}"
                )
            content = path.read_text(encoding="utf-8")
        except OSError as e:
            raise StateStoreError(f"Failed to read state file {path}: {e}") from e

        try:
            return ProjectState.model_validate_json(content, context=STORED_STATE_CONTEXT)
        except ValidationError as e:
            raise StateStoreError(f"Corrupt state file {path}: {e}") from e

    def save(self, state: ProjectState) -> Path:
        """Write state atomically (temp file + rename)."""
        path = self.path_for(state.project_id)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self._state_dir.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise StateStoreError(f"Failed to write state file {path}: {e}") from e

        logger.debug("Saved state", extra={"project_id": state.project_id, "path": str(path)})
        return path

    def remove(self, project_id: str) -> bool:
        """Remove the stored state. Returns True if a file was removed."""
        path = self.path_for(project_id)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise StateStoreError(f"Failed to remove state file {path}: {e}") from e
        return True
