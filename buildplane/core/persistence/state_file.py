"""
State file persistence — atomic read/write for BuildState.

State lives in .state/current.json under the project root. Writes go
to a temp file in the same directory and are renamed into place, so a
crash mid-write never leaves a truncated document behind. Commands
that update the state read and write it inside locked_state(), which
holds .state/current.lock across the whole cycle.
"""

from __future__ import annotations

import json
import logging
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from pydantic import ValidationError

from buildplane.core.models.state import BuildState
from buildplane.core.persistence.locking import LOCK_SUFFIX, file_lock

logger = logging.getLogger(__name__)

DEFAULT_STATE_DIR = ".state"
DEFAULT_STATE_FILE = "current.json"


def default_state_path(project_root: Path) -> Path:
    """Get the default state file path for a project."""
    return project_root / DEFAULT_STATE_DIR / DEFAULT_STATE_FILE


def load_state(path: Path) -> BuildState:
    """Load build state from a JSON file.

    A missing or unreadable file yields a fresh state: the build
    results it carried are regenerated by the next build.
    """
    if not path.is_file():
        logger.info("No state file at %s — starting fresh", path)
        return BuildState()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        state = BuildState.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning("Cannot load state from %s: %s — starting fresh", path, e)
        return BuildState()

    logger.debug(
        "Loaded state from %s (%d build results, updated_at=%s)",
        path,
        len(state.build_results),
        state.updated_at,
    )
    return state


def save_state(state: BuildState, path: Path) -> None:
    """Save build state to a JSON file (atomic write).

    Raises:
        OSError: If the file cannot be written.
    """
    state.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    content = json.dumps(state.model_dump(mode="json"), indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".state_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with open(fd, "w", encoding="utf-8") as f:
            f.write(content)
        tmp.replace(path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save state to %s: %s", path, e)
        raise
    logger.debug("State saved to %s", path)


@contextmanager
def locked_state(path: Path) -> Iterator[BuildState]:
    """Load, hand out, and save the state under an exclusive lock.

    Concurrent read-modify-write cycles from separate processes are
    serialized, so one cannot overwrite what another just recorded.
    If the block raises, nothing is saved.
    """
    with file_lock(path.with_suffix(LOCK_SUFFIX)):
        state = load_state(path)
        yield state
        save_state(state, path)
