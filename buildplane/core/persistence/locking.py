"""
Advisory file locks shared between buildplane processes.

Each CLI call is its own process, so a ``threading.Lock`` alone cannot
keep two of them apart. These locks live in ``.state/`` next to the
state file and are released when the holder exits, even on a crash.
"""

from __future__ import annotations

import fcntl
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".lock"


class LockBusyError(Exception):
    """A non-blocking lock is held by another process."""

    def __init__(self, path: Path):
        self.path = path
        super().__init__(f"Lock is held: {path}")


@contextmanager
def file_lock(path: Path, blocking: bool = True) -> Iterator[Path]:
    """Hold an exclusive lock on ``path`` for the duration of the block.

    Raises:
        LockBusyError: ``blocking`` is False and the lock is taken.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
    with path.open("a") as handle:
        try:
            fcntl.flock(handle.fileno(), flags)
        except BlockingIOError:
            raise LockBusyError(path) from None
        logger.debug("Acquired %s", path)
        try:
            yield path
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
            logger.debug("Released %s", path)
