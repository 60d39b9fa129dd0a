"""Advisory lock on an output directory.

The build tool holds an exclusive ``flock`` on ``<profile dir>/.cargo-lock``
while it builds into that directory. Taking the same lock for the length of
a sweep keeps a build from writing artifacts we are about to judge stale,
and tells us when a build is already running.

The lock is advisory: a writer that does not take it is not stopped.
"""

from __future__ import annotations

import contextlib
import fcntl
import logging
import os
from collections.abc import Iterator
from pathlib import Path

from targetgc.foundation.errors import ErrorCode, TargetGcError, enumeration_error

logger = logging.getLogger(__name__)

LOCK_FILE_NAME = ".cargo-lock"


@contextlib.contextmanager
def exclusive_output_dir(path: Path, *, create: bool = True) -> Iterator[Path | None]:
    """Hold the output directory's build lock for the duration of the block.

    Args:
        path: The profile directory (``target/debug``).
        create: Create the lock file when it is missing. With ``create=False``
            a missing lock file means nothing is locked and the block runs
            unlocked (dry runs do not touch the tree).

    Yields:
        The lock file path, or None when running unlocked.

    Raises:
        TargetGcError: OUTPUT_DIR_LOCKED if another process holds the lock,
            ENUMERATION_FAILED if the lock file cannot be opened.
    """
    lock_path = path / LOCK_FILE_NAME
    flags = os.O_RDWR | os.O_CREAT if create else os.O_RDONLY

    fd: int | None = None
    try:
        fd = os.open(str(lock_path), flags, 0o644)
    except OSError as e:
        if create or not isinstance(e, FileNotFoundError):
            raise enumeration_error(lock_path, e) from e

    if fd is None:
        logger.debug("No lock file in %s, running unlocked", path)
        yield None
        return

    try:
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            raise TargetGcError(
                code=ErrorCode.OUTPUT_DIR_LOCKED,
                context={"path": path},
                cause=e,
            ) from e
        logger.debug("Locked %s", lock_path)
        try:
            yield lock_path
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
    finally:
        os.close(fd)
