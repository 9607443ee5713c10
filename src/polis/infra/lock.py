"""Advisory lock serializing mutating workflows against one instance.

At most one client process may drive the instance at a time. Mutating
workflows (start, stop, delete, reconcile, repair) hold an exclusive,
non-blocking lock on <state_dir>/polis.lock; a second process, or a second
workflow in the same process, fails fast with InstanceLockedError instead
of waiting. Read-only workflows (status, doctor) do not take the lock.

The OS releases the lock when the holder exits, so a crashed run never
leaves a stale lock behind.
"""

import logging
import os
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from polis.core.errors import InstanceLockedError
from polis.core.logging_schema import Component, LogEvent

if sys.platform == "win32":
    import msvcrt

    def _lock_fd(fd: int) -> None:
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_NBLCK, 1)

    def _unlock_fd(fd: int) -> None:
        os.lseek(fd, 0, os.SEEK_SET)
        msvcrt.locking(fd, msvcrt.LK_UNLCK, 1)

else:
    import fcntl

    def _lock_fd(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)

    def _unlock_fd(fd: int) -> None:
        fcntl.flock(fd, fcntl.LOCK_UN)


logger = logging.getLogger(__name__)


class InstanceLock:
    """Exclusive advisory file lock (fcntl.flock / msvcrt.locking)."""

    def __init__(self, path: Path) -> None:
        self._path = path
        self._fd: int | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_held(self) -> bool:
        return self._fd is not None

    def try_acquire(self) -> bool:
        """Try to acquire the lock (non-blocking).

        Not re-entrant: a second acquire through the same lock fails while
        the first is held, so concurrent workflows in one process serialize
        the same way separate processes do.
        """
        if self._fd is not None:
            logger.warning(
                "Instance lock is already held by this process (lock=%s)",
                self._path,
                extra={"event": LogEvent.LOCK_CONTENDED, "component": Component.STATE},
            )
            return False

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self._path, os.O_RDWR | os.O_CREAT, 0o600)
        try:
            _lock_fd(fd)
        except OSError:
            os.close(fd)
            logger.warning(
                "Instance lock is held by another process (lock=%s)",
                self._path,
                extra={"event": LogEvent.LOCK_CONTENDED, "component": Component.STATE},
            )
            return False

        # Holder pid, for humans inspecting a contended lock
        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug("Acquired instance lock (lock=%s)", self._path)
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            _unlock_fd(fd)
        finally:
            os.close(fd)
        logger.debug("Released instance lock (lock=%s)", self._path)

    @contextmanager
    def hold(self) -> Iterator[None]:
        """Hold the lock for the duration of a workflow.

        Raises:
            InstanceLockedError: Another workflow holds the lock.
        """
        if not self.try_acquire():
            raise InstanceLockedError(str(self._path))
        try:
            yield
        finally:
            self.release()
