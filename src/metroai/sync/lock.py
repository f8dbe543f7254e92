"""Cross-process lock held for the duration of a queue run."""

import fcntl
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)


class RunLock:
    """Exclusive, non-blocking lock on a file beside the queue database.

    Every process working the same queue (a CLI watch loop, a one-shot
    add, a retry) opens the same lock file, so only one of them runs the
    queue at a time. The holder's PID is written into the file. The OS
    drops the lock when the holder exits, so a crashed run never blocks
    the next one.
    """

    def __init__(self, path: Path) -> None:
        """Initialize the lock.

        Args:
            path: Lock file location. Created on first acquire.
        """
        self.path = Path(path)
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        """Whether this instance holds the lock."""
        return self._fd is not None

    def acquire(self) -> bool:
        """Take the lock without waiting.

        Returns:
            True if the lock is now held, False if someone else holds it
        """
        if self._fd is not None:
            return False

        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            logger.debug("Run lock busy: holder_pid=%s", self.holder_pid())
            return False
        except OSError:
            os.close(fd)
            raise

        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode())
        self._fd = fd
        return True

    def release(self) -> None:
        """Drop the lock. Does nothing if it is not held."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            os.ftruncate(fd, 0)
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def holder_pid(self) -> int | None:
        """Get the PID recorded by the current holder, if any."""
        try:
            return int(self.path.read_text().strip())
        except (ValueError, OSError):
            return None
