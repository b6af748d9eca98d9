"""Advisory per-fingerprint locks shared between concurrent bootforge processes."""

from __future__ import annotations

import fcntl
import logging
import os
from pathlib import Path
from types import TracebackType

logger = logging.getLogger(__name__)


class FingerprintLock:
    """Exclusive ``flock`` on ``<locks_dir>/<fingerprint>.lock``.

    A second process asking for the same fingerprint blocks in ``acquire``
    until the holder releases, so the loser can reuse the winner's cache
    entry instead of building it again.
    """

    def __init__(self, locks_dir: Path, fingerprint: str) -> None:
        self.path = Path(locks_dir) / f"{fingerprint}.lock"
        self.fingerprint = fingerprint
        self._fd: int | None = None

    @property
    def held(self) -> bool:
        return self._fd is not None

    def acquire(self, *, blocking: bool = True) -> bool:
        """Take the lock. Returns False only when non-blocking and contended."""
        if self._fd is not None:
            return True
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        flags = fcntl.LOCK_EX if blocking else fcntl.LOCK_EX | fcntl.LOCK_NB
        try:
            fcntl.flock(fd, flags)
        except BlockingIOError:
            os.close(fd)
            return False
        except BaseException:
            os.close(fd)
            raise
        self._fd = fd
        logger.debug("Acquired lock %s", self.fingerprint[:16])
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.debug("Released lock %s", self.fingerprint[:16])

    def __enter__(self) -> FingerprintLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
