"""Run-level lock preventing two reconciliation runs against the same host."""

import fcntl
import os
from typing import Optional

from pgreconcile.core.errors import ExecutionError, LockError
from pgreconcile.core.logging import get_logger

logger = get_logger(__name__)


class RunLock:
    """
    Exclusive, non-blocking ``flock`` on a lock file.

    The lock is released when the context exits or the process dies, so a
    crashed run never leaves a stale lock behind.
    """

    def __init__(self, path: str):
        self.path = path
        self._fd: Optional[int] = None

    def acquire(self) -> None:
        parent_dir = os.path.dirname(self.path)
        try:
            if parent_dir:
                os.makedirs(parent_dir, exist_ok=True)
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o600)
        except OSError as e:
            raise ExecutionError(f"Cannot open lock file {self.path}: {e}") from e

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as e:
            os.close(fd)
            raise LockError(f"Another reconciliation run holds {self.path}") from e

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode())
        self._fd = fd
        logger.debug("Acquired run lock", path=self.path)

    def release(self) -> None:
        if self._fd is None:
            return
        fcntl.flock(self._fd, fcntl.LOCK_UN)
        os.close(self._fd)
        self._fd = None
        logger.debug("Released run lock", path=self.path)

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def __enter__(self) -> "RunLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
