"""
Exclusive lock on a target directory for the duration of a run.
"""
import asyncio
import fcntl
import os
from pathlib import Path
from typing import IO, Optional
import logging

from ..core.exceptions import LockTimeoutError

LOCK_FILE_NAME = ".build.lock"


def _try_flock(handle: IO, mode: int) -> bool:
    try:
        fcntl.flock(handle.fileno(), mode | fcntl.LOCK_NB)
    except BlockingIOError:
        return False
    return True


class TargetLock:
    """
    Advisory flock on <target_dir>/.build.lock.

    The holder's pid is written into the lock file so waiting runs and the
    status command can report who holds it.
    """

    def __init__(self, target_dir: Path, timeout: float = 30, poll_interval: float = 0.5):
        """
        Initialize target lock.

        Args:
            target_dir: Directory holding build outputs and the store
            timeout: Seconds to wait for another run to finish
            poll_interval: Seconds between attempts
        """
        self.target_dir = Path(target_dir)
        self.lock_path = self.target_dir / LOCK_FILE_NAME
        self.timeout = timeout
        self.poll_interval = poll_interval
        self._handle: Optional[IO] = None
        self.logger = logging.getLogger(__name__)

    async def __aenter__(self) -> 'TargetLock':
        await self.acquire()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    @property
    def held(self) -> bool:
        return self._handle is not None

    def _lock_once(self) -> Optional[IO]:
        handle = open(self.lock_path, 'a+')
        try:
            if not _try_flock(handle, fcntl.LOCK_EX):
                handle.close()
                return None
            handle.seek(0)
            handle.truncate()
            handle.write(f"{os.getpid()}\n")
            handle.flush()
        except BaseException:
            handle.close()
            raise
        return handle

    async def acquire(self):
        """
        Take the lock, polling until the timeout expires.

        Raises:
            LockTimeoutError: If another run keeps the lock past the timeout
        """
        if self.held:
            return

        self.target_dir.mkdir(parents=True, exist_ok=True)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.timeout

        while True:
            self._handle = self._lock_once()
            if self._handle:
                self.logger.debug(f"Acquired {self.lock_path}")
                return

            if loop.time() >= deadline:
                holder = self.holder()
                self.logger.error(f"Timed out after {self.timeout}s waiting for {self.lock_path}")
                raise LockTimeoutError(
                    f"Could not acquire build lock on {self.target_dir} within {self.timeout}s"
                    + (f" (held by pid {holder})" if holder else "")
                    + ". Another build may be in progress."
                )

            self.logger.debug(f"{self.lock_path} is held by pid {self.holder()}, waiting")
            await asyncio.sleep(self.poll_interval)

    def release(self):
        if not self._handle:
            return
        handle, self._handle = self._handle, None
        try:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
        finally:
            handle.close()
        self.logger.debug(f"Released {self.lock_path}")

    def holder(self) -> Optional[str]:
        """
        Pid recorded by whoever currently holds the lock.

        Returns:
            The pid as written in the lock file ("unknown" if not yet written),
            or None when nobody holds the lock
        """
        if self.held or not self.lock_path.exists():
            return None

        with open(self.lock_path, 'r') as handle:
            if _try_flock(handle, fcntl.LOCK_SH):
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)
                return None
            return handle.read().strip() or "unknown"
