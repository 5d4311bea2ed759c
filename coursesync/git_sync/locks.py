"""Per-path serialization of synchronization runs within one process."""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Generator, Union

from .error_types import RepositoryBusyError


class PathLockRegistry:
    """
    Hands out one re-entrant lock per resolved repository path.

    The coordinator and fork sync both take the lock for their whole run, and
    fork sync runs inside the coordinator's run on the same thread, hence RLock.
    """

    def __init__(self):
        self._locks: Dict[Path, threading.RLock] = {}
        self._guard = threading.Lock()
        self.logger = logging.getLogger('coursesync.git_sync.locks')

    def lock_for(self, path: Union[str, Path]) -> threading.RLock:
        key = Path(path).expanduser().resolve()
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, path: Union[str, Path]) -> Generator[None, None, None]:
        """
        Hold the lock for ``path`` without waiting.

        Raises:
            RepositoryBusyError: If another thread currently owns the path
        """
        lock = self.lock_for(path)
        if not lock.acquire(blocking=False):
            self.logger.warning(f"🔒 {path} is being synchronized by another run")
            raise RepositoryBusyError(f"Repository {path} is already being synchronized")
        try:
            yield
        finally:
            lock.release()
