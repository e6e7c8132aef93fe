"""Per-project keyed mutexes.

Analysis triggers and publishes must be serialized per project. The
registry hands out one ``threading.Lock`` per (namespace, project) pair;
the database-level compare-and-set in each caller remains the source of
truth, the lock keeps two requests in this process from racing to it.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Dict, Generator, Optional, Tuple

from .errors import ConflictError

logger = logging.getLogger(__name__)


class ProjectLockRegistry:
    """Keyed mutex registry: one lock per (namespace, project_id)."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[Tuple[str, str], threading.Lock] = {}

    def _lock_for(self, namespace: str, project_id: str) -> threading.Lock:
        key = (namespace, str(project_id))
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(
        self,
        namespace: str,
        project_id: str,
        blocking: bool = True,
        timeout: Optional[float] = None,
        conflict_message: str = "Another operation is in progress for this project",
    ) -> Generator[None, None, None]:
        """Hold the project's lock for the duration of the block.

        Raises:
            ConflictError: lock not acquired (non-blocking miss or timeout)
        """
        lock = self._lock_for(namespace, project_id)
        if blocking and timeout is not None:
            acquired = lock.acquire(timeout=timeout)
        else:
            acquired = lock.acquire(blocking=blocking)

        if not acquired:
            logger.info(f"Lock {namespace}:{project_id} busy")
            raise ConflictError(conflict_message, project_id=str(project_id))

        try:
            yield
        finally:
            lock.release()


_registry: Optional[ProjectLockRegistry] = None
_registry_guard = threading.Lock()


def get_lock_registry() -> ProjectLockRegistry:
    """Process-wide registry shared by the analysis engine and publisher."""
    global _registry
    with _registry_guard:
        if _registry is None:
            _registry = ProjectLockRegistry()
        return _registry
