"""Cleanup manager for graceful shutdown and resource cleanup."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


@dataclass
class CleanupTask:
    """Task to execute during cleanup."""

    name: str
    callback: Callable[[], None]
    timeout: float = 5.0
    critical: bool = False  # If True, failure makes cleanup() return False


class CleanupManager:
    """Runs registered shutdown callbacks with per-task timeouts.

    Tasks run in reverse registration order, so a component registered after
    its dependencies is torn down before them. Registering a name that already
    exists replaces the earlier task.
    """

    def __init__(self, default_timeout: float = 10.0):
        self._tasks: List[CleanupTask] = []
        self._default_timeout = default_timeout
        self._lock = threading.Lock()
        self._cleanup_in_progress = False

    def register_cleanup(
        self,
        name: str,
        callback: Callable[[], None],
        timeout: Optional[float] = None,
        critical: bool = False,
    ) -> None:
        task = CleanupTask(
            name=name,
            callback=callback,
            timeout=timeout or self._default_timeout,
            critical=critical,
        )
        with self._lock:
            self._tasks = [t for t in self._tasks if t.name != name]
            self._tasks.append(task)
        logger.debug(f"Registered cleanup task: {name}")

    def unregister_cleanup(self, name: str) -> bool:
        """Unregister cleanup task.

        Returns:
            True if task was found and removed
        """
        with self._lock:
            before = len(self._tasks)
            self._tasks = [t for t in self._tasks if t.name != name]
            removed = len(self._tasks) != before
        if removed:
            logger.debug(f"Unregistered cleanup task: {name}")
        return removed

    def registered_tasks(self) -> List[str]:
        with self._lock:
            return [t.name for t in self._tasks]

    def cleanup(self) -> bool:
        """Execute all cleanup tasks.

        Tasks are removed once run, so a second call only runs tasks
        registered in between.

        Returns:
            True if all critical tasks succeeded
        """
        with self._lock:
            if self._cleanup_in_progress:
                logger.warning("Cleanup already in progress")
                return False
            self._cleanup_in_progress = True
            tasks = list(reversed(self._tasks))
            self._tasks = []

        all_critical_succeeded = True
        start_time = time.time()

        for task in tasks:
            try:
                if self._run_with_timeout(task.callback, task.timeout):
                    logger.debug(f"Cleanup task '{task.name}' completed")
                else:
                    logger.error(f"Cleanup task '{task.name}' timed out after {task.timeout}s")
                    all_critical_succeeded = all_critical_succeeded and not task.critical
            except Exception as e:
                logger.error(f"Cleanup task '{task.name}' failed: {e}", exc_info=True)
                all_critical_succeeded = all_critical_succeeded and not task.critical

        logger.info(f"Cleanup of {len(tasks)} task(s) completed in {time.time() - start_time:.2f}s")

        with self._lock:
            self._cleanup_in_progress = False
        return all_critical_succeeded

    def _run_with_timeout(self, callback: Callable[[], None], timeout: float) -> bool:
        """Run callback on a helper thread.

        Returns:
            True if completed before timeout
        """
        result = {"completed": False, "exception": None}

        def wrapper():
            try:
                callback()
                result["completed"] = True
            except Exception as e:
                result["exception"] = e

        thread = threading.Thread(target=wrapper, name="CleanupTask")
        thread.daemon = True
        thread.start()
        thread.join(timeout=timeout)

        if result["exception"]:
            raise result["exception"]

        return result["completed"]


# Global cleanup manager instance
_cleanup_manager: Optional[CleanupManager] = None
_manager_lock = threading.Lock()


def get_cleanup_manager() -> CleanupManager:
    """Get global cleanup manager instance."""
    global _cleanup_manager
    if _cleanup_manager is None:
        with _manager_lock:
            if _cleanup_manager is None:
                _cleanup_manager = CleanupManager()
    return _cleanup_manager


__all__ = [
    "CleanupTask",
    "CleanupManager",
    "get_cleanup_manager",
]
