"""Lifecycle management for shutdown and cleanup."""

from app.lifecycle.cleanup_manager import (
    CleanupManager,
    CleanupTask,
    get_cleanup_manager,
)

__all__ = [
    "CleanupManager",
    "CleanupTask",
    "get_cleanup_manager",
]
