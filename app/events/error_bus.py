"""Centralized error event bus for system-wide error handling.

Recording and sync failures are unit-scoped and never propagate to callers;
this bus is where they surface. Components publish events, and anything that
cares (the CLI summary, tests, an operator UI) subscribes.
"""

from __future__ import annotations

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    """Error severity levels."""

    INFO = "info"  # Expected condition, retried later
    WARNING = "warning"  # Unit skipped, attempt continues
    ERROR = "error"  # Operation failed
    CRITICAL = "critical"  # Component may be unusable


class ErrorCategory(Enum):
    """Error categories for classification."""

    RECORDING = "recording"
    QUOTA = "quota"
    SYNC = "sync"
    NETWORK = "network"
    STORAGE = "storage"
    SYSTEM = "system"


_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


@dataclass
class ErrorEvent:
    """Error event with context information."""

    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    source: str
    timestamp: float = field(default_factory=time.time)
    exception: Optional[BaseException] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        exc_info = f" ({self.exception.__class__.__name__})" if self.exception else ""
        return f"[{self.severity.value.upper()}] {self.category.value}/{self.source}: {self.message}{exc_info}"


Subscriber = Callable[[ErrorEvent], None]


class ErrorEventBus:
    """Publish-subscribe bus for error events with a bounded history."""

    def __init__(self, max_history: int = 100):
        self._subscribers: Dict[Optional[ErrorCategory], List[Subscriber]] = {}
        self._lock = threading.Lock()
        self._history: Deque[ErrorEvent] = deque(maxlen=max_history)
        self._counts: Dict[ErrorCategory, int] = {}

    def subscribe(self, callback: Subscriber, category: Optional[ErrorCategory] = None) -> None:
        """Subscribe to error events.

        Args:
            callback: Function to call when an event is published
            category: Category to listen to, or None for every category
        """
        with self._lock:
            self._subscribers.setdefault(category, []).append(callback)
        logger.debug(
            "Subscribed %s to %s errors",
            getattr(callback, "__name__", repr(callback)),
            category.value if category else "all",
        )

    def unsubscribe(self, callback: Subscriber, category: Optional[ErrorCategory] = None) -> None:
        with self._lock:
            callbacks = self._subscribers.get(category, [])
            if callback in callbacks:
                callbacks.remove(callback)

    def publish(self, event: ErrorEvent) -> None:
        """Record, log and fan out an event.

        Subscriber exceptions are logged and never reach the publisher.
        """
        with self._lock:
            self._history.append(event)
            self._counts[event.category] = self._counts.get(event.category, 0) + 1
            callbacks = list(self._subscribers.get(event.category, [])) + list(self._subscribers.get(None, []))

        logger.log(_LOG_LEVELS[event.severity], str(event), exc_info=event.exception)

        # Notify outside the lock so subscribers may publish
        for callback in callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(
                    "Error in event subscriber %s: %s", getattr(callback, "__name__", repr(callback)), e, exc_info=True
                )

    def get_history(self, category: Optional[ErrorCategory] = None, limit: int = 100) -> List[ErrorEvent]:
        with self._lock:
            history = list(self._history)
        if category is not None:
            history = [e for e in history if e.category == category]
        return history[-limit:]

    def get_error_counts(self) -> Dict[ErrorCategory, int]:
        with self._lock:
            return dict(self._counts)

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()
            self._counts.clear()


# Global error event bus instance
_error_bus: Optional[ErrorEventBus] = None
_bus_lock = threading.Lock()


def get_error_bus() -> ErrorEventBus:
    """Get global error event bus instance."""
    global _error_bus
    if _error_bus is None:
        with _bus_lock:
            if _error_bus is None:
                _error_bus = ErrorEventBus()
    return _error_bus


def publish_error(
    category: ErrorCategory,
    severity: ErrorSeverity,
    message: str,
    source: str,
    exception: Optional[BaseException] = None,
    **metadata: Any,
) -> None:
    """Convenience function to publish error event.

    Args:
        category: Error category
        severity: Error severity
        message: Error message
        source: Source component
        exception: Optional exception
        **metadata: Additional metadata
    """
    get_error_bus().publish(
        ErrorEvent(
            category=category,
            severity=severity,
            message=message,
            source=source,
            exception=exception,
            metadata=metadata,
        )
    )


__all__ = [
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorEvent",
    "ErrorEventBus",
    "get_error_bus",
    "publish_error",
]
