"""Session timer that splits a recording into fixed-length intervals."""

from __future__ import annotations

import logging
import threading
import time
from typing import Optional

from app.lifecycle import CleanupManager, get_cleanup_manager

logger = logging.getLogger(__name__)


class SessionListener:
    """Receives interval boundaries from a SessionManager."""

    def session_started(self) -> None:
        pass

    def session_stopped(self, abort: bool = False) -> None:
        pass


class SessionManager:
    """Drives session start/stop callbacks, optionally rotating on a timer.

    With a positive interval the session is cut every ``interval`` seconds:
    the listener sees ``session_stopped`` immediately followed by
    ``session_started``. A zero interval gives one long-lived session.
    While a session is active a shutdown hook is registered so the session
    is closed cleanly when the application exits.
    """

    def __init__(self, cleanup_manager: Optional[CleanupManager] = None):
        self.listener: Optional[SessionListener] = None
        self._cleanup_manager = cleanup_manager or get_cleanup_manager()
        self._cleanup_name = f"session_manager_{id(self)}"
        self._lock = threading.RLock()
        self._active = False
        self._interval = 0.0
        self._stop_event = threading.Event()
        self._rotation_thread: Optional[threading.Thread] = None
        self._started_at: Optional[float] = None

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def session_started_at(self) -> Optional[float]:
        """Wall-clock start of the current session, None when inactive."""
        return self._started_at

    def start_session(self, interruption_interval: float) -> None:
        with self._lock:
            if self._active:
                logger.info("Session already active, restarting it")
                self.stop_session()

            self._active = True
            self._interval = max(0.0, float(interruption_interval))
            self._started_at = time.time()
            self._stop_event = threading.Event()
            self._cleanup_manager.register_cleanup(self._cleanup_name, self.stop_session)

            self._start_interval()

            if self._interval > 0:
                self._rotation_thread = threading.Thread(
                    target=self._rotation_loop,
                    args=(self._stop_event, self._interval),
                    name="SessionRotation",
                    daemon=True,
                )
                self._rotation_thread.start()

        logger.info(f"Session started (rotation interval: {self._interval or 'none'})")

    def stop_session(self, abort: bool = False) -> None:
        with self._lock:
            if not self._active:
                return
            self._active = False
            self._started_at = None
            self._stop_event.set()
            self._cleanup_manager.unregister_cleanup(self._cleanup_name)
            thread, self._rotation_thread = self._rotation_thread, None

            self._stop_interval(abort)

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=2.0)
        logger.info("Session stopped" + (" (aborted)" if abort else ""))

    def _rotation_loop(self, stop_event: threading.Event, interval: float) -> None:
        while not stop_event.wait(interval):
            with self._lock:
                if stop_event.is_set():
                    break
                logger.debug("Rotating session interval")
                self._stop_interval(False)
                self._start_interval()

    def _start_interval(self) -> None:
        if self.listener is not None:
            self.listener.session_started()

    def _stop_interval(self, abort: bool) -> None:
        if self.listener is not None:
            self.listener.session_stopped(abort)


__all__ = ["SessionListener", "SessionManager"]
