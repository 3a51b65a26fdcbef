"""Recording facade tying the session timer to the frame writer."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from app.events import ErrorCategory, ErrorSeverity, publish_error
from app.recording.frame_writer import FrameWriter, FrameWriterDelegate
from app.recording.session_manager import SessionListener, SessionManager
from contracts import Frame, RecordingMode, VideoSettings
from exceptions import RecorderNotReadyError

logger = logging.getLogger(__name__)

INTERNAL_SESSION_INTERVAL_S = 5 * 60
EXTERNAL_SESSION_INTERVAL_S = 0


class RecorderDelegate:
    """Receives physical recording boundaries from a SessionRecorder."""

    def recording_started(self, path: str) -> None:
        pass

    def recording_stopped(self) -> None:
        pass


class SessionRecorder(SessionListener, FrameWriterDelegate):
    """Records sessions through a FrameWriter, restarting on each interval.

    A session start that arrives while the writer is still finalizing the
    previous recording is remembered and replayed as soon as the writer
    reports that the previous recording stopped.
    """

    def __init__(
        self,
        frame_writer: FrameWriter,
        session_manager: SessionManager,
        video_settings: VideoSettings,
        start_saving_session: Callable[[str], None],
        stop_saving_session: Callable[[], None],
        get_seconds: Callable[[], float] = time.monotonic,
        internal_session_interval_s: float = INTERNAL_SESSION_INTERVAL_S,
        delegate: Optional[RecorderDelegate] = None,
    ):
        self.delegate = delegate
        self._frame_writer = frame_writer
        self._session_manager = session_manager
        self._video_settings = video_settings
        self._start_saving_session = start_saving_session
        self._stop_saving_session = stop_saving_session
        self._get_seconds = get_seconds
        self._internal_interval = internal_session_interval_s

        self._lock = threading.RLock()
        self._current_mode = RecordingMode.internal()
        self._has_pending_request = False

        frame_writer.delegate = self
        session_manager.listener = self

    @property
    def current_mode(self) -> RecordingMode:
        return self._current_mode

    @property
    def has_pending_request(self) -> bool:
        with self._lock:
            return self._has_pending_request

    @property
    def is_session_active(self) -> bool:
        return self._session_manager.is_active

    def session_interval(self, mode: RecordingMode) -> float:
        return EXTERNAL_SESSION_INTERVAL_S if mode.is_external else self._internal_interval

    def start(self, mode: Optional[RecordingMode] = None) -> None:
        mode = mode or RecordingMode.internal()
        if self._session_manager.is_active:
            self.stop()

        with self._lock:
            self._current_mode = mode
            self._frame_writer.saves_source_video = mode.saves_source_video

        logger.info(f"Starting {'external' if mode.is_external else 'internal'} recording session")
        self._session_manager.start_session(self.session_interval(mode))

    def stop(self, abort: bool = False) -> None:
        self._session_manager.stop_session(abort=abort)

    def handle_frame(self, frame: Frame) -> None:
        self._frame_writer.handle_frame(frame)

    # SessionListener

    def session_started(self) -> None:
        self._record()

    def session_stopped(self, abort: bool = False) -> None:
        with self._lock:
            self._has_pending_request = False
        self._stop_saving_session()
        self._frame_writer.stop_recording(abort=abort)

    # FrameWriterDelegate

    def recording_started(self, path: str) -> None:
        if self.delegate is not None:
            self.delegate.recording_started(path)
        self._start_saving_session(path)

    def recording_stopped(self) -> None:
        if self.delegate is not None:
            self.delegate.recording_stopped()
        with self._lock:
            if not self._has_pending_request:
                return
            self._has_pending_request = False
            logger.debug("Replaying deferred recording start")
            self._record()

    def _record(self) -> None:
        with self._lock:
            mode = self._current_mode
            try:
                self._frame_writer.start_recording(
                    reference_time=self._get_seconds(),
                    directory=mode.path,
                    video_settings=self._video_settings,
                )
            except RecorderNotReadyError:
                self._has_pending_request = True
                logger.info("Frame writer still finalizing, recording start deferred")
            except Exception as e:
                publish_error(
                    category=ErrorCategory.RECORDING,
                    severity=ErrorSeverity.WARNING,
                    message="Failed to start recording",
                    source="SessionRecorder._record",
                    exception=e,
                    directory=mode.path,
                )


__all__ = [
    "RecorderDelegate",
    "SessionRecorder",
    "INTERNAL_SESSION_INTERVAL_S",
    "EXTERNAL_SESSION_INTERVAL_S",
]
