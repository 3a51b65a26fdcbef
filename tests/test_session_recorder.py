"""Unit tests for the session timer and the session recorder."""

import threading
import time
import unittest
from unittest.mock import Mock

from app.events import ErrorCategory, get_error_bus
from app.lifecycle import CleanupManager
from app.recording import (
    FrameWriter,
    RecorderDelegate,
    SessionListener,
    SessionManager,
    SessionRecorder,
)
from contracts import Frame, RecordingMode, VideoSettings
from exceptions import RecorderNotReadyError, RecordingError


class FakeFrameWriter(FrameWriter):
    """Frame writer whose finalization is completed by the test."""

    def __init__(self):
        self.delegate = None
        self.saves_source_video = False
        self.recording = False
        self.finalizing = False
        self.started = []
        self.stopped = []
        self.frames = []
        self.fail_with = None

    def start_recording(self, reference_time, directory, video_settings):
        if self.fail_with is not None:
            raise self.fail_with
        if self.recording or self.finalizing:
            raise RecorderNotReadyError("busy")
        self.recording = True
        path = directory or f"/recordings/{len(self.started)}"
        self.started.append((reference_time, directory, video_settings, self.saves_source_video))
        self.delegate.recording_started(path)

    def stop_recording(self, abort=False):
        if not self.recording:
            return
        self.recording = False
        self.finalizing = True
        self.stopped.append(abort)

    def handle_frame(self, frame):
        self.frames.append(frame)

    def finish_finalize(self):
        self.finalizing = False
        self.delegate.recording_stopped()


class EventLog(SessionListener):
    def __init__(self):
        self.events = []
        self.lock = threading.Lock()

    def session_started(self):
        with self.lock:
            self.events.append("started")

    def session_stopped(self, abort=False):
        with self.lock:
            self.events.append(("stopped", abort))


class TestSessionManager(unittest.TestCase):
    """Test SessionManager start/stop and rotation."""

    def setUp(self):
        self.cleanup_manager = CleanupManager()
        self.manager = SessionManager(self.cleanup_manager)
        self.listener = EventLog()
        self.manager.listener = self.listener

    def tearDown(self):
        self.manager.stop_session()

    def test_start_and_stop_without_rotation(self):
        self.manager.start_session(0)
        self.assertTrue(self.manager.is_active)
        self.assertIsNotNone(self.manager.session_started_at)

        self.manager.stop_session(abort=True)

        self.assertFalse(self.manager.is_active)
        self.assertEqual(self.listener.events, ["started", ("stopped", True)])

    def test_restart_stops_previous_session(self):
        """Test that starting an active session stops it first."""
        self.manager.start_session(0)
        self.manager.start_session(0)

        self.assertEqual(self.listener.events, ["started", ("stopped", False), "started"])

    def test_stop_when_inactive_is_noop(self):
        self.manager.stop_session()
        self.assertEqual(self.listener.events, [])

    def test_rotation_cuts_intervals(self):
        """Test that a positive interval produces stop/start pairs."""
        self.manager.start_session(0.05)
        time.sleep(0.23)
        self.manager.stop_session()

        events = list(self.listener.events)
        self.assertEqual(events[0], "started")
        self.assertEqual(events[-1], ("stopped", False))
        self.assertGreaterEqual(events.count("started"), 2)
        self.assertEqual(events.count("started"), events.count(("stopped", False)))

    def test_cleanup_hook_registered_while_active(self):
        """Test that the session is stopped by the cleanup manager on shutdown."""
        self.manager.start_session(0)
        self.assertEqual(len(self.cleanup_manager.registered_tasks()), 1)

        self.assertTrue(self.cleanup_manager.cleanup())

        self.assertFalse(self.manager.is_active)
        self.assertEqual(self.listener.events, ["started", ("stopped", False)])

    def test_stop_unregisters_cleanup_hook(self):
        self.manager.start_session(0)
        self.manager.stop_session()
        self.assertEqual(self.cleanup_manager.registered_tasks(), [])


class TestSessionRecorder(unittest.TestCase):
    """Test SessionRecorder latch and mode semantics."""

    def setUp(self):
        self.writer = FakeFrameWriter()
        self.manager = SessionManager(CleanupManager())
        self.saving = Mock()
        self.delegate = Mock(spec=RecorderDelegate)
        self.settings = VideoSettings(width=640, height=480, fps=30)
        self.recorder = SessionRecorder(
            frame_writer=self.writer,
            session_manager=self.manager,
            video_settings=self.settings,
            start_saving_session=self.saving.start,
            stop_saving_session=self.saving.stop,
            get_seconds=lambda: 42.0,
            delegate=self.delegate,
        )
        get_error_bus().clear_history()

    def tearDown(self):
        self.recorder.stop()

    def test_internal_mode_records_without_source_video(self):
        self.recorder.start()

        self.assertEqual(self.writer.started, [(42.0, None, self.settings, False)])
        self.assertEqual(self.manager.interval, 300)
        self.saving.start.assert_called_once_with("/recordings/0")
        self.delegate.recording_started.assert_called_once_with("/recordings/0")

    def test_external_mode_keeps_video_and_never_rotates(self):
        self.recorder.start(RecordingMode.external("/data/take-1"))

        self.assertEqual(self.writer.started, [(42.0, "/data/take-1", self.settings, True)])
        self.assertEqual(self.manager.interval, 0)
        self.assertTrue(self.recorder.current_mode.is_external)

    def test_stop_stops_saving_then_recording(self):
        self.recorder.start()
        self.recorder.stop(abort=True)

        self.saving.stop.assert_called_once_with()
        self.assertEqual(self.writer.stopped, [True])

    def test_restart_while_finalizing_is_deferred(self):
        """Test that a start during finalization is replayed once the writer is free."""
        self.recorder.start()
        self.recorder.start(RecordingMode.external("/data/take-2"))

        self.assertTrue(self.recorder.has_pending_request)
        self.assertEqual(len(self.writer.started), 1)

        self.writer.finish_finalize()

        self.assertFalse(self.recorder.has_pending_request)
        self.assertEqual(len(self.writer.started), 2)
        self.assertEqual(self.writer.started[1][1], "/data/take-2")
        self.delegate.recording_stopped.assert_called_once_with()
        self.assertEqual(self.saving.start.call_count, 2)

    def test_stop_clears_pending_request(self):
        """Test that a deferred start is dropped when the session stops."""
        self.recorder.start()
        self.recorder.start()
        self.assertTrue(self.recorder.has_pending_request)

        self.recorder.stop()
        self.writer.finish_finalize()

        self.assertFalse(self.recorder.has_pending_request)
        self.assertEqual(len(self.writer.started), 1)

    def test_other_start_errors_are_published(self):
        """Test that unexpected start errors are reported, not raised or retried."""
        self.writer.fail_with = RecordingError("disk full")

        self.recorder.start()

        self.assertFalse(self.recorder.has_pending_request)
        history = get_error_bus().get_history(category=ErrorCategory.RECORDING)
        self.assertEqual(len(history), 1)
        self.assertIsInstance(history[0].exception, RecordingError)

    def test_frames_forwarded_unconditionally(self):
        frame = Frame(frame_index=0, t_capture_monotonic_ns=0, image=None)

        self.recorder.handle_frame(frame)

        self.assertEqual(self.writer.frames, [frame])


if __name__ == "__main__":
    unittest.main()
