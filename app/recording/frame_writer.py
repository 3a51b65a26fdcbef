"""Frame writers that turn a frame stream into record directories."""

from __future__ import annotations

import json
import logging
import shutil
import threading
import time
from abc import ABC, abstractmethod
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2

from app.events import ErrorCategory, ErrorSeverity, publish_error
from contracts import Frame, VideoSettings
from exceptions import RecorderNotReadyError, RecordingError

logger = logging.getLogger(__name__)

VIDEO_FILE_NAME = "video.avi"
FRAMES_FILE_NAME = "frames.json"
IMAGES_DIR_NAME = "images"


class FrameWriterDelegate:
    """Receives physical recording boundaries from a FrameWriter."""

    def recording_started(self, path: str) -> None:
        pass

    def recording_stopped(self) -> None:
        pass


class FrameWriter(ABC):
    """Writes frames of one recording at a time.

    ``start_recording`` raises RecorderNotReadyError while a previous
    recording is still being finalized; ``recording_stopped`` on the delegate
    signals that the writer accepts a new recording.
    """

    delegate: Optional[FrameWriterDelegate] = None
    saves_source_video: bool = False

    @abstractmethod
    def start_recording(
        self,
        reference_time: float,
        directory: Optional[str],
        video_settings: VideoSettings,
    ) -> None:
        pass

    @abstractmethod
    def stop_recording(self, abort: bool = False) -> None:
        pass

    @abstractmethod
    def handle_frame(self, frame: Frame) -> None:
        """Write a frame, or drop it when no recording is active."""


class _WriterState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    FINALIZING = "finalizing"


def open_video_writer(path: Path, settings: VideoSettings) -> cv2.VideoWriter:
    """Open a video writer, trying each codec of the settings in turn.

    Raises:
        RecordingError: If no codec works
    """
    for codec_name in settings.codecs:
        fourcc = cv2.VideoWriter_fourcc(*codec_name)
        writer = cv2.VideoWriter(str(path), fourcc, float(settings.fps), (settings.width, settings.height), True)
        if writer.isOpened():
            logger.info(f"Video writer opened: {path.name} with {codec_name} codec")
            return writer
        writer.release()
        logger.debug(f"Codec {codec_name} failed for {path.name}, trying next...")

    raise RecordingError(f"Failed to open video writer for {path.name}. Tried codecs: {list(settings.codecs)}")


class _Recording:
    """Files of one in-progress recording."""

    def __init__(
        self,
        path: Path,
        reference_time: float,
        settings: VideoSettings,
        save_video: bool,
        snapshot_interval: int,
        owns_directory: bool,
    ):
        self.path = path
        self.reference_time = reference_time
        self.settings = settings
        self.save_video = save_video
        self.snapshot_interval = snapshot_interval
        self.owns_directory = owns_directory
        self.writer: Optional[cv2.VideoWriter] = None
        self.frames: List[Dict[str, Any]] = []
        self.created: List[Path] = []

    def write(self, frame: Frame) -> None:
        image = frame.image
        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        size = (self.settings.width, self.settings.height)
        if (image.shape[1], image.shape[0]) != size:
            image = cv2.resize(image, size)

        if self.save_video:
            self._write_video(image)

        if self.snapshot_interval and len(self.frames) % self.snapshot_interval == 0:
            self._write_snapshot(frame.frame_index, image)

        self.frames.append(
            {
                "frame_index": frame.frame_index,
                "t_capture_monotonic_ns": frame.t_capture_monotonic_ns,
            }
        )

    def _write_video(self, image) -> None:
        if self.writer is None:
            video_path = self.path / VIDEO_FILE_NAME
            try:
                self.writer = open_video_writer(video_path, self.settings)
            except RecordingError as e:
                publish_error(
                    category=ErrorCategory.RECORDING,
                    severity=ErrorSeverity.ERROR,
                    message=f"Source video disabled for {self.path.name}",
                    source="VideoFrameWriter",
                    exception=e,
                )
                self.save_video = False
                return
            self.created.append(video_path)
        self.writer.write(image)

    def _write_snapshot(self, frame_index: int, image) -> None:
        images_dir = self.path / IMAGES_DIR_NAME
        if not images_dir.exists():
            images_dir.mkdir(parents=True, exist_ok=True)
            self.created.append(images_dir)
        snapshot_path = images_dir / f"frame_{frame_index:06d}.jpg"
        if not cv2.imwrite(str(snapshot_path), image):
            logger.warning(f"Failed to write snapshot {snapshot_path.name}")

    def close(self) -> None:
        if self.writer is not None:
            self.writer.release()
            self.writer = None

        frames_path = self.path / FRAMES_FILE_NAME
        frames_path.write_text(
            json.dumps(
                {
                    "reference_time": self.reference_time,
                    "frame_count": len(self.frames),
                    "frames": self.frames,
                },
                indent=2,
            )
        )
        self.created.append(frames_path)


class VideoFrameWriter(FrameWriter):
    """FrameWriter storing video, frame timestamps and snapshots with OpenCV.

    Internal recordings go to a fresh timestamped directory under
    ``recordings_root``; external recordings use the given directory.
    Finalization runs on a background thread.
    """

    def __init__(self, recordings_root: Path, snapshot_interval_frames: int = 0):
        self.delegate = None
        self.saves_source_video = False
        self._root = Path(recordings_root)
        self._snapshot_interval = max(0, snapshot_interval_frames)
        self._lock = threading.Lock()
        self._state = _WriterState.IDLE
        self._recording: Optional[_Recording] = None
        self._finalizer: Optional[threading.Thread] = None

    @property
    def is_recording(self) -> bool:
        return self._state is _WriterState.RECORDING

    @property
    def current_path(self) -> Optional[Path]:
        recording = self._recording
        return recording.path if recording else None

    def start_recording(
        self,
        reference_time: float,
        directory: Optional[str],
        video_settings: VideoSettings,
    ) -> None:
        with self._lock:
            if self._state is not _WriterState.IDLE:
                raise RecorderNotReadyError(f"Cannot start recording while {self._state.value}")

            path = Path(directory) if directory else self._new_internal_directory()
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise RecordingError(f"Cannot create record directory {path}: {e}") from e

            self._recording = _Recording(
                path=path,
                reference_time=reference_time,
                settings=video_settings,
                save_video=self.saves_source_video,
                snapshot_interval=self._snapshot_interval,
                owns_directory=directory is None,
            )
            self._state = _WriterState.RECORDING

        logger.info(f"Recording started: {path}")
        if self.delegate is not None:
            self.delegate.recording_started(str(path))

    def stop_recording(self, abort: bool = False) -> None:
        with self._lock:
            if self._state is not _WriterState.RECORDING:
                return
            recording, self._recording = self._recording, None
            self._state = _WriterState.FINALIZING

        self._finalizer = threading.Thread(
            target=self._finalize,
            args=(recording, abort),
            name="RecordingFinalizer",
            daemon=False,
        )
        self._finalizer.start()

    def handle_frame(self, frame: Frame) -> None:
        with self._lock:
            if self._state is not _WriterState.RECORDING or self._recording is None:
                return
            self._recording.write(frame)

    def wait_until_ready(self, timeout: Optional[float] = None) -> bool:
        """Wait for a pending finalization. Returns False on timeout."""
        finalizer = self._finalizer
        if finalizer is not None:
            finalizer.join(timeout=timeout)
            return not finalizer.is_alive()
        return True

    def _finalize(self, recording: _Recording, abort: bool) -> None:
        try:
            recording.close()
            if abort:
                self._discard(recording)
            logger.info(f"Recording finalized: {recording.path} ({len(recording.frames)} frames)")
        except Exception as e:
            publish_error(
                category=ErrorCategory.RECORDING,
                severity=ErrorSeverity.ERROR,
                message=f"Failed to finalize recording {recording.path}",
                source="VideoFrameWriter._finalize",
                exception=e,
            )
        finally:
            with self._lock:
                self._state = _WriterState.IDLE
            if self.delegate is not None:
                self.delegate.recording_stopped()

    def _discard(self, recording: _Recording) -> None:
        if recording.owns_directory:
            shutil.rmtree(recording.path, ignore_errors=True)
            return
        # Leave a caller-pinned directory in place, drop only what we wrote
        for path in reversed(recording.created):
            if path.is_dir():
                shutil.rmtree(path, ignore_errors=True)
            else:
                path.unlink(missing_ok=True)

    def _new_internal_directory(self) -> Path:
        timestamp = time.strftime("%Y%m%d-%H%M%S", time.gmtime())
        candidate = self._root / timestamp
        suffix = 1
        while candidate.exists():
            candidate = self._root / f"{timestamp}_{suffix}"
            suffix += 1
        return candidate


__all__ = [
    "FrameWriter",
    "FrameWriterDelegate",
    "VideoFrameWriter",
    "open_video_writer",
    "VIDEO_FILE_NAME",
    "FRAMES_FILE_NAME",
    "IMAGES_DIR_NAME",
]
