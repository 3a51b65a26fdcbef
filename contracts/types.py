"""Shared value types for recording and synchronization."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Tuple

MB = 1024 * 1024


class RecordFileType(Enum):
    """Kinds of files found in a record directory."""

    BIN = "bin"
    JSON = "json"
    IMAGE = "image"
    VIDEO = "video"
    ARCHIVE = "archive"

    @property
    def extensions(self) -> Tuple[str, ...]:
        return _EXTENSIONS[self]

    def matches(self, path: Path) -> bool:
        return path.suffix.lower().lstrip(".") in self.extensions


_EXTENSIONS = {
    RecordFileType.BIN: ("bin",),
    RecordFileType.JSON: ("json",),
    RecordFileType.IMAGE: ("jpg", "jpeg", "png"),
    RecordFileType.VIDEO: ("mp4", "mov", "avi"),
    RecordFileType.ARCHIVE: ("zip",),
}


class SyncState(Enum):
    """Directory synchronizer states."""

    IDLE = "idle"
    SYNCING = "syncing"
    STOPPING = "stopping"  # Waiting for in-flight uploads after a stop request


@dataclass(frozen=True)
class RecordingMode:
    """Where a recording session writes its data.

    Internal mode lets the frame writer pick a rotating directory; external
    mode pins every recording of the session to ``path``.
    """

    path: Optional[str] = None

    @classmethod
    def internal(cls) -> "RecordingMode":
        return cls()

    @classmethod
    def external(cls, path: str) -> "RecordingMode":
        return cls(path=str(path))

    @property
    def is_external(self) -> bool:
        return self.path is not None

    @property
    def saves_source_video(self) -> bool:
        return self.is_external


@dataclass(frozen=True)
class Frame:
    frame_index: int
    t_capture_monotonic_ns: int
    image: Any  # numpy array, HxW or HxWx3 uint8


@dataclass(frozen=True)
class VideoSettings:
    width: int
    height: int
    fps: int
    codecs: Tuple[str, ...] = ("MJPG", "XVID", "MP4V")


@dataclass(frozen=True)
class RecordDirectory:
    """Snapshot of one record directory, used for status reporting."""

    path: Path
    creation_timestamp: float
    size_bytes: int
    is_synced: bool
