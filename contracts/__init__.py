"""Shared data contracts for recording and synchronization."""

from .types import (
    MB,
    Frame,
    RecordDirectory,
    RecordFileType,
    RecordingMode,
    SyncState,
    VideoSettings,
)

__all__ = [
    "MB",
    "Frame",
    "RecordDirectory",
    "RecordFileType",
    "RecordingMode",
    "SyncState",
    "VideoSettings",
]
