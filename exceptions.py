"""Custom exception classes for RecSync."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Sequence


class RecSyncError(Exception):
    """Base exception for all RecSync errors."""

    pass


class RecordingError(RecSyncError):
    """Base exception for recording-related errors."""

    pass


class RecorderNotReadyError(RecordingError):
    """Raised when the frame writer is still finalizing a previous recording."""

    pass


class QuotaExceededError(RecSyncError):
    """Raised when a quota reservation cannot be satisfied."""

    def __init__(self, requested: int, remaining: int):
        self.requested = requested
        self.remaining = remaining
        super().__init__(f"Quota exceeded: requested {requested} bytes, {remaining} bytes remaining")


class SyncError(RecSyncError):
    """Base exception for directory synchronization errors."""

    pass


class SyncFileCreationError(SyncError):
    """Raised when the synced marker cannot be written into a directory."""

    def __init__(self, directory: Path):
        self.directory = directory
        super().__init__(f"Failed to create synced marker in {directory}")


class NoRequestedFilesError(SyncError):
    """Raised when a directory holds no files of the requested types."""

    def __init__(self, file_types: Sequence, directory: Path):
        self.file_types = list(file_types)
        self.directory = directory
        names = ", ".join(getattr(t, "value", str(t)) for t in self.file_types)
        super().__init__(f"No {names} files in {directory}")


class ArchiveError(SyncError):
    """Raised when files cannot be compressed into an archive."""

    pass


class UploadError(SyncError):
    """Raised when a file upload fails."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        super().__init__(message)


class UploadCancelledError(UploadError):
    """Raised when an upload is cancelled before it started."""

    pass


class ConfigError(RecSyncError):
    """Base exception for configuration errors."""

    pass


class InvalidConfigError(ConfigError):
    """Raised when configuration file is invalid or corrupted."""

    pass


class ConfigValidationError(ConfigError):
    """Raised when configuration fails schema validation."""

    def __init__(self, message: str, validation_errors: Optional[list] = None):
        self.validation_errors = validation_errors or []
        super().__init__(message)
