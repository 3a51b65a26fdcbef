"""Synchronization of recorded session directories."""

from app.sync.completion_group import CompletionGroup
from app.sync.interfaces import RecordDataSource, SyncDelegate
from app.sync.sync_engine import (
    IMAGES_ARCHIVE_NAME,
    IMAGES_SUBPATH,
    STORAGE_CAP_BYTES,
    SYNC_MARKER_NAME,
    TELEMETRY_ARCHIVE_NAME,
    DirectorySyncEngine,
)

__all__ = [
    "CompletionGroup",
    "RecordDataSource",
    "SyncDelegate",
    "DirectorySyncEngine",
    "IMAGES_ARCHIVE_NAME",
    "IMAGES_SUBPATH",
    "STORAGE_CAP_BYTES",
    "SYNC_MARKER_NAME",
    "TELEMETRY_ARCHIVE_NAME",
]
