"""Collaborator interfaces of the directory synchronizer."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List


class RecordDataSource(ABC):
    """Supplies the candidate record directories for a sync attempt."""

    @abstractmethod
    def record_directories(self) -> List[Path]:
        pass


class SyncDelegate:
    """Receives sync lifecycle notifications.

    Callbacks run on the synchronizer's internal thread; UI-facing
    implementations must hop to their own thread. ``sync_started`` fires on
    every entry into Syncing, including a replay straight from Stopping.
    """

    def sync_started(self) -> None:
        pass

    def sync_stopped(self) -> None:
        pass


__all__ = ["RecordDataSource", "SyncDelegate"]
