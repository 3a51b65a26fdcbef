"""Compress groups of record files into a single archive."""

from __future__ import annotations

import logging
import zipfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence

from exceptions import ArchiveError

logger = logging.getLogger(__name__)


class Archiver(ABC):
    @abstractmethod
    def archive(self, sources: Sequence[Path], destination: Path) -> None:
        """Write sources into the archive at destination.

        Raises:
            ArchiveError: If the archive cannot be written. No partial
                archive is left behind.
        """


class ZipArchiver(Archiver):
    """Archiver producing deflate-compressed zip files.

    Entries are stored flat, under their file names.
    """

    def __init__(self, compresslevel: int = 6):
        self._compresslevel = compresslevel

    def archive(self, sources: Sequence[Path], destination: Path) -> None:
        destination = Path(destination)
        try:
            with zipfile.ZipFile(
                destination, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=self._compresslevel
            ) as archive:
                for source in sources:
                    archive.write(source, arcname=Path(source).name)
        except (OSError, zipfile.BadZipFile) as e:
            destination.unlink(missing_ok=True)
            raise ArchiveError(f"Failed to archive {len(sources)} file(s) into {destination}: {e}") from e

        logger.debug(f"Archived {len(sources)} file(s) into {destination.name}")


__all__ = ["Archiver", "ZipArchiver"]
