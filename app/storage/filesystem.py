"""File system operations used by the synchronizer."""

from __future__ import annotations

import logging
import os
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

logger = logging.getLogger(__name__)


class FileSystem(ABC):
    """Interface over the handful of file operations the sync pipeline needs."""

    @abstractmethod
    def list_directory(self, path: Path) -> List[Path]:
        """Return the entries of a directory.

        Raises:
            OSError: If the directory cannot be listed
        """

    @abstractmethod
    def exists(self, path: Path) -> bool:
        pass

    @abstractmethod
    def size_of(self, path: Path) -> int:
        """Size of a single file in bytes.

        Raises:
            OSError: If the file cannot be inspected
        """

    @abstractmethod
    def size_of_directory(self, path: Path) -> int:
        """Total size of every file below path, 0 if it cannot be read."""

    @abstractmethod
    def creation_time(self, path: Path) -> float:
        pass

    @abstractmethod
    def create_file(self, path: Path, contents: bytes = b"") -> bool:
        """Create or overwrite a file, returning False on failure."""

    @abstractmethod
    def remove(self, path: Path) -> None:
        """Remove a file or a directory tree. Missing paths are ignored."""


class LocalFileSystem(FileSystem):
    """FileSystem backed by the local disk."""

    def list_directory(self, path: Path) -> List[Path]:
        return sorted(Path(path).iterdir())

    def exists(self, path: Path) -> bool:
        return Path(path).exists()

    def size_of(self, path: Path) -> int:
        return Path(path).stat().st_size

    def size_of_directory(self, path: Path) -> int:
        total = 0
        for root, _, files in os.walk(path):
            for name in files:
                try:
                    total += os.path.getsize(os.path.join(root, name))
                except OSError:
                    # File removed while walking
                    continue
        return total

    def creation_time(self, path: Path) -> float:
        stat = Path(path).stat()
        # st_birthtime is only available on some platforms
        return getattr(stat, "st_birthtime", stat.st_mtime)

    def create_file(self, path: Path, contents: bytes = b"") -> bool:
        try:
            Path(path).write_bytes(contents)
            return True
        except OSError as e:
            logger.warning(f"Failed to create {path}: {e}")
            return False

    def remove(self, path: Path) -> None:
        path = Path(path)
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")


__all__ = ["FileSystem", "LocalFileSystem"]
