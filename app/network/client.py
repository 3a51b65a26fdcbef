"""Upload transport for record archives and videos."""

from __future__ import annotations

import logging
import threading
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Optional

from exceptions import UploadCancelledError, UploadError

logger = logging.getLogger(__name__)

UploadCompletion = Callable[[Optional[Exception]], None]
"""Called exactly once per upload with None on success or the failure."""


class NetworkClient(ABC):
    """Asynchronous file upload interface.

    Thread-Safety:
        ``upload`` returns immediately; completions may run on any thread.
    """

    @abstractmethod
    def upload(self, file: Path, remote_folder: str, completion: UploadCompletion) -> None:
        pass

    @abstractmethod
    def cancel_all(self) -> None:
        """Cancel uploads that have not started yet.

        Transfers already on the wire are allowed to finish.
        """

    def close(self) -> None:
        pass


class HttpNetworkClient(NetworkClient):
    """Uploads files with HTTP PUT to ``{api_base}/{remote_folder}/{file_name}``.

    Uploads run on a bounded thread pool. ``cancel_all`` bumps a generation
    counter; queued uploads from an older generation complete with
    UploadCancelledError instead of sending.
    """

    def __init__(
        self,
        api_base: str,
        api_key: str = "",
        timeout_s: float = 30.0,
        max_concurrent: int = 4,
    ):
        if not api_base:
            raise ValueError("api_base is required")
        self._api_base = api_base.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout_s
        self._executor = ThreadPoolExecutor(max_workers=max_concurrent, thread_name_prefix="Upload")
        self._generation = 0
        self._lock = threading.Lock()

    def upload(self, file: Path, remote_folder: str, completion: UploadCompletion) -> None:
        with self._lock:
            generation = self._generation
        self._executor.submit(self._run_upload, Path(file), remote_folder, completion, generation)

    def cancel_all(self) -> None:
        with self._lock:
            self._generation += 1
        logger.info("Pending uploads cancelled")

    def close(self) -> None:
        self.cancel_all()
        self._executor.shutdown(wait=True)

    def url_for(self, file: Path, remote_folder: str) -> str:
        return "/".join(
            [
                self._api_base,
                urllib.parse.quote(remote_folder, safe=""),
                urllib.parse.quote(Path(file).name, safe=""),
            ]
        )

    def _run_upload(self, file: Path, remote_folder: str, completion: UploadCompletion, generation: int) -> None:
        error: Optional[Exception] = UploadError(f"Upload of {file.name} interrupted")
        try:
            with self._lock:
                cancelled = generation != self._generation
            if cancelled:
                raise UploadCancelledError(f"Upload of {file.name} cancelled")
            self._send(file, remote_folder)
            error = None
        except UploadError as e:
            error = e
        except OSError as e:
            error = UploadError(f"Cannot read {file}: {e}")
        except Exception as e:
            # Malformed replies surface as http.client.HTTPException
            error = UploadError(f"Upload of {file.name} failed: {e!r}")
        finally:
            try:
                completion(error)
            except Exception as e:
                logger.error(f"Upload completion for {file.name} failed: {e}", exc_info=True)

    def _send(self, file: Path, remote_folder: str) -> None:
        url = self.url_for(file, remote_folder)
        headers = {
            "Content-Type": "application/octet-stream",
            "Content-Length": str(file.stat().st_size),
        }
        if self._api_key:
            headers["x-api-key"] = self._api_key

        with file.open("rb") as handle:
            request = urllib.request.Request(url, data=handle, headers=headers, method="PUT")
            try:
                with urllib.request.urlopen(request, timeout=self._timeout) as response:
                    if response.status >= 400:
                        raise UploadError(f"Upload failed: {response.status}", status=response.status)
            except urllib.error.HTTPError as e:
                raise UploadError(f"Upload of {file.name} failed: {e.code} {e.reason}", status=e.code) from e
            except urllib.error.URLError as e:
                raise UploadError(f"Upload of {file.name} failed: {e.reason}") from e

        logger.debug(f"Uploaded {file.name} to {remote_folder}")


__all__ = ["NetworkClient", "HttpNetworkClient", "UploadCompletion"]
