"""Directory synchronization state machine.

Scans locally recorded session directories, prunes synced ones that exceed
the local storage cap, then uploads telemetry, images and videos, in that
order, under the upload quota.

State machine::

    IDLE --sync()--> SYNCING --pipeline done--> IDLE
                        |
                   stop_sync()
                        v
                    STOPPING --in-flight units done--> IDLE
                                                  (or SYNCING if a sync()
                                                   arrived meanwhile)

State and the pending-request latch are only touched on a single-thread
executor. Per-directory work runs on a bounded worker pool, and each phase
hands control back to the serial executor when its last unit finishes, so
the serial executor is never blocked while uploads are in flight.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from app.events import ErrorCategory, ErrorSeverity, publish_error
from app.network.client import NetworkClient
from app.network.device_info import DeviceInfoProvider, current_locale_identifier
from app.storage.archiver import Archiver
from app.storage.filesystem import FileSystem
from app.storage.quota import QuotaLedger
from app.sync.completion_group import CompletionGroup
from app.sync.interfaces import RecordDataSource, SyncDelegate
from contracts import MB, RecordDirectory, RecordFileType, SyncState
from exceptions import (
    NoRequestedFilesError,
    QuotaExceededError,
    SyncError,
    SyncFileCreationError,
    UploadCancelledError,
)

logger = logging.getLogger(__name__)

STORAGE_CAP_BYTES = 300 * MB
SYNC_MARKER_NAME = ".synced"
TELEMETRY_ARCHIVE_NAME = "telemetry"
IMAGES_SUBPATH = "images"
IMAGES_ARCHIVE_NAME = "images"

_SOURCE = "DirectorySyncEngine"

PhaseCompletion = Callable[[], None]


@dataclass(frozen=True)
class _ArchivePhase:
    """Files of a directory that are zipped and uploaded as one archive."""

    name: str
    file_types: Tuple[RecordFileType, ...]
    archive_name: str
    sub_path: Optional[str] = None
    marks_synced: bool = False


_TELEMETRY_PHASE = _ArchivePhase(
    name="telemetry",
    file_types=(RecordFileType.BIN, RecordFileType.JSON),
    archive_name=TELEMETRY_ARCHIVE_NAME,
    marks_synced=True,
)
_IMAGES_PHASE = _ArchivePhase(
    name="images",
    file_types=(RecordFileType.IMAGE,),
    archive_name=IMAGES_ARCHIVE_NAME,
    sub_path=IMAGES_SUBPATH,
)


class DirectorySyncEngine:
    """Uploads record directories and prunes the ones already synced.

    Thread-Safety:
        Public methods may be called from any thread. ``sync`` and
        ``stop_sync`` are queued onto the internal serial executor and
        return immediately.
    """

    def __init__(
        self,
        network_client: NetworkClient,
        device_info: DeviceInfoProvider,
        archiver: Archiver,
        file_system: FileSystem,
        quota: QuotaLedger,
        storage_cap_bytes: int = STORAGE_CAP_BYTES,
        max_workers: int = 4,
        locale_identifier: Optional[str] = None,
        delegate: Optional[SyncDelegate] = None,
    ):
        self._network = network_client
        self._device_info = device_info
        self._archiver = archiver
        self._fs = file_system
        self._quota = quota
        self._storage_cap = storage_cap_bytes
        self._locale = locale_identifier or current_locale_identifier()
        self.delegate = delegate

        self._queue = ThreadPoolExecutor(max_workers=1, thread_name_prefix="RecordSync")
        self._workers = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="RecordSyncWorker")

        self._data_source: Optional[RecordDataSource] = None
        self._state = SyncState.IDLE
        self._has_pending_request = False
        self._attempt = 0
        self._stop_requested = threading.Event()
        self._state_changed = threading.Condition()

    # ------------------------------------------------------------------ #
    # Public API

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def has_pending_request(self) -> bool:
        return self._has_pending_request

    def set_data_source(self, data_source: Optional[RecordDataSource]) -> None:
        self._data_source = data_source

    def sync(self) -> None:
        """Request a sync attempt; coalesced if one is already running."""
        self._dispatch(self._handle_sync_request)

    def stop_sync(self) -> None:
        """Ask a running attempt to stop after its in-flight uploads."""
        self._dispatch(self._handle_stop_request)

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Block until every request queued so far has been handled."""
        try:
            future = self._queue.submit(lambda: None)
        except RuntimeError:
            return True
        try:
            future.result(timeout=timeout)
        except FutureTimeoutError:
            return False
        return True

    def wait_until_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until the engine is idle with no pending request.

        Returns:
            False if timeout elapsed first
        """
        if not self.flush(timeout):
            return False
        with self._state_changed:
            idle = self._state_changed.wait_for(
                lambda: self._state is SyncState.IDLE and not self._has_pending_request,
                timeout,
            )
        if not idle:
            return False
        # The step that reached Idle may still be notifying the delegate
        return self.flush(timeout)

    def shutdown(self, wait: bool = True) -> None:
        self.stop_sync()
        self._queue.shutdown(wait=wait)
        self._workers.shutdown(wait=wait)
        logger.debug("Synchronizer shut down")

    def remote_folder_name(self, directory: Path) -> str:
        return "_".join(
            [
                Path(directory).name,
                self._locale,
                self._device_info.device_id,
                self._device_info.platform_name,
            ]
        )

    def is_marked_as_synced(self, directory: Path) -> bool:
        try:
            return any(entry.name == SYNC_MARKER_NAME for entry in self._fs.list_directory(directory))
        except OSError:
            return False

    def describe(self, directory: Path) -> RecordDirectory:
        return RecordDirectory(
            path=Path(directory),
            creation_timestamp=self._creation_time(directory),
            size_bytes=self._fs.size_of_directory(directory),
            is_synced=self.is_marked_as_synced(directory),
        )

    # ------------------------------------------------------------------ #
    # Serial executor: state machine

    def _dispatch(self, fn: Callable, *args) -> None:
        try:
            self._queue.submit(self._run_guarded, fn, *args)
        except RuntimeError:
            logger.warning(f"Synchronizer is shut down, dropping {fn.__name__}")

    def _run_guarded(self, fn: Callable, *args) -> None:
        try:
            fn(*args)
        except Exception as e:
            publish_error(
                category=ErrorCategory.SYNC,
                severity=ErrorSeverity.ERROR,
                message=f"Sync step {fn.__name__} failed, abandoning attempt",
                source=_SOURCE,
                exception=e,
            )
            # Continuations of the abandoned attempt are ignored from now on
            self._attempt += 1
            self._set_state(SyncState.IDLE)
            if self._has_pending_request:
                self._dispatch(self._handle_sync_request)

    def _set_state(self, state: SyncState, pending: Optional[bool] = None) -> None:
        with self._state_changed:
            previous = self._state
            self._state = state
            if pending is not None:
                self._has_pending_request = pending
            self._state_changed.notify_all()

        if previous is not state:
            logger.debug(f"Sync state {previous.value} -> {state.value}")
            self._notify_delegate(previous, state)

    def _set_pending(self, pending: bool) -> None:
        with self._state_changed:
            self._has_pending_request = pending
            self._state_changed.notify_all()

    def _notify_delegate(self, previous: SyncState, state: SyncState) -> None:
        delegate = self.delegate
        if delegate is None:
            return
        try:
            if hasattr(delegate, "sync_state_changed"):
                delegate.sync_state_changed(previous, state)
            if state is SyncState.IDLE:
                delegate.sync_stopped()
            elif state is SyncState.SYNCING:
                delegate.sync_started()
        except Exception as e:
            logger.error(f"Sync delegate failed: {e}", exc_info=True)

    def _handle_sync_request(self) -> None:
        if self._state is not SyncState.IDLE:
            self._set_pending(True)
            logger.debug(f"Sync request coalesced while {self._state.value}")
            return
        self._execute_sync()

    def _handle_stop_request(self) -> None:
        if self._state is not SyncState.SYNCING:
            return
        logger.info("Stopping sync after in-flight uploads")
        self._stop_requested.set()
        self._set_state(SyncState.STOPPING)
        self._network.cancel_all()

    def _execute_sync(self) -> None:
        self._attempt += 1
        attempt = self._attempt
        self._stop_requested.clear()
        self._set_state(SyncState.SYNCING, pending=False)

        data_source = self._data_source
        if data_source is None:
            logger.warning("No record data source set, nothing to sync")
            self._finish_attempt()
            return

        directories = [Path(d) for d in data_source.record_directories()]
        directories = [d for d in directories if self._fs.exists(d)]
        self._prune(directories)
        directories = [d for d in directories if self._fs.exists(d)]
        logger.info(f"Syncing {len(directories)} record directories")

        phases: List[Callable[[Sequence[Path], PhaseCompletion], None]] = [
            partial(self._upload_archived, phase=_TELEMETRY_PHASE),
            partial(self._upload_archived, phase=_IMAGES_PHASE),
            self._upload_videos,
        ]
        self._run_next_phase(attempt, directories, phases)

    def _run_next_phase(self, attempt: int, directories: List[Path], phases: List[Callable]) -> None:
        if not phases:
            self._finish_attempt()
            return
        phase, remaining = phases[0], phases[1:]
        phase(directories, lambda: self._dispatch(self._continue_after_phase, attempt, directories, remaining))

    def _continue_after_phase(self, attempt: int, directories: List[Path], remaining: List[Callable]) -> None:
        if attempt != self._attempt:
            logger.debug("Ignoring phase completion of a superseded sync attempt")
            return
        if not self._can_continue():
            return
        self._run_next_phase(attempt, directories, remaining)

    def _can_continue(self) -> bool:
        if self._state is not SyncState.STOPPING:
            return True
        if self._has_pending_request:
            logger.info("Sync stopped, replaying pending request")
            self._execute_sync()
        else:
            self._set_state(SyncState.IDLE)
        return False

    def _finish_attempt(self) -> None:
        self._set_state(SyncState.IDLE)
        logger.info("Sync finished")
        if self._has_pending_request:
            self._execute_sync()

    # ------------------------------------------------------------------ #
    # Pruning

    def _prune(self, directories: Sequence[Path]) -> None:
        """Delete synced directories beyond the storage cap, and empty ones.

        Synced directories are walked by creation time, oldest first; a
        directory is deleted once the running total of sizes exceeds the cap
        or when its own size is zero.
        """
        ordered = sorted(directories, key=self._creation_time)
        total = 0
        for directory in ordered:
            if not self.is_marked_as_synced(directory):
                continue
            size = self._fs.size_of_directory(directory)
            total += size
            if total > self._storage_cap or size == 0:
                logger.info(f"Pruning synced directory {directory.name} ({size} bytes, running total {total})")
                self._fs.remove(directory)

    def _creation_time(self, directory: Path) -> float:
        try:
            return self._fs.creation_time(directory)
        except OSError:
            return 0.0

    # ------------------------------------------------------------------ #
    # Archive phases (telemetry, images)

    def _upload_archived(self, directories: Sequence[Path], completion: PhaseCompletion, phase: _ArchivePhase) -> None:
        group = CompletionGroup()
        for directory in directories:
            group.enter()
            try:
                self._workers.submit(self._run_unit, self._upload_archived_directory, directory, phase, group)
            except RuntimeError:
                group.leave()
        group.notify(completion)

    def _run_unit(self, fn: Callable, directory: Path, phase: _ArchivePhase, group: CompletionGroup) -> None:
        try:
            fn(directory, phase, group)
        except Exception as e:
            publish_error(
                category=ErrorCategory.SYNC,
                severity=ErrorSeverity.ERROR,
                message=f"Unexpected failure syncing {phase.name} of {directory.name}",
                source=_SOURCE,
                exception=e,
            )

    def _upload_archived_directory(self, directory: Path, phase: _ArchivePhase, group: CompletionGroup) -> None:
        uploading = False
        try:
            if self._stop_requested.is_set():
                return

            destination = directory / f"{phase.archive_name}.zip"
            try:
                self._prepare_archive(directory, destination, phase)
                self._quota.reserve(self._fs.size_of(destination))
            except NoRequestedFilesError as e:
                logger.debug(f"Skipping {phase.name} of {directory.name}: {e}")
                return
            except QuotaExceededError as e:
                publish_error(
                    category=ErrorCategory.QUOTA,
                    severity=ErrorSeverity.INFO,
                    message=f"Upload of {phase.name} from {directory.name} deferred: {e}",
                    source=_SOURCE,
                    requested=e.requested,
                    remaining=e.remaining,
                )
                return
            except (SyncError, OSError) as e:
                publish_error(
                    category=ErrorCategory.SYNC,
                    severity=ErrorSeverity.WARNING,
                    message=f"Directory {directory.name} failed to archive {phase.name}",
                    source=_SOURCE,
                    exception=e,
                    directory=str(directory),
                )
                return

            self._network.upload(
                destination,
                self.remote_folder_name(directory),
                partial(self._on_archive_uploaded, directory, destination, phase, group),
            )
            uploading = True
        finally:
            if not uploading:
                group.leave()

    def _prepare_archive(self, directory: Path, destination: Path, phase: _ArchivePhase) -> None:
        # An archive left by an earlier attempt is uploaded as is
        if self._fs.exists(destination):
            return
        source_dir = directory / phase.sub_path if phase.sub_path else directory
        files = self._get_files(source_dir, phase.file_types)
        self._archiver.archive(files, destination)
        for file in files:
            self._fs.remove(file)

    def _on_archive_uploaded(
        self,
        directory: Path,
        destination: Path,
        phase: _ArchivePhase,
        group: CompletionGroup,
        error: Optional[Exception],
    ) -> None:
        try:
            if error is not None:
                self._report_upload_failure(destination, error)
                return
            self._fs.remove(destination)
            if phase.marks_synced:
                self._mark_as_synced(directory)
            logger.info(f"Uploaded {phase.name} of {directory.name}")
        except SyncFileCreationError as e:
            publish_error(
                category=ErrorCategory.STORAGE,
                severity=ErrorSeverity.WARNING,
                message=str(e),
                source=_SOURCE,
                directory=str(directory),
            )
        finally:
            group.leave()

    # ------------------------------------------------------------------ #
    # Video phase

    def _upload_videos(self, directories: Sequence[Path], completion: PhaseCompletion) -> None:
        videos: List[Tuple[int, Path]] = []
        for directory in directories:
            try:
                files = self._get_files(directory, (RecordFileType.VIDEO,))
            except (NoRequestedFilesError, OSError) as e:
                logger.debug(f"No videos to upload: {e}")
                continue
            for file in files:
                try:
                    videos.append((self._fs.size_of(file), file))
                except OSError as e:
                    logger.warning(f"Cannot stat video {file}: {e}")

        # Smallest first, so more files fit before the window runs out
        videos.sort(key=lambda item: (item[0], str(item[1])))

        group = CompletionGroup()
        for size, file in videos:
            group.enter()
            try:
                self._quota.reserve(size)
            except QuotaExceededError as e:
                publish_error(
                    category=ErrorCategory.QUOTA,
                    severity=ErrorSeverity.INFO,
                    message=f"Upload of video {file.name} deferred: {e}",
                    source=_SOURCE,
                    requested=e.requested,
                    remaining=e.remaining,
                )
                group.leave()
                continue

            try:
                self._network.upload(
                    file,
                    self.remote_folder_name(file.parent),
                    partial(self._on_video_uploaded, file, group),
                )
            except Exception as e:
                self._report_upload_failure(file, e)
                group.leave()

        group.notify(completion)

    def _on_video_uploaded(self, file: Path, group: CompletionGroup, error: Optional[Exception]) -> None:
        try:
            if error is not None:
                self._report_upload_failure(file, error)
            else:
                self._fs.remove(file)
                logger.info(f"Uploaded video {file.parent.name}/{file.name}")
        finally:
            group.leave()

    # ------------------------------------------------------------------ #
    # Helpers

    def _get_files(self, directory: Path, file_types: Sequence[RecordFileType]) -> List[Path]:
        try:
            entries = self._fs.list_directory(directory)
        except FileNotFoundError:
            entries = []
        files = [entry for entry in entries if any(t.matches(entry) for t in file_types)]
        if not files:
            raise NoRequestedFilesError(file_types, directory)
        return files

    def _mark_as_synced(self, directory: Path) -> None:
        if not self._fs.create_file(directory / SYNC_MARKER_NAME):
            raise SyncFileCreationError(directory)

    def _report_upload_failure(self, file: Path, error: Exception) -> None:
        if isinstance(error, UploadCancelledError):
            logger.info(f"Upload of {file.name} cancelled")
            return
        publish_error(
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.WARNING,
            message=f"Upload of {file.parent.name}/{file.name} failed",
            source=_SOURCE,
            exception=error,
        )


__all__ = [
    "DirectorySyncEngine",
    "STORAGE_CAP_BYTES",
    "SYNC_MARKER_NAME",
    "TELEMETRY_ARCHIVE_NAME",
    "IMAGES_ARCHIVE_NAME",
    "IMAGES_SUBPATH",
]
