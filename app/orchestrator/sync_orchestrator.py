"""Wires the session recorder to the directory synchronizer.

The orchestrator is the record data source of the synchronizer and the
saving hooks of the recorder: each finalized recording becomes a sync
candidate, and the directory currently being written is never offered.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import List, Optional, Set

from app.events import ErrorCategory, ErrorSeverity, publish_error
from app.lifecycle import CleanupManager, get_cleanup_manager
from app.network import HttpNetworkClient, LocalDeviceInfo, NetworkClient
from app.recording import RecorderDelegate, SessionManager, SessionRecorder, VideoFrameWriter
from app.storage import JsonFileKeyValueStore, LocalFileSystem, QuotaLedger, ZipArchiver
from app.sync import DirectorySyncEngine, RecordDataSource, SyncDelegate

logger = logging.getLogger(__name__)


class SyncOrchestrator(RecordDataSource, RecorderDelegate):
    """Tracks record directories and triggers syncs as recordings finish."""

    def __init__(
        self,
        recordings_root: Path,
        engine: Optional[DirectorySyncEngine] = None,
        auto_sync: bool = True,
    ):
        self.recordings_root = Path(recordings_root)
        self.engine = engine
        self.auto_sync = auto_sync
        self.recorder: Optional[SessionRecorder] = None
        self.quota: Optional[QuotaLedger] = None
        self._network: Optional[NetworkClient] = None
        self._cleanup_manager: Optional[CleanupManager] = None

        self._lock = threading.Lock()
        self._active_path: Optional[Path] = None
        self._closing_path: Optional[Path] = None
        self._finalized_paths: Set[Path] = set()

        if engine is not None:
            engine.set_data_source(self)

    @property
    def uploads_enabled(self) -> bool:
        return self.engine is not None

    @property
    def active_path(self) -> Optional[Path]:
        return self._active_path

    # Recorder saving hooks

    def start_saving_session(self, path: str) -> None:
        with self._lock:
            self._active_path = Path(path)
        logger.debug(f"Saving session into {path}")

    def stop_saving_session(self) -> None:
        with self._lock:
            if self._active_path is not None:
                self._finalized_paths.add(self._active_path)
            self._closing_path, self._active_path = self._active_path, None
        if self.auto_sync:
            self.sync_now()

    # RecorderDelegate

    def recording_stopped(self) -> None:
        with self._lock:
            self._closing_path = None
        if self.auto_sync:
            self.sync_now()

    # RecordDataSource

    def record_directories(self) -> List[Path]:
        with self._lock:
            excluded = [p for p in (self._active_path, self._closing_path) if p is not None]
            finalized = set(self._finalized_paths)

        candidates: Set[Path] = set()
        if self.recordings_root.is_dir():
            candidates.update(p for p in self.recordings_root.iterdir() if p.is_dir())
        candidates.update(p for p in finalized if p.is_dir())

        if excluded:
            excluded_resolved = {p.resolve() for p in excluded}
            candidates = {p for p in candidates if p.resolve() not in excluded_resolved}
        return sorted(candidates)

    def sync_now(self) -> bool:
        """Request a sync pass. Returns False when uploads are disabled."""
        if self.engine is None:
            logger.debug("Uploads disabled, sync request ignored")
            return False
        self.engine.sync()
        return True

    def shutdown(self, timeout: float = 10.0) -> None:
        """Stop recording and syncing, then release worker threads."""
        if self.recorder is not None:
            self.recorder.stop()
        if self.engine is not None:
            self.engine.stop_sync()
            if not self.engine.wait_until_idle(timeout):
                logger.warning("Sync did not stop within timeout")
            self.engine.shutdown(wait=False)
        if self._network is not None:
            self._network.close()
        if self._cleanup_manager is not None:
            self._cleanup_manager.unregister_cleanup(self._cleanup_name)
        logger.info("Orchestrator shut down")

    @property
    def _cleanup_name(self) -> str:
        return f"sync_orchestrator_{id(self)}"


def build_orchestrator(
    config,
    delegate: Optional[SyncDelegate] = None,
    cleanup_manager: Optional[CleanupManager] = None,
) -> SyncOrchestrator:
    """Build an orchestrator with the default recorder and synchronizer.

    Args:
        config: AppConfig from ``configs.settings.load_config``
        delegate: Optional sync lifecycle delegate
        cleanup_manager: Manager that receives the shutdown hook

    Returns:
        SyncOrchestrator with ``recorder`` and ``quota`` attached, and an
        ``engine`` when uploads are enabled
    """
    cleanup_manager = cleanup_manager or get_cleanup_manager()
    recordings_root = Path(config.recording.output_dir)
    recordings_root.mkdir(parents=True, exist_ok=True)

    store = JsonFileKeyValueStore(Path(config.quota.state_path))
    quota = QuotaLedger(
        store,
        total_budget_bytes=config.quota.budget_bytes,
        refresh_interval_s=config.quota.refresh_interval_s,
    )

    engine: Optional[DirectorySyncEngine] = None
    network: Optional[NetworkClient] = None
    if config.upload.enabled:
        if not config.upload.api_base:
            publish_error(
                category=ErrorCategory.SYSTEM,
                severity=ErrorSeverity.WARNING,
                message="Uploads enabled without api_base, uploads disabled",
                source="build_orchestrator",
            )
        else:
            network = HttpNetworkClient(
                api_base=config.upload.api_base,
                api_key=config.upload.api_key,
                timeout_s=config.upload.timeout_s,
                max_concurrent=config.upload.max_concurrent,
            )
            engine = DirectorySyncEngine(
                network_client=network,
                device_info=LocalDeviceInfo(store, platform_name=config.device.platform_name),
                archiver=ZipArchiver(),
                file_system=LocalFileSystem(),
                quota=quota,
                storage_cap_bytes=config.sync.storage_cap_bytes,
                max_workers=config.sync.max_workers,
                locale_identifier=config.device.locale,
                delegate=delegate,
            )

    orchestrator = SyncOrchestrator(recordings_root, engine=engine, auto_sync=config.sync.auto_sync)
    orchestrator.quota = quota
    orchestrator._network = network

    frame_writer = VideoFrameWriter(
        recordings_root,
        snapshot_interval_frames=config.recording.snapshot_interval_frames,
    )
    orchestrator.recorder = SessionRecorder(
        frame_writer=frame_writer,
        session_manager=SessionManager(cleanup_manager),
        video_settings=config.recording.video.to_settings(),
        start_saving_session=orchestrator.start_saving_session,
        stop_saving_session=orchestrator.stop_saving_session,
        internal_session_interval_s=config.recording.internal_session_interval_s,
        delegate=orchestrator,
    )

    orchestrator._cleanup_manager = cleanup_manager
    cleanup_manager.register_cleanup(orchestrator._cleanup_name, orchestrator.shutdown, timeout=15.0)

    logger.info(
        f"Orchestrator ready: recordings in {recordings_root}, "
        f"uploads {'enabled' if engine is not None else 'disabled'}"
    )
    return orchestrator


__all__ = ["SyncOrchestrator", "build_orchestrator"]
