"""Configuration loading for RecSync."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml

from configs.validator import validate_config
from contracts import VideoSettings
from exceptions import ConfigError, InvalidConfigError
from log_config.logger import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).with_name("default.yaml")


@dataclass(frozen=True)
class VideoConfig:
    width: int
    height: int
    fps: float
    codecs: Tuple[str, ...]

    def to_settings(self) -> VideoSettings:
        return VideoSettings(width=self.width, height=self.height, fps=self.fps, codecs=self.codecs)


@dataclass(frozen=True)
class RecordingConfig:
    output_dir: str
    internal_session_interval_s: float
    snapshot_interval_frames: int  # Save every Nth frame as JPEG (0 = off)
    video: VideoConfig


@dataclass(frozen=True)
class QuotaConfig:
    budget_bytes: int
    refresh_interval_s: float
    state_path: str  # Persisted quota and device id


@dataclass(frozen=True)
class SyncConfig:
    storage_cap_bytes: int  # Synced directories beyond this are pruned
    max_workers: int
    auto_sync: bool  # Sync whenever a recording is finalized


@dataclass(frozen=True)
class UploadConfig:
    enabled: bool
    api_base: str
    api_key: str
    timeout_s: float
    max_concurrent: int


@dataclass(frozen=True)
class DeviceConfig:
    platform_name: Optional[str]
    locale: Optional[str]


@dataclass(frozen=True)
class AppConfig:
    recording: RecordingConfig
    quota: QuotaConfig
    sync: SyncConfig
    upload: UploadConfig
    device: DeviceConfig


def _resolve(base_dir: Path, value: str) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return str(path)


def config_from_dict(data: Dict[str, Any], base_dir: Optional[Path] = None) -> AppConfig:
    """Validate a configuration mapping and build an AppConfig.

    Relative paths are resolved against ``base_dir`` when given.

    Raises:
        ConfigError: If the mapping is invalid
    """
    if not isinstance(data, dict):
        raise InvalidConfigError("Configuration root must be a mapping")

    validate_config(data)

    try:
        recording_data = data["recording"]
        video = VideoConfig(
            width=recording_data["video"]["width"],
            height=recording_data["video"]["height"],
            fps=recording_data["video"]["fps"],
            codecs=tuple(recording_data["video"]["codecs"]),
        )
        recording = RecordingConfig(
            output_dir=recording_data["output_dir"],
            internal_session_interval_s=float(recording_data["internal_session_interval_s"]),
            snapshot_interval_frames=int(recording_data["snapshot_interval_frames"]),
            video=video,
        )
        quota = QuotaConfig(**data["quota"])
        sync = SyncConfig(**data["sync"])
        upload = UploadConfig(**data["upload"])
        device = DeviceConfig(**data["device"])
    except (KeyError, TypeError) as e:
        logger.error(f"Failed to construct configuration objects: {e}")
        raise InvalidConfigError(f"Failed to construct configuration: {e}")

    if base_dir is not None:
        recording = RecordingConfig(
            output_dir=_resolve(base_dir, recording.output_dir),
            internal_session_interval_s=recording.internal_session_interval_s,
            snapshot_interval_frames=recording.snapshot_interval_frames,
            video=recording.video,
        )
        quota = QuotaConfig(
            budget_bytes=quota.budget_bytes,
            refresh_interval_s=quota.refresh_interval_s,
            state_path=_resolve(base_dir, quota.state_path),
        )

    return AppConfig(recording=recording, quota=quota, sync=sync, upload=upload, device=device)


def load_config(path: Path = DEFAULT_CONFIG_PATH) -> AppConfig:
    """Load and validate configuration from YAML file.

    Args:
        path: Path to configuration file

    Returns:
        Validated AppConfig instance

    Raises:
        ConfigError: If configuration is invalid or cannot be loaded
    """
    path = Path(path)
    logger.info(f"Loading configuration from {path}")
    if not path.exists():
        raise InvalidConfigError(f"Configuration file not found: {path}")

    try:
        data = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse YAML configuration: {e}")
        raise InvalidConfigError(f"Failed to parse configuration file: {e}")
    except OSError as e:
        raise InvalidConfigError(f"Cannot read configuration file {path}: {e}")

    try:
        config = config_from_dict(data, base_dir=path.parent)
    except ConfigError:
        raise
    except (TypeError, ValueError) as e:
        logger.error(f"Invalid configuration value: {e}")
        raise InvalidConfigError(f"Invalid configuration value: {e}")

    logger.info(
        f"Configuration loaded successfully: recordings in {config.recording.output_dir}, "
        f"uploads {'enabled' if config.upload.enabled else 'disabled'}"
    )
    return config


__all__ = [
    "AppConfig",
    "RecordingConfig",
    "VideoConfig",
    "QuotaConfig",
    "SyncConfig",
    "UploadConfig",
    "DeviceConfig",
    "DEFAULT_CONFIG_PATH",
    "config_from_dict",
    "load_config",
]
