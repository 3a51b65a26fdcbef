from pathlib import Path

import pytest
import yaml

from configs.settings import DEFAULT_CONFIG_PATH, config_from_dict, load_config
from configs.validator import validate_config, validate_config_file
from exceptions import ConfigValidationError, InvalidConfigError


def test_load_default_config() -> None:
    config = load_config(DEFAULT_CONFIG_PATH)

    assert config.recording.internal_session_interval_s == 300
    assert config.recording.video.codecs == ("MJPG", "XVID", "MP4V")
    assert config.quota.budget_bytes == 30 * 1024 * 1024
    assert config.quota.refresh_interval_s == 3600
    assert config.sync.storage_cap_bytes == 300 * 1024 * 1024
    assert config.upload.enabled is False
    assert Path(config.recording.output_dir).is_absolute()


def test_minimal_config_gets_defaults() -> None:
    config = config_from_dict({"recording": {"output_dir": "/data/recordings"}})

    assert config.recording.output_dir == "/data/recordings"
    assert config.recording.snapshot_interval_frames == 0
    assert config.recording.video.width == 1280
    assert config.sync.max_workers == 4
    assert config.sync.auto_sync is True
    assert config.upload.timeout_s == 30
    assert config.device.platform_name is None


def test_defaults_not_shared_between_configs() -> None:
    first = {"recording": {"output_dir": "a"}}
    second = {"recording": {"output_dir": "b"}}
    validate_config(first)
    first["sync"]["max_workers"] = 9

    validate_config(second)

    assert second["sync"]["max_workers"] == 4


def test_relative_paths_resolved_against_config_dir(tmp_path) -> None:
    path = tmp_path / "recsync.yaml"
    path.write_text(yaml.safe_dump({"recording": {"output_dir": "recs"}, "quota": {"state_path": "state.json"}}))

    config = load_config(path)

    assert config.recording.output_dir == str(tmp_path / "recs")
    assert config.quota.state_path == str(tmp_path / "state.json")


@pytest.mark.parametrize(
    "data",
    [
        {},
        {"recording": {"output_dir": "x", "snapshot_interval_frames": -1}},
        {"recording": {"output_dir": "x"}, "quota": {"refresh_interval_s": 0}},
        {"recording": {"output_dir": "x"}, "sync": {"max_workers": 0}},
        {"recording": {"output_dir": "x"}, "upload": {"enabled": "yes"}},
        {"recording": {"output_dir": "x"}, "unknown": {}},
    ],
)
def test_invalid_config_rejected(data) -> None:
    with pytest.raises(ConfigValidationError) as excinfo:
        config_from_dict(data)

    assert excinfo.value.validation_errors


def test_missing_file_raises(tmp_path) -> None:
    with pytest.raises(InvalidConfigError):
        load_config(tmp_path / "missing.yaml")


def test_unparseable_yaml_raises(tmp_path) -> None:
    path = tmp_path / "broken.yaml"
    path.write_text("recording: [unclosed")

    with pytest.raises(InvalidConfigError):
        load_config(path)


def test_validate_config_file(tmp_path) -> None:
    path = tmp_path / "bad.yaml"
    path.write_text(yaml.safe_dump({"recording": {"output_dir": "x", "video": {"codecs": []}}}))

    with pytest.raises(ConfigValidationError):
        validate_config_file(str(path))
