from pathlib import Path

import pytest

from contracts import RecordFileType, RecordingMode, VideoSettings
from exceptions import NoRequestedFilesError, QuotaExceededError


@pytest.mark.parametrize(
    "name, file_type",
    [
        ("imu.bin", RecordFileType.BIN),
        ("frames.json", RecordFileType.JSON),
        ("frame_000001.JPG", RecordFileType.IMAGE),
        ("frame_000002.png", RecordFileType.IMAGE),
        ("video.avi", RecordFileType.VIDEO),
        ("clip.MOV", RecordFileType.VIDEO),
        ("telemetry.zip", RecordFileType.ARCHIVE),
    ],
)
def test_file_type_matches_extension(name, file_type) -> None:
    assert file_type.matches(Path(name))
    others = [t for t in RecordFileType if t is not file_type]
    assert not any(t.matches(Path(name)) for t in others)


def test_file_without_extension_matches_nothing() -> None:
    assert not any(t.matches(Path(".synced")) for t in RecordFileType)


def test_recording_mode() -> None:
    internal = RecordingMode.internal()
    external = RecordingMode.external(Path("/data/take"))

    assert not internal.is_external
    assert not internal.saves_source_video
    assert external.is_external
    assert external.saves_source_video
    assert external.path == "/data/take"
    assert RecordingMode() == internal


def test_video_settings_default_codecs() -> None:
    settings = VideoSettings(width=640, height=480, fps=30)
    assert settings.codecs == ("MJPG", "XVID", "MP4V")


def test_exception_messages() -> None:
    error = QuotaExceededError(requested=10, remaining=4)
    assert error.requested == 10
    assert "4 bytes remaining" in str(error)

    missing = NoRequestedFilesError([RecordFileType.BIN, RecordFileType.JSON], Path("/d"))
    assert "bin, json" in str(missing)
