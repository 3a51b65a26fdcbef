"""Session recording: session timer, frame writers and the recorder facade."""

from app.recording.frame_writer import (
    FRAMES_FILE_NAME,
    IMAGES_DIR_NAME,
    VIDEO_FILE_NAME,
    FrameWriter,
    FrameWriterDelegate,
    VideoFrameWriter,
    open_video_writer,
)
from app.recording.session_manager import SessionListener, SessionManager
from app.recording.session_recorder import (
    EXTERNAL_SESSION_INTERVAL_S,
    INTERNAL_SESSION_INTERVAL_S,
    RecorderDelegate,
    SessionRecorder,
)

__all__ = [
    "FrameWriter",
    "FrameWriterDelegate",
    "VideoFrameWriter",
    "open_video_writer",
    "VIDEO_FILE_NAME",
    "FRAMES_FILE_NAME",
    "IMAGES_DIR_NAME",
    "SessionListener",
    "SessionManager",
    "RecorderDelegate",
    "SessionRecorder",
    "INTERNAL_SESSION_INTERVAL_S",
    "EXTERNAL_SESSION_INTERVAL_S",
]
