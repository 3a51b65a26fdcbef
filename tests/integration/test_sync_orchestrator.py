"""Integration tests for recording and syncing end to end.

Tests the complete flow against a local HTTP upload endpoint:
- Recording sessions through the OpenCV frame writer
- Finalized directories offered to the synchronizer
- Telemetry, snapshots and videos uploaded and cleaned up
- CLI commands over the same configuration
"""

import copy
import json
import shutil
import tempfile
import threading
import time
import unittest
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import numpy as np
import yaml

from app.cli import main
from app.lifecycle import CleanupManager
from app.orchestrator import build_orchestrator
from app.sync import SYNC_MARKER_NAME
from configs.settings import config_from_dict
from contracts import Frame, RecordingMode


class _UploadHandler(BaseHTTPRequestHandler):
    def do_PUT(self):
        length = int(self.headers.get("Content-Length", 0))
        self.rfile.read(length)
        with self.server.lock:
            self.server.paths.append(self.path)
        self.send_response(201)
        self.end_headers()

    def log_message(self, format, *args):
        pass


def make_frame(index: int) -> Frame:
    image = np.random.randint(0, 255, (96, 128, 3), dtype=np.uint8)
    return Frame(frame_index=index, t_capture_monotonic_ns=index * 33_000_000, image=image)


def wait_until(predicate, timeout: float = 10.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class OrchestratorTestCase(unittest.TestCase):
    uploads_enabled = True

    def setUp(self):
        self.test_dir = Path(tempfile.mkdtemp())
        self.server = ThreadingHTTPServer(("127.0.0.1", 0), _UploadHandler)
        self.server.paths = []
        self.server.lock = threading.Lock()
        threading.Thread(target=self.server.serve_forever, daemon=True).start()
        host, port = self.server.server_address

        self.config_data = {
            "recording": {
                "output_dir": str(self.test_dir / "recordings"),
                "snapshot_interval_frames": 2,
                "video": {"width": 128, "height": 96, "fps": 30},
            },
            "quota": {"state_path": str(self.test_dir / "state.json")},
            "upload": {"enabled": self.uploads_enabled, "api_base": f"http://{host}:{port}/upload"},
            "device": {"platform_name": "TestOS", "locale": "en_US"},
        }
        self.cleanup_manager = CleanupManager()
        self.orchestrator = build_orchestrator(
            config_from_dict(copy.deepcopy(self.config_data)),
            cleanup_manager=self.cleanup_manager,
        )

    def tearDown(self):
        self.cleanup_manager.cleanup()
        self.server.shutdown()
        self.server.server_close()
        shutil.rmtree(self.test_dir, ignore_errors=True)

    def uploaded(self):
        with self.server.lock:
            return list(self.server.paths)

    def record_session(self, mode=None, frames=4) -> Path:
        recorder = self.orchestrator.recorder
        recorder.start(mode)
        path = self.orchestrator.active_path
        self.assertIsNotNone(path)
        for index in range(frames):
            recorder.handle_frame(make_frame(index))
        recorder.stop()
        return path


class TestSyncOrchestrator(OrchestratorTestCase):
    """Integration tests for the orchestrator with uploads enabled."""

    def test_active_directory_never_offered(self):
        recorder = self.orchestrator.recorder
        recorder.start()
        active = self.orchestrator.active_path

        self.assertTrue(active.is_dir())
        self.assertNotIn(active, self.orchestrator.record_directories())

        recorder.stop()

    def test_internal_session_synced_after_stop(self):
        """Test that a finished internal session is uploaded and marked synced."""
        path = self.record_session()

        self.assertTrue(wait_until(lambda: (path / SYNC_MARKER_NAME).exists()))
        self.assertTrue(self.orchestrator.engine.wait_until_idle(10))

        device_id = json.loads((self.test_dir / "state.json").read_text())["deviceId"]
        folder = f"{path.name}_en_US_{device_id}_TestOS"
        self.assertIn(f"/upload/{folder}/telemetry.zip", self.uploaded())
        self.assertIn(f"/upload/{folder}/images.zip", self.uploaded())
        self.assertFalse((path / "frames.json").exists())
        self.assertFalse((path / "video.avi").exists())
        self.assertLess(self.orchestrator.quota.remaining_bytes, self.orchestrator.quota.total_budget_bytes)

    def test_external_session_uploads_video(self):
        """Test that an external session keeps its video until it is uploaded."""
        target = self.test_dir / "external" / "take-1"

        path = self.record_session(RecordingMode.external(str(target)))

        self.assertEqual(path, target)
        self.assertTrue(wait_until(lambda: any(p.endswith("/video.avi") for p in self.uploaded())))
        self.assertTrue(self.orchestrator.engine.wait_until_idle(10))
        self.assertFalse((target / "video.avi").exists())
        self.assertTrue((target / SYNC_MARKER_NAME).exists())

    def test_shutdown_stops_recording(self):
        self.orchestrator.recorder.start()

        self.assertTrue(self.cleanup_manager.cleanup())

        self.assertFalse(self.orchestrator.recorder.is_session_active)


class TestUploadsDisabled(OrchestratorTestCase):
    uploads_enabled = False

    def test_recording_works_without_sync(self):
        path = self.record_session()

        self.assertIsNone(self.orchestrator.engine)
        self.assertFalse(self.orchestrator.sync_now())
        self.assertTrue(wait_until(lambda: (path / "frames.json").exists()))
        self.assertEqual(self.uploaded(), [])


class TestCli(OrchestratorTestCase):

    def write_config(self) -> Path:
        path = self.test_dir / "recsync.yaml"
        path.write_text(yaml.safe_dump(self.config_data))
        return path

    def test_status_and_sync_commands(self):
        """Test that status lists a pending directory and sync uploads it."""
        directory = self.test_dir / "recordings" / "20240101-120000"
        directory.mkdir(parents=True)
        (directory / "imu.bin").write_bytes(b"x" * 128)
        config_path = self.write_config()

        self.assertEqual(main(["status", "--config", str(config_path)]), 0)
        self.assertEqual(main(["sync", "--config", str(config_path), "--timeout", "10"]), 0)

        self.assertTrue((directory / SYNC_MARKER_NAME).exists())
        self.assertEqual(len([p for p in self.uploaded() if p.endswith("/telemetry.zip")]), 1)

    def test_quota_command(self):
        self.assertEqual(main(["quota", "--config", str(self.write_config())]), 0)

    def test_sync_fails_when_uploads_disabled(self):
        self.config_data["upload"]["enabled"] = False
        self.assertEqual(main(["sync", "--config", str(self.write_config())]), 1)

    def test_missing_config_fails(self):
        self.assertEqual(main(["status", "--config", str(self.test_dir / "missing.yaml")]), 1)


if __name__ == "__main__":
    unittest.main()
