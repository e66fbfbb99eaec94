"""Shared fixtures: cameras and a capture backend that runs Python scripts instead of ffmpeg."""

import sys

import pytest

from camwatch.capture.backend import VideoCaptureBackend
from camwatch.capture.detector import CameraDescriptor
from camwatch.capture.resolution import Resolution


def jpeg(payload: bytes) -> bytes:
    return b'\xff\xd8' + payload + b'\xff\xd9'


# Child-process scripts. Escapes are doubled so the child sees b'\xff\xd8'.
SNAPSHOT_OK = "import sys; sys.stdout.buffer.write(b'\\xff\\xd8snapshot\\xff\\xd9')"
SNAPSHOT_EMPTY = "pass"
SNAPSHOT_FAIL = (
    "import sys; sys.stderr.write('Could not open video device\\n'); sys.exit(1)"
)
SLEEP_FOREVER = "import time; time.sleep(60)"

STREAM_TWO_FRAMES = (
    "import sys, time\n"
    "out = sys.stdout.buffer\n"
    "out.write(b'\\xff\\xd8one\\xff\\xd9'); out.flush(); time.sleep(0.05)\n"
    "out.write(b'\\xff\\xd8two\\xff\\xd9'); out.flush()\n"
)


class ScriptBackend(VideoCaptureBackend):
    """Backend whose every invocation is `python -c <script>`."""

    name = "script"

    def __init__(self, devices=(), probe_script="pass", stream_script=SLEEP_FOREVER,
                 snapshot_script=SNAPSHOT_OK):
        super().__init__(ffmpeg_path=sys.executable)
        self.devices = list(devices)
        self.probe_script = probe_script
        self.stream_script = stream_script
        self.snapshot_script = snapshot_script
        self.snapshots_started = 0

    def list_devices(self):
        return list(self.devices)

    def probe_args(self, device):
        return [sys.executable, "-c", self.probe_script]

    def stream_args(self, device, resolution, fps):
        return [sys.executable, "-c", self.stream_script]

    def snapshot_args(self, device):
        self.snapshots_started += 1
        return [sys.executable, "-c", self.snapshot_script]


def make_camera(camera_id=0, port=None, device=None):
    return CameraDescriptor(
        id=camera_id,
        device=device or f"/dev/video{camera_id}",
        port=20000 + camera_id if port is None else port,
        resolution=Resolution(1280, 720),
        fps=5,
    )


@pytest.fixture
def camera():
    return make_camera(0)


@pytest.fixture
def script_backend():
    return ScriptBackend(devices=["/dev/video0"])
