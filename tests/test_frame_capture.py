"""Tests for bounded single-frame capture."""

import time

import pytest

from camwatch.capture.frame_capture import FrameCaptureService
from camwatch.errors import CaptureError, CaptureTimeout

from conftest import (
    SLEEP_FOREVER,
    SNAPSHOT_EMPTY,
    SNAPSHOT_FAIL,
    ScriptBackend,
    jpeg,
)


class TestFrameCaptureService:

    def test_returns_frame_bytes(self, camera):
        service = FrameCaptureService(ScriptBackend(), timeout=10.0)

        assert service.capture(camera) == jpeg(b"snapshot")

    def test_nonzero_exit_is_capture_error(self, camera):
        service = FrameCaptureService(ScriptBackend(snapshot_script=SNAPSHOT_FAIL))

        with pytest.raises(CaptureError) as excinfo:
            service.capture(camera)

        assert not isinstance(excinfo.value, CaptureTimeout)
        assert "code 1" in str(excinfo.value)
        assert "Could not open video device" in str(excinfo.value)

    def test_empty_output_is_capture_error(self, camera):
        service = FrameCaptureService(ScriptBackend(snapshot_script=SNAPSHOT_EMPTY))

        with pytest.raises(CaptureError, match="no data"):
            service.capture(camera)

    def test_timeout_kills_process(self, camera):
        service = FrameCaptureService(ScriptBackend(snapshot_script=SLEEP_FOREVER), timeout=0.5)

        started = time.monotonic()
        with pytest.raises(CaptureTimeout):
            service.capture(camera)

        assert time.monotonic() - started < 10.0

    def test_launch_failure_is_capture_error(self, camera, tmp_path):
        backend = ScriptBackend()
        backend.snapshot_args = lambda device: [str(tmp_path / "missing-ffmpeg")]

        with pytest.raises(CaptureError, match="cannot launch"):
            FrameCaptureService(backend).capture(camera)
