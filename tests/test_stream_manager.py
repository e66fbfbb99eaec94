"""Tests for per-camera continuous streaming."""

import time

from camwatch.capture.stream_manager import StreamHandle, StreamProcessManager, StreamState

from conftest import STREAM_TWO_FRAMES, ScriptBackend, jpeg, make_camera


def wait_for(predicate, timeout=10.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class TestStreamHandle:

    def test_frames_reach_subscriber_then_process_exit_fails_stream(self):
        backend = ScriptBackend(stream_script=STREAM_TWO_FRAMES)
        handle = StreamHandle(make_camera(0, port=0), backend, host="127.0.0.1")
        viewer = handle.broadcaster.subscribe()

        try:
            assert handle.start()
            handle.process.wait(timeout=10.0)

            assert handle.state is StreamState.FAILED
            assert handle.exit_code == 0
            assert not handle.is_serving
            assert list(viewer) == [jpeg(b"one"), jpeg(b"two")]
        finally:
            handle.stop()

    def test_first_output_moves_to_streaming(self):
        handle = StreamHandle(make_camera(0), backend=None)
        handle.state = StreamState.STARTING

        handle._on_output(jpeg(b"x"))

        assert handle.state is StreamState.STREAMING
        assert handle.broadcaster.frames_published == 1

    def test_stop_terminates_running_capture(self):
        handle = StreamHandle(make_camera(0, port=0), ScriptBackend(), host="127.0.0.1")
        assert handle.start()

        handle.stop()

        assert handle.process.wait(timeout=10.0) is not None
        assert handle.state is StreamState.STOPPED
        assert handle.broadcaster.closed

    def test_port_in_use_fails_stream(self):
        first = StreamHandle(make_camera(0, port=0), ScriptBackend(), host="127.0.0.1")
        assert first.start()
        try:
            taken = make_camera(1, port=first.port)
            second = StreamHandle(taken, ScriptBackend(), host="127.0.0.1")

            assert not second.start()
            assert second.state is StreamState.FAILED
            assert second.process is None
            assert "port" in second.error
        finally:
            first.stop()

    def test_failed_stream_is_not_restarted(self):
        backend = ScriptBackend(stream_script="pass")
        handle = StreamHandle(make_camera(0, port=0), backend, host="127.0.0.1")
        try:
            handle.start()
            handle.process.wait(timeout=10.0)
            first_process = handle.process

            assert handle.start() is False
            assert handle.process is first_process
        finally:
            handle.stop()


class TestStreamProcessManager:

    def test_one_handle_per_camera(self):
        manager = StreamProcessManager(ScriptBackend(), host="127.0.0.1")
        camera = make_camera(0, port=0)
        try:
            first = manager.start(camera)
            second = manager.start(camera)

            assert first is second
            assert manager.get(0) is first
            assert manager.states() == {0: first.state}
        finally:
            manager.stop_all()

        assert manager.get(0).state is StreamState.STOPPED

    def test_start_all_with_no_cameras_spawns_nothing(self):
        backend = ScriptBackend()
        manager = StreamProcessManager(backend)

        assert manager.start_all([]) == []
        assert manager.states() == {}
        manager.stop_all()
