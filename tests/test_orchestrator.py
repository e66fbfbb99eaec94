"""Tests for the round-robin prediction loop."""

import threading
import time

from camwatch.errors import CaptureError, InferenceError
from camwatch.prediction.orchestrator import PredictionOrchestrator
from camwatch.prediction.state import MonitorState

from conftest import make_camera


class FakeCapture:
    def __init__(self, failures=None, delays=None):
        self.failures = failures or {}
        self.delays = delays or {}
        self.calls = []
        self._lock = threading.Lock()

    def capture(self, camera):
        with self._lock:
            self.calls.append(camera.id)
        gate = self.delays.get(camera.id)
        if gate is not None:
            gate.wait(timeout=10.0)
        if camera.id in self.failures:
            raise self.failures[camera.id]
        return f"frame-{camera.id}".encode()


class FakeClient:
    def __init__(self, failures=None):
        self.failures = failures or {}
        self.calls = []
        self.predicted = threading.Event()

    def predict(self, image, model):
        self.calls.append((image, model))
        if image in self.failures:
            raise self.failures[image]
        self.predicted.set()
        return {'model': model, 'image': image.decode()}


def make_state(cameras=2, models=("A", "B", "C")):
    state = MonitorState()
    state.replace_cameras([make_camera(i) for i in range(cameras)])
    state.roster.replace(list(models))
    return state


class TestTick:

    def test_models_rotate_each_tick(self):
        state = make_state(cameras=1)
        client = FakeClient()
        orchestrator = PredictionOrchestrator(state, FakeCapture(), client)

        for _ in range(6):
            assert orchestrator.run_tick()

        assert [model for _, model in client.calls] == ["A", "B", "C", "A", "B", "C"]
        assert orchestrator.ticks_completed == 6

    def test_every_camera_uses_same_model_within_tick(self):
        state = make_state(cameras=3)
        client = FakeClient()
        orchestrator = PredictionOrchestrator(state, FakeCapture(), client)

        orchestrator.run_tick()

        assert {model for _, model in client.calls} == {"A"}
        assert sorted(r.camera_id for r in state.predictions) == [0, 1, 2]

    def test_camera_failure_does_not_affect_others(self):
        state = make_state(cameras=2)
        client = FakeClient()
        # Camera 0 only fails after camera 1 has already predicted
        capture = FakeCapture(
            failures={0: CaptureError("camera 0 capture timed out")},
            delays={0: client.predicted},
        )
        orchestrator = PredictionOrchestrator(state, capture, client)

        orchestrator.run_tick()

        predictions = state.predictions.snapshot()
        errors = state.errors.snapshot()
        assert [p.camera_id for p in predictions] == [1]
        assert predictions[0].result == {'model': 'A', 'image': 'frame-1'}
        assert [(e.camera_id, e.error) for e in errors] == [(0, "camera 0 capture timed out")]

    def test_inference_failure_is_recorded(self):
        state = make_state(cameras=1)
        client = FakeClient(failures={b"frame-0": InferenceError("HTTP 500")})
        orchestrator = PredictionOrchestrator(state, FakeCapture(), client)

        orchestrator.run_tick()

        assert len(state.predictions) == 0
        assert state.errors.snapshot()[0].error == "HTTP 500"

    def test_unexpected_exception_is_recorded(self):
        state = make_state(cameras=1)
        capture = FakeCapture(failures={0: RuntimeError("boom")})
        orchestrator = PredictionOrchestrator(state, capture, FakeClient())

        orchestrator.run_tick()

        assert state.errors.snapshot()[0].error == "RuntimeError: boom"

    def test_cursor_advances_when_every_camera_fails(self):
        state = make_state(cameras=2)
        capture = FakeCapture(failures={0: CaptureError("x"), 1: CaptureError("y")})
        orchestrator = PredictionOrchestrator(state, capture, FakeClient())

        orchestrator.run_tick()

        assert state.roster.current == "B"
        assert len(state.errors) == 2

    def test_no_cameras_is_noop(self):
        state = make_state(cameras=0)
        capture = FakeCapture()
        orchestrator = PredictionOrchestrator(state, capture, FakeClient())

        orchestrator.run_tick()

        assert capture.calls == []
        assert state.roster.current == "A"
        assert orchestrator.ticks_completed == 0

    def test_no_models_is_noop(self):
        state = make_state(cameras=2, models=())
        capture = FakeCapture()
        orchestrator = PredictionOrchestrator(state, capture, FakeClient())

        orchestrator.run_tick()

        assert capture.calls == []

    def test_overlapping_tick_is_skipped(self):
        gate = threading.Event()
        state = make_state(cameras=1)
        capture = FakeCapture(delays={0: gate})
        orchestrator = PredictionOrchestrator(state, capture, FakeClient())

        first = threading.Thread(target=orchestrator.run_tick)
        first.start()
        deadline = time.monotonic() + 5.0
        while not capture.calls and time.monotonic() < deadline:
            time.sleep(0.01)

        assert orchestrator.is_ticking
        assert orchestrator.run_tick() is False
        assert orchestrator.ticks_skipped == 1

        gate.set()
        first.join(timeout=5.0)
        assert capture.calls == [0]
        assert not orchestrator.is_ticking

    def test_callback_errors_are_swallowed(self):
        state = make_state(cameras=1)
        seen = []

        def on_prediction(record):
            seen.append(record)
            raise RuntimeError("listener broke")

        orchestrator = PredictionOrchestrator(
            state, FakeCapture(), FakeClient(), on_prediction=on_prediction
        )

        assert orchestrator.run_tick()
        assert len(seen) == 1
        assert len(state.predictions) == 1


class TestTimer:

    def test_timer_runs_ticks_until_stopped(self):
        state = make_state(cameras=1)
        client = FakeClient()
        orchestrator = PredictionOrchestrator(state, FakeCapture(), client, interval=0.05)

        orchestrator.start()
        deadline = time.monotonic() + 5.0
        while orchestrator.ticks_completed < 3 and time.monotonic() < deadline:
            time.sleep(0.01)
        orchestrator.stop()

        assert orchestrator.ticks_completed >= 3
        assert not orchestrator.is_running
