"""
Periodic capture/predict loop.

Every `interval` seconds a tick:
1. picks the roster's current model
2. captures and predicts for all cameras concurrently
3. records a PredictionRecord or ErrorRecord per camera
4. advances the roster cursor once every camera has settled

A tick that comes due while the previous one is still running is
skipped, so at most one capture per camera is ever outstanding.
"""

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Optional

from ..capture.detector import CameraDescriptor
from ..errors import CamwatchError
from .state import ErrorRecord, MonitorState, PredictionRecord


logger = logging.getLogger(__name__)


class PredictionOrchestrator:
    """
    Drives prediction ticks on a timer thread.

    Usage:
        orchestrator = PredictionOrchestrator(state, capture_service, client)
        orchestrator.start()

        # Later...
        orchestrator.stop()
    """

    def __init__(
        self,
        state: MonitorState,
        capture_service,
        inference_client,
        interval: float = 2.0,
        on_prediction: Optional[Callable[[PredictionRecord], None]] = None,
        on_error: Optional[Callable[[ErrorRecord], None]] = None,
    ):
        """
        Initialize orchestrator.

        Args:
            state: Shared cameras, roster and history
            capture_service: FrameCaptureService-like object with capture(camera)
            inference_client: RemoteInferenceClient-like object with predict(image, model)
            interval: Seconds between ticks
            on_prediction: Callback after each stored prediction (optional)
            on_error: Callback after each stored error (optional)
        """
        self.state = state
        self.capture_service = capture_service
        self.inference_client = inference_client
        self.interval = interval
        self.on_prediction = on_prediction
        self.on_error = on_error

        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        # Statistics
        self.ticks_completed = 0
        self.ticks_skipped = 0

    def start(self) -> bool:
        """
        Start timer thread.

        Returns:
            bool: True if started (or already running)
        """
        if self.is_running:
            return True

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._timer_loop, name="prediction-timer", daemon=True)
        self._thread.start()
        logger.info("Prediction loop started (every %.1fs)", self.interval)
        return True

    def stop(self) -> None:
        """Stop timer thread. A tick already in progress is left to finish."""
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=3.0)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_ticking(self) -> bool:
        return self._tick_lock.locked()

    def run_tick(self) -> bool:
        """
        Run one tick on the calling thread.

        Returns:
            bool: False if skipped because another tick was still running
        """
        if not self._tick_lock.acquire(blocking=False):
            self._note_skipped()
            return False
        self._run_locked_tick()
        return True

    def _timer_loop(self) -> None:
        while not self._stop_event.wait(self.interval):
            if not self._tick_lock.acquire(blocking=False):
                self._note_skipped()
                continue
            threading.Thread(
                target=self._run_locked_tick, name="prediction-tick", daemon=True
            ).start()

    def _note_skipped(self) -> None:
        self.ticks_skipped += 1
        logger.debug("Previous prediction tick still running, skipping")

    def _run_locked_tick(self) -> None:
        try:
            self._tick()
        except Exception:
            logger.exception("Prediction tick failed")
        finally:
            self._tick_lock.release()

    def _tick(self) -> None:
        cameras = self.state.cameras
        model = self.state.roster.current
        if not cameras or model is None:
            return

        logger.info("Running predictions with model: %s", model)

        with ThreadPoolExecutor(max_workers=len(cameras), thread_name_prefix="predict") as pool:
            futures = [pool.submit(self._process_camera, camera, model) for camera in cameras]
            wait(futures)

        self.state.roster.advance()
        self.ticks_completed += 1

    def _process_camera(self, camera: CameraDescriptor, model: str) -> None:
        try:
            image = self.capture_service.capture(camera)
            result = self.inference_client.predict(image, model)
        except CamwatchError as e:
            logger.warning("Error processing camera %d: %s", camera.id, e)
            self._record_error(camera, str(e))
            return
        except Exception as e:
            logger.exception("Unexpected error processing camera %d", camera.id)
            self._record_error(camera, f"{type(e).__name__}: {e}")
            return

        record = self.state.record_prediction(camera.id, model, result)
        logger.info("Prediction for camera %d with model %s: %s", camera.id, model, result)
        self._notify(self.on_prediction, record)

    def _record_error(self, camera: CameraDescriptor, message: str) -> None:
        record = self.state.record_error(camera.id, message)
        self._notify(self.on_error, record)

    @staticmethod
    def _notify(callback, record) -> None:
        if callback is None:
            return
        try:
            callback(record)
        except Exception as e:
            logger.error("Prediction callback error: %s", e)
