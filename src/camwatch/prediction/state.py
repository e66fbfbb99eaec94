"""
Shared monitoring state.

Provides:
- RingBuffer: thread-safe, fixed-capacity, newest-first history
- ModelRoster: round-robin model cursor
- MonitorState: cameras, roster and history owned by the orchestrator

The camera tuple and roster are swapped as a whole, never edited in
place, so readers can take a snapshot without locking. History buffers
take a lock on every append.
"""

import threading
import time
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from ..capture.detector import CameraDescriptor


def utc_timestamp() -> str:
    """ISO-8601 timestamp in UTC with millisecond precision."""
    return datetime.now(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


@dataclass(frozen=True)
class PredictionRecord:
    camera_id: int
    model: str
    timestamp: str
    result: Any

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cameraId': self.camera_id,
            'model': self.model,
            'timestamp': self.timestamp,
            'result': self.result,
        }


@dataclass(frozen=True)
class ErrorRecord:
    camera_id: int
    error: str
    timestamp: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            'cameraId': self.camera_id,
            'error': self.error,
            'timestamp': self.timestamp,
        }


class RingBuffer:
    """
    Fixed-capacity store; appending beyond capacity evicts the oldest item.

    Iteration and snapshot() return items newest-first.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self.capacity = capacity
        self._items: deque = deque(maxlen=capacity)
        self._lock = threading.Lock()

    def append(self, item) -> None:
        with self._lock:
            self._items.appendleft(item)

    def snapshot(self) -> List:
        with self._lock:
            return list(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def __iter__(self):
        return iter(self.snapshot())


class ModelRoster:
    """Ordered model identifiers with a round-robin cursor."""

    def __init__(self, models: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._models: Tuple[str, ...] = tuple(models)
        self._cursor = 0

    @property
    def models(self) -> Tuple[str, ...]:
        return self._models

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def current(self) -> Optional[str]:
        with self._lock:
            if not self._models:
                return None
            return self._models[self._cursor]

    def advance(self) -> Optional[str]:
        """Move the cursor one step (mod roster length); returns the new current model."""
        with self._lock:
            if not self._models:
                return None
            self._cursor = (self._cursor + 1) % len(self._models)
            return self._models[self._cursor]

    def replace(self, models: Sequence[str]) -> None:
        with self._lock:
            self._models = tuple(models)
            self._cursor = 0

    def __len__(self) -> int:
        return len(self._models)


class MonitorState:
    """
    Everything the prediction loop and the status API share.

    Usage:
        state = MonitorState()
        state.replace_cameras(detector.detect())
        state.roster.replace(["model-a", "model-b"])
    """

    def __init__(self, prediction_capacity: int = 100, error_capacity: int = 50):
        self._cameras: Tuple[CameraDescriptor, ...] = ()
        self.roster = ModelRoster()
        self.predictions = RingBuffer(prediction_capacity)
        self.errors = RingBuffer(error_capacity)
        self._started = time.monotonic()

    @property
    def cameras(self) -> Tuple[CameraDescriptor, ...]:
        return self._cameras

    def replace_cameras(self, cameras: Iterable[CameraDescriptor]) -> None:
        self._cameras = tuple(cameras)

    def record_prediction(self, camera_id: int, model: str, result: Any) -> PredictionRecord:
        record = PredictionRecord(camera_id, model, utc_timestamp(), result)
        self.predictions.append(record)
        return record

    def record_error(self, camera_id: int, error: str) -> ErrorRecord:
        record = ErrorRecord(camera_id, error, utc_timestamp())
        self.errors.append(record)
        return record

    @property
    def uptime(self) -> float:
        return time.monotonic() - self._started

    def status(self) -> Dict[str, Any]:
        return {
            'cameras': len(self._cameras),
            'models': list(self.roster.models),
            'currentModel': self.roster.current,
            'totalPredictions': len(self.predictions),
            'uptime': round(self.uptime, 3),
        }
