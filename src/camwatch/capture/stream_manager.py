"""
Per-camera continuous MJPEG streaming.

Handles:
- One supervised ffmpeg capture subprocess per camera
- One threaded HTTP listener per camera on the camera's port
- Fan-out of every captured frame to all connected viewers

State machine per camera:

    STOPPED -> STARTING -> STREAMING -> FAILED

STREAMING is entered on the first output chunk, FAILED when the capture
process exits for any reason. A failed camera is not restarted; its
endpoint answers 503 until the server itself is restarted.
"""

import logging
import threading
from enum import Enum
from typing import Dict, Iterable, List, Optional

from werkzeug.serving import make_server

from ..api.streaming import create_stream_app
from .broadcast import FrameBroadcaster, JpegFrameSplitter
from .detector import CameraDescriptor
from .process import CaptureProcess


logger = logging.getLogger(__name__)


class StreamState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    STREAMING = "streaming"
    FAILED = "failed"


class StreamHandle:
    """
    Owns one camera's capture subprocess and HTTP listener.

    Usage:
        handle = StreamHandle(camera, backend)
        handle.start()

        # Later...
        handle.stop()
    """

    def __init__(
        self,
        camera: CameraDescriptor,
        backend,
        host: str = "0.0.0.0",
        viewer_queue_size: int = 30,
    ):
        self.camera = camera
        self.backend = backend
        self.host = host

        self.broadcaster = FrameBroadcaster(max_pending=viewer_queue_size)
        self.state = StreamState.STOPPED
        self.exit_code: Optional[int] = None
        self.error: Optional[str] = None

        self.process: Optional[CaptureProcess] = None
        self._splitter = JpegFrameSplitter()
        self._server = None
        self._server_thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def is_serving(self) -> bool:
        return self.state in (StreamState.STARTING, StreamState.STREAMING)

    @property
    def port(self) -> int:
        """Bound listener port (differs from camera.port only when that is 0)."""
        if self._server is not None:
            return self._server.server_port
        return self.camera.port

    def start(self) -> bool:
        """
        Bind the listener and launch the capture subprocess.

        Returns:
            bool: True if both started
        """
        with self._lock:
            if self.state is not StreamState.STOPPED:
                return self.is_serving
            self.state = StreamState.STARTING

        logger.info(
            "Starting MJPEG stream for camera %d (%s) at %s, %dfps",
            self.camera.id, self.camera.device, self.camera.resolution, self.camera.fps,
        )

        try:
            self._server = make_server(
                self.host, self.camera.port, create_stream_app(self), threaded=True
            )
        except (OSError, SystemExit) as e:
            # werkzeug exits instead of raising when the address is in use
            self._fail(f"cannot listen on port {self.camera.port}: {e}")
            return False

        self._server_thread = threading.Thread(
            target=self._server.serve_forever,
            name=f"stream-http-{self.camera.id}",
            daemon=True,
        )
        self._server_thread.start()

        try:
            self.process = self.backend.start_continuous(
                self.camera.device,
                str(self.camera.resolution),
                self.camera.fps,
                on_output=self._on_output,
                on_exit=self._on_exit,
                name=f"camera {self.camera.id}",
            )
        except OSError as e:
            self._fail(f"cannot launch capture process: {e}")
            return False

        logger.info(
            "Camera %d MJPEG server started on port %d: http://localhost:%d/stream",
            self.camera.id, self.port, self.port,
        )
        return True

    def stop(self) -> None:
        """Terminate the subprocess and close the listener."""
        with self._lock:
            was_failed = self.state is StreamState.FAILED
            if not was_failed:
                self.state = StreamState.STOPPED

        if self.process is not None:
            self.process.terminate()
        self.broadcaster.close()
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None

    def get_stats(self) -> Dict:
        return {
            'state': self.state.value,
            'port': self.camera.port,
            'viewers': self.broadcaster.subscriber_count,
            'frames': self.broadcaster.frames_published,
            'exit_code': self.exit_code,
            'error': self.error,
        }

    def _on_output(self, chunk: bytes) -> None:
        with self._lock:
            if self.state is StreamState.STARTING:
                self.state = StreamState.STREAMING
                logger.info("Camera %d streaming on port %d", self.camera.id, self.port)

        try:
            for frame in self._splitter.feed(chunk):
                self.broadcaster.publish(frame)
        except Exception as e:
            logger.exception("Camera %d: failed to publish frame", self.camera.id)
            self._fail(f"publish failed: {e}")
            if self.process is not None:
                self.process.terminate()

    def _on_exit(self, code: int) -> None:
        self.exit_code = code
        detail = ""
        if self.process is not None and self.process.stderr_tail:
            detail = self.process.stderr_tail[-1]
        with self._lock:
            stopping = self.state is StreamState.STOPPED
        if stopping:
            logger.info("Camera %d capture process ended with code %s", self.camera.id, code)
            return
        self._fail(f"capture process exited with code {code}" + (f": {detail}" if detail else ""))

    def _fail(self, reason: str) -> None:
        with self._lock:
            self.state = StreamState.FAILED
            self.error = reason
        logger.warning("Camera %d stream failed: %s", self.camera.id, reason)
        self.broadcaster.close()


class StreamProcessManager:
    """
    Starts, tracks and stops the StreamHandle of every camera.

    At most one live handle exists per camera id.
    """

    def __init__(self, backend, host: str = "0.0.0.0", viewer_queue_size: int = 30):
        self.backend = backend
        self.host = host
        self.viewer_queue_size = viewer_queue_size
        self._handles: Dict[int, StreamHandle] = {}
        self._lock = threading.Lock()

    def start_all(self, cameras: Iterable[CameraDescriptor]) -> List[StreamHandle]:
        return [self.start(camera) for camera in cameras]

    def start(self, camera: CameraDescriptor) -> StreamHandle:
        with self._lock:
            handle = self._handles.get(camera.id)
            if handle is not None and handle.state is not StreamState.STOPPED:
                return handle
            handle = StreamHandle(camera, self.backend, self.host, self.viewer_queue_size)
            self._handles[camera.id] = handle

        handle.start()
        return handle

    def get(self, camera_id: int) -> Optional[StreamHandle]:
        return self._handles.get(camera_id)

    def states(self) -> Dict[int, StreamState]:
        return {camera_id: h.state for camera_id, h in self._handles.items()}

    def stop_all(self) -> None:
        with self._lock:
            handles = list(self._handles.values())
        if handles:
            logger.info("Shutting down %d MJPEG stream(s)", len(handles))
        for handle in handles:
            try:
                handle.stop()
            except Exception:
                logger.exception("Error stopping stream for camera %d", handle.camera.id)
