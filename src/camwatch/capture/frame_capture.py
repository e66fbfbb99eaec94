"""
Bounded-time single-frame capture.

Used by the prediction loop, independently of the continuous streams.
Callers must make sure only one capture per camera is outstanding.
"""

import logging
import subprocess

from ..errors import CaptureError, CaptureTimeout
from .detector import CameraDescriptor


logger = logging.getLogger(__name__)


class FrameCaptureService:
    """
    Grabs one JPEG frame from a camera through the capture backend.

    Usage:
        service = FrameCaptureService(backend, timeout=10.0)
        jpeg = service.capture(camera)
    """

    def __init__(self, backend, timeout: float = 10.0):
        self.backend = backend
        self.timeout = timeout

    def capture(self, camera: CameraDescriptor) -> bytes:
        """
        Capture a single frame.

        Args:
            camera: Camera to capture from

        Returns:
            bytes: the encoded frame

        Raises:
            CaptureTimeout: the capture exceeded the timeout and was killed
            CaptureError: non-zero exit, empty output or launch failure
        """
        try:
            proc = self.backend.capture_one(camera.device)
        except OSError as e:
            raise CaptureError(f"Camera {camera.id}: cannot launch capture: {e}") from e

        try:
            stdout, stderr = proc.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            raise CaptureTimeout(
                f"Camera {camera.id}: capture timed out after {self.timeout}s"
            )

        if proc.returncode != 0:
            detail = _last_line(stderr)
            raise CaptureError(
                f"Camera {camera.id}: capture exited with code {proc.returncode}"
                + (f": {detail}" if detail else "")
            )

        if not stdout:
            raise CaptureError(f"Camera {camera.id}: capture produced no data")

        logger.debug("Camera %d: captured %d bytes", camera.id, len(stdout))
        return stdout


def _last_line(data: bytes) -> str:
    if not data:
        return ""
    lines = data.decode("utf-8", errors="replace").strip().splitlines()
    return lines[-1].strip() if lines else ""
