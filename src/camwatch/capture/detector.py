"""Camera discovery: device enumeration, id/port assignment and resolution."""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .resolution import Resolution, ResolutionNegotiator


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CameraDescriptor:
    """One detected camera. Immutable once detection has finished."""
    id: int
    device: str
    port: int
    resolution: Resolution
    fps: int

    def stream_url(self, host: str = "localhost") -> str:
        return f"http://{host}:{self.port}/stream"

    def to_dict(self, host: str = "localhost") -> Dict[str, Any]:
        return {
            'id': self.id,
            'device': self.device,
            'streamPort': self.port,
            'streamUrl': self.stream_url(host),
            'resolution': str(self.resolution),
            'fps': self.fps,
        }


class CameraDetector:
    """
    Enumerates capture devices and builds CameraDescriptors.

    Ids follow enumeration order starting at 0 and each camera's stream
    port is base_port + id. Enumeration failures degrade to an empty list.

    Usage:
        detector = CameraDetector(backend, ResolutionNegotiator(backend))
        cameras = detector.detect()
    """

    def __init__(
        self,
        backend,
        negotiator: Optional[ResolutionNegotiator] = None,
        base_port: int = 20000,
        fps: int = 5,
    ):
        self.backend = backend
        self.negotiator = negotiator or ResolutionNegotiator(backend)
        self.base_port = base_port
        self.fps = fps

    def detect(self) -> List[CameraDescriptor]:
        try:
            devices = self.backend.enumerate()
        except Exception:
            logger.exception("Error detecting cameras")
            return []

        cameras = []
        for camera_id, device in enumerate(devices):
            resolution = self.negotiator.negotiate(device)
            cameras.append(CameraDescriptor(
                id=camera_id,
                device=device,
                port=self.base_port + camera_id,
                resolution=resolution,
                fps=self.fps,
            ))

        logger.info("Detected %d camera(s) using %s backend", len(cameras), self.backend.name)
        for camera in cameras:
            logger.info(
                "  Camera %d: %s -> port %d (%s @ %dfps)",
                camera.id, camera.device, camera.port, camera.resolution, camera.fps,
            )
        return cameras
