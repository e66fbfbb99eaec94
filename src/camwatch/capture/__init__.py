"""
Capture module for camera discovery and video streaming.

Components:
- VideoCaptureBackend: ffmpeg invocation per platform (v4l2, dshow, avfoundation)
- CameraDetector / ResolutionNegotiator: startup camera discovery
- StreamProcessManager: continuous MJPEG capture and per-camera listeners
- FrameCaptureService: single-frame capture for predictions
"""

from .backend import VideoCaptureBackend, get_backend
from .detector import CameraDescriptor, CameraDetector
from .frame_capture import FrameCaptureService
from .resolution import Resolution, ResolutionNegotiator, select_resolution
from .stream_manager import StreamHandle, StreamProcessManager, StreamState

__all__ = [
    'VideoCaptureBackend', 'get_backend',
    'CameraDescriptor', 'CameraDetector',
    'FrameCaptureService',
    'Resolution', 'ResolutionNegotiator', 'select_resolution',
    'StreamHandle', 'StreamProcessManager', 'StreamState',
]
