"""
camwatch - Camera Monitoring and Prediction Server

This package provides a single-process server that combines:
- Camera detection and resolution negotiation (ffmpeg)
- Per-camera MJPEG streaming from supervised capture subprocesses
- Periodic single-frame capture sent to a remote prediction API
- REST API endpoints with bounded prediction/error history
- WebSocket real-time updates
"""

__version__ = "1.0.0"
__author__ = "camwatch team"
