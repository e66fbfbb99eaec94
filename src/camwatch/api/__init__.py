"""
API module for camwatch.

Components:
- streaming: per-camera MJPEG stream apps
- routes: REST API endpoints
- websocket: Socket.IO event handlers
"""

from .streaming import create_stream_app, create_video_response, format_mjpeg_part

__all__ = ['create_stream_app', 'create_video_response', 'format_mjpeg_part']
