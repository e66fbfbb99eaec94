"""
WebSocket (Socket.IO) event handlers for real-time updates.

Pushes to the dashboard:
- Status snapshots (on connect and on request)
- Prediction events as they are recorded
- Camera error events as they are recorded
"""

import logging
import time
from typing import Any, Dict

from flask import request
from flask_socketio import SocketIO, emit


logger = logging.getLogger(__name__)


def setup_websocket_handlers(
    socketio: SocketIO,
    app_context: Dict[str, Any]
) -> None:
    """
    Setup Socket.IO event handlers.

    Args:
        socketio: Flask-SocketIO instance
        app_context: Dictionary containing:
            - state: MonitorState instance
    """
    state = app_context['state']

    @socketio.on('connect')
    def handle_connect(auth=None):
        """Handle client connection."""
        logger.info("Client connected: %s", getattr(request, 'sid', 'unknown'))
        emit('status_update', state.status())

    @socketio.on('disconnect')
    def handle_disconnect(*args):
        """Handle client disconnection."""
        logger.info("Client disconnected: %s", getattr(request, 'sid', 'unknown'))

    @socketio.on('request_status')
    def handle_request_status():
        """Handle status request from client."""
        emit('status_update', state.status())

    @socketio.on('request_predictions')
    def handle_request_predictions():
        """Send the full prediction history."""
        emit('predictions_update', [r.to_dict() for r in state.predictions.snapshot()])

    @socketio.on('ping')
    def handle_ping():
        """Handle ping from client."""
        emit('pong', {'timestamp': time.time()})


class WebSocketBroadcaster:
    """
    Helper class to broadcast events to all connected clients.

    Its methods match the orchestrator's callback signatures:

        broadcaster = WebSocketBroadcaster(socketio)
        orchestrator.on_prediction = broadcaster.broadcast_prediction
        orchestrator.on_error = broadcaster.broadcast_error
    """

    def __init__(self, socketio: SocketIO):
        self.socketio = socketio

    def broadcast_prediction(self, record) -> None:
        """Broadcast a new prediction to all clients."""
        self.socketio.emit('prediction', record.to_dict())

    def broadcast_error(self, record) -> None:
        """Broadcast a camera error to all clients."""
        self.socketio.emit('camera_error', record.to_dict())

    def broadcast_status(self, status: Dict[str, Any]) -> None:
        """Broadcast status update to all clients."""
        self.socketio.emit('status_update', status)
