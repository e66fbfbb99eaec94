"""
REST API routes for camwatch.

Read-only snapshots of the monitor state for the dashboard frontend.
"""

import time
from flask import Blueprint, jsonify


def create_api_blueprint(app_context: dict) -> Blueprint:
    """
    Create Flask Blueprint with all API routes.

    Args:
        app_context: Dictionary containing:
            - state: MonitorState instance
            - stream_manager: StreamProcessManager instance
            - config: ServerConfig instance

    Returns:
        Blueprint: Flask blueprint with routes
    """
    api = Blueprint('api', __name__, url_prefix='/api')

    state = app_context['state']
    stream_manager = app_context['stream_manager']
    config = app_context['config']

    @api.route('/cameras')
    def get_cameras():
        """Detected cameras with their stream URLs."""
        cameras = []
        for camera in state.cameras:
            entry = camera.to_dict(config.public_host)
            handle = stream_manager.get(camera.id)
            entry['streamState'] = handle.state.value if handle else 'stopped'
            cameras.append(entry)
        return jsonify(cameras)

    @api.route('/predictions')
    def get_predictions():
        """Prediction history, newest first."""
        return jsonify([record.to_dict() for record in state.predictions.snapshot()])

    @api.route('/errors')
    def get_errors():
        """Capture/inference error history, newest first."""
        return jsonify([record.to_dict() for record in state.errors.snapshot()])

    @api.route('/models')
    def get_models():
        """Model roster in rotation order."""
        return jsonify(list(state.roster.models))

    @api.route('/status')
    def get_status():
        """Camera count, roster, current model and uptime."""
        return jsonify(state.status())

    @api.route('/health')
    def health_check():
        """Health check endpoint for monitoring."""
        return jsonify({
            'status': 'healthy',
            'timestamp': time.time(),
            'uptime': state.uptime,
        })

    return api
