"""
camwatch - Camera Monitoring and Prediction Server

Entry point for the server that combines:
- Camera detection (ffmpeg, per platform)
- Per-camera MJPEG streaming
- Periodic round-robin predictions via the remote API
- REST API endpoints
- WebSocket real-time updates

Usage:
    python -m camwatch.main [options]

Options:
    --config PATH    Path to config file (default: config.json)
    --port PORT      API server port (default: 3001)
    --host HOST      Server host (default: 0.0.0.0)
    --models A,B     Model roster (default: fetched from the API)
    --interval SEC   Seconds between prediction ticks (default: 2)
    --debug          Enable debug mode
"""

import argparse
import logging
import signal
import sys
from typing import Dict, Any

from flask import Flask
from flask_cors import CORS
from flask_socketio import SocketIO

from .config import load_config, ServerConfig, DEFAULT_MODELS
from .capture.backend import get_backend
from .capture.detector import CameraDetector
from .capture.frame_capture import FrameCaptureService
from .capture.resolution import Resolution, ResolutionNegotiator
from .capture.stream_manager import StreamProcessManager
from .prediction.client import RemoteInferenceClient
from .prediction.orchestrator import PredictionOrchestrator
from .prediction.state import MonitorState
from .api.routes import create_api_blueprint
from .api.websocket import setup_websocket_handlers, WebSocketBroadcaster


logger = logging.getLogger("camwatch")


# ==============================================================================
# Flask App Factory
# ==============================================================================

def create_app(config: ServerConfig, backend=None) -> tuple:
    """
    Create and configure Flask application.

    Args:
        config: Server configuration
        backend: Capture backend (default: chosen from config/platform)

    Returns:
        tuple: (app, socketio, app_context)
    """
    app = Flask(__name__)
    CORS(app)

    socketio = SocketIO(
        app,
        cors_allowed_origins="*",
        async_mode="threading",
    )

    capture = config.capture
    prediction = config.prediction

    if backend is None:
        backend = get_backend(
            capture.platform,
            ffmpeg_path=capture.ffmpeg_path,
            stream_quality=capture.stream_quality,
            device_dir=capture.device_dir,
        )

    state = MonitorState(
        prediction_capacity=prediction.prediction_history,
        error_capacity=prediction.error_history,
    )

    negotiator = ResolutionNegotiator(
        backend,
        timeout=capture.probe_timeout,
        max_width=capture.max_width,
        max_height=capture.max_height,
        fallback=Resolution.parse(capture.fallback_resolution),
    )
    detector = CameraDetector(
        backend, negotiator, base_port=capture.base_port, fps=capture.stream_fps
    )

    stream_manager = StreamProcessManager(
        backend, host=config.host, viewer_queue_size=capture.viewer_queue_size
    )

    client = RemoteInferenceClient(
        prediction.api_url,
        predict_endpoint=prediction.predict_endpoint,
        models_endpoint=prediction.models_endpoint,
        threshold=prediction.threshold,
        timeout=prediction.request_timeout,
    )

    broadcaster = WebSocketBroadcaster(socketio)
    orchestrator = PredictionOrchestrator(
        state,
        FrameCaptureService(backend, timeout=capture.capture_timeout),
        client,
        interval=prediction.interval,
        on_prediction=broadcaster.broadcast_prediction,
        on_error=broadcaster.broadcast_error,
    )

    app_context: Dict[str, Any] = {
        'backend': backend,
        'state': state,
        'detector': detector,
        'stream_manager': stream_manager,
        'client': client,
        'orchestrator': orchestrator,
        'socketio': socketio,
        'config': config,
    }

    app.register_blueprint(create_api_blueprint(app_context))
    setup_websocket_handlers(socketio, app_context)

    app.app_context_data = app_context

    return app, socketio, app_context


def initialize(app_context: Dict[str, Any]) -> None:
    """
    Detect cameras, load the model roster and start streams and predictions.

    Args:
        app_context: Context returned by create_app
    """
    config: ServerConfig = app_context['config']
    state: MonitorState = app_context['state']

    logger.info("Initializing camera detection system...")
    state.replace_cameras(app_context['detector'].detect())

    if config.prediction.models:
        state.roster.replace(config.prediction.models)
    else:
        state.roster.replace(app_context['client'].list_models(fallback=DEFAULT_MODELS))
    logger.info("Model roster: %s", list(state.roster.models))

    if not state.cameras:
        logger.warning("No cameras detected!")
        return

    logger.info("Starting camera streams...")
    app_context['stream_manager'].start_all(state.cameras)

    logger.info("Starting prediction loop...")
    app_context['orchestrator'].start()


def shutdown(app_context: Dict[str, Any]) -> None:
    """Stop predictions, terminate capture processes and close listeners."""
    app_context['orchestrator'].stop()
    app_context['stream_manager'].stop_all()
    app_context['client'].close()


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="[%(levelname)s] %(name)s: %(message)s",
    )
    logging.getLogger("werkzeug").setLevel(logging.WARNING)


# ==============================================================================
# Server Runner
# ==============================================================================

def run_server(config: ServerConfig) -> None:
    """
    Run the camwatch server.

    Args:
        config: Server configuration
    """
    app, socketio, app_context = create_app(config)

    def shutdown_handler(signum, frame):
        logger.info("Shutting down...")
        shutdown(app_context)
        sys.exit(0)

    signal.signal(signal.SIGINT, shutdown_handler)
    signal.signal(signal.SIGTERM, shutdown_handler)

    logger.info("=" * 60)
    logger.info("camwatch - Camera Monitoring and Prediction Server")
    logger.info("=" * 60)
    logger.info("Capture backend: %s (%s)", app_context['backend'].name, config.capture.ffmpeg_path)
    logger.info("Prediction API: %s", config.prediction.api_url)

    initialize(app_context)

    logger.info("Server Information:")
    logger.info("  - API: http://%s:%d/api", config.host, config.port)
    logger.info("  - WebSocket: ws://%s:%d", config.host, config.port)
    for camera in app_context['state'].cameras:
        logger.info("  - Camera %d: %s", camera.id, camera.stream_url(config.public_host))

    socketio.run(
        app,
        host=config.host,
        port=config.port,
        debug=config.debug,
        use_reloader=False,
        allow_unsafe_werkzeug=True
    )


# ==============================================================================
# CLI Entry Point
# ==============================================================================

def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="camwatch - Camera Monitoring and Prediction Server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m camwatch.main
  python -m camwatch.main --port 3002
  python -m camwatch.main --config my_config.json
  python -m camwatch.main --models early-blight,late-blight --interval 5
        """
    )

    parser.add_argument(
        '--config', '-c',
        type=str,
        default=None,
        help='Path to configuration file (JSON)'
    )

    parser.add_argument(
        '--port', '-p',
        type=int,
        default=None,
        help='API server port (default: 3001)'
    )

    parser.add_argument(
        '--host', '-H',
        type=str,
        default=None,
        help='Server host (default: 0.0.0.0)'
    )

    parser.add_argument(
        '--public-host',
        type=str,
        default=None,
        help='Host name used in advertised stream URLs (default: localhost)'
    )

    parser.add_argument(
        '--base-port',
        type=int,
        default=None,
        help='First per-camera stream port (default: 20000)'
    )

    parser.add_argument(
        '--fps',
        type=int,
        default=None,
        help='Stream frame rate (default: 5)'
    )

    parser.add_argument(
        '--ffmpeg',
        type=str,
        default=None,
        help='Path to ffmpeg executable'
    )

    parser.add_argument(
        '--api-url',
        type=str,
        default=None,
        help='Prediction API base URL'
    )

    parser.add_argument(
        '--models', '-m',
        type=str,
        default=None,
        help='Comma separated model roster (default: fetched from the API)'
    )

    parser.add_argument(
        '--interval',
        type=float,
        default=None,
        help='Seconds between prediction ticks (default: 2)'
    )

    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug mode'
    )

    return parser.parse_args(argv)


def apply_cli_overrides(config: ServerConfig, args) -> ServerConfig:
    """Apply parsed CLI arguments on top of file/env configuration."""
    if args.port is not None:
        config.port = args.port
    if args.host is not None:
        config.host = args.host
    if args.public_host is not None:
        config.public_host = args.public_host
    if args.base_port is not None:
        config.capture.base_port = args.base_port
    if args.fps is not None:
        config.capture.stream_fps = args.fps
    if args.ffmpeg is not None:
        config.capture.ffmpeg_path = args.ffmpeg
    if args.api_url is not None:
        config.prediction.api_url = args.api_url
    if args.models is not None:
        config.prediction.models = [m.strip() for m in args.models.split(',') if m.strip()]
    if args.interval is not None:
        config.prediction.interval = args.interval
    if args.debug:
        config.debug = True
        config.log_level = "DEBUG"
    return config


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    config = apply_cli_overrides(load_config(args.config), args)
    setup_logging(config.log_level)

    run_server(config)


if __name__ == '__main__':
    main()
