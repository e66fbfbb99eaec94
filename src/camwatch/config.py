"""
Configuration module for camwatch.

Handles loading and validating configuration from:
1. JSON config file
2. Environment variables
3. CLI arguments (applied in main)
"""

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Dict, Any, List


logger = logging.getLogger(__name__)

DEFAULT_MODELS = ["bacterial-disease", "early-blight"]


@dataclass
class CaptureConfig:
    """Configuration for camera detection, streaming and frame capture."""
    ffmpeg_path: str = "ffmpeg"

    # Platform backend: "auto", "linux", "windows" or "macos"
    platform: str = "auto"

    # Linux device directory scanned for video<N> nodes
    device_dir: str = "/dev"

    # Per-camera MJPEG stream listeners use base_port + camera id
    base_port: int = 20000
    stream_fps: int = 5
    stream_quality: int = 8  # ffmpeg -q:v, lower is better

    probe_timeout: float = 5.0
    capture_timeout: float = 10.0

    fallback_resolution: str = "1280x720"
    max_width: int = 1920
    max_height: int = 1080

    # Pending frames kept per viewer before its oldest frame is dropped
    viewer_queue_size: int = 30


@dataclass
class PredictionConfig:
    """Configuration for the remote prediction API and the prediction loop."""
    api_url: str = "https://vertiapp.xyz"
    predict_endpoint: str = "/predict"
    models_endpoint: str = "/list-models"

    # Explicit roster; empty means fetch from models_endpoint
    models: List[str] = field(default_factory=list)

    threshold: Optional[float] = 0.5
    interval: float = 2.0
    request_timeout: float = 30.0

    prediction_history: int = 100
    error_history: int = 50


@dataclass
class ServerConfig:
    """Main server configuration."""
    host: str = "0.0.0.0"
    port: int = 3001
    public_host: str = "localhost"
    debug: bool = False
    log_level: str = "INFO"

    capture: CaptureConfig = field(default_factory=CaptureConfig)
    prediction: PredictionConfig = field(default_factory=PredictionConfig)


def load_config(config_path: Optional[str] = None) -> ServerConfig:
    """
    Load configuration from file and environment.

    Priority:
    1. Environment variables (highest)
    2. Config file
    3. Defaults (lowest)

    Args:
        config_path: Path to JSON config file

    Returns:
        ServerConfig: Validated configuration
    """
    config = ServerConfig()

    if config_path:
        file_config = _load_json_config(config_path)
        config = _merge_config(config, file_config)
    else:
        default_paths = [
            Path("config.json"),
            Path("camwatch_config.json"),
        ]
        for path in default_paths:
            if path.exists():
                file_config = _load_json_config(str(path))
                config = _merge_config(config, file_config)
                break

    config = _apply_env_overrides(config)

    return config


def _load_json_config(path: str) -> Dict[str, Any]:
    """Load configuration from JSON file."""
    try:
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)
    except FileNotFoundError:
        logger.warning("Config file not found: %s", path)
        return {}
    except json.JSONDecodeError as e:
        logger.warning("Invalid JSON in config file %s: %s", path, e)
        return {}


def _merge_config(config: ServerConfig, file_data: Dict[str, Any]) -> ServerConfig:
    """Merge file configuration into ServerConfig."""
    config.host = file_data.get('host', config.host)
    config.port = file_data.get('port', config.port)
    config.public_host = file_data.get('public_host', config.public_host)
    config.debug = file_data.get('debug', config.debug)
    config.log_level = file_data.get('log_level', config.log_level)

    capture_data = file_data.get('capture', {})
    capture = config.capture
    capture.ffmpeg_path = capture_data.get('ffmpeg_path', capture.ffmpeg_path)
    capture.platform = capture_data.get('platform', capture.platform)
    capture.device_dir = capture_data.get('device_dir', capture.device_dir)
    capture.base_port = capture_data.get('base_port', capture.base_port)
    capture.stream_fps = capture_data.get('stream_fps', capture.stream_fps)
    capture.stream_quality = capture_data.get('stream_quality', capture.stream_quality)
    capture.probe_timeout = capture_data.get('probe_timeout', capture.probe_timeout)
    capture.capture_timeout = capture_data.get('capture_timeout', capture.capture_timeout)
    capture.fallback_resolution = capture_data.get('fallback_resolution', capture.fallback_resolution)
    capture.max_width = capture_data.get('max_width', capture.max_width)
    capture.max_height = capture_data.get('max_height', capture.max_height)
    capture.viewer_queue_size = capture_data.get('viewer_queue_size', capture.viewer_queue_size)

    prediction_data = file_data.get('prediction', {})
    prediction = config.prediction
    prediction.api_url = prediction_data.get('api_url', prediction.api_url)
    prediction.predict_endpoint = prediction_data.get('predict_endpoint', prediction.predict_endpoint)
    prediction.models_endpoint = prediction_data.get('models_endpoint', prediction.models_endpoint)
    prediction.models = list(prediction_data.get('models', prediction.models))
    prediction.threshold = prediction_data.get('threshold', prediction.threshold)
    prediction.interval = prediction_data.get('interval', prediction.interval)
    prediction.request_timeout = prediction_data.get('request_timeout', prediction.request_timeout)
    prediction.prediction_history = prediction_data.get('prediction_history', prediction.prediction_history)
    prediction.error_history = prediction_data.get('error_history', prediction.error_history)

    return config


def _apply_env_overrides(config: ServerConfig) -> ServerConfig:
    """Apply environment variable overrides."""
    # Server
    config.host = os.getenv('CAMWATCH_HOST', config.host)
    config.port = int(os.getenv('CAMWATCH_PORT', config.port))
    config.public_host = os.getenv('CAMWATCH_PUBLIC_HOST', config.public_host)
    debug = os.getenv('CAMWATCH_DEBUG', '')
    if debug:
        config.debug = debug.lower() in ('true', '1', 'yes')
    config.log_level = os.getenv('CAMWATCH_LOG_LEVEL', config.log_level)

    # Capture
    config.capture.ffmpeg_path = os.getenv('FFMPEG_PATH', config.capture.ffmpeg_path)
    config.capture.base_port = int(os.getenv('STREAM_BASE_PORT', config.capture.base_port))
    config.capture.stream_fps = int(os.getenv('STREAM_FPS', config.capture.stream_fps))

    # Prediction
    config.prediction.api_url = os.getenv('PREDICT_API_URL', config.prediction.api_url)
    config.prediction.interval = float(os.getenv('PREDICT_INTERVAL', config.prediction.interval))
    threshold = os.getenv('PREDICT_THRESHOLD', '')
    if threshold:
        config.prediction.threshold = None if threshold.lower() == 'none' else float(threshold)
    models = os.getenv('PREDICT_MODELS', '')
    if models:
        config.prediction.models = [m.strip() for m in models.split(',') if m.strip()]

    return config


def save_config(config: ServerConfig, path: str) -> bool:
    """Save configuration to JSON file."""
    try:
        data = {
            'host': config.host,
            'port': config.port,
            'public_host': config.public_host,
            'debug': config.debug,
            'log_level': config.log_level,
            'capture': {
                'ffmpeg_path': config.capture.ffmpeg_path,
                'platform': config.capture.platform,
                'device_dir': config.capture.device_dir,
                'base_port': config.capture.base_port,
                'stream_fps': config.capture.stream_fps,
                'stream_quality': config.capture.stream_quality,
                'probe_timeout': config.capture.probe_timeout,
                'capture_timeout': config.capture.capture_timeout,
                'fallback_resolution': config.capture.fallback_resolution,
                'max_width': config.capture.max_width,
                'max_height': config.capture.max_height,
                'viewer_queue_size': config.capture.viewer_queue_size,
            },
            'prediction': {
                'api_url': config.prediction.api_url,
                'predict_endpoint': config.prediction.predict_endpoint,
                'models_endpoint': config.prediction.models_endpoint,
                'models': list(config.prediction.models),
                'threshold': config.prediction.threshold,
                'interval': config.prediction.interval,
                'request_timeout': config.prediction.request_timeout,
                'prediction_history': config.prediction.prediction_history,
                'error_history': config.prediction.error_history,
            },
        }

        with open(path, 'w', encoding='utf-8') as f:
            json.dump(data, f, indent=2)
        return True
    except OSError as e:
        logger.error("Failed to save config: %s", e)
        return False
