"""
Prediction module for periodic frame classification.

Components:
- RemoteInferenceClient: HTTP client for the prediction API
- MonitorState: cameras, model roster and bounded history
- PredictionOrchestrator: timer-driven round-robin prediction loop
"""

from .client import RemoteInferenceClient
from .orchestrator import PredictionOrchestrator
from .state import ErrorRecord, ModelRoster, MonitorState, PredictionRecord, RingBuffer

__all__ = [
    'RemoteInferenceClient', 'PredictionOrchestrator',
    'ErrorRecord', 'ModelRoster', 'MonitorState', 'PredictionRecord', 'RingBuffer',
]
