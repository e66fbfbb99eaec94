"""Exception types raised by capture and prediction components."""


class CamwatchError(Exception):
    """Base class for all camwatch errors."""


class DetectionError(CamwatchError):
    """Device enumeration failed."""


class ProbeError(CamwatchError):
    """Format probe could not be run or produced no usable output."""


class ProbeTimeout(ProbeError):
    """Format probe exceeded its time bound."""


class CaptureError(CamwatchError):
    """Single-frame capture exited with an error or produced no data."""


class CaptureTimeout(CaptureError):
    """Single-frame capture exceeded its time bound and was killed."""


class InferenceError(CamwatchError):
    """Remote prediction request failed."""
