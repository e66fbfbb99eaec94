"""
Platform capture backends.

Every platform drives the same capture tool (ffmpeg) with a different
input format and a different way of listing devices:

- Linux:   v4l2, devices are /dev/video<N> nodes
- Windows: dshow, devices are listed by name on ffmpeg's stderr
- macOS:   avfoundation, devices are listed by index on ffmpeg's stderr

VideoCaptureBackend holds the shared process handling; subclasses only
describe the command lines and how to read the device listing.
"""

import logging
import os
import re
import subprocess
import sys
from typing import Callable, List, Optional

from ..errors import DetectionError, ProbeError, ProbeTimeout
from .process import CaptureProcess


logger = logging.getLogger(__name__)


class VideoCaptureBackend:
    """
    Base class for platform capture backends.

    Subclasses implement the argument builders and list_devices().
    """

    name = "generic"
    input_format = ""

    def __init__(self, ffmpeg_path: str = "ffmpeg", stream_quality: int = 8,
                 list_timeout: float = 10.0):
        self.ffmpeg_path = ffmpeg_path
        self.stream_quality = stream_quality
        self.list_timeout = list_timeout

    # =========================================================================
    # Capabilities
    # =========================================================================

    def enumerate(self) -> List[str]:
        """
        List capture devices in a stable order.

        Raises:
            DetectionError: if the device listing cannot be obtained
        """
        return self.list_devices()

    def probe_formats(self, device: str, timeout: float = 5.0) -> str:
        """
        Run the format probe for a device and return its diagnostic text.

        Raises:
            ProbeTimeout: if the probe exceeds timeout
            ProbeError: if the probe cannot be launched
        """
        try:
            result = subprocess.run(
                self.probe_args(device),
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise ProbeTimeout(f"format probe for {device} timed out after {timeout}s") from e
        except OSError as e:
            raise ProbeError(f"format probe for {device} failed: {e}") from e

        return _decode(result.stderr) + _decode(result.stdout)

    def start_continuous(
        self,
        device: str,
        resolution: str,
        fps: int,
        on_output: Optional[Callable[[bytes], None]] = None,
        on_exit: Optional[Callable[[int], None]] = None,
        name: Optional[str] = None,
    ) -> CaptureProcess:
        """
        Launch a continuous MJPEG capture writing to stdout.

        Raises:
            OSError: if the capture tool cannot be launched
        """
        process = CaptureProcess(
            self.stream_args(device, resolution, fps),
            name=name or f"stream {device}",
            on_output=on_output,
            on_exit=on_exit,
        )
        process.start()
        return process

    def capture_one(self, device: str) -> subprocess.Popen:
        """
        Launch a single-frame capture writing one JPEG to stdout.

        The caller owns the returned process and must collect or kill it.

        Raises:
            OSError: if the capture tool cannot be launched
        """
        return subprocess.Popen(
            self.snapshot_args(device),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )

    # =========================================================================
    # Platform specifics
    # =========================================================================

    def input_args(self, device: str) -> List[str]:
        return ['-f', self.input_format, '-i', device]

    def probe_args(self, device: str) -> List[str]:
        raise NotImplementedError

    def stream_args(self, device: str, resolution: str, fps: int) -> List[str]:
        return [
            self.ffmpeg_path,
            *self.input_args(device),
            '-s', resolution,
            '-r', str(fps),
            '-f', 'mjpeg',
            '-q:v', str(self.stream_quality),
            '-huffman', 'optimal',
            '-',
        ]

    def snapshot_args(self, device: str) -> List[str]:
        return [
            self.ffmpeg_path,
            *self.input_args(device),
            '-vframes', '1',
            '-f', 'image2pipe',
            '-vcodec', 'mjpeg',
            '-',
        ]

    def list_devices(self) -> List[str]:
        raise NotImplementedError

    def _run_listing(self, args: List[str]) -> str:
        """Run a device listing command and return its stderr text."""
        try:
            result = subprocess.run(
                args,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=self.list_timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise DetectionError(f"device listing failed: {e}") from e
        return _decode(result.stderr)


class LinuxV4L2Backend(VideoCaptureBackend):
    """Video4Linux2 devices found as /dev/video<N>."""

    name = "linux"
    input_format = "v4l2"

    DEVICE_PATTERN = re.compile(r"^video(\d+)$")

    def __init__(self, ffmpeg_path: str = "ffmpeg", stream_quality: int = 8,
                 list_timeout: float = 10.0, device_dir: str = "/dev"):
        super().__init__(ffmpeg_path, stream_quality, list_timeout)
        self.device_dir = device_dir

    def probe_args(self, device: str) -> List[str]:
        return [self.ffmpeg_path, '-f', 'v4l2', '-list_formats', 'all', '-i', device]

    def list_devices(self) -> List[str]:
        try:
            entries = os.listdir(self.device_dir)
        except OSError as e:
            raise DetectionError(f"cannot list {self.device_dir}: {e}") from e

        numbered = []
        for entry in entries:
            match = self.DEVICE_PATTERN.match(entry)
            if match:
                numbered.append((int(match.group(1)), entry))

        devices = []
        for _, entry in sorted(numbered):
            path = os.path.join(self.device_dir, entry)
            if os.path.exists(path):
                devices.append(path)
        return devices


class WindowsDShowBackend(VideoCaptureBackend):
    """DirectShow devices addressed by their friendly name."""

    name = "windows"
    input_format = "dshow"

    DEVICE_PATTERN = re.compile(r'\] "([^"]+)" \(video\)')

    def input_args(self, device: str) -> List[str]:
        return ['-f', 'dshow', '-i', f'video={device}']

    def probe_args(self, device: str) -> List[str]:
        return [self.ffmpeg_path, '-list_options', 'true', '-f', 'dshow', '-i', f'video={device}']

    def list_devices(self) -> List[str]:
        output = self._run_listing(
            [self.ffmpeg_path, '-list_devices', 'true', '-f', 'dshow', '-i', 'dummy']
        )
        return parse_dshow_devices(output)


class MacAVFoundationBackend(VideoCaptureBackend):
    """AVFoundation devices addressed by their listing index."""

    name = "macos"
    input_format = "avfoundation"

    def input_args(self, device: str) -> List[str]:
        return ['-f', 'avfoundation', '-framerate', '30', '-i', f'{device}:none']

    def probe_args(self, device: str) -> List[str]:
        # Requesting an unsupported mode makes avfoundation print the supported ones
        return [
            self.ffmpeg_path, '-f', 'avfoundation', '-video_size', '1x1',
            '-i', f'{device}:none',
        ]

    def list_devices(self) -> List[str]:
        output = self._run_listing(
            [self.ffmpeg_path, '-f', 'avfoundation', '-list_devices', 'true', '-i', '']
        )
        return parse_avfoundation_devices(output)


def parse_dshow_devices(output: str) -> List[str]:
    """Extract video device names from `ffmpeg -list_devices true -f dshow` output."""
    names = []
    for line in output.splitlines():
        match = WindowsDShowBackend.DEVICE_PATTERN.search(line)
        if match and match.group(1) not in names:
            names.append(match.group(1))
    return names


_AVF_DEVICE = re.compile(r'\] \[(\d+)\] (.+)$')


def parse_avfoundation_devices(output: str) -> List[str]:
    """Extract video device indexes from `ffmpeg -f avfoundation -list_devices true` output."""
    indexes = []
    in_video = False
    for line in output.splitlines():
        if 'video devices' in line:
            in_video = True
            continue
        if 'audio devices' in line:
            in_video = False
            continue
        if not in_video:
            continue
        match = _AVF_DEVICE.search(line)
        if match:
            indexes.append(match.group(1))
    return indexes


BACKENDS = {
    'linux': LinuxV4L2Backend,
    'windows': WindowsDShowBackend,
    'macos': MacAVFoundationBackend,
}


def current_platform() -> str:
    """Map sys.platform onto a backend name."""
    if sys.platform.startswith('win'):
        return 'windows'
    if sys.platform == 'darwin':
        return 'macos'
    return 'linux'


def get_backend(
    platform: str = "auto",
    ffmpeg_path: str = "ffmpeg",
    stream_quality: int = 8,
    device_dir: str = "/dev",
) -> VideoCaptureBackend:
    """
    Create the capture backend for a platform.

    Args:
        platform: "auto", "linux", "windows" or "macos"
        ffmpeg_path: Capture tool executable
        stream_quality: ffmpeg -q:v for continuous streams
        device_dir: Device directory (Linux only)

    Returns:
        VideoCaptureBackend: backend instance
    """
    if platform == "auto":
        platform = current_platform()

    if platform not in BACKENDS:
        raise ValueError(f"Unknown capture platform: {platform}")

    if platform == 'linux':
        return LinuxV4L2Backend(ffmpeg_path, stream_quality, device_dir=device_dir)
    return BACKENDS[platform](ffmpeg_path, stream_quality)


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")
