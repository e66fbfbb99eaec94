"""Capture resolution selection from a device's format probe."""

import logging
import re
from dataclasses import dataclass
from typing import List

from ..errors import ProbeError, ProbeTimeout


logger = logging.getLogger(__name__)

_RESOLUTION_TOKEN = re.compile(r'(?<!\d)(\d{3,4})x(\d{3,4})(?!\d)')


@dataclass(frozen=True, order=True)
class Resolution:
    """Capture size in pixels."""
    width: int
    height: int

    @property
    def pixels(self) -> int:
        return self.width * self.height

    @classmethod
    def parse(cls, text: str) -> "Resolution":
        """Parse a 'WIDTHxHEIGHT' string."""
        width, _, height = text.lower().partition('x')
        return cls(int(width), int(height))

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"


def find_resolutions(text: str) -> List[Resolution]:
    """Return every distinct WIDTHxHEIGHT token in text, in order of appearance."""
    found: List[Resolution] = []
    for match in _RESOLUTION_TOKEN.finditer(text):
        res = Resolution(int(match.group(1)), int(match.group(2)))
        if res not in found:
            found.append(res)
    return found


def select_resolution(
    text: str,
    max_width: int = 1920,
    max_height: int = 1080,
    fallback: Resolution = Resolution(1280, 720),
) -> Resolution:
    """
    Pick the largest advertised resolution that fits within the bound.

    Candidates are ranked by pixel count; the first one with
    width <= max_width and height <= max_height wins. Returns fallback
    when nothing fits.
    """
    ranked = sorted(find_resolutions(text), key=lambda r: r.pixels, reverse=True)
    for res in ranked:
        if res.width <= max_width and res.height <= max_height:
            return res
    return fallback


class ResolutionNegotiator:
    """
    Chooses a capture resolution per device by running the backend's
    format probe once.
    """

    def __init__(
        self,
        backend,
        timeout: float = 5.0,
        max_width: int = 1920,
        max_height: int = 1080,
        fallback: Resolution = Resolution(1280, 720),
    ):
        self.backend = backend
        self.timeout = timeout
        self.max_width = max_width
        self.max_height = max_height
        self.fallback = fallback

    def negotiate(self, device: str) -> Resolution:
        try:
            output = self.backend.probe_formats(device, timeout=self.timeout)
        except ProbeTimeout:
            logger.warning("Resolution probe timed out for %s, using %s", device, self.fallback)
            return self.fallback
        except ProbeError as e:
            logger.warning("Could not probe %s (%s), using %s", device, e, self.fallback)
            return self.fallback

        available = find_resolutions(output)
        selected = select_resolution(output, self.max_width, self.max_height, self.fallback)
        logger.info(
            "Camera %s - available: [%s], selected: %s",
            device, ", ".join(str(r) for r in available), selected,
        )
        return selected
