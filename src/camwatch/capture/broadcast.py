"""
Frame fan-out for MJPEG viewers.

Provides:
- JpegFrameSplitter: cuts a raw MJPEG byte stream into whole JPEG frames
- FrameBroadcaster: one publisher, any number of viewer subscriptions

Each subscription has its own bounded queue. Publishing never blocks; a
viewer that falls behind loses its own oldest pending frame and nobody
else is affected.
"""

import queue
import threading
from typing import Iterator, List, Optional


SOI = b'\xff\xd8'  # Start of Image
EOI = b'\xff\xd9'  # End of Image

_CLOSED = object()


class JpegFrameSplitter:
    """Accumulates stdout chunks and yields complete JPEG frames."""

    def __init__(self, max_frame_size: int = 8 * 1024 * 1024):
        self._buffer = bytearray()
        self.max_frame_size = max_frame_size

    def feed(self, chunk: bytes) -> List[bytes]:
        self._buffer += chunk
        frames = []

        while True:
            start = self._buffer.find(SOI)
            if start == -1:
                # Keep a trailing 0xFF in case the marker is split across chunks
                del self._buffer[:-1]
                break

            end = self._buffer.find(EOI, start + 2)
            if end == -1:
                del self._buffer[:start]
                if len(self._buffer) > self.max_frame_size:
                    self._buffer.clear()
                break

            frames.append(bytes(self._buffer[start:end + 2]))
            del self._buffer[:end + 2]

        return frames

    @property
    def pending(self) -> int:
        return len(self._buffer)


class Subscription:
    """A single viewer's view of a FrameBroadcaster."""

    def __init__(self, broadcaster: "FrameBroadcaster", max_pending: int):
        self._broadcaster = broadcaster
        self._queue: queue.Queue = queue.Queue(maxsize=max_pending)
        self.dropped = 0

    def offer(self, frame) -> None:
        """Queue a frame without blocking, dropping the oldest if full."""
        while True:
            try:
                self._queue.put_nowait(frame)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    def get(self, timeout: Optional[float] = None) -> Optional[bytes]:
        """
        Next frame, or None when the broadcaster closed or timeout elapsed.
        """
        try:
            item = self._queue.get(timeout=timeout)
        except queue.Empty:
            return None
        if item is _CLOSED:
            # Leave the marker for any other reader of this subscription
            self.offer(_CLOSED)
            return None
        return item

    def __iter__(self) -> Iterator[bytes]:
        while True:
            item = self._queue.get()
            if item is _CLOSED:
                return
            yield item

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)


class FrameBroadcaster:
    """
    Publishes frames to every current subscriber in publish order.

    Usage:
        broadcaster = FrameBroadcaster()
        sub = broadcaster.subscribe()

        # Writer (capture reader thread)
        broadcaster.publish(jpeg_bytes)

        # Reader (HTTP handler)
        for frame in sub:
            send(frame)
    """

    def __init__(self, max_pending: int = 30):
        self.max_pending = max_pending
        self._subscribers: List[Subscription] = []
        self._lock = threading.Lock()
        self._closed = False
        self.frames_published = 0

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self.max_pending)
        with self._lock:
            if self._closed:
                sub.offer(_CLOSED)
            else:
                self._subscribers.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subscribers:
                self._subscribers.remove(sub)

    def publish(self, frame: bytes) -> None:
        with self._lock:
            if self._closed:
                return
            self.frames_published += 1
            subscribers = list(self._subscribers)

        for sub in subscribers:
            sub.offer(frame)

    def close(self) -> None:
        """End every subscription; later subscribers end immediately."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscribers = list(self._subscribers)
            self._subscribers.clear()

        for sub in subscribers:
            sub.offer(_CLOSED)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)
