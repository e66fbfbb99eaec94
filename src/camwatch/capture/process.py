"""
Supervised capture subprocess.

Wraps one ffmpeg (or compatible) process whose stdout carries raw frame
bytes and whose stderr carries diagnostic text. Two daemon threads drain
the pipes; output chunks and the exit code are delivered to optional
callbacks and reflected in an explicit state:

    STARTING -> RUNNING (first stdout chunk) -> EXITED (process ended)

A process that exits before producing output goes straight to EXITED.
"""

import logging
import subprocess
import threading
from collections import deque
from enum import Enum
from typing import Callable, List, Optional


logger = logging.getLogger(__name__)

# stderr lines worth surfacing above DEBUG
NOTABLE_STDERR = ("error", "failed", "Could not", "Stream #0:0")


class ProcessState(str, Enum):
    STARTING = "starting"
    RUNNING = "running"
    EXITED = "exited"


class CaptureProcess:
    """
    Handle for one long-running capture subprocess.

    Usage:
        proc = CaptureProcess(argv, name="camera-0", on_output=handle_chunk)
        proc.start()
        state = proc.wait_for_output_or_exit(timeout=5.0)

        # Later...
        proc.terminate()
    """

    def __init__(
        self,
        argv: List[str],
        name: str = "capture",
        on_output: Optional[Callable[[bytes], None]] = None,
        on_exit: Optional[Callable[[int], None]] = None,
        chunk_size: int = 65536,
        stderr_lines: int = 20,
    ):
        self.argv = list(argv)
        self.name = name
        self.on_output = on_output
        self.on_exit = on_exit
        self.chunk_size = chunk_size

        self._proc: Optional[subprocess.Popen] = None
        self._state = ProcessState.STARTING
        self._returncode: Optional[int] = None
        self._cond = threading.Condition()
        self._stderr_tail: deque = deque(maxlen=stderr_lines)
        self._stdout_thread: Optional[threading.Thread] = None
        self._stderr_thread: Optional[threading.Thread] = None

        self.bytes_read = 0

    def start(self) -> None:
        """
        Spawn the subprocess and its pipe reader threads.

        Raises:
            OSError: if the executable cannot be launched
        """
        if self._proc is not None:
            return

        logger.debug("[%s] Spawning: %s", self.name, " ".join(self.argv))
        self._proc = subprocess.Popen(
            self.argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            bufsize=0,
        )

        self._stderr_thread = threading.Thread(
            target=self._drain_stderr, name=f"{self.name}-stderr", daemon=True
        )
        self._stdout_thread = threading.Thread(
            target=self._read_stdout, name=f"{self.name}-stdout", daemon=True
        )
        self._stderr_thread.start()
        self._stdout_thread.start()

    @property
    def state(self) -> ProcessState:
        return self._state

    @property
    def returncode(self) -> Optional[int]:
        return self._returncode

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc else None

    @property
    def stderr_tail(self) -> List[str]:
        """Last few diagnostic lines emitted by the process."""
        return list(self._stderr_tail)

    def wait_for_output_or_exit(self, timeout: Optional[float] = None) -> ProcessState:
        """
        Block until the process produced output or exited.

        Args:
            timeout: Maximum seconds to wait (None waits indefinitely)

        Returns:
            ProcessState: state observed when the wait ended; STARTING
            means the timeout elapsed first
        """
        with self._cond:
            self._cond.wait_for(
                lambda: self._state is not ProcessState.STARTING, timeout=timeout
            )
            return self._state

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Block until the process has exited; returns its exit code."""
        with self._cond:
            self._cond.wait_for(
                lambda: self._state is ProcessState.EXITED, timeout=timeout
            )
            return self._returncode

    def terminate(self) -> None:
        """Send SIGTERM if the process is still alive."""
        if self._proc is None or self._proc.poll() is not None:
            return
        logger.debug("[%s] Terminating pid %s", self.name, self._proc.pid)
        try:
            self._proc.terminate()
        except ProcessLookupError:
            pass

    def _read_stdout(self) -> None:
        stdout = self._proc.stdout
        try:
            while True:
                chunk = stdout.read(self.chunk_size)
                if not chunk:
                    break
                self.bytes_read += len(chunk)
                if self._state is ProcessState.STARTING:
                    self._set_state(ProcessState.RUNNING)
                if self.on_output:
                    self.on_output(chunk)
        except (OSError, ValueError) as e:
            logger.warning("[%s] stdout read failed: %s", self.name, e)
        finally:
            stdout.close()
            self._finish()

    def _drain_stderr(self) -> None:
        stderr = self._proc.stderr
        try:
            for raw in iter(stderr.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip()
                if not line:
                    continue
                self._stderr_tail.append(line)
                if any(marker in line for marker in NOTABLE_STDERR):
                    logger.info("[%s] %s", self.name, line)
                else:
                    logger.debug("[%s] %s", self.name, line)
        except (OSError, ValueError):
            pass
        finally:
            stderr.close()

    def _finish(self) -> None:
        returncode = self._proc.wait()
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout=1.0)
        self._returncode = returncode
        logger.debug("[%s] Exited with code %s", self.name, returncode)

        # Waiters are released only after on_exit has run
        try:
            if self.on_exit:
                self.on_exit(returncode)
        finally:
            with self._cond:
                self._state = ProcessState.EXITED
                self._cond.notify_all()

    def _set_state(self, state: ProcessState) -> None:
        with self._cond:
            self._state = state
            self._cond.notify_all()
