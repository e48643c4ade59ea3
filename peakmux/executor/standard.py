"""
Single-pipe-pair transcoder runner.

Used when neither peaks nor payload streaming is requested: the transcoder
writes its output file itself, so only progress (stdout) and error (stderr)
need servicing. Progress is read with blocking reads on the calling thread;
stderr is drained by a daemon thread so a chatty transcoder never blocks on
a full pipe.
"""

from __future__ import annotations

import logging
import subprocess
import threading
import time
from typing import Callable, Optional

from peakmux.errors import ErrorKind
from peakmux.executor.models import ExecutionConfig, ExecutionResult
from peakmux.executor.multiplexer import STDERR_MAX_BYTES
from peakmux.executor.process import kill_process_group, spawn_shell
from peakmux.progress import LineSplitter, ProgressParser, ProgressSample

logger = logging.getLogger(__name__)


class StandardRunner:
    """
    Runs a transcoder command with only progress and error channels.

    Attributes:
        config: The run configuration
        process: The spawned process (None before start or if spawning failed)
    """

    def __init__(
        self,
        config: ExecutionConfig,
        on_progress: Optional[Callable[[ProgressSample], None]] = None,
    ) -> None:
        self.config = config
        self.process: Optional[subprocess.Popen] = None
        self._on_progress = on_progress if on_progress is not None else config.on_progress
        self._stderr = bytearray()
        self._stderr_lock = threading.Lock()
        self._stderr_thread: Optional[threading.Thread] = None
        self._timed_out = threading.Event()
        self._progress_parser = ProgressParser()

    @property
    def stderr_text(self) -> str:
        with self._stderr_lock:
            return self._stderr.decode("utf-8", errors="replace")

    def run(self) -> ExecutionResult:
        """Execute the command to completion and return its result."""
        started_at = time.monotonic()

        logger.info(f"[RUNNER] Executing transcoder command: {self.config.command}")
        try:
            self.process = spawn_shell(self.config.command)
        except (OSError, subprocess.SubprocessError) as e:
            logger.error(f"[RUNNER] Failed to start transcoder: {e}")
            return ExecutionResult.failed(
                ErrorKind.SPAWN_FAILURE,
                f"Failed to start transcoder: {e}",
                duration=time.monotonic() - started_at,
            )
        logger.info(f"[RUNNER] Started transcoder PID={self.process.pid}")

        self._stderr_thread = threading.Thread(
            target=self._stderr_drain,
            daemon=True,
            name="TranscoderStderrDrain",
        )
        self._stderr_thread.start()

        watchdog = threading.Timer(self.config.timeout, self._on_timeout)
        watchdog.daemon = True
        watchdog.start()

        try:
            self._read_progress()
            exit_code = self.process.wait()
        finally:
            watchdog.cancel()
            watchdog.join(timeout=5.0)
            if self.process.poll() is None:
                kill_process_group(self.process)
            self.process.stdout.close()
            self._stderr_thread.join(timeout=2.0)
            if self._stderr_thread.is_alive():
                logger.warning("[RUNNER] stderr drain thread did not stop within timeout")

        duration = time.monotonic() - started_at

        if self._timed_out.is_set():
            message = f"Transcoder timed out after {self.config.timeout}s"
            stderr = self.stderr_text.strip()
            if stderr:
                message = f"{message}\n{stderr}"
            return ExecutionResult.failed(ErrorKind.TIMEOUT, message, exit_code=exit_code, duration=duration)

        if exit_code != 0:
            logger.error(f"[RUNNER] Transcoder failed (exit code: {exit_code})")
            error_text = self.stderr_text.strip() or f"Transcoder exited with code {exit_code}"
            return ExecutionResult.failed(ErrorKind.PROCESS_FAILURE, error_text, exit_code=exit_code, duration=duration)

        return ExecutionResult.succeeded(exit_code=exit_code, duration=duration, destination=self.config.destination)

    def _read_progress(self) -> None:
        lines = LineSplitter()
        while True:
            chunk = self.process.stdout.read(self.config.read_chunk_size)
            if not chunk:
                break
            for line in lines.feed(chunk):
                self._handle_progress_line(line)
        for line in lines.flush():
            self._handle_progress_line(line)
        self._report_progress(self._progress_parser.flush())

    def _handle_progress_line(self, line: str) -> None:
        self._report_progress(self._progress_parser.feed(line))

    def _report_progress(self, sample: Optional[ProgressSample]) -> None:
        if sample is not None and self._on_progress is not None:
            self._on_progress(sample)

    def _stderr_drain(self) -> None:
        """Drain stderr until it closes, keeping the most recent bytes."""
        stderr = self.process.stderr
        try:
            while True:
                line = stderr.readline()
                if not line:
                    break
                logger.debug(f"[FFMPEG] {line.decode(errors='ignore').rstrip()}")
                with self._stderr_lock:
                    self._stderr.extend(line)
                    if len(self._stderr) > STDERR_MAX_BYTES:
                        del self._stderr[:len(self._stderr) - STDERR_MAX_BYTES]
        except (OSError, ValueError) as e:
            logger.debug(f"[RUNNER] stderr read error (likely closed): {e}")
        finally:
            stderr.close()

    def _on_timeout(self) -> None:
        if self.process is None or self.process.poll() is not None:
            return
        self._timed_out.set()
        logger.error(f"[RUNNER] Transcoder exceeded timeout of {self.config.timeout}s, killing PID={self.process.pid}")
        kill_process_group(self.process)
