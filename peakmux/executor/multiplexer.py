"""
Multi-channel transcoder runner.

This module provides ChannelMultiplexer, which runs one transcoder process
wired to up to four output channels and services all of them from a single
select()-driven read loop:

- fd 1: progress text, parsed line by line into ProgressSample callbacks
- fd 2: error text, kept for the failure report
- fd 3: raw s16le PCM, reduced incrementally into waveform peaks
- fd 4: encoded payload bytes, spooled and handed to storage on success

One thread owns the process, its pipes, the per-channel buffers and the peak
state for the lifetime of a run. Results are all-or-nothing: a failed or
timed-out run never returns peaks or stores a payload.
"""

from __future__ import annotations

import enum
import logging
import os
import select
import subprocess
import tempfile
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional

from peakmux.audio.channel_buffer import ChannelBuffer
from peakmux.audio.frame_decoder import frame_bytes_for, split_samples
from peakmux.audio.peaks import PeaksCollector, PeaksResult
from peakmux.errors import ErrorKind
from peakmux.executor.models import ChannelId, ExecutionConfig, ExecutionResult
from peakmux.executor.process import kill_process_group, spawn_shell
from peakmux.progress import LineSplitter, ProgressParser, ProgressSample
from peakmux.storage import LocalFileStore, PayloadStore

logger = logging.getLogger(__name__)

# Error text kept for the failure report (most recent bytes win)
STDERR_MAX_BYTES = 64 * 1024


class MuxState(enum.Enum):
    """Multiplexer run state."""
    IDLE = 0
    STARTING = 1
    RUNNING = 2
    DRAINING = 3
    FINISHED = 4


@dataclass
class _Reader:
    channel: ChannelId
    fd: int
    close: Callable[[], None]


class ChannelMultiplexer:
    """
    Runs one transcoder command and demultiplexes its output channels.

    Channel set is derived from the ExecutionConfig: progress and error are
    always read, the audio tap exists iff peaks were requested and the payload
    tap exists iff payload streaming was requested.

    State machine: STARTING -> RUNNING -> DRAINING -> FINISHED. RUNNING moves
    to DRAINING once the process is seen to have exited; DRAINING keeps
    reading until every pipe reports end of input.

    Attributes:
        config: The run configuration
        channels: Audio channel count of the PCM tap
        sample_rate: Sample rate of the PCM tap
        process: The spawned process (None before start or if spawning failed)
        transitions: States entered during the run, in order
    """

    def __init__(
        self,
        config: ExecutionConfig,
        channels: int = 2,
        sample_rate: int = 44100,
        store: Optional[PayloadStore] = None,
        on_progress: Optional[Callable[[ProgressSample], None]] = None,
    ) -> None:
        """
        Initialize multiplexer.

        Args:
            config: Validated run configuration
            channels: Audio channel count of the PCM tap
            sample_rate: Sample rate of the PCM tap
            store: Payload destination collaborator (default: LocalFileStore)
            on_progress: Progress callback (default: config.on_progress)
        """
        self.config = config
        self.channels = channels
        self.sample_rate = sample_rate
        self.store = store or LocalFileStore()
        self._on_progress = on_progress if on_progress is not None else config.on_progress

        self.process: Optional[subprocess.Popen] = None
        self._state = MuxState.IDLE
        self.transitions: List[MuxState] = []
        self._readers: Dict[int, _Reader] = {}

        self._progress_lines = LineSplitter()
        self._progress_parser = ProgressParser()
        self._stderr = bytearray()
        self._audio_buffer: Optional[ChannelBuffer] = None
        self._collector: Optional[PeaksCollector] = None
        self._frame_size = frame_bytes_for(channels)
        self._payload: Optional[tempfile.SpooledTemporaryFile] = None
        self._payload_bytes = 0

    @property
    def state(self) -> MuxState:
        return self._state

    @property
    def open_channels(self) -> List[ChannelId]:
        """Channels whose pipes have not reached end of input."""
        return sorted(reader.channel for reader in self._readers.values())

    @property
    def stderr_text(self) -> str:
        return self._stderr.decode("utf-8", errors="replace")

    def run(self) -> ExecutionResult:
        """
        Execute the command to completion.

        Returns:
            ExecutionResult. Spawn failure, non-zero exit and timeout are
            reported as failed results; exceptions raised by callbacks or the
            payload store propagate after the process has been cleaned up.
        """
        if self._state is not MuxState.IDLE:
            raise RuntimeError(f"Cannot run multiplexer in state: {self._state}")

        started_at = time.monotonic()
        deadline = started_at + self.config.timeout

        try:
            self._start()
        except (OSError, subprocess.SubprocessError) as e:
            self._set_state(MuxState.FINISHED)
            logger.error(f"[MUX] Failed to start transcoder: {e}")
            return ExecutionResult.failed(
                ErrorKind.SPAWN_FAILURE,
                f"Failed to start transcoder: {e}",
                duration=time.monotonic() - started_at,
            )

        try:
            finished = self._pump(deadline)
            if not finished:
                return self._timed_out(started_at)

            exit_code = self.process.wait()
            if exit_code != 0:
                return self._failed(exit_code, started_at)

            return self._succeeded(started_at)
        finally:
            self._cleanup()
            self._set_state(MuxState.FINISHED)

    def _start(self) -> None:
        self._set_state(MuxState.STARTING)
        required = self.config.required_channels

        taps: Dict[int, int] = {}
        tap_reads: Dict[ChannelId, int] = {}
        try:
            for channel in (ChannelId.AUDIO, ChannelId.PAYLOAD):
                if channel in required:
                    read_fd, write_fd = os.pipe()
                    tap_reads[channel] = read_fd
                    taps[int(channel)] = write_fd

            logger.info(
                f"[MUX] Executing transcoder command: {self.config.command}",
                extra={"channels": sorted(int(c) for c in required)},
            )
            self.process = spawn_shell(self.config.command, taps=taps)
        except (OSError, subprocess.SubprocessError):
            for read_fd in tap_reads.values():
                os.close(read_fd)
            raise
        finally:
            # Only the child may hold the write ends, or EOF never arrives
            for write_fd in taps.values():
                os.close(write_fd)

        logger.info(f"[MUX] Started transcoder PID={self.process.pid}")

        self._add_reader(ChannelId.PROGRESS, self.process.stdout.fileno(), self.process.stdout.close)
        self._add_reader(ChannelId.ERROR, self.process.stderr.fileno(), self.process.stderr.close)
        for channel, read_fd in tap_reads.items():
            self._add_reader(channel, read_fd, lambda fd=read_fd: os.close(fd))

        if ChannelId.AUDIO in required:
            peaks = self.config.peaks
            self._audio_buffer = ChannelBuffer("audio")
            self._collector = PeaksCollector(
                channels=self.channels,
                sample_rate=self.sample_rate,
                samples_per_pixel=peaks.samples_per_pixel,
                normalize_range=peaks.normalize_range,
            )
        if ChannelId.PAYLOAD in required:
            self._payload = tempfile.SpooledTemporaryFile(max_size=self.config.spool_max_bytes, mode="w+b")

        self._set_state(MuxState.RUNNING)

    def _set_state(self, state: MuxState) -> None:
        if state is self._state:
            return
        logger.debug(f"[MUX] State {self._state.name} -> {state.name}")
        self._state = state
        self.transitions.append(state)

    def _add_reader(self, channel: ChannelId, fd: int, close: Callable[[], None]) -> None:
        os.set_blocking(fd, False)
        self._readers[fd] = _Reader(channel=channel, fd=fd, close=close)

    def _pump(self, deadline: float) -> bool:
        """
        Read loop covering RUNNING and DRAINING.

        Returns:
            True once every pipe reached end of input and the process exited,
            False if the deadline passed first.
        """
        while self._readers:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False

            try:
                ready, _, _ = select.select(list(self._readers), [], [], min(self.config.select_timeout, remaining))
            except InterruptedError:
                ready = []

            for fd in sorted(ready):
                if fd in self._readers:
                    self._read(self._readers[fd])

            # Liveness is checked every iteration, not only on EOF
            if self._state is MuxState.RUNNING and self.process.poll() is not None:
                logger.debug(f"[MUX] Transcoder exited (code={self.process.returncode}), draining pipes")
                self._set_state(MuxState.DRAINING)

        # All pipes closed; the process may still be shutting down
        self._set_state(MuxState.DRAINING)
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            return self.process.poll() is not None
        try:
            self.process.wait(timeout=remaining)
        except subprocess.TimeoutExpired:
            return False
        return True

    def _read(self, reader: _Reader) -> None:
        try:
            data = os.read(reader.fd, self.config.read_chunk_size)
        except (BlockingIOError, InterruptedError):
            return
        except OSError as e:
            # Any other read error ends the channel, same as EOF
            logger.warning(f"[MUX] Read error on channel {reader.channel.name}: {e}")
            self._close_reader(reader)
            return

        if not data:
            self._close_reader(reader)
            return

        self._route(reader.channel, data)

    def _route(self, channel: ChannelId, data: bytes) -> None:
        if channel is ChannelId.PROGRESS:
            for line in self._progress_lines.feed(data):
                self._handle_progress_line(line)
        elif channel is ChannelId.ERROR:
            logger.debug(f"[FFMPEG] {data.decode(errors='ignore').rstrip()}")
            self._stderr.extend(data)
            if len(self._stderr) > STDERR_MAX_BYTES:
                del self._stderr[:len(self._stderr) - STDERR_MAX_BYTES]
        elif channel is ChannelId.AUDIO:
            self._audio_buffer.append(data)
            frames = self._audio_buffer.take_frames(self._frame_size)
            if frames:
                self._collector.feed(split_samples(frames, self.channels))
        elif channel is ChannelId.PAYLOAD:
            self._payload.write(data)
            self._payload_bytes += len(data)

    def _handle_progress_line(self, line: str) -> None:
        self._report_progress(self._progress_parser.feed(line))

    def _report_progress(self, sample: Optional[ProgressSample]) -> None:
        if sample is not None and self._on_progress is not None:
            self._on_progress(sample)

    def _close_reader(self, reader: _Reader) -> None:
        self._readers.pop(reader.fd, None)
        try:
            reader.close()
        except OSError as e:
            logger.debug(f"[MUX] Error closing channel {reader.channel.name}: {e}")

        if reader.channel is ChannelId.PROGRESS:
            for line in self._progress_lines.flush():
                self._handle_progress_line(line)
            self._report_progress(self._progress_parser.flush())
        elif reader.channel is ChannelId.AUDIO and self._audio_buffer is not None and len(self._audio_buffer):
            logger.warning(f"[MUX] Discarding {len(self._audio_buffer)} trailing PCM bytes (incomplete frame)")

    def _succeeded(self, started_at: float) -> ExecutionResult:
        peaks: Optional[PeaksResult] = None
        if self._collector is not None:
            peaks = self._collector.finish()
            logger.info(f"[MUX] Extracted {peaks.length} peak windows ({self.channels} channels)")

        destination = None
        if self._payload is not None:
            self._payload.seek(0)
            destination = self.store.put(self.config.destination, self._payload)
            logger.info(f"[MUX] Handed off {self._payload_bytes} payload bytes to {destination}")

        return ExecutionResult.succeeded(
            peaks=peaks,
            exit_code=self.process.returncode,
            duration=time.monotonic() - started_at,
            destination=destination,
        )

    def _failed(self, exit_code: int, started_at: float) -> ExecutionResult:
        error_text = self.stderr_text.strip() or f"Transcoder exited with code {exit_code}"
        logger.error(f"[MUX] Transcoder failed (exit code: {exit_code})")
        return ExecutionResult.failed(
            ErrorKind.PROCESS_FAILURE,
            error_text,
            exit_code=exit_code,
            duration=time.monotonic() - started_at,
        )

    def _timed_out(self, started_at: float) -> ExecutionResult:
        logger.error(f"[MUX] Transcoder exceeded timeout of {self.config.timeout}s, killing PID={self.process.pid}")
        kill_process_group(self.process)
        message = f"Transcoder timed out after {self.config.timeout}s"
        stderr = self.stderr_text.strip()
        if stderr:
            message = f"{message}\n{stderr}"
        return ExecutionResult.failed(
            ErrorKind.TIMEOUT,
            message,
            exit_code=self.process.returncode,
            duration=time.monotonic() - started_at,
        )

    def _cleanup(self) -> None:
        for reader in list(self._readers.values()):
            self._readers.pop(reader.fd, None)
            try:
                reader.close()
            except OSError as e:
                logger.debug(f"[MUX] Error closing channel {reader.channel.name} during cleanup: {e}")

        if self.process is not None and self.process.poll() is None:
            kill_process_group(self.process)

        if self._audio_buffer is not None:
            self._audio_buffer.close()
        if self._payload is not None:
            self._payload.close()
            self._payload = None
