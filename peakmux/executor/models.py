"""
Run configuration and result records for the executor.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Callable, FrozenSet, Optional

from peakmux.audio.normalize import NormalizeRange, validate_range
from peakmux.audio.peaks import PeaksResult
from peakmux.config import MuxSettings
from peakmux.errors import ErrorKind, MalformedInput, PeakmuxError, error_for_kind
from peakmux.progress import ProgressSample

ProgressCallback = Callable[[ProgressSample], None]
ErrorCallback = Callable[[str], None]


class ChannelId(enum.IntEnum):
    """Child process output channels, numbered by file descriptor."""
    PROGRESS = 1
    ERROR = 2
    AUDIO = 3
    PAYLOAD = 4


@dataclass(frozen=True)
class PeaksOptions:
    """Peak extraction parameters."""
    samples_per_pixel: int = 512
    normalize_range: Optional[NormalizeRange] = None

    def __post_init__(self) -> None:
        if isinstance(self.samples_per_pixel, bool) or not isinstance(self.samples_per_pixel, int):
            raise MalformedInput(f"samples_per_pixel must be an integer, got {self.samples_per_pixel!r}")
        if self.samples_per_pixel < 1:
            raise MalformedInput(f"samples_per_pixel must be >= 1, got {self.samples_per_pixel}")
        object.__setattr__(self, "normalize_range", validate_range(self.normalize_range))


@dataclass(frozen=True)
class ExecutionConfig:
    """
    Immutable description of one run.

    Attributes:
        command: Fully formed, already-escaped shell command line
        peaks: Peak extraction options; enables the audio tap (fd 3)
        stream_payload: Capture the encoded payload from fd 4 and hand it to storage
        destination: Payload destination (local path or remote key)
        input_path: Source media, used to probe audio layout when hints are missing
        channels: Audio channel count of the PCM tap (hint)
        sample_rate: Sample rate of the PCM tap (hint)
        timeout: Wall-clock budget in seconds
        read_chunk_size: Maximum bytes read per ready pipe per iteration
        select_timeout: Per-iteration readiness wait in seconds
        spool_max_bytes: Payload bytes kept in memory before spilling to a temp file
        on_progress: Called with each ProgressSample, in arrival order
        on_error: Called once with the captured error text if the run fails
    """
    command: str
    peaks: Optional[PeaksOptions] = None
    stream_payload: bool = False
    destination: Optional[str] = None
    input_path: Optional[str] = None
    channels: Optional[int] = None
    sample_rate: Optional[int] = None
    timeout: float = 3600.0
    read_chunk_size: int = 8192
    select_timeout: float = 0.1
    spool_max_bytes: int = 16 * 1024 * 1024
    on_progress: Optional[ProgressCallback] = field(default=None, compare=False, repr=False)
    on_error: Optional[ErrorCallback] = field(default=None, compare=False, repr=False)

    @classmethod
    def from_settings(cls, settings: MuxSettings, command: str, **overrides) -> "ExecutionConfig":
        """Build a config with execution defaults taken from MuxSettings."""
        values = {
            "timeout": settings.timeout_sec,
            "read_chunk_size": settings.read_chunk_size,
            "select_timeout": settings.select_timeout,
            "spool_max_bytes": settings.spool_max_bytes,
        }
        values.update(overrides)
        return cls(command=command, **values)

    @property
    def wants_peaks(self) -> bool:
        return self.peaks is not None

    @property
    def use_multiplexer(self) -> bool:
        """Peaks or payload streaming need the multi-channel read loop."""
        return self.wants_peaks or self.stream_payload

    @property
    def required_channels(self) -> FrozenSet[ChannelId]:
        channels = {ChannelId.PROGRESS, ChannelId.ERROR}
        if self.wants_peaks:
            channels.add(ChannelId.AUDIO)
        if self.stream_payload:
            channels.add(ChannelId.PAYLOAD)
        return frozenset(channels)

    def validate(self) -> None:
        """
        Reject malformed configuration before anything is spawned.

        Raises:
            MalformedInput: If any field is invalid
        """
        if not self.command or not self.command.strip():
            raise MalformedInput("command cannot be empty")
        if self.timeout <= 0:
            raise MalformedInput(f"timeout must be > 0, got {self.timeout}")
        if self.read_chunk_size <= 0:
            raise MalformedInput(f"read_chunk_size must be > 0, got {self.read_chunk_size}")
        if self.select_timeout <= 0:
            raise MalformedInput(f"select_timeout must be > 0, got {self.select_timeout}")
        if self.spool_max_bytes < 0:
            raise MalformedInput(f"spool_max_bytes must be >= 0, got {self.spool_max_bytes}")
        if self.channels is not None and self.channels < 1:
            raise MalformedInput(f"channels must be >= 1, got {self.channels}")
        if self.sample_rate is not None and self.sample_rate < 1:
            raise MalformedInput(f"sample_rate must be >= 1, got {self.sample_rate}")
        if self.stream_payload and not self.destination:
            raise MalformedInput("stream_payload requires a destination")


@dataclass(frozen=True)
class ExecutionResult:
    """
    Terminal outcome of a run, constructed once at the end.

    On failure peaks is always None and error holds the diagnostic text.
    """
    success: bool
    peaks: Optional[PeaksResult] = None
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    exit_code: Optional[int] = None
    duration: float = 0.0
    destination: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.success and self.peaks is not None:
            raise ValueError("A failed run cannot carry peaks")

    @classmethod
    def succeeded(
        cls,
        peaks: Optional[PeaksResult] = None,
        exit_code: int = 0,
        duration: float = 0.0,
        destination: Optional[str] = None,
    ) -> "ExecutionResult":
        return cls(success=True, peaks=peaks, exit_code=exit_code, duration=duration, destination=destination)

    @classmethod
    def failed(
        cls,
        kind: ErrorKind,
        error: str,
        exit_code: Optional[int] = None,
        duration: float = 0.0,
    ) -> "ExecutionResult":
        return cls(success=False, error=error, error_kind=kind, exit_code=exit_code, duration=duration)

    def raise_for_status(self) -> "ExecutionResult":
        """Raise the typed error for a failed run; return self on success."""
        if self.success:
            return self
        error: PeakmuxError = error_for_kind(
            self.error_kind or ErrorKind.PROCESS_FAILURE,
            self.error or "",
            exit_code=self.exit_code,
        )
        raise error
