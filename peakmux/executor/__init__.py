"""
Transcoder execution for peakmux.

Runs one transcoder command and services its output channels: progress,
error text, an optional PCM tap for waveform peaks and an optional encoded
payload tap handed to storage.
"""

from peakmux.executor.events import ExecutionObserver, LoggingObserver, RecordingObserver
from peakmux.executor.executor import FFmpegExecutor
from peakmux.executor.models import ChannelId, ExecutionConfig, ExecutionResult, PeaksOptions
from peakmux.executor.multiplexer import ChannelMultiplexer, MuxState
from peakmux.executor.standard import StandardRunner

__all__ = [
    "ChannelId",
    "ChannelMultiplexer",
    "ExecutionConfig",
    "ExecutionObserver",
    "ExecutionResult",
    "FFmpegExecutor",
    "LoggingObserver",
    "MuxState",
    "PeaksOptions",
    "RecordingObserver",
    "StandardRunner",
]
