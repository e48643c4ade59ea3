"""
peakmux: run a transcoder and collect waveform peaks from the same pass.

One transcoder process writes progress, error text, raw PCM and an optional
encoded payload on separate descriptors; peakmux services all of them at
once and returns a single ExecutionResult.
"""

from peakmux.audio import PeaksResult, render_peaks, write_peaks_file
from peakmux.config import MuxSettings, load_settings
from peakmux.errors import (
    ErrorKind,
    ExecutionTimeout,
    MalformedInput,
    PeakmuxError,
    ProbeError,
    ProcessFailure,
    SpawnFailure,
)
from peakmux.executor import ExecutionConfig, ExecutionResult, FFmpegExecutor, PeaksOptions
from peakmux.progress import ProgressSample

__version__ = "0.1.0"

__all__ = [
    "ErrorKind",
    "ExecutionConfig",
    "ExecutionResult",
    "ExecutionTimeout",
    "FFmpegExecutor",
    "MalformedInput",
    "MuxSettings",
    "PeakmuxError",
    "PeaksOptions",
    "PeaksResult",
    "ProbeError",
    "ProcessFailure",
    "ProgressSample",
    "SpawnFailure",
    "load_settings",
    "render_peaks",
    "write_peaks_file",
]
