"""
peakmux audio subsystem.

This package provides the PCM-side components of the multiplexer:
- decode_frames / split_samples: fixed-width s16le frame decoding
- ChannelBuffer: per-tap byte accumulator with a consumed cursor
- PeakReducer: windowed per-channel min/max reduction
- normalize: linear range mapping for normalized peaks
- PeaksCollector / PeaksResult: peaks assembly and rendering
"""

from peakmux.audio.channel_buffer import ChannelBuffer
from peakmux.audio.frame_decoder import decode_frames, frame_bytes_for, split_samples
from peakmux.audio.normalize import normalize, validate_range
from peakmux.audio.peak_reducer import PeakReducer
from peakmux.audio.peaks import PeaksCollector, PeaksResult, render_peaks, write_peaks_file

__all__ = [
    "ChannelBuffer",
    "decode_frames",
    "frame_bytes_for",
    "split_samples",
    "normalize",
    "validate_range",
    "PeakReducer",
    "PeaksCollector",
    "PeaksResult",
    "render_peaks",
    "write_peaks_file",
]
