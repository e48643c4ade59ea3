"""
Waveform peaks result, incremental collection and rendering.

The result layout follows the audiowaveform JSON format (version 2): data
holds min/max pairs interleaved per channel, one group per window.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np

from peakmux.audio.normalize import NormalizeRange, normalize, validate_range
from peakmux.audio.peak_reducer import PeakPair, PeakReducer
from peakmux.errors import MalformedInput

logger = logging.getLogger(__name__)

PEAKS_FORMAT_VERSION = 2
BITS_NORMALIZED = 32
BITS_RAW = 16

PeakValue = Union[int, float]


@dataclass(frozen=True)
class PeaksResult:
    """
    Peaks extracted from one run.

    Attributes:
        channels: Number of audio channels
        sample_rate: Sample rate of the decoded audio (Hz)
        samples_per_pixel: Frames reduced into each min/max pair
        bits: 32 for normalized float output, 16 for raw int16 values
        length: Number of windows (min/max pairs per channel)
        data: ch0 min, ch0 max, ch1 min, ch1 max, ... repeated per window
        version: Format version tag
    """
    channels: int
    sample_rate: int
    samples_per_pixel: int
    bits: int
    length: int
    data: List[PeakValue] = field(default_factory=list)
    version: int = PEAKS_FORMAT_VERSION

    def __post_init__(self) -> None:
        expected = self.length * self.channels * 2
        if len(self.data) != expected:
            raise ValueError(
                f"Peaks data has {len(self.data)} values, expected {expected} "
                f"({self.length} windows x {self.channels} channels x 2)"
            )

    @property
    def normalized(self) -> bool:
        return self.bits == BITS_NORMALIZED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "channels": self.channels,
            "sample_rate": self.sample_rate,
            "samples_per_pixel": self.samples_per_pixel,
            "bits": self.bits,
            "length": self.length,
            "data": list(self.data),
        }


class PeaksCollector:
    """
    Feeds decoded PCM into a PeakReducer and accumulates the peaks data.

    Emitted pairs are normalized on the way in when a range is configured.
    finish() flushes the trailing partial window exactly once.
    """

    def __init__(
        self,
        channels: int,
        sample_rate: int,
        samples_per_pixel: int,
        normalize_range: Optional[Sequence[float]] = None,
    ) -> None:
        self.channels = channels
        self.sample_rate = sample_rate
        self.samples_per_pixel = samples_per_pixel
        self.normalize_range: Optional[NormalizeRange] = validate_range(normalize_range)
        self.reducer = PeakReducer(channels, samples_per_pixel)
        self._data: List[PeakValue] = []
        self._finished = False

    @property
    def frames_observed(self) -> int:
        return self.reducer.windows_emitted * self.samples_per_pixel + self.reducer.frames_in_window

    def feed(self, samples: np.ndarray) -> int:
        """
        Consume an (n_frames, channels) int16 block.

        Returns:
            Number of windows completed by this block
        """
        if self._finished:
            raise RuntimeError("PeaksCollector already finished")
        windows = self.reducer.observe_frames(samples)
        for pairs in windows:
            self._append(pairs)
        return len(windows)

    def finish(self) -> PeaksResult:
        """Flush the partial window and build the result."""
        if self._finished:
            raise RuntimeError("PeaksCollector already finished")
        self._finished = True

        trailing = self.reducer.flush_partial()
        if trailing is not None:
            self._append(trailing)

        return PeaksResult(
            channels=self.channels,
            sample_rate=self.sample_rate,
            samples_per_pixel=self.samples_per_pixel,
            bits=BITS_NORMALIZED if self.normalize_range is not None else BITS_RAW,
            length=self.reducer.windows_emitted,
            data=self._data,
        )

    def _append(self, pairs: List[PeakPair]) -> None:
        if self.normalize_range is None:
            for low, high in pairs:
                self._data.append(low)
                self._data.append(high)
            return

        to_low, to_high = self.normalize_range
        for low, high in pairs:
            self._data.append(normalize(low, to_low=to_low, to_high=to_high))
            self._data.append(normalize(high, to_low=to_low, to_high=to_high))


def render_peaks(result: PeaksResult, fmt: str = "simple") -> Union[Dict[str, Any], List[PeakValue]]:
    """
    Render peaks for a consumer.

    Args:
        result: Extracted peaks
        fmt: "full" for the metadata object, "simple" for the bare data list
    """
    if fmt == "full":
        return result.to_dict()
    if fmt == "simple":
        return list(result.data)
    raise MalformedInput(f"Unknown peaks format: {fmt} (must be 'simple' or 'full')")


def write_peaks_file(path: Union[str, Path], result: PeaksResult, fmt: str = "full") -> Path:
    """
    Write rendered peaks as JSON, creating parent directories.

    Returns:
        The path written
    """
    out_path = Path(path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    out_path.write_text(json.dumps(render_peaks(result, fmt), indent=2))
    logger.info(f"[PEAKS] Wrote {result.length} windows to {out_path}")
    return out_path
