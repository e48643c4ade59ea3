"""
Incremental min/max reduction of interleaved PCM into waveform peaks.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np

from peakmux.errors import MalformedInput

INT16_MIN = -32768
INT16_MAX = 32767

PeakPair = Tuple[int, int]


class PeakReducer:
    """
    Running per-channel (min, max) over a window of frames.

    Samples arrive frame-interleaved: one value per channel per frame, in
    channel order. A window is ready once samples_per_window whole frames
    have been observed across all channels. emit() returns one (min, max)
    pair per channel and starts a new window; flush_partial() does the same
    for a trailing window that never filled.

    A channel that received no samples in a window reports (0, 0).

    Attributes:
        channels: Number of interleaved audio channels
        samples_per_window: Frames reduced into one pair per channel
        windows_emitted: Total windows emitted (including a flushed partial one)
    """

    def __init__(self, channels: int, samples_per_window: int) -> None:
        """
        Initialize reducer.

        Args:
            channels: Number of interleaved audio channels (must be >= 1)
            samples_per_window: Frames per emitted window (must be >= 1)

        Raises:
            MalformedInput: If either argument is < 1
        """
        if channels < 1:
            raise MalformedInput(f"Invalid channel count: {channels} (must be >= 1)")
        if samples_per_window < 1:
            raise MalformedInput(f"Invalid samples per window: {samples_per_window} (must be >= 1)")

        self.channels = channels
        self.samples_per_window = samples_per_window
        self.windows_emitted = 0

        self._mins: List[Optional[int]] = [None] * channels
        self._maxs: List[Optional[int]] = [None] * channels
        self._frames_in_window = 0
        self._frame_fill = 0  # channel samples seen for the frame in progress
        self._samples_in_window = 0

    @property
    def frames_in_window(self) -> int:
        return self._frames_in_window

    def observe(self, channel_index: int, value: int) -> None:
        """
        Observe one sample value for one channel.

        Args:
            channel_index: Audio channel (0-based)
            value: Signed 16-bit sample

        Raises:
            MalformedInput: If the channel or value is out of range, or the
                channel is not the next one in the frame being observed
        """
        if not 0 <= channel_index < self.channels:
            raise MalformedInput(f"Channel index {channel_index} out of range for {self.channels} channels")
        if channel_index != self._frame_fill:
            raise MalformedInput(
                f"Sample for channel {channel_index} out of frame order, expected channel {self._frame_fill}"
            )
        value = int(value)
        if not INT16_MIN <= value <= INT16_MAX:
            raise MalformedInput(f"Sample {value} outside the signed 16-bit range")

        current_min = self._mins[channel_index]
        current_max = self._maxs[channel_index]
        self._mins[channel_index] = value if current_min is None else min(current_min, value)
        self._maxs[channel_index] = value if current_max is None else max(current_max, value)
        self._samples_in_window += 1

        self._frame_fill += 1
        if self._frame_fill == self.channels:
            self._frame_fill = 0
            self._frames_in_window += 1

    def observe_frames(self, samples: np.ndarray) -> List[List[PeakPair]]:
        """
        Observe a block of whole frames, emitting every window that fills.

        Args:
            samples: int16 array shaped (n_frames, channels)

        Returns:
            List of emitted windows, each a list of (min, max) per channel, in order
        """
        if samples.ndim != 2 or samples.shape[1] != self.channels:
            raise MalformedInput(
                f"Expected frames shaped (n, {self.channels}), got {samples.shape}"
            )
        if self._frame_fill:
            raise MalformedInput("Cannot observe whole frames while a frame is partially observed")

        windows: List[List[PeakPair]] = []
        position = 0
        total = samples.shape[0]
        while position < total:
            take = min(total - position, self.samples_per_window - self._frames_in_window)
            block = samples[position:position + take]
            block_mins = block.min(axis=0)
            block_maxs = block.max(axis=0)
            for channel in range(self.channels):
                low = int(block_mins[channel])
                high = int(block_maxs[channel])
                current_min = self._mins[channel]
                current_max = self._maxs[channel]
                self._mins[channel] = low if current_min is None else min(current_min, low)
                self._maxs[channel] = high if current_max is None else max(current_max, high)
            self._frames_in_window += take
            self._samples_in_window += take * self.channels
            position += take

            if self.window_ready():
                windows.append(self.emit())

        return windows

    def window_ready(self) -> bool:
        return self._frames_in_window >= self.samples_per_window

    def emit(self) -> List[PeakPair]:
        """Return (min, max) per channel for the current window and reset it."""
        pairs = [
            (
                self._mins[channel] if self._mins[channel] is not None else 0,
                self._maxs[channel] if self._maxs[channel] is not None else 0,
            )
            for channel in range(self.channels)
        ]
        self.windows_emitted += 1
        self._reset()
        return pairs

    def flush_partial(self) -> Optional[List[PeakPair]]:
        """Emit the trailing window if any sample was observed since the last reset."""
        if self._samples_in_window == 0:
            return None
        return self.emit()

    def _reset(self) -> None:
        self._mins = [None] * self.channels
        self._maxs = [None] * self.channels
        self._frames_in_window = 0
        self._frame_fill = 0
        self._samples_in_window = 0
