"""
Fixed-width PCM frame decoding.

The transcoder's audio tap emits raw s16le PCM with no header, interleaved by
channel. A frame is one sample per channel, so frame_size is
BYTES_PER_SAMPLE * channels. Pipe reads split frames at arbitrary byte
offsets; decode_frames() returns the unconsumed tail so the caller can
prepend it to the next chunk.
"""

from typing import List, Tuple, Union

import numpy as np

from peakmux.errors import MalformedInput

# s16le = 2 bytes per sample
BYTES_PER_SAMPLE = 2

# Little-endian signed 16-bit, independent of host byte order
PCM_DTYPE = np.dtype("<i2")

BytesLike = Union[bytes, bytearray, memoryview]


def frame_bytes_for(channels: int) -> int:
    """Return the size in bytes of one interleaved frame."""
    if channels < 1:
        raise MalformedInput(f"Invalid channel count: {channels} (must be >= 1)")
    return BYTES_PER_SAMPLE * channels


def decode_frames(buffer: BytesLike, frame_size: int) -> Tuple[List[bytes], bytes]:
    """
    Extract complete fixed-width frames from the front of a buffer.

    Args:
        buffer: Raw bytes (any previous remainder already prepended)
        frame_size: Width of one frame in bytes (must be >= 1)

    Returns:
        (frames, remainder) where frames are consecutive frame_size slices and
        remainder holds the trailing bytes that do not fill a whole frame.

    Raises:
        MalformedInput: If frame_size < 1
    """
    if frame_size < 1:
        raise MalformedInput(f"Invalid frame size: {frame_size} (must be >= 1)")

    view = memoryview(buffer)
    complete = len(view) - (len(view) % frame_size)
    frames = [bytes(view[offset:offset + frame_size]) for offset in range(0, complete, frame_size)]
    return frames, bytes(view[complete:])


def split_samples(frames: BytesLike, channels: int) -> np.ndarray:
    """
    Interpret a run of complete frames as per-channel int16 samples.

    Args:
        frames: Concatenated complete frames (length must be a multiple of the frame size)
        channels: Number of interleaved audio channels

    Returns:
        numpy int16 array shaped (n_frames, channels)
    """
    frame_size = frame_bytes_for(channels)
    if len(frames) % frame_size:
        raise MalformedInput(
            f"PCM run of {len(frames)} bytes is not a whole number of {frame_size}-byte frames"
        )
    return np.frombuffer(frames, dtype=PCM_DTYPE).reshape(-1, channels)
