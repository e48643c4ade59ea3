"""
Per-channel byte accumulator for the multiplexer's binary taps.
"""

from __future__ import annotations

from peakmux.audio.frame_decoder import BytesLike, decode_frames


class ChannelBuffer:
    """
    Append-only byte accumulator with a consumed cursor.

    Bytes before the cursor have already been handed out as complete frames.
    Consumed bytes are compacted away once they make up at least half of the
    backing storage, so a long run does not grow memory without bound and
    does not reallocate on every take.

    Owned by exactly one multiplexer run and mutated only by its read loop.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._data = bytearray()
        self._cursor = 0
        self._closed = False
        self.total_bytes = 0

    def __len__(self) -> int:
        return len(self._data) - self._cursor

    @property
    def closed(self) -> bool:
        return self._closed

    def append(self, data: BytesLike) -> None:
        """Append a chunk read from the pipe."""
        if self._closed:
            raise ValueError(f"ChannelBuffer {self.name} is closed")
        self._data.extend(data)
        self.total_bytes += len(data)

    def take_frames(self, frame_size: int) -> bytes:
        """
        Return every complete frame after the cursor and advance past them.

        Args:
            frame_size: Width of one frame in bytes

        Returns:
            Concatenated complete frames (empty if fewer than frame_size bytes are pending)

        Raises:
            MalformedInput: If frame_size < 1
        """
        frames, remainder = decode_frames(self.pending(), frame_size)
        if not frames:
            return b""

        self._cursor = len(self._data) - len(remainder)
        self._compact()
        return b"".join(frames)

    def pending(self) -> bytes:
        """Bytes received but not yet consumed as a complete frame."""
        return bytes(self._data[self._cursor:])

    def close(self) -> None:
        self._data = bytearray()
        self._cursor = 0
        self._closed = True

    def _compact(self) -> None:
        if self._cursor and self._cursor * 2 >= len(self._data):
            del self._data[:self._cursor]
            self._cursor = 0
