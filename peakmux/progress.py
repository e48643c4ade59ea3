"""
Transcoder progress parsing.

ffmpeg reports progress either as a padded status line

    frame=  123 fps= 45 q=28.0 size=    1024kB time=00:00:05.00 bitrate=1677.7kbits/s speed=1.5x

or, with -progress, as blocks of key=value lines (fps=30.00, out_time=00:00:05.000000,
speed=1.5x) closed by progress=continue or progress=end. A status line is a
progress line only if it carries a time=HH:MM:SS.ss field; a -progress block
yields one sample when its terminator arrives.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

_TIME_RE = re.compile(r"time\s*=\s*(\d+):(\d+):(\d+(?:\.\d+)?)")
_FPS_RE = re.compile(r"fps\s*=\s*(\d+\.?\d*)")
_SPEED_RE = re.compile(r"speed\s*=\s*(\d+\.?\d*)\s*x")
_KEY_VALUE_RE = re.compile(r"^\s*([a-z0-9_]+)=\s*(\S*)\s*$")
_CLOCK_RE = re.compile(r"(\d+):(\d+):(\d+(?:\.\d+)?)")
_NUMBER_RE = re.compile(r"(\d+\.?\d*)")
_MULTIPLIER_RE = re.compile(r"(\d+\.?\d*)\s*x")

# Keys ffmpeg writes in a -progress block, besides the progress= terminator
PROGRESS_BLOCK_KEYS = frozenset([
    "frame", "fps", "bitrate", "total_size", "out_time_us", "out_time_ms",
    "out_time", "dup_frames", "drop_frames", "speed",
])


@dataclass(frozen=True)
class ProgressSample:
    """One progress report: elapsed media seconds, optional fps and speed multiplier."""
    time: float
    fps: Optional[float] = None
    speed: Optional[float] = None


def parse_progress(line: str) -> Optional[ProgressSample]:
    """
    Extract progress metrics from one line of transcoder output.

    Returns:
        ProgressSample, or None when the line has no time= anchor
    """
    time_match = _TIME_RE.search(line)
    if not time_match:
        return None

    hours, minutes, seconds = time_match.groups()
    elapsed = int(hours) * 3600 + int(minutes) * 60 + float(seconds)

    fps_match = _FPS_RE.search(line)
    speed_match = _SPEED_RE.search(line)

    return ProgressSample(
        time=elapsed,
        fps=float(fps_match.group(1)) if fps_match else None,
        speed=float(speed_match.group(1)) if speed_match else None,
    )


class ProgressParser:
    """
    Turns transcoder output lines into ProgressSamples.

    -progress key=value lines are collected until the progress= terminator
    and reported together as one sample. Any other line is parsed on its own
    by parse_progress().
    """

    def __init__(self) -> None:
        self._block: Dict[str, str] = {}

    def feed(self, line: str) -> Optional[ProgressSample]:
        """Consume one line; return a sample when the line completes one."""
        match = _KEY_VALUE_RE.match(line)
        if match:
            key, value = match.groups()
            if key == "progress":
                return self._close_block()
            if key in PROGRESS_BLOCK_KEYS or key.startswith("stream_"):
                self._block[key] = value
                return None
        return parse_progress(line)

    def flush(self) -> Optional[ProgressSample]:
        """Report a block cut off before its terminator, if it carried a time."""
        return self._close_block()

    def _close_block(self) -> Optional[ProgressSample]:
        block, self._block = self._block, {}
        elapsed = _block_time(block)
        if elapsed is None:
            return None
        return ProgressSample(
            time=elapsed,
            fps=_match_float(_NUMBER_RE, block.get("fps")),
            speed=_match_float(_MULTIPLIER_RE, block.get("speed")),
        )


def _block_time(block: Dict[str, str]) -> Optional[float]:
    clock = _CLOCK_RE.fullmatch(block.get("out_time", ""))
    if clock:
        hours, minutes, seconds = clock.groups()
        return int(hours) * 3600 + int(minutes) * 60 + float(seconds)
    # out_time_ms is in microseconds too
    for key in ("out_time_us", "out_time_ms"):
        value = block.get(key, "")
        if value.isdigit():
            return int(value) / 1_000_000
    return None


def _match_float(pattern: re.Pattern, value: Optional[str]) -> Optional[float]:
    if value is None:
        return None
    match = pattern.fullmatch(value)
    return float(match.group(1)) if match else None


class LineSplitter:
    """
    Incremental line splitter for a byte stream.

    Carries a partial line across chunks. Both \\n and \\r terminate a line
    (ffmpeg rewrites its status line with \\r); empty lines are dropped.
    """

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._partial = ""

    def feed(self, chunk: bytes) -> List[str]:
        """Return the complete lines finished by this chunk, in order."""
        text = self._partial + self._decoder.decode(chunk)
        parts = re.split(r"\r\n|\r|\n", text)
        self._partial = parts.pop()
        return [part for part in parts if part]

    def flush(self) -> List[str]:
        """Return the trailing unterminated line, if any."""
        rest, self._partial = self._partial + self._decoder.decode(b"", final=True), ""
        return [rest] if rest else []
