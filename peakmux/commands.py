"""
Transcoder argument helpers for the output taps.

The executor runs fully formed command lines and never builds them. These
helpers produce the ffmpeg arguments that wire a command to the channels the
executor reads: progress on fd 1, raw PCM on fd 3 and the encoded payload
on fd 4.
"""

import re
import shlex
from pathlib import PurePosixPath
from typing import FrozenSet, Iterable, List

from peakmux.executor.models import ChannelId

# Output containers whose muxer name differs from the file extension
_FORMAT_BY_EXTENSION = {
    "m4a": "mp4",
    "m4v": "mp4",
    "mov": "mp4",
    "aac": "adts",
    "mkv": "matroska",
    "mka": "matroska",
    "ts": "mpegts",
    "oga": "ogg",
    "opus": "ogg",
}

_PIPE_RE = re.compile(r"pipe:(\d+)")


def progress_args() -> List[str]:
    """Machine-readable progress on stdout, no interactive stats on stderr."""
    return ["-progress", "pipe:1", "-nostats"]


def pcm_tap_args(channels: int, sample_rate: int) -> List[str]:
    """
    Extra output that writes the first audio stream as s16le PCM to fd 3.

    Args:
        channels: Channel count the PCM is rendered with
        sample_rate: Sample rate the PCM is rendered with
    """
    return [
        "-map", "0:a",
        "-f", "s16le",
        "-acodec", "pcm_s16le",
        "-ar", str(sample_rate),
        "-ac", str(channels),
        "pipe:3",
    ]


def format_for(destination: str) -> str:
    """Guess the ffmpeg muxer name from a destination's extension."""
    extension = PurePosixPath(destination.split("?", 1)[0]).suffix.lstrip(".").lower()
    if not extension:
        raise ValueError(f"Cannot determine output format for {destination!r}")
    return _FORMAT_BY_EXTENSION.get(extension, extension)


def payload_tap_args(destination: str) -> List[str]:
    """
    Output that writes the encoded payload to fd 4 instead of a file.

    Pipes are not seekable, so mp4 family outputs are written fragmented.
    """
    fmt = format_for(destination)
    args = ["-f", fmt]
    if fmt == "mp4":
        args += ["-movflags", "frag_keyframe+empty_moov"]
    args.append("pipe:4")
    return args


def declared_channels(command: str) -> FrozenSet[ChannelId]:
    """Tap channels a command line writes to (pipe:3 and/or pipe:4)."""
    found = set()
    for match in _PIPE_RE.finditer(command):
        number = int(match.group(1))
        if number in (ChannelId.AUDIO, ChannelId.PAYLOAD):
            found.add(ChannelId(number))
    return frozenset(found)


def quote_args(args: Iterable[str]) -> str:
    return shlex.join(list(args))
