"""
Audio stream probing with ffprobe.

The PCM tap is decoded with the input's own channel count and sample rate, so
these must be known before the read loop starts. When probing fails the run
falls back to 2 channels at 44100 Hz unless strict probing is requested.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Any, Dict, Optional

from peakmux.errors import ProbeError

logger = logging.getLogger(__name__)

# Fallback audio layout when probing fails
DEFAULT_CHANNELS = 2
DEFAULT_SAMPLE_RATE = 44100


@dataclass(frozen=True)
class AudioInfo:
    channels: int
    sample_rate: int
    probed: bool = True


DEFAULT_AUDIO_INFO = AudioInfo(channels=DEFAULT_CHANNELS, sample_rate=DEFAULT_SAMPLE_RATE, probed=False)


def probe_audio_info(
    path: str,
    ffprobe_path: str = "ffprobe",
    timeout: Optional[float] = 30.0,
    strict: bool = False,
) -> AudioInfo:
    """
    Read channel count and sample rate of the first audio stream.

    Args:
        path: Media file or URL
        ffprobe_path: ffprobe binary
        timeout: Seconds to wait for ffprobe
        strict: Raise ProbeError instead of falling back to defaults

    Returns:
        AudioInfo for the first audio stream, or DEFAULT_AUDIO_INFO on failure

    Raises:
        ProbeError: If strict is set and probing fails
    """
    cmd = [
        ffprobe_path,
        "-v", "quiet",
        "-print_format", "json",
        "-show_streams",
        "-select_streams", "a:0",
        path,
    ]

    try:
        proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, timeout=timeout)
        if proc.returncode != 0:
            raise ProbeError(
                f"ffprobe failed (exit code: {proc.returncode}): {proc.stderr.decode(errors='ignore')[-2000:]}",
                exit_code=proc.returncode,
            )
        return audio_info_from_probe(json.loads(proc.stdout or b"{}"))
    except (OSError, subprocess.TimeoutExpired, ValueError, ProbeError) as e:
        if strict:
            if isinstance(e, ProbeError):
                raise
            raise ProbeError(f"ffprobe failed for {path}: {e}") from e
        logger.warning(
            f"[PROBE] Could not probe {path} ({e}); assuming "
            f"{DEFAULT_AUDIO_INFO.channels} channels at {DEFAULT_AUDIO_INFO.sample_rate} Hz"
        )
        return DEFAULT_AUDIO_INFO


def audio_info_from_probe(data: Dict[str, Any]) -> AudioInfo:
    """
    Extract AudioInfo from ffprobe JSON output.

    Missing fields fall back to the defaults individually.

    Raises:
        ProbeError: If the output has no audio stream
    """
    streams = data.get("streams") or []
    if not streams:
        raise ProbeError("No audio stream found in file")

    stream = streams[0]
    return AudioInfo(
        channels=int(stream.get("channels") or DEFAULT_CHANNELS),
        sample_rate=int(stream.get("sample_rate") or DEFAULT_SAMPLE_RATE),
    )
