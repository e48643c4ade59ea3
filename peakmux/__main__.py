#!/usr/bin/env python3
"""
peakmux command line entry point.

Transcodes INPUT to OUTPUT with ffmpeg and, on request, extracts waveform
peaks from the same pass: python3 -m peakmux INPUT OUTPUT --peaks peaks.json
"""

import argparse
import logging
import sys
from typing import List, Optional

import httpx

from peakmux.audio.peaks import write_peaks_file
from peakmux.commands import payload_tap_args, pcm_tap_args, progress_args, quote_args
from peakmux.config import load_settings
from peakmux.errors import PeakmuxError
from peakmux.executor.executor import FFmpegExecutor
from peakmux.executor.models import ExecutionConfig, PeaksOptions
from peakmux.probe import probe_audio_info
from peakmux.progress import ProgressSample
from peakmux.storage import HttpPutStore, LocalFileStore, PayloadStore

logger = logging.getLogger("peakmux")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="peakmux",
        description="Run ffmpeg and extract waveform peaks from the same pass.",
    )
    parser.add_argument("input", help="Input media file or URL")
    parser.add_argument("output", help="Output path (or object key with --upload-url)")
    parser.add_argument("--peaks", metavar="FILE", help="Write waveform peaks JSON to FILE")
    parser.add_argument("--samples-per-pixel", type=int, default=None, help="Frames per peak window")
    parser.add_argument(
        "--normalize",
        nargs=2,
        type=float,
        metavar=("LOW", "HIGH"),
        help="Map peaks linearly into [LOW, HIGH]",
    )
    parser.add_argument("--format", choices=("simple", "full"), default=None, help="Peaks JSON layout")
    parser.add_argument(
        "--stream",
        action="store_true",
        help="Capture the encoded output from the process and hand it to storage",
    )
    parser.add_argument("--upload-url", help="Upload the streamed output with HTTP PUT under this base URL")
    parser.add_argument("--timeout", type=float, default=None, help="Wall-clock budget in seconds")
    return parser


def build_command(
    ffmpeg_path: str,
    input_path: str,
    output: str,
    pcm_layout: Optional[tuple] = None,
    stream: bool = False,
) -> str:
    """Compose the ffmpeg command line for one run."""
    args: List[str] = [ffmpeg_path, "-hide_banner", "-y", "-i", input_path]
    args += progress_args()
    if stream:
        args += payload_tap_args(output)
    else:
        args.append(output)
    if pcm_layout is not None:
        channels, sample_rate = pcm_layout
        args += pcm_tap_args(channels, sample_rate)
    return quote_args(args)


def _print_progress(sample: ProgressSample) -> None:
    parts = [f"time={sample.time:.2f}s"]
    if sample.fps is not None:
        parts.append(f"fps={sample.fps:g}")
    if sample.speed is not None:
        parts.append(f"speed={sample.speed:g}x")
    print("\r" + " ".join(parts), end="", file=sys.stderr, flush=True)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = load_settings()
    except ValueError:
        return 1

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    )
    # Suppress per-request httpx INFO logging
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if args.upload_url and not args.stream:
        logger.error("--upload-url requires --stream")
        return 1

    try:
        peaks = None
        pcm_layout = None
        if args.peaks:
            peaks = PeaksOptions(
                samples_per_pixel=args.samples_per_pixel or settings.samples_per_pixel,
                normalize_range=tuple(args.normalize) if args.normalize else None,
            )
            info = probe_audio_info(args.input, ffprobe_path=settings.ffprobe_path, strict=settings.strict_probe)
            pcm_layout = (info.channels, info.sample_rate)

        command = build_command(settings.ffmpeg_path, args.input, args.output, pcm_layout, args.stream)
        overrides = {}
        if args.timeout is not None:
            overrides["timeout"] = args.timeout
        if pcm_layout is not None:
            overrides["channels"], overrides["sample_rate"] = pcm_layout

        config = ExecutionConfig.from_settings(
            settings,
            command,
            peaks=peaks,
            stream_payload=args.stream,
            destination=args.output,
            input_path=args.input,
            on_progress=_print_progress,
            **overrides,
        )

        store: PayloadStore = HttpPutStore(args.upload_url) if args.upload_url else LocalFileStore()
        try:
            result = FFmpegExecutor(settings, store=store).execute(config)
        finally:
            if isinstance(store, HttpPutStore):
                store.close()
        print(file=sys.stderr)
    except (PeakmuxError, ValueError, OSError, httpx.HTTPError) as e:
        logger.error(f"peakmux failed: {e}")
        return 1

    if not result.success:
        logger.error(f"Transcoding failed ({result.error_kind.value}): {result.error}")
        return 1

    if result.peaks is not None:
        path = write_peaks_file(args.peaks, result.peaks, args.format or settings.peaks_format)
        logger.info(f"Wrote {result.peaks.length} peak windows to {path}")

    logger.info(f"Done in {result.duration:.2f}s: {result.destination or args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
