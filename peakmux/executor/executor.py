"""
Executor facade.

FFmpegExecutor is the entry point for running one transcoder command. It
validates the run configuration, works out the PCM layout for the audio tap,
picks the runner that matches the requested channels and reports lifecycle
events to an observer.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Tuple

from peakmux.commands import declared_channels
from peakmux.config import MuxSettings
from peakmux.executor.events import ExecutionObserver, LoggingObserver
from peakmux.executor.models import ChannelId, ExecutionConfig, ExecutionResult
from peakmux.executor.multiplexer import ChannelMultiplexer
from peakmux.executor.standard import StandardRunner
from peakmux.probe import DEFAULT_CHANNELS, DEFAULT_SAMPLE_RATE, probe_audio_info
from peakmux.progress import ProgressSample
from peakmux.storage import PayloadStore

logger = logging.getLogger(__name__)


class FFmpegExecutor:
    """
    Runs transcoder commands described by ExecutionConfig.

    Observer events are delivered in order: on_started, then on_progress for
    each sample, then exactly one of on_completed / on_failed. The config's
    on_error callback is invoked exactly once for a failed run.

    Attributes:
        settings: Process-level defaults (binaries, probing behaviour)
        store: Payload destination used when streaming a payload
        observer: Lifecycle observer (default: LoggingObserver)
    """

    def __init__(
        self,
        settings: Optional[MuxSettings] = None,
        store: Optional[PayloadStore] = None,
        observer: Optional[ExecutionObserver] = None,
    ) -> None:
        self.settings = settings or MuxSettings()
        self.store = store
        self.observer = observer or LoggingObserver()

    def execute(self, config: ExecutionConfig) -> ExecutionResult:
        """
        Execute a run to completion.

        Args:
            config: Run description

        Returns:
            ExecutionResult (failed results carry error text and an ErrorKind)

        Raises:
            MalformedInput: If the config is invalid; nothing is spawned
            ProbeError: If strict probing is enabled and probing fails
        """
        config.validate()
        self._check_declared_taps(config)

        def on_progress(sample: ProgressSample) -> None:
            self.observer.on_progress(sample)
            if config.on_progress is not None:
                config.on_progress(sample)

        if config.use_multiplexer:
            channels, sample_rate = self._resolve_audio_layout(config)
            runner = ChannelMultiplexer(
                config,
                channels=channels,
                sample_rate=sample_rate,
                store=self.store,
                on_progress=on_progress,
            )
        else:
            self._prepare_destination(config)
            runner = StandardRunner(config, on_progress=on_progress)

        self.observer.on_started(config.command)
        result = runner.run()

        if result.success:
            self.observer.on_completed(result)
        else:
            self.observer.on_failed(result)
            if config.on_error is not None:
                config.on_error(result.error or "")

        return result

    def _check_declared_taps(self, config: ExecutionConfig) -> None:
        """Warn when the command's pipe:3 / pipe:4 outputs disagree with the requested taps."""
        requested = config.required_channels & {ChannelId.AUDIO, ChannelId.PAYLOAD}
        declared = declared_channels(config.command)
        if declared != requested:
            logger.warning(
                f"[EXEC] Command writes taps {sorted(c.name for c in declared)} "
                f"but the run reads {sorted(c.name for c in requested)}"
            )

    def _resolve_audio_layout(self, config: ExecutionConfig) -> Tuple[int, int]:
        """Channel count and sample rate: explicit hints, then probe, then defaults."""
        channels = config.channels
        sample_rate = config.sample_rate
        if channels is not None and sample_rate is not None:
            return channels, sample_rate

        if config.wants_peaks and config.input_path:
            info = probe_audio_info(
                config.input_path,
                ffprobe_path=self.settings.ffprobe_path,
                strict=self.settings.strict_probe,
            )
            logger.info(
                f"[EXEC] Audio layout for {config.input_path}: "
                f"{info.channels} channels at {info.sample_rate} Hz (probed={info.probed})"
            )
            channels = channels if channels is not None else info.channels
            sample_rate = sample_rate if sample_rate is not None else info.sample_rate

        return (
            channels if channels is not None else DEFAULT_CHANNELS,
            sample_rate if sample_rate is not None else DEFAULT_SAMPLE_RATE,
        )

    def _prepare_destination(self, config: ExecutionConfig) -> None:
        if not config.destination or "://" in config.destination:
            return
        Path(config.destination).parent.mkdir(parents=True, exist_ok=True)
