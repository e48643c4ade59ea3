"""
Run lifecycle observers.

The executor notifies an observer in a fixed order: on_started first, then
zero or more on_progress, then exactly one of on_completed / on_failed.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Tuple

from peakmux.progress import ProgressSample

if TYPE_CHECKING:
    from peakmux.executor.models import ExecutionResult

logger = logging.getLogger(__name__)


class ExecutionObserver:
    """Base observer; every hook is a no-op."""

    def on_started(self, command: str) -> None:
        pass

    def on_progress(self, sample: ProgressSample) -> None:
        pass

    def on_completed(self, result: "ExecutionResult") -> None:
        pass

    def on_failed(self, result: "ExecutionResult") -> None:
        pass


class LoggingObserver(ExecutionObserver):
    """Logs lifecycle events; the executor's default observer."""

    def on_started(self, command: str) -> None:
        logger.info("[EXEC] Transcoder run started", extra={"command": command})

    def on_progress(self, sample: ProgressSample) -> None:
        logger.debug(f"[EXEC] progress time={sample.time:.2f}s fps={sample.fps} speed={sample.speed}")

    def on_completed(self, result: "ExecutionResult") -> None:
        logger.info(f"[EXEC] Transcoder run completed in {result.duration:.2f}s")

    def on_failed(self, result: "ExecutionResult") -> None:
        kind = result.error_kind.value if result.error_kind else "unknown"
        logger.error(f"[EXEC] Transcoder run failed ({kind}, exit code: {result.exit_code})")


class RecordingObserver(ExecutionObserver):
    """Records (event, payload) tuples in the order they were delivered."""

    def __init__(self) -> None:
        self.events: List[Tuple[str, object]] = []

    @property
    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def on_started(self, command: str) -> None:
        self.events.append(("started", command))

    def on_progress(self, sample: ProgressSample) -> None:
        self.events.append(("progress", sample))

    def on_completed(self, result: "ExecutionResult") -> None:
        self.events.append(("completed", result))

    def on_failed(self, result: "ExecutionResult") -> None:
        self.events.append(("failed", result))
