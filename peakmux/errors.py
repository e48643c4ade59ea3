"""
Error types for peakmux.

Every failure of a run is reported with one of the ErrorKind values, either
on a failed ExecutionResult or as the matching exception class below.
"""

from __future__ import annotations

import enum
from typing import Optional


class ErrorKind(enum.Enum):
    """Kinds of run failure."""
    SPAWN_FAILURE = "spawn_failure"
    PROCESS_FAILURE = "process_failure"
    TIMEOUT = "timeout"
    MALFORMED_INPUT = "malformed_input"
    PROBE_FAILURE = "probe_failure"


class PeakmuxError(Exception):
    """Base class for all peakmux errors."""

    kind: ErrorKind = ErrorKind.PROCESS_FAILURE

    def __init__(self, message: str, exit_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code


class SpawnFailure(PeakmuxError):
    """The transcoder process could not be started."""

    kind = ErrorKind.SPAWN_FAILURE


class ProcessFailure(PeakmuxError):
    """The transcoder exited with a non-zero status."""

    kind = ErrorKind.PROCESS_FAILURE

    def __init__(self, message: str, exit_code: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(message, exit_code=exit_code)
        self.stderr = stderr


class ExecutionTimeout(PeakmuxError):
    """The run exceeded its wall-clock budget and the process was killed."""

    kind = ErrorKind.TIMEOUT


class MalformedInput(PeakmuxError, ValueError):
    """Invalid run configuration, rejected before any process is spawned."""

    kind = ErrorKind.MALFORMED_INPUT


class ProbeError(PeakmuxError):
    """Strict media probing failed."""

    kind = ErrorKind.PROBE_FAILURE


_ERRORS_BY_KIND = {
    ErrorKind.SPAWN_FAILURE: SpawnFailure,
    ErrorKind.PROCESS_FAILURE: ProcessFailure,
    ErrorKind.TIMEOUT: ExecutionTimeout,
    ErrorKind.MALFORMED_INPUT: MalformedInput,
    ErrorKind.PROBE_FAILURE: ProbeError,
}


def error_for_kind(kind: ErrorKind, message: str, exit_code: Optional[int] = None) -> PeakmuxError:
    """Build the exception instance matching an ErrorKind."""
    error_cls = _ERRORS_BY_KIND[kind]
    if error_cls is ProcessFailure:
        return ProcessFailure(message, exit_code=exit_code, stderr=message)
    return error_cls(message, exit_code=exit_code)
