"""
Transcoder process spawning and termination.

Commands run under /bin/sh in their own session so the whole process group
(shell plus transcoder) can be signalled on timeout. Extra output taps are
mapped onto fixed descriptor numbers in the child (fd 3 = PCM audio,
fd 4 = encoded payload).
"""

from __future__ import annotations

import fcntl
import logging
import os
import signal
import subprocess
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

SHELL = "/bin/sh"

# Tap descriptors are staged above this number before being moved into place,
# so a source descriptor can never be overwritten by an earlier dup2().
_STAGING_FD_MIN = 10


def spawn_shell(
    command: str,
    taps: Optional[Mapping[int, int]] = None,
    stdout: int = subprocess.PIPE,
    stderr: int = subprocess.PIPE,
) -> subprocess.Popen:
    """
    Start a shell command with optional extra output descriptors.

    Args:
        command: Fully formed shell command line
        taps: Mapping of child descriptor number -> parent write end of a pipe
        stdout: stdout disposition for Popen
        stderr: stderr disposition for Popen

    Returns:
        The started process. stdin is a pipe that is already closed.

    Raises:
        OSError: If the process could not be started
        subprocess.SubprocessError: If child setup failed before exec
    """
    tap_items = sorted((taps or {}).items())

    def _child_setup() -> None:
        # Own session: killpg() reaches the transcoder, not just the shell
        os.setsid()
        staged = [(target, fcntl.fcntl(fd, fcntl.F_DUPFD_CLOEXEC, _STAGING_FD_MIN)) for target, fd in tap_items]
        for target, fd in staged:
            os.dup2(fd, target)

    # close_fds stays off: it would close the mapped tap descriptors after
    # _child_setup runs. Python-created descriptors are non-inheritable and
    # close on exec anyway.
    process = subprocess.Popen(
        [SHELL, "-c", command],
        stdin=subprocess.PIPE,
        stdout=stdout,
        stderr=stderr,
        bufsize=0,
        close_fds=False,
        preexec_fn=_child_setup,
    )
    if process.stdin is not None:
        process.stdin.close()

    logger.debug("[PROCESS] transcoder started", extra={"pid": process.pid, "taps": [t for t, _ in tap_items]})
    return process


def kill_process_group(process: subprocess.Popen, grace_period_seconds: float = 2.0) -> Optional[int]:
    """
    Terminate the process group of a spawned command and reap it.

    Sends SIGTERM to the group, waits for a clean exit, then SIGKILLs the group.
    Safe to call on a process that has already exited.

    Returns:
        The process return code, or None if it could not be reaped
    """
    if process.poll() is not None:
        logger.debug(f"[PROCESS] process already exited (pid={process.pid})")
        _signal_group(process.pid, signal.SIGKILL)  # stragglers left by the shell
        return process.returncode

    _signal_group(process.pid, signal.SIGTERM)
    try:
        return process.wait(timeout=grace_period_seconds)
    except subprocess.TimeoutExpired:
        logger.warning(f"[PROCESS] SIGKILL sent (grace period exceeded, pid={process.pid})")
    finally:
        _signal_group(process.pid, signal.SIGKILL)

    try:
        return process.wait(timeout=1.0)
    except subprocess.TimeoutExpired:
        logger.error(f"[PROCESS] process group did not exit after SIGKILL (pid={process.pid})")
        return None


def _signal_group(pgid: int, sig: int) -> None:
    try:
        os.killpg(pgid, sig)
    except ProcessLookupError:
        pass
    except PermissionError as e:
        logger.warning(f"[PROCESS] cannot signal process group {pgid}: {e}")
