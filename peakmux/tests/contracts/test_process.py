"""
Contract tests for transcoder process spawning and termination.
"""

import os

import pytest

from peakmux.executor.process import kill_process_group, spawn_shell


class TestSpawnShell:
    """Descriptor mapping and session isolation."""

    @pytest.mark.timeout(10)
    def test_taps_mapped_to_fixed_descriptors(self):
        audio_read, audio_write = os.pipe()
        payload_read, payload_write = os.pipe()
        try:
            process = spawn_shell("printf A >&3; printf B >&4", taps={3: audio_write, 4: payload_write})
        finally:
            os.close(audio_write)
            os.close(payload_write)

        try:
            assert process.wait(timeout=5) == 0
            assert os.read(audio_read, 16) == b"A"
            assert os.read(payload_read, 16) == b"B"
            assert os.read(audio_read, 16) == b""
        finally:
            os.close(audio_read)
            os.close(payload_read)
            process.stdout.close()
            process.stderr.close()

    @pytest.mark.timeout(10)
    def test_runs_in_own_process_group(self):
        process = spawn_shell("exec sleep 5")
        try:
            assert os.getpgid(process.pid) == process.pid
            assert os.getpgid(process.pid) != os.getpgid(0)
        finally:
            kill_process_group(process)
            process.stdout.close()
            process.stderr.close()


class TestKillProcessGroup:
    """Group termination and reaping."""

    @pytest.mark.timeout(15)
    def test_kills_shell_and_children(self):
        process = spawn_shell("sleep 30 & sleep 30 & wait")
        returncode = kill_process_group(process, grace_period_seconds=1.0)
        assert returncode is not None
        assert process.poll() is not None
        process.stdout.close()
        process.stderr.close()

    @pytest.mark.timeout(10)
    def test_already_exited_process(self):
        process = spawn_shell("exit 4")
        process.wait(timeout=5)
        assert kill_process_group(process) == 4
        process.stdout.close()
        process.stderr.close()
