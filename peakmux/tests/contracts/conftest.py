"""
Shared pytest fixtures for peakmux contract tests.
"""
import os
import threading

import numpy as np
import pytest

from peakmux.config import MuxSettings
from peakmux.executor.models import ExecutionConfig

from _pcm_harness import pcm_bytes


@pytest.fixture
def mono_pcm():
    """Four mono frames: [100, -200, 300, -400]."""
    return pcm_bytes([100, -200, 300, -400])


@pytest.fixture
def stereo_pcm():
    """Two stereo frames: [100, 200], [300, 400]."""
    return pcm_bytes([100, 200, 300, 400], channels=2)


@pytest.fixture
def sine_pcm():
    """One second of a 440 Hz stereo sine at 8 kHz, as (bytes, samples)."""
    t = np.arange(8000) / 8000.0
    wave = (np.sin(2 * np.pi * 440 * t) * 20000).astype("<i2")
    samples = np.stack([wave, -wave], axis=1)
    return samples.tobytes(), samples


@pytest.fixture
def pcm_file(tmp_path):
    """Write PCM bytes to a file a shell command can cat onto a tap."""
    def _write(data, name="audio.pcm"):
        path = tmp_path / name
        path.write_bytes(data)
        return path
    return _write


@pytest.fixture
def settings():
    return MuxSettings(timeout_sec=10.0, select_timeout_ms=20)


@pytest.fixture
def make_config(settings):
    """Build an ExecutionConfig with short test timeouts."""
    def _make(command, **overrides):
        return ExecutionConfig.from_settings(settings, command, **overrides)
    return _make


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Strip PEAKMUX_* variables and point the env file at a missing path."""
    for name in list(os.environ):
        if name.startswith("PEAKMUX_"):
            monkeypatch.delenv(name)
    monkeypatch.setenv("PEAKMUX_ENV_FILE", str(tmp_path / "missing.env"))
    yield monkeypatch
    # load_dotenv writes os.environ directly
    for name in list(os.environ):
        if name.startswith("PEAKMUX_"):
            os.environ.pop(name)


@pytest.fixture
def thread_leak_guard():
    """
    Detect threads left running by a test.

    Request explicitly in tests that start runner threads.
    """
    before = set(t.ident for t in threading.enumerate())
    yield
    after = set(t.ident for t in threading.enumerate())
    leaked = [t for t in threading.enumerate() if t.ident in after - before and t.is_alive()]
    if leaked:
        thread_info = '\n'.join(f"  - {t.name} (daemon={t.daemon})" for t in leaked)
        assert False, f"Thread leak detected, runner did not shut down.\nLeaked threads:\n{thread_info}"
