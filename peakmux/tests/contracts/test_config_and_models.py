"""
Contract tests for settings loading and run configuration records.
"""

import pytest

from peakmux.audio.peaks import PeaksResult
from peakmux.config import MuxSettings, load_settings
from peakmux.errors import ErrorKind, ExecutionTimeout, MalformedInput, ProcessFailure
from peakmux.executor.models import ChannelId, ExecutionConfig, ExecutionResult, PeaksOptions


class TestMuxSettings:
    """Environment and .env driven settings."""

    def test_defaults(self, clean_env):
        settings = MuxSettings.load()
        assert settings.ffmpeg_path == "ffmpeg"
        assert settings.timeout_sec == 3600.0
        assert settings.select_timeout == pytest.approx(0.1)
        assert settings.peaks_format == "simple"
        assert settings.strict_probe is False

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("PEAKMUX_FFMPEG_PATH", "/opt/ffmpeg/bin/ffmpeg")
        clean_env.setenv("PEAKMUX_TIMEOUT_SEC", "12.5")
        clean_env.setenv("PEAKMUX_PEAKS_FORMAT", "FULL")
        clean_env.setenv("PEAKMUX_STRICT_PROBE", "yes")
        settings = MuxSettings.load()
        assert settings.ffmpeg_path == "/opt/ffmpeg/bin/ffmpeg"
        assert settings.timeout_sec == 12.5
        assert settings.peaks_format == "full"
        assert settings.strict_probe is True

    def test_env_file_does_not_override_environment(self, clean_env, tmp_path):
        env_file = tmp_path / "peakmux.env"
        env_file.write_text("PEAKMUX_SAMPLES_PER_PIXEL=256\nPEAKMUX_READ_CHUNK_SIZE=4096\n")
        clean_env.setenv("PEAKMUX_ENV_FILE", str(env_file))
        clean_env.setenv("PEAKMUX_READ_CHUNK_SIZE", "1024")
        settings = MuxSettings.load()
        assert settings.samples_per_pixel == 256
        assert settings.read_chunk_size == 1024

    @pytest.mark.parametrize("name,value", [
        ("PEAKMUX_TIMEOUT_SEC", "soon"),
        ("PEAKMUX_TIMEOUT_SEC", "0"),
        ("PEAKMUX_READ_CHUNK_SIZE", "-1"),
        ("PEAKMUX_PEAKS_FORMAT", "csv"),
        ("PEAKMUX_LOG_LEVEL", "LOUD"),
    ])
    def test_invalid_values_rejected(self, clean_env, name, value):
        clean_env.setenv(name, value)
        with pytest.raises(ValueError):
            load_settings()


class TestExecutionConfig:
    """Channel derivation and validation."""

    def test_plain_run_uses_two_channels(self):
        config = ExecutionConfig(command="ffmpeg -i a.mp3 b.mp3")
        assert not config.use_multiplexer
        assert config.required_channels == {ChannelId.PROGRESS, ChannelId.ERROR}

    def test_peaks_add_audio_tap(self):
        config = ExecutionConfig(command="x", peaks=PeaksOptions())
        assert config.use_multiplexer
        assert ChannelId.AUDIO in config.required_channels
        assert ChannelId.PAYLOAD not in config.required_channels

    def test_stream_payload_adds_payload_tap(self):
        config = ExecutionConfig(command="x", stream_payload=True, destination="out.mp3")
        assert config.use_multiplexer
        assert config.required_channels == {ChannelId.PROGRESS, ChannelId.ERROR, ChannelId.PAYLOAD}

    def test_from_settings_copies_execution_defaults(self):
        settings = MuxSettings(timeout_sec=5.0, read_chunk_size=1024, select_timeout_ms=50)
        config = ExecutionConfig.from_settings(settings, "x", timeout=2.0)
        assert config.timeout == 2.0
        assert config.read_chunk_size == 1024
        assert config.select_timeout == pytest.approx(0.05)

    @pytest.mark.parametrize("kwargs", [
        {"command": "   "},
        {"command": "x", "timeout": 0},
        {"command": "x", "read_chunk_size": 0},
        {"command": "x", "channels": 0},
        {"command": "x", "stream_payload": True},
    ])
    def test_validate_rejects_malformed(self, kwargs):
        with pytest.raises(MalformedInput):
            ExecutionConfig(**kwargs).validate()

    @pytest.mark.parametrize("kwargs", [
        {"samples_per_pixel": 0},
        {"samples_per_pixel": 1.5},
        {"normalize_range": [0]},
    ])
    def test_peaks_options_rejects_malformed(self, kwargs):
        with pytest.raises(MalformedInput):
            PeaksOptions(**kwargs)


class TestExecutionResult:
    """Terminal outcome records."""

    def test_failed_result_cannot_carry_peaks(self):
        peaks = PeaksResult(channels=1, sample_rate=8000, samples_per_pixel=1, bits=16, length=0)
        with pytest.raises(ValueError):
            ExecutionResult(success=False, peaks=peaks, error="boom")

    def test_raise_for_status_maps_error_kind(self):
        timeout = ExecutionResult.failed(ErrorKind.TIMEOUT, "too slow", exit_code=-15)
        with pytest.raises(ExecutionTimeout):
            timeout.raise_for_status()

        failure = ExecutionResult.failed(ErrorKind.PROCESS_FAILURE, "bad input", exit_code=1)
        with pytest.raises(ProcessFailure) as exc_info:
            failure.raise_for_status()
        assert exc_info.value.exit_code == 1
        assert exc_info.value.stderr == "bad input"

    def test_raise_for_status_returns_success(self):
        result = ExecutionResult.succeeded(duration=1.0)
        assert result.raise_for_status() is result
