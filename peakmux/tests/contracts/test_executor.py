"""
Contract tests for the FFmpegExecutor facade.

Observer events arrive in order (started, progress*, completed | failed),
on_error fires exactly once for a failed run and malformed configuration is
rejected before anything is spawned.
"""

import logging
import shlex
from unittest.mock import Mock, patch

import pytest

from peakmux.config import MuxSettings
from peakmux.errors import ErrorKind, MalformedInput, ProbeError
from peakmux.executor.events import RecordingObserver
from peakmux.executor.executor import FFmpegExecutor
from peakmux.executor.models import ExecutionConfig, PeaksOptions
from peakmux.probe import AudioInfo


@pytest.fixture
def observer():
    return RecordingObserver()


@pytest.fixture
def executor(settings, observer):
    return FFmpegExecutor(settings, observer=observer)


class TestExecutorLifecycle:
    """Observer ordering and error callback."""

    @pytest.mark.timeout(10)
    def test_success_event_order(self, executor, observer, make_config):
        progress = []
        config = make_config(
            "printf 'time=00:00:01.00\\ntime=00:00:02.00\\n'",
            on_progress=progress.append,
        )

        result = executor.execute(config)

        assert result.success
        assert observer.names == ["started", "progress", "progress", "completed"]
        assert observer.events[0][1] == config.command
        assert observer.events[-1][1] is result
        assert [p.time for p in progress] == [1.0, 2.0]

    @pytest.mark.timeout(10)
    def test_failure_calls_on_error_once(self, executor, observer, make_config):
        on_error = Mock()
        config = make_config(
            "printf 'time=00:00:01.00\\n'; echo 'Conversion failed!' >&2; exit 1",
            peaks=PeaksOptions(),
            channels=2,
            sample_rate=44100,
            on_error=on_error,
        )

        result = executor.execute(config)

        assert not result.success
        assert result.peaks is None
        on_error.assert_called_once_with("Conversion failed!")
        assert observer.names == ["started", "progress", "failed"]

    def test_malformed_config_rejected_before_spawn(self, executor, observer):
        config = ExecutionConfig(command="ffmpeg -i in.mp3 out.mp3", stream_payload=True)

        with patch("peakmux.executor.multiplexer.spawn_shell") as mux_spawn, \
                patch("peakmux.executor.standard.spawn_shell") as std_spawn:
            with pytest.raises(MalformedInput):
                executor.execute(config)

        mux_spawn.assert_not_called()
        std_spawn.assert_not_called()
        assert observer.names == []

    @pytest.mark.timeout(10)
    def test_spawn_failure_is_failed_result(self, executor, observer, make_config):
        on_error = Mock()
        config = make_config("true", on_error=on_error)

        with patch("peakmux.executor.standard.spawn_shell", side_effect=OSError("No such file")):
            result = executor.execute(config)

        assert result.error_kind is ErrorKind.SPAWN_FAILURE
        on_error.assert_called_once()
        assert observer.names == ["started", "failed"]


class TestExecutorTapCheck:
    """Command taps compared with the requested channels."""

    @pytest.mark.timeout(10)
    def test_missing_audio_tap_is_logged(self, executor, make_config, caplog):
        config = make_config("ffmpeg -i in.mp3 out.mp3", peaks=PeaksOptions(), channels=2, sample_rate=44100)

        with caplog.at_level(logging.WARNING, logger="peakmux.executor.executor"), \
                patch("peakmux.executor.multiplexer.spawn_shell", side_effect=OSError("No such file")):
            executor.execute(config)

        assert "Command writes taps [] but the run reads ['AUDIO']" in caplog.text

    @pytest.mark.timeout(10)
    def test_unrequested_payload_tap_is_logged(self, executor, make_config, caplog):
        config = make_config("ffmpeg -i in.mp3 -f mp3 pipe:4")

        with caplog.at_level(logging.WARNING, logger="peakmux.executor.executor"), \
                patch("peakmux.executor.standard.spawn_shell", side_effect=OSError("No such file")):
            executor.execute(config)

        assert "Command writes taps ['PAYLOAD'] but the run reads []" in caplog.text

    @pytest.mark.timeout(10)
    def test_matching_taps_are_quiet(self, executor, make_config, tmp_path, caplog):
        config = make_config(
            "ffmpeg -i in.mp3 -f s16le -ac 2 -ar 44100 pipe:3 -f mp3 pipe:4",
            peaks=PeaksOptions(),
            channels=2,
            sample_rate=44100,
            stream_payload=True,
            destination=str(tmp_path / "out.mp3"),
        )

        with caplog.at_level(logging.WARNING, logger="peakmux.executor.executor"), \
                patch("peakmux.executor.multiplexer.spawn_shell", side_effect=OSError("No such file")):
            executor.execute(config)

        assert "Command writes taps" not in caplog.text


class TestExecutorRunnerSelection:
    """Standard vs multiplexed runs and audio layout resolution."""

    @pytest.mark.timeout(10)
    def test_standard_mode_creates_output_directory(self, executor, make_config, tmp_path):
        destination = tmp_path / "nested" / "out" / "file.mp3"
        config = make_config(f"printf ok > {shlex.quote(str(destination))}", destination=str(destination))

        result = executor.execute(config)

        assert result.success
        assert destination.read_text() == "ok"

    @pytest.mark.timeout(10)
    def test_hints_skip_probe(self, executor, make_config, stereo_pcm, pcm_file):
        config = make_config(
            f"cat {shlex.quote(str(pcm_file(stereo_pcm)))} >&3",
            peaks=PeaksOptions(samples_per_pixel=2),
            input_path="in.mp3",
            channels=2,
            sample_rate=48000,
        )

        with patch("peakmux.executor.executor.probe_audio_info") as probe:
            result = executor.execute(config)

        probe.assert_not_called()
        assert result.peaks.data == [100, 300, 200, 400]
        assert result.peaks.sample_rate == 48000

    @pytest.mark.timeout(10)
    def test_probe_fills_missing_layout(self, executor, make_config, mono_pcm, pcm_file):
        config = make_config(
            f"cat {shlex.quote(str(pcm_file(mono_pcm)))} >&3",
            peaks=PeaksOptions(samples_per_pixel=4),
            input_path="voice.wav",
        )

        with patch(
            "peakmux.executor.executor.probe_audio_info",
            return_value=AudioInfo(channels=1, sample_rate=22050),
        ) as probe:
            result = executor.execute(config)

        probe.assert_called_once_with("voice.wav", ffprobe_path="ffprobe", strict=False)
        assert result.peaks.channels == 1
        assert result.peaks.sample_rate == 22050
        assert result.peaks.data == [-400, 300]

    @pytest.mark.timeout(10)
    def test_defaults_without_input_or_hints(self, executor, make_config, stereo_pcm, pcm_file):
        config = make_config(
            f"cat {shlex.quote(str(pcm_file(stereo_pcm)))} >&3",
            peaks=PeaksOptions(samples_per_pixel=2),
        )

        result = executor.execute(config)

        assert result.peaks.channels == 2
        assert result.peaks.sample_rate == 44100

    def test_strict_probe_failure_propagates(self, observer, make_config):
        executor = FFmpegExecutor(MuxSettings(strict_probe=True), observer=observer)
        config = make_config("true", peaks=PeaksOptions(), input_path="missing.mp3")

        with patch("peakmux.executor.executor.probe_audio_info", side_effect=ProbeError("no stream")):
            with pytest.raises(ProbeError):
                executor.execute(config)

        assert observer.names == []
