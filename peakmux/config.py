"""
Configuration management for peakmux.

Reads configuration from an optional .env file and environment variables with
sensible defaults. Settings are returned as a value and passed explicitly into
the executor; nothing here is process-global.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv


# Default .env file location
DEFAULT_ENV_FILE = Path("/etc/peakmux/peakmux.env")

VALID_PEAKS_FORMATS = ("simple", "full")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

logger = logging.getLogger(__name__)


def _load_env_file() -> None:
    """Load environment variables from .env file if it exists."""
    env_file = os.getenv("PEAKMUX_ENV_FILE", str(DEFAULT_ENV_FILE))
    env_path = Path(env_file)

    if env_path.exists():
        load_dotenv(env_path, override=False)  # Don't override existing env vars


def _env_int(name: str, default: str) -> int:
    raw = os.getenv(name, default)
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: {raw} (must be an integer)")


def _env_float(name: str, default: str) -> float:
    raw = os.getenv(name, default)
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Invalid {name}: {raw} (must be a number)")


def _env_bool(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class MuxSettings:
    """Process-level defaults loaded from .env file and environment variables."""

    # Binaries
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"

    # Execution
    timeout_sec: float = 3600.0
    read_chunk_size: int = 8192
    select_timeout_ms: int = 100

    # Payload spooling (bytes kept in memory before spilling to a temp file)
    spool_max_bytes: int = 16 * 1024 * 1024

    # Peaks
    peaks_format: str = "simple"
    samples_per_pixel: int = 512
    strict_probe: bool = False

    # Logging
    log_level: str = "INFO"

    @property
    def select_timeout(self) -> float:
        """Per-iteration readiness wait in seconds."""
        return self.select_timeout_ms / 1000.0

    @classmethod
    def load(cls) -> "MuxSettings":
        """
        Load settings from environment variables.

        Returns:
            MuxSettings instance with loaded values

        Raises:
            ValueError: If a variable cannot be parsed or a value is out of range
        """
        # Load .env file first (if it exists)
        _load_env_file()

        settings = cls(
            ffmpeg_path=os.getenv("PEAKMUX_FFMPEG_PATH", "ffmpeg"),
            ffprobe_path=os.getenv("PEAKMUX_FFPROBE_PATH", "ffprobe"),
            timeout_sec=_env_float("PEAKMUX_TIMEOUT_SEC", "3600"),
            read_chunk_size=_env_int("PEAKMUX_READ_CHUNK_SIZE", "8192"),
            select_timeout_ms=_env_int("PEAKMUX_SELECT_TIMEOUT_MS", "100"),
            spool_max_bytes=_env_int("PEAKMUX_SPOOL_MAX_BYTES", str(16 * 1024 * 1024)),
            peaks_format=os.getenv("PEAKMUX_PEAKS_FORMAT", "simple").strip().lower(),
            samples_per_pixel=_env_int("PEAKMUX_SAMPLES_PER_PIXEL", "512"),
            strict_probe=_env_bool("PEAKMUX_STRICT_PROBE"),
            log_level=os.getenv("PEAKMUX_LOG_LEVEL", "INFO"),
        )

        settings.validate()

        return settings

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ValueError: If configuration is invalid
        """
        if not self.ffmpeg_path:
            raise ValueError("PEAKMUX_FFMPEG_PATH cannot be empty")

        if not self.ffprobe_path:
            raise ValueError("PEAKMUX_FFPROBE_PATH cannot be empty")

        if self.timeout_sec <= 0:
            raise ValueError(f"Invalid timeout: {self.timeout_sec} (must be > 0)")

        if self.read_chunk_size <= 0:
            raise ValueError(f"Invalid read chunk size: {self.read_chunk_size} (must be > 0)")

        if self.select_timeout_ms <= 0:
            raise ValueError(f"Invalid select timeout: {self.select_timeout_ms} (must be > 0)")

        if self.spool_max_bytes < 0:
            raise ValueError(f"Invalid spool size: {self.spool_max_bytes} (must be >= 0)")

        if self.samples_per_pixel < 1:
            raise ValueError(f"Invalid samples per pixel: {self.samples_per_pixel} (must be >= 1)")

        if self.peaks_format not in VALID_PEAKS_FORMATS:
            raise ValueError(
                f"Invalid PEAKMUX_PEAKS_FORMAT: {self.peaks_format} "
                f"(must be one of: {', '.join(VALID_PEAKS_FORMATS)})"
            )

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(
                f"Invalid log level: {self.log_level} "
                f"(must be one of: {', '.join(VALID_LOG_LEVELS)})"
            )


def load_settings() -> MuxSettings:
    """
    Load and validate peakmux settings from environment variables.

    Returns:
        MuxSettings instance with loaded and validated values

    Raises:
        ValueError: If configuration is invalid
    """
    try:
        return MuxSettings.load()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        raise
