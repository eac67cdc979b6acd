"""Environment-based configuration for VisionBridge."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from VISIONBRIDGE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="VISIONBRIDGE_",
        case_sensitive=False,
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"

    # Authentication (neither set = disabled); api_key wins over api_key_file
    api_key: str | None = None
    api_key_file: Path | None = None

    # Host layout: uploads/, python/inference.py and resources/model/ live here
    app_dir: Path = Path("~/.visionbridge").expanduser()
    model_file: str = "result_improved.pth"

    # Classifier interpreter (None = fall back to venv, then "python")
    python_executable: str | None = None
    python_venv_path: Path | None = None

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)

    # Input limits (None = unlimited)
    max_file_size: int | None = Field(default=5_242_880, ge=1)

    # Timeouts in seconds
    classify_timeout: float = Field(default=120.0, gt=0)
    request_timeout: float = Field(default=150.0, gt=0)

    # Client side
    bridge_url: str = "http://127.0.0.1:8083"


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()


def resolve_api_key(settings: Settings) -> str | None:
    """Return the shared bridge key used by both the host and HttpBridge.

    The inline key takes precedence; otherwise the key file is read and
    stripped. An empty key file counts as no key.

    Raises:
        OSError: If the configured key file cannot be read.
    """
    if settings.api_key:
        return settings.api_key
    if settings.api_key_file is None:
        return None
    return settings.api_key_file.read_text(encoding="utf-8").strip() or None
