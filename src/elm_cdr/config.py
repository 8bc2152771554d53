"""
ELM CDR Configuration

Environment-driven settings built on pydantic-settings. Values may also come
from a `.env` file in the working directory; real environment variables win.

    MODAL_VALIDATION_URL   validation endpoint; empty disables validation
    LOG_LEVEL              DEBUG | INFO | WARNING | ERROR
    LOG_FORMAT             json | text
    CDR_DEBUG              write finished spans as JSONL under CDR_TRACE_DIR
    CDR_TRACE_DIR          trace export directory
"""

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_MODAL_VALIDATION_URL = (
    "https://drlalithapranathi--elm-validator-fastapi-app.modal.run/validate"
)

_ENV_CONFIG = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


class ValidationSettings(BaseSettings):
    """Remote ELM validation service."""

    model_config = _ENV_CONFIG

    # Empty string disables validation entirely
    modal_validation_url: str = Field(
        default=DEFAULT_MODAL_VALIDATION_URL, alias="MODAL_VALIDATION_URL"
    )

    @field_validator("modal_validation_url", mode="before")
    @classmethod
    def strip_url(cls, v: str | None) -> str:
        """Treat None and whitespace-only values as unset."""
        if v is None:
            return ""
        return str(v).strip()

    @property
    def enabled(self) -> bool:
        """Whether a validation endpoint is configured."""
        return bool(self.modal_validation_url)


class ObservabilitySettings(BaseSettings):
    """Log output and trace export."""

    model_config = _ENV_CONFIG

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", alias="LOG_LEVEL"
    )
    log_format: Literal["json", "text"] = Field(default="json", alias="LOG_FORMAT")
    debug: bool = Field(default=False, alias="CDR_DEBUG")
    trace_dir: Path = Field(default=Path("/data/cdr/traces"), alias="CDR_TRACE_DIR")

    @field_validator("log_level", mode="before")
    @classmethod
    def upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v

    @field_validator("trace_dir", mode="before")
    @classmethod
    def expand_trace_dir(cls, v: str | Path) -> Path:
        return Path(v).expanduser().resolve()

    @property
    def trace_export_path(self) -> Path | None:
        """Directory for JSONL span export, or None when export is off."""
        return self.trace_dir if self.debug else None


class Settings(BaseSettings):
    """
    All service settings.

    Usage:
        from elm_cdr.config import get_settings
        url = get_settings().validation.modal_validation_url
    """

    model_config = _ENV_CONFIG

    validation: ValidationSettings = Field(default_factory=ValidationSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    def ensure_directories(self) -> None:
        """Create the trace export directory when export is on."""
        path = self.observability.trace_export_path
        if path is not None:
            path.mkdir(parents=True, exist_ok=True)


_settings: Settings | None = None


def get_settings() -> Settings:
    """Process-wide settings, read from the environment on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Forget cached settings so the next get_settings() re-reads the environment."""
    global _settings
    _settings = None
