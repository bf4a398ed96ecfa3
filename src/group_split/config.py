"""Configuration management for group-split."""

from decimal import Decimal
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="GROUP_SPLIT_",
        case_sensitive=False,
        extra="ignore",
    )

    # Identity of the local device/user
    device_id: str | None = None

    # Member directory export used for display names
    members_file: Path | None = None

    # Netting: pairs below this net amount are dropped
    settle_threshold: Decimal = Decimal("0.01")

    # Split editor: percentage drift that triggers normalization
    split_tolerance: Decimal = Decimal("0.1")


def load_settings() -> Settings:
    """Load application settings from environment variables."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(
            f"Failed to load settings. Check the GROUP_SPLIT_* variables in "
            f"your environment or .env file.\n"
            f"Error: {e}"
        ) from e
