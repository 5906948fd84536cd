"""Configuration management using Pydantic Settings."""

from __future__ import annotations

import logging
from decimal import Decimal
from pathlib import Path
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables (prefix ``E2D_``)."""

    model_config = SettingsConfigDict(
        env_prefix="E2D_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Directory holding one CSV/XLSX export per backend table.
    data_dir: Path = Path(__file__).resolve().parents[1] / "data"

    # Display
    locale: Literal["fr", "en"] = "fr"
    currency_label: str = "FCFA"
    association_name: str = "Association E2D"

    # Share of loan interest estimated as savers' return. Pending confirmation
    # from the association's treasurer.
    savings_interest_share: Decimal = Decimal("0.10")

    # Gateway
    fetch_workers: int = 4

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(module)s.%(funcName)s:%(lineno)d - %(message)s"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None


def configure_logging(settings: Optional[Settings] = None) -> None:
    settings = settings or get_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level), format=settings.log_format)
