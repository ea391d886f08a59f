"""
Application configuration settings.
"""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .utils import read_yaml


class Settings(BaseSettings):
    """Settings loaded from ``QUIZ_REPORT_*`` environment variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_prefix="QUIZ_REPORT_",
        env_file=".env",
        extra="ignore",
    )

    # Application
    APP_NAME: str = "quiz-report"
    ENV: str = "development"
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Data
    DATA_DIR: Path = Path("data")
    RESPONSES_COLLECTION: str = "responses"
    ROSTER_COLLECTION: str = "students"

    # Token verification
    JWT_SECRET_KEY: str = ""
    JWT_ALGORITHMS: List[str] = ["HS256"]
    JWT_AUDIENCE: Optional[str] = None
    JWT_ISSUER: Optional[str] = None

    # Authorisation; comma-separated allow-list, empty denies every caller
    ADMIN_EMAILS: str = ""
    ALLOWED_EMAIL_DOMAIN: Optional[str] = None

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    @field_validator("ADMIN_EMAILS", mode="before")
    @classmethod
    def _join_emails(cls, value: object) -> object:
        if isinstance(value, (list, tuple, set)):
            return ",".join(str(item) for item in value)
        return value

    @property
    def admin_emails(self) -> List[str]:
        return [item.strip() for item in self.ADMIN_EMAILS.split(",") if item.strip()]

    @property
    def is_production(self) -> bool:
        return self.ENV.lower() == "production"


def load_settings(path: Optional[Path] = None) -> Settings:
    """
    Build settings from the environment, overlaid with a YAML file when given.

    YAML keys may be written in either case (``data_dir`` or ``DATA_DIR``).
    """
    if path is None:
        return Settings()
    data = read_yaml(path) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a mapping: {path}")
    return Settings(**{str(key).upper(): value for key, value in data.items()})


@lru_cache
def get_settings() -> Settings:
    return Settings()
