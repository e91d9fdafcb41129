"""Engine configuration loaded from environment variables."""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class DriftEnv(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PROD = "prod"


class Settings(BaseSettings):
    """Application settings loaded from environment variables with DOCDRIFT_ prefix."""

    model_config = SettingsConfigDict(
        env_prefix="DOCDRIFT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    env: DriftEnv = DriftEnv.DEV
    debug: bool = False

    # Storage
    mongo_uri: SecretStr = SecretStr("mongodb://localhost:27017")
    database_name: str = "app"
    server_selection_timeout_ms: int = 5000

    # Ledger
    ledger_prefix: str = "docdrift"

    # Migration scripts
    migrations_dir: Path = Path("migrations")

    # Diff engine
    rename_confidence_threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    max_field_depth: int = Field(default=3, ge=1)

    # Executor: pause after running a migration without a session so that
    # unacknowledged effects settle before the ledger is written.
    fallback_settle_seconds: float = Field(default=0.1, ge=0.0)

    # Logging
    structured_logging: bool = False
    log_level: str = "INFO"

    @field_validator("mongo_uri", mode="before")
    @classmethod
    def mask_uri_in_repr(cls, v: str | SecretStr) -> SecretStr:
        if isinstance(v, SecretStr):
            return v
        return SecretStr(v)

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def migrations_collection(self) -> str:
        return f"{self.ledger_prefix}.migrations"

    @property
    def config_collection(self) -> str:
        return f"{self.ledger_prefix}.config"


def load_settings(**overrides: object) -> Settings:
    """Load settings from environment, with optional overrides for testing."""
    settings = Settings(**overrides)  # type: ignore[arg-type]

    if settings.debug:
        logger.info("Loaded settings for environment: %s", settings.env.value)

    return settings
