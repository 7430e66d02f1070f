"""Configuration for MyMetas.

Settings come from environment variables (case-insensitive) and an optional
``.env`` file, validated by Pydantic Settings. ``ENVIRONMENT`` selects a
profile that overrides a few values:

======================  ===================================================
development (default)   DEBUG text logs
staging                 INFO JSON logs
production              JSON logs, DEBUG lowered to INFO, SECRET_KEY required
testing                 in-memory database, ERROR logs, no log file
======================  ===================================================

Example:
    >>> from mymetas.config import settings
    >>> settings.database_url
    'sqlite:////home/me/data/mymetas.db'
"""

from datetime import timedelta
from enum import StrEnum
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from mymetas.utils import redact_token

DEFAULT_SECRET_KEY = "mymetas-development-secret-key-change-me"
DEFAULT_DATABASE_NAME = "mymetas.db"
MEMORY_DATABASE = ":memory:"


class Environment(StrEnum):
    """Deployment profile."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"
    TESTING = "testing"
    STAGING = "staging"


PROFILE_OVERRIDES: dict[Environment, dict[str, Any]] = {
    Environment.DEVELOPMENT: {"log_level": "DEBUG", "log_json": False},
    Environment.STAGING: {"log_level": "INFO", "log_json": True},
    Environment.PRODUCTION: {"log_json": True},
    Environment.TESTING: {
        "database_path": Path(MEMORY_DATABASE),
        "log_level": "ERROR",
        "log_to_file": False,
        "log_json": False,
    },
}


class Settings(BaseSettings):
    """MyMetas settings.

    Attributes:
        environment: Active profile
        data_dir: Root for the database, log file, avatars and preferences
        database_path: SQLite file (``:memory:`` for a throwaway database)
        secret_key: HMAC key for session tokens
        jwt_algorithm: Token signing algorithm
        token_ttl_minutes: Session lifetime
        min_title_length: Shortest accepted meta title, after trimming
        min_password_length: Shortest accepted password
        host: ``mymetas serve`` bind address
        port: ``mymetas serve`` bind port
        api_url: Server the CLI talks to
        api_token: CLI bearer token, read from ``MYMETAS_API_TOKEN``
        avatar_dir: Local avatar bucket
        avatar_base_url: Public prefix of avatar URLs
        log_level: Minimum log level
        log_to_file: Also write ``data_dir/mymetas.log``
        log_json: JSON log lines instead of colored text
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    environment: Environment = Environment.DEVELOPMENT
    data_dir: Path = Path("./data")
    database_path: Path = Path(DEFAULT_DATABASE_NAME)

    secret_key: str = Field(DEFAULT_SECRET_KEY, min_length=32)
    jwt_algorithm: str = "HS256"
    token_ttl_minutes: int = Field(60 * 24 * 7, ge=1)
    min_password_length: int = Field(8, ge=1, le=128)
    min_title_length: int = Field(3, ge=1, le=255)

    host: str = "127.0.0.1"
    port: int = Field(8000, ge=1, le=65535)

    api_url: str = "http://127.0.0.1:8000"
    api_token: Optional[str] = Field(None, alias="MYMETAS_API_TOKEN")

    avatar_dir: Optional[Path] = None
    avatar_base_url: str = "http://127.0.0.1:8000/avatars"

    log_level: str = "INFO"
    log_to_file: bool = True
    log_json: bool = False

    @field_validator("data_dir", mode="before")
    @classmethod
    def expand_data_dir(cls, v: str | Path) -> Path:
        path = Path(v).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    @field_validator("api_url", "avatar_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def upper_log_level(cls, v: str) -> str:
        return v.upper()

    @model_validator(mode="after")
    def resolve_paths(self) -> "Settings":
        """Put relative defaults under data_dir."""
        if self.database_path == Path(DEFAULT_DATABASE_NAME):
            self.database_path = self.data_dir / DEFAULT_DATABASE_NAME
        if self.avatar_dir is None:
            self.avatar_dir = self.data_dir / "avatars"
        return self

    @model_validator(mode="after")
    def apply_profile(self) -> "Settings":
        """Apply the overrides of the selected environment.

        Raises:
            ValueError: In production when SECRET_KEY is left at its default
        """
        if self.environment == Environment.PRODUCTION:
            if self.secret_key == DEFAULT_SECRET_KEY:
                raise ValueError("SECRET_KEY must be set in production")
            if self.log_level == "DEBUG":
                self.log_level = "INFO"

        for name, value in PROFILE_OVERRIDES[self.environment].items():
            setattr(self, name, value)
        return self

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(minutes=self.token_ttl_minutes)

    @property
    def database_url(self) -> str:
        if str(self.database_path) == MEMORY_DATABASE:
            return "sqlite://"
        return f"sqlite:///{self.database_path}"

    @property
    def preferences_path(self) -> Path:
        return self.data_dir / "preferences.json"

    @property
    def is_production(self) -> bool:
        return self.environment == Environment.PRODUCTION

    @property
    def is_staging(self) -> bool:
        return self.environment == Environment.STAGING

    @property
    def is_testing(self) -> bool:
        return self.environment == Environment.TESTING

    def redact_token(self, token: Optional[str] = None) -> str:
        """Redacted form of ``token`` (or the CLI token) safe for output."""
        return redact_token(token or self.api_token)


def get_settings() -> Settings:
    return Settings()


settings = get_settings()
