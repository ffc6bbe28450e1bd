"""Application configuration management."""

import os
from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import make_url


BACKEND_ROOT = Path(__file__).resolve().parents[1]
PROJECT_ROOT = BACKEND_ROOT.parent
STORAGE_ROOT = PROJECT_ROOT / "storage"

DEFAULT_SECRET_KEY = "dev-secret-key-change-in-production"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Environment
    environment: Literal["development", "production", "testing"] = "development"

    # Database
    database_url: str = "sqlite+aiosqlite:///./toolbox_subtitles.db"

    # Security
    secret_key: str = DEFAULT_SECRET_KEY
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 1440  # 24 hours

    # Subtitle processing
    max_concurrent_jobs: int = 2
    words_per_subtitle: int = 8
    batch_size: int = 30
    max_video_size_mb: int = 500
    max_pdf_size_mb: int = 50

    # ElevenLabs speech-to-text
    elevenlabs_api_key: str | None = None
    elevenlabs_model: str = "scribe_v1"
    elevenlabs_base_url: str = "https://api.elevenlabs.io/v1"

    # Claude translation
    claude_api_key: str | None = None
    claude_model: str = "claude-sonnet-4-20250514"
    claude_max_tokens: int = 4000
    claude_base_url: str = "https://api.anthropic.com/v1"

    # Outbound HTTP
    http_timeout_seconds: float = 120.0
    translation_max_retries: int = 2
    retry_backoff_seconds: float = 1.0

    # Object storage
    storage_root: str = str(STORAGE_ROOT / "objects")
    storage_public_url: str = "http://localhost:8100/files"

    # Server
    host: str = "0.0.0.0"
    port: int = 8100
    cors_origins: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Logging
    log_level: str = "INFO"
    log_dir: str = str(PROJECT_ROOT / "logs")
    log_file_max_bytes: int = 10 * 1024 * 1024
    log_file_backup_count: int = 5

    model_config = SettingsConfigDict(env_file=(".env.test", ".env"), case_sensitive=False)

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse CORS origins string into list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing environment."""
        env_var = os.getenv("ENVIRONMENT", "").lower() == "testing"
        pytest_flag = bool(os.getenv("PYTEST_CURRENT_TEST"))
        return self.environment == "testing" or env_var or pytest_flag

    @property
    def max_video_size_bytes(self) -> int:
        return self.max_video_size_mb * 1024 * 1024

    @property
    def max_pdf_size_bytes(self) -> int:
        return self.max_pdf_size_mb * 1024 * 1024

    @field_validator("secret_key")
    @classmethod
    def validate_secret_key(cls, v: str, info) -> str:
        """Validate secret key is secure in production."""
        env = info.data.get("environment", "development")
        if env == "production" and v == DEFAULT_SECRET_KEY:
            raise ValueError(
                "SECRET_KEY must be changed from default value in production. "
                "Generate a secure key with: python -c 'import secrets; print(secrets.token_urlsafe(32))'"
            )
        if env == "production" and len(v) < 32:
            raise ValueError(
                "SECRET_KEY must be at least 32 characters in production for security. "
                f"Current length: {len(v)}"
            )
        return v

    @field_validator("words_per_subtitle", "batch_size", "max_concurrent_jobs")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be >= 1")
        return v

    @model_validator(mode="after")
    def validate_storage_root(self) -> "Settings":
        """Ensure the object storage root exists."""
        Path(self.storage_root).mkdir(parents=True, exist_ok=True)
        return self

    @model_validator(mode="after")
    def normalize_database_path(self) -> "Settings":
        """Ensure SQLite URLs point to backend/ regardless of CWD."""
        try:
            url = make_url(self.database_url)
        except Exception:
            return self

        if not url.get_backend_name().startswith("sqlite"):
            return self

        db_path = url.database
        if not db_path or db_path == ":memory:":
            return self

        path_obj = Path(db_path)
        if not path_obj.is_absolute():
            abs_path = (BACKEND_ROOT / path_obj).resolve()
            url = url.set(database=str(abs_path))
            self.database_url = url.render_as_string(hide_password=False)
        return self


# Global settings instance
settings = Settings()
if settings.is_testing:
    settings.environment = "testing"
    if not settings.database_url.startswith("sqlite+aiosqlite"):
        settings.database_url = "sqlite+aiosqlite:///./toolbox_subtitles_test.db"
