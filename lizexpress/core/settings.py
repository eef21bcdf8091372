# lizexpress/core/settings.py
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_env: str = "local"  # local | development | production
    PUBLIC_BASE_URL: str = "http://localhost:8000"

    # === Database ===
    DATABASE_URL: str = "sqlite:///./lizexpress.db"

    # === Storage ===
    STORAGE_BACKEND: str = Field("local", description="local | s3")
    VERIFICATION_BUCKET: str = "verification"
    S3_REGION: str = "eu-west-1"
    S3_ENDPOINT_URL: Optional[str] = None
    CLOUDFRONT_DOMAIN: Optional[str] = None
    LOCAL_STORAGE_ROOT: str = "./.local_storage"

    # === Verification uploads ===
    max_upload_mb: int = 5
    allowed_mime_prefix: str = "image/"
    upload_timeout_sec: float = 30.0
    upload_cache_control: str = "max-age=3600"

    # === Sessies ===
    session_idle_ttl_sec: float = 1800.0

    # === Camera ===
    camera_index: int = 0

    # === Logging / metrics ===
    log_level: str = "INFO"
    metrics_enabled: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def max_upload_bytes(self) -> int:
        return self.max_upload_mb * 1024 * 1024


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Singleton Settings instance (leest .env)."""
    s = Settings()
    if s.app_env.lower() == "development":
        s.log_level = "DEBUG"
    elif s.app_env.lower() == "production":
        s.log_level = "WARNING"
    return s


settings = get_settings()
