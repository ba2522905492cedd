from typing import List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    database_url: str = Field("sqlite:///refund.db", description="SQLAlchemy database URL")
    redis_url: str = Field("redis://localhost:6379/0", description="Celery broker and backend")
    api_title: str = Field("Refund API")
    port: int = Field(3333)

    # An empty secret makes token issuance and verification fail closed.
    jwt_secret: str = Field("")
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(60 * 24)

    tmp_folder: str = Field("tmp")
    uploads_folder: str = Field("tmp/uploads")
    max_upload_size_mb: int = Field(3)
    accepted_image_types: List[str] = Field(
        default_factory=lambda: ["image/jpeg", "image/jpg", "image/png"]
    )
    tmp_retention_minutes: int = Field(60)
    purge_frequency: int = Field(60 * 60, description="Seconds between tmp purges")

    rate_limit_enabled: bool = Field(True)
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    @property
    def max_file_size(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024
