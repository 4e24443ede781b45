import json
from typing import Annotated, List

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Config(BaseSettings):
    model_config = SettingsConfigDict(env_file="../.env", env_file_encoding="utf-8", extra="ignore")

    # Application
    ENVIRONMENT: str = "development"
    APP_HOST: str = "0.0.0.0"
    APP_PORT: int = 3000
    LOG_LEVEL: str = "INFO"
    BASE_URL: str = "http://localhost:3000"

    # Database
    DATABASE_URL: str = "postgresql+asyncpg://user:postgres@db:5432/postmanagement"

    # Cache (empty -> cache disabled, every read goes to the database)
    REDIS_URL: str | None = None
    POST_LIST_CACHE_TTL: int = 300
    POST_DETAIL_CACHE_TTL: int = 600

    # JWT
    JWT_SECRET_KEY: str = "your-secret-key"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["*"]

    # Files
    UPLOAD_DIR: str = "uploads"
    MAX_UPLOAD_SIZE: int = 5 * 1024 * 1024
    EXPORT_DIR: str = "exports"
    EXPORT_CLEANUP_DELAY_SECONDS: float = 5.0
    EVENT_LOG_DIR: str = "logs"

    # SMTP
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_SECURE: bool = False  # implicit TLS (port 465)
    SMTP_STARTTLS: bool = True
    FROM_EMAIL: str = "noreply@postmanagement.local"
    FROM_NAME: str = "Post Management System"
    EMAIL_BATCH_SIZE: int = 5
    EMAIL_BATCH_DELAY_SECONDS: float = 1.0

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def _normalise_cors(cls, value):
        if isinstance(value, list):
            return value
        if isinstance(value, str):
            raw = value.strip()
            if raw.startswith("[") and raw.endswith("]"):
                try:
                    parsed = json.loads(raw)
                    if isinstance(parsed, list):
                        return parsed
                except json.JSONDecodeError:
                    pass
            return [item.strip() for item in raw.split(",") if item.strip()]
        raise ValueError("CORS_ORIGINS must be a string or list of strings")

    @field_validator("REDIS_URL", "SMTP_HOST", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


settings = Config()
