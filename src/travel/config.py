from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    database_url: str = Field("sqlite:///travel.db", description="SQLAlchemy database URL")
    redis_url: str = Field("redis://localhost:6379/0", description="Celery broker and backend")
    api_title: str = Field("Travel Requests API")
    jwt_secret_key: str | None = Field(None, description="HMAC key for access tokens")
    jwt_algorithm: str = Field("HS256")
    access_token_expire_minutes: int = Field(60 * 24)
    auth_rate_limit: str = Field("5/minute")
    rate_limit_enabled: bool = Field(True)
    task_always_eager: bool = Field(False, description="Run Celery tasks inline")
    log_level: str = Field("INFO")
    host: str = Field("0.0.0.0")
    port: int = Field(8080)


settings = Settings()
