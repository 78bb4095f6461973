from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # ==============================
    # Application
    # ==============================
    APP_NAME: str = "Pharmacy Inventory Ledger"
    ENVIRONMENT: str = "local"
    CORS_ALLOW_ORIGINS: str = "*"

    # ==============================
    # Database
    # ==============================
    DATABASE_URL: str = "sqlite:///./pharmacy.db"
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 0
    DB_POOL_TIMEOUT_SECONDS: int = 30
    DB_LOCK_TIMEOUT_SECONDS: float = 30.0

    # ==============================
    # Logging
    # ==============================
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # ==============================
    # Security
    # ==============================
    API_KEYS: Optional[str] = None
    API_KEY_HEADER: str = "X-API-Key"
    JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: Optional[str] = None
    JWT_ISSUER: Optional[str] = None
    JWT_REQUIRED: bool = False

    # ==============================
    # Stock adjustments
    # ==============================
    ADJUST_MAX_ATTEMPTS: int = 3
    ADJUST_RETRY_BACKOFF_SECONDS: float = 0.05
    ADJUST_RETRY_MAX_BACKOFF_SECONDS: float = 1.0
    ADJUST_RETRY_JITTER: float = 0.2

    def cors_origins(self) -> list[str]:
        return [value.strip() for value in self.CORS_ALLOW_ORIGINS.split(",") if value.strip()]


@lru_cache
def get_settings() -> Settings:
    """Cached settings loader (once per process)."""
    return Settings()


__all__ = ["Settings", "get_settings"]
