from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    ENV: str = "development"
    DATABASE_URL: str = "sqlite:///./smart_pricing.db"
    LOG_LEVEL: str = "INFO"

    # Manual sweep trigger + settings endpoints
    ADMIN_KEY: str = ""
    # Fernet key material for encrypted store access tokens
    CREDENTIALS_MASTER_KEY: str = ""

    STOREFRONT_API_VERSION: str = "2024-10"
    STOREFRONT_TIMEOUT_SECONDS: float = Field(default=10.0, gt=0)
    STOREFRONT_REQUESTS_PER_SECOND: float = Field(default=2.0, gt=0)
    STOREFRONT_BURST: int = Field(default=4, ge=1)

    MIN_UNITS_PER_WINDOW: int = Field(default=2, ge=1)
    UNDO_WINDOW_MINUTES: int = Field(default=10, gt=0)
    SWEEP_LOCK_TTL_MINUTES: int = Field(default=30, gt=0)
    SWEEP_LOCK_WAIT_SECONDS: float = Field(default=60.0, ge=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

settings = Settings()
