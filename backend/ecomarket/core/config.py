"""
Application configuration settings.

All configuration is loaded from environment variables with sensible defaults.
The resulting Settings object is built once at startup and handed to the
engine factory and service constructors; nothing reads the environment later.
"""
import json
from typing import Any
from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SHIPPING_NOTE = (
    "Choose 'Ship a parcel' at the convenience store terminal and show this QR code "
    "to the clerk to complete shipping. Packing bags are available in store."
)


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "EcoMarket"
    api_debug: bool = True
    secret_key: str = "dev-secret-key-change-in-production"  # SECURITY: Must be overridden in production via env var

    # JWT Settings
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60 * 24  # 24 hours

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8080
    cors_origins: list[str] = ["http://localhost:3000"]

    # Database
    postgres_host: str = "db"
    postgres_port: int = 5432
    postgres_user: str = "ecomarket"
    postgres_password: str = "ecomarket"
    postgres_db: str = "ecomarket"
    database_url: str | None = None
    db_pool_size: int = 20
    db_max_overflow: int = 30

    # Best-effort side effects (notifications, background estimates)
    side_effect_workers: int = 2
    side_effect_queue_size: int = 1000
    notify_timeout_seconds: float = 2.0
    notification_preview_length: int = 80

    # Environmental savings estimation
    estimation_provider: str = "openai"  # openai, mock
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    estimation_timeout_seconds: float = 25.0
    co2_cap_ratio: float = 0.05  # estimate may not exceed 5% of the item price

    # Rewards
    tree_points_per_kg: float = 1.0
    point_value_yen: float = 1.0
    seller_revenue_rate: float = 1.0

    # Listings
    min_item_price: int = 100
    max_title_length: int = 120

    # Shipping
    shipping_qr_base_url: str = "https://api.qrserver.com/v1/create-qr-code/"
    shipping_note: str = DEFAULT_SHIPPING_NOTE

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: Any) -> list[str]:
        """Parse CORS origins from JSON string or list."""
        if isinstance(v, str):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                return [v]
        return v

    @property
    def database_url_computed(self) -> str:
        """Compute database URL from components if not explicitly set."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()

    # Security check: warn if using default secret key in production
    if not settings.api_debug and settings.secret_key == "dev-secret-key-change-in-production":
        import warnings
        warnings.warn(
            "SECURITY WARNING: Using default secret_key in production! "
            "Set SECRET_KEY environment variable to a secure random value.",
            UserWarning
        )

    return settings
