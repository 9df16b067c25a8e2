"""
Centralized configuration management with Pydantic Settings.
All environment variables are validated and typed.
"""
from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # Application
    app_name: str = "Catalog Sync API"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = Field(
        default="development", pattern="^(development|staging|production|test)$"
    )

    # Server
    host: str = "0.0.0.0"
    port: int = 8000

    # Database (postgresql:// is rewritten to the asyncpg driver)
    database_url: str = "postgresql+asyncpg://localhost:5432/catalog_sync"
    database_pool_size: int = 20
    database_max_overflow: int = 10
    database_echo: bool = False

    # Redis (arq job queue)
    redis_url: Optional[str] = None

    # Security
    secret_key: str = Field(min_length=32)
    encryption_key: str = Field(min_length=32)
    jwt_algorithm: str = "HS256"
    jwt_expiration_hours: int = 24

    # CORS - stored as comma-separated string to avoid JSON parsing issues
    allowed_origins_str: str = Field(default="http://localhost:3000", alias="ALLOWED_ORIGINS")

    @property
    def allowed_origins(self) -> List[str]:
        """Parse allowed origins from comma-separated string."""
        return [origin.strip() for origin in self.allowed_origins_str.split(",") if origin.strip()]

    # Shopify
    shopify_api_key: Optional[str] = None
    shopify_api_secret: Optional[str] = None
    shopify_webhook_secret: Optional[str] = None
    shopify_scopes: str = "read_products,write_products,read_inventory,write_inventory,read_locations"
    shopify_api_version: str = "2025-01"
    shopify_plan: str = Field(default="standard", pattern="^(standard|plus)$")
    app_url: str = "http://localhost:8000"
    frontend_url: str = "http://localhost:3000"

    # Sync behaviour
    bulk_poll_interval: float = 2.0
    bulk_import_batch_size: int = 10
    sync_batch_size: int = 5
    sync_batch_delay: float = 1.0
    max_sync_retries: int = 3
    incremental_sync_window_hours: int = 24
    auto_sync_interval_minutes: int = 60

    # Sync health thresholds (error mappings / total products)
    health_warning_threshold: float = 0.05
    health_error_threshold: float = 0.10

    # Return simulated payloads when a live sync fails. Never enable in production.
    sandbox_mode: bool = False

    # Observability
    sentry_dsn: Optional[str] = None
    log_level: str = "INFO"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
