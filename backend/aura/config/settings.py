"""
Application Settings for Aura

Centralized configuration using Pydantic Settings with .env support.
All environment variables are validated at startup.
"""

from functools import lru_cache
from typing import Literal, Optional
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    LLM_PROVIDER controls which model collaborator handles AI tasks:
    - gemini: Google Gemini via the google-genai SDK
    - offline: no model; every AI call site runs on its neutral default

    STORE_BACKEND controls the document store strategy:
    - sql: SQLModel tables (Postgres in production)
    - local: in-process key-value store, optionally persisted to JSON
    """

    # Application Settings
    environment: str = "development"
    debug: bool = False
    log_level: str = "INFO"

    # CORS Configuration
    frontend_url: str = "http://localhost:5173"
    allowed_origins: list[str] = [
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
    ]

    # Generative model configuration (accepts GOOGLE_API_KEY or GEMINI_API_KEY)
    llm_provider: Literal["gemini", "offline"] = "offline"
    google_api_key: Optional[str] = None
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.5-flash"
    model_temperature: float = 0.7
    model_timeout_seconds: float = 20.0
    reply_timeout_seconds: float = 45.0

    # Document store configuration
    store_backend: Literal["sql", "local"] = "local"
    store_local_fallback: bool = True
    local_store_path: Optional[str] = None

    # Database Configuration (SQLModel/SQLAlchemy)
    database_url: Optional[str] = None
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_pool_timeout: int = 30
    database_echo: bool = False

    # Identity (Firebase Auth)
    firebase_project_id: str = "aura-dev"
    firebase_api_key: Optional[str] = None
    # HS256 secret for locally minted tokens (development/testing only)
    auth_jwt_secret: Optional[str] = None

    # Stripe Configuration
    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    stripe_price_id_basic: Optional[str] = None
    stripe_price_id_plus: Optional[str] = None
    stripe_price_id_master: Optional[str] = None
    stripe_price_id_coins_100: Optional[str] = None
    stripe_price_id_coins_500: Optional[str] = None
    stripe_price_id_coins_1200: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def validate_api_keys(self) -> "Settings":
        """Validate keys and URLs based on the selected strategies."""
        # Normalize gemini_api_key to google_api_key
        if not self.google_api_key and self.gemini_api_key:
            self.google_api_key = self.gemini_api_key

        if self.llm_provider == "gemini" and not self.google_api_key:
            raise ValueError(
                "GOOGLE_API_KEY or GEMINI_API_KEY required when LLM_PROVIDER=gemini"
            )

        if self.store_backend == "sql" and not self.database_url:
            raise ValueError("DATABASE_URL required when STORE_BACKEND=sql")

        return self

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development."""
        return self.environment.lower() == "development"

    @property
    def async_database_url(self) -> Optional[str]:
        """DATABASE_URL rewritten for the asyncpg driver."""
        url = self.database_url
        if not url:
            return None
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+asyncpg://", 1)
        return url


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Convenience export for direct import
settings = get_settings()
