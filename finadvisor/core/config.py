"""
Configuration Management using Pydantic Settings
Loads configuration from environment variables with validation
"""
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = Field(default="Finance Advisor AI", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    debug: bool = Field(default=False, description="Debug mode")
    environment: str = Field(default="development", description="Environment: development, staging, production")

    # API Settings
    api_v1_prefix: str = Field(default="/api/v1", description="API version 1 prefix")
    api_key: Optional[str] = Field(default=None, description="API Key for service-to-service authentication")
    jwt_secret_key: str = Field(default="change-me-in-production", description="JWT secret key")
    jwt_algorithm: str = Field(default="HS256", description="JWT algorithm")
    jwt_expire_minutes: int = Field(default=30, description="JWT token expiration in minutes")

    # Rate Limiting (inbound requests to this service)
    rate_limit_requests: int = Field(default=100, description="Max requests per window")
    rate_limit_window_seconds: int = Field(default=60, description="Rate limit window in seconds")
    chat_rate_limit: str = Field(default="30/minute", description="Rate limit for the streaming chat endpoint")
    insight_rate_limit: str = Field(default="20/minute", description="Rate limit for the insight endpoint")

    # Database - PostgreSQL (Local Docker)
    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_user: str = Field(default="finadvisor", description="PostgreSQL user")
    postgres_password: str = Field(default="finadvisor_secret", description="PostgreSQL password")
    postgres_db: str = Field(default="finadvisor", description="PostgreSQL database name")

    # Database - Cloud (Supabase / Neon)
    database_url: Optional[str] = Field(default=None, description="Full database URL (cloud)")

    @property
    def postgres_url_sync(self) -> str:
        """
        Construct synchronous PostgreSQL connection URL.
        Prioritizes DATABASE_URL (cloud) over individual settings (local).
        """
        if self.database_url:
            url = self.database_url
            if url.startswith("postgres://"):
                url = url.replace("postgres://", "postgresql://", 1)
            url = url.replace("postgresql+asyncpg://", "postgresql://")
            # psycopg2 expects sslmode, not ssl
            if "ssl=require" in url:
                url = url.replace("ssl=require", "sslmode=require")
            return url

        return f"postgresql://{self.postgres_user}:{self.postgres_password}@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"

    # LLM Gateway (OpenAI-compatible chat completions)
    llm_base_url: str = Field(default="https://ai.gateway.lovable.dev/v1", description="OpenAI-compatible API base URL")
    llm_api_key: Optional[str] = Field(default=None, description="API key for the LLM gateway")
    llm_model: str = Field(default="google/gemini-2.5-flash", description="Model used for chat and insights")
    llm_timeout_seconds: float = Field(default=60.0, description="Timeout for a single upstream generation call")
    llm_connect_timeout_seconds: float = Field(default=10.0, description="Connect timeout for the upstream")

    # Insight Cache - base TTL per kind (hours)
    cache_enabled: bool = Field(default=True, description="Enable the insight response cache")
    insight_base_ttl_hours: int = Field(default=24, description="Base TTL for 'insight' entries")
    suggestion_base_ttl_hours: int = Field(default=12, description="Base TTL for goal/budget suggestion entries")

    # Adaptive TTL defaults (overridden by the cache_settings table when present)
    adaptive_cache_enabled: bool = Field(default=True, description="Enable adaptive TTL adjustment")
    adaptive_min_ttl_hours: int = Field(default=6, description="TTL floor for adjusted entries")
    adaptive_max_ttl_hours: int = Field(default=48, description="TTL ceiling for adjusted entries")
    adaptive_hit_rate_low: float = Field(default=0.2, description="Below this hit rate the TTL shrinks")
    adaptive_hit_rate_high: float = Field(default=0.5, description="Above this hit rate the TTL grows")
    adaptive_ttl_decrease_factor: float = Field(default=0.8, description="Shrink multiplier")
    adaptive_ttl_increase_factor: float = Field(default=1.3, description="Grow multiplier")
    adaptive_min_entries: int = Field(default=5, description="Minimum sample size before adapting")
    adaptive_lookback_days: int = Field(default=30, description="Lookback window for hit-rate analysis")

    # Cache store circuit breaker
    cache_failure_threshold: int = Field(default=5, description="Store failures before the circuit opens")
    cache_recovery_timeout_seconds: float = Field(default=60.0, description="Seconds before a half-open probe")

    # Security
    cors_origins: list[str] = Field(default=["*"], description="CORS allowed origins")

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"log_level must be one of {allowed}")
        return v.upper()


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Export settings instance for convenience
settings = get_settings()
