from typing import List, Optional, Dict, Any
from decimal import Decimal
from pathlib import Path
import os
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class LoggingConfig(BaseModel):
    """Logging configuration"""
    level: str = "INFO"
    format: str = "json"  # json or text
    handlers: List[str] = ["console", "file"]
    file_path: str = "logs/app.log"
    max_file_size: int = 10_485_760  # 10MB
    backup_count: int = 5
    include_context: bool = True

    # Sentry integration
    sentry_enabled: bool = True
    sentry_attach_stacktrace: bool = True
    sentry_send_default_pii: bool = False


class CacheConfig(BaseModel):
    """Cache configuration"""
    default_ttl: int = 300  # 5 minutes
    namespace_separator: str = ":"
    key_prefix: str = "ledger"

    # TTL by data type
    ttl_mapping: Dict[str, int] = {
        "token_price": 60,       # 1 minute
        "token_metadata": 3600,  # 1 hour
        "token_logo": 3600,      # 1 hour
    }


class DatabaseConfig(BaseModel):
    """Database configuration"""
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 1800

    @field_validator("echo", mode="before")
    @classmethod
    def validate_echo(cls, v):
        # Force echo to False in production
        if os.getenv("ENVIRONMENT") == "production":
            return False
        return v


class APIConfig(BaseModel):
    """API configuration"""
    title: str = "Crypto Ledger API"
    description: str = "Backend API for tracking token claims, trades, expenses and tax holds"
    version: str = "1.0.0"
    prefix: str = "/api/v1"

    # Rate limiting
    rate_limit_enabled: bool = True
    rate_limit_requests: int = 100
    rate_limit_period: int = 60  # seconds


class SecurityConfig(BaseModel):
    """Security configuration"""
    # CORS
    allowed_origins: List[str] = []
    allowed_methods: List[str] = ["GET", "POST", "PUT", "DELETE", "PATCH"]
    allowed_headers: List[str] = ["*"]
    allow_credentials: bool = True


class RetryPolicy(BaseModel):
    """Bounded retry policy for third-party calls"""
    max_attempts: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=1.0, ge=0)
    exponential: bool = False
    max_backoff_seconds: float = 30.0
    retry_statuses: List[int] = [429, 500, 502, 503, 504]

    def delay_for(self, attempt: int) -> float:
        """Delay before the retry that follows the given zero-based attempt"""
        if self.exponential:
            return min(self.backoff_seconds * (2 ** attempt), self.max_backoff_seconds)
        return self.backoff_seconds


class TaxConfig(BaseModel):
    """Tax estimate configuration"""
    # Rate applied to each positive ledger entry when a trade is fully closed
    ledger_tax_rate: Decimal = Decimal("0.35")
    # Rate applied to the aggregate realized P/L in the trade listing
    summary_tax_rate: Decimal = Decimal("0.30")
    preset_percentages: List[Decimal] = [Decimal("15"), Decimal("20"), Decimal("25"), Decimal("30")]


class Settings(BaseSettings):
    """Main application settings"""

    # Environment
    environment: str = Field(default="development", validation_alias="ENVIRONMENT")
    debug: bool = Field(default=False, validation_alias="DEBUG")

    # API Configuration
    api: APIConfig = APIConfig()

    # Security
    security: SecurityConfig = SecurityConfig()

    # Frontend URLs (comma-separated for multiple frontends)
    frontend_url: Optional[str] = Field(None, validation_alias="FRONTEND_URL")
    additional_frontend_urls: Optional[str] = Field(None, validation_alias="ADDITIONAL_FRONTEND_URLS")

    # Database
    database_url: Optional[str] = Field(None, validation_alias="DATABASE_URL")
    database: DatabaseConfig = DatabaseConfig()
    enable_database: bool = Field(default=True, validation_alias="ENABLE_DATABASE")

    # Redis
    redis_url: Optional[str] = Field(None, validation_alias="REDIS_URL")
    cache: CacheConfig = CacheConfig()
    enable_caching: bool = Field(default=True, validation_alias="ENABLE_CACHING")

    # External APIs
    coingecko_api_key: Optional[str] = Field(None, validation_alias="COINGECKO_API_KEY")
    coingecko_base_url: str = Field(default="https://api.coingecko.com/api/v3", validation_alias="COINGECKO_BASE_URL")
    token_logo_base_url: str = Field(
        default="https://raw.githubusercontent.com/RamsesExchange/ramses-assets/main/blockchains/avalanche/assets",
        validation_alias="TOKEN_LOGO_BASE_URL"
    )
    external_api_timeout: int = Field(default=10, validation_alias="EXTERNAL_API_TIMEOUT")
    external_api_retry: RetryPolicy = RetryPolicy()
    enable_price_enrichment: bool = Field(default=True, validation_alias="ENABLE_PRICE_ENRICHMENT")

    # Tax
    tax: TaxConfig = TaxConfig()

    # Logging
    logging: LoggingConfig = LoggingConfig()

    # Sentry
    sentry_dsn: Optional[str] = Field(None, validation_alias="SENTRY_DSN")
    sentry_traces_sample_rate: float = Field(default=0.1, validation_alias="SENTRY_TRACES_SAMPLE_RATE")
    sentry_profiles_sample_rate: float = Field(default=0.1, validation_alias="SENTRY_PROFILES_SAMPLE_RATE")
    sentry_environment: Optional[str] = Field(None, validation_alias="SENTRY_ENVIRONMENT")

    # Feature Flags
    features: Dict[str, bool] = {
        "enable_rate_limiting": True,
        "enable_token_logos": True,
    }

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).parent.parent.parent / ".env"),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=True,
        extra="allow"
    )

    @model_validator(mode='after')
    def validate_database_config(self):
        """Validate database configuration"""
        if self.enable_database and not self.database_url:
            raise ValueError("DATABASE_URL is required when ENABLE_DATABASE=true")
        return self

    @model_validator(mode='after')
    def validate_cache_config(self):
        """Validate cache configuration"""
        if self.enable_caching and not self.redis_url:
            raise ValueError("REDIS_URL is required when ENABLE_CACHING=true")
        return self

    @property
    def async_database_url(self) -> Optional[str]:
        """Convert sync DATABASE_URL to async format for SQLAlchemy"""
        if not self.database_url:
            return None
        if self.database_url.startswith("postgresql://"):
            return self.database_url.replace("postgresql://", "postgresql+asyncpg://")
        if self.database_url.startswith("sqlite://"):
            return self.database_url.replace("sqlite://", "sqlite+aiosqlite://")
        return self.database_url

    @property
    def is_sqlite(self) -> bool:
        return bool(self.database_url) and self.database_url.startswith("sqlite")

    @property
    def cors_origins(self) -> List[str]:
        """Get CORS origins based on environment"""
        if self.environment == "development":
            origins = [
                "http://localhost:3000",
                "http://127.0.0.1:3000",
            ]
        else:
            origins = self.security.allowed_origins.copy()

        urls = []
        if self.frontend_url:
            urls.append(self.frontend_url)
        if self.additional_frontend_urls:
            urls.extend(url.strip() for url in self.additional_frontend_urls.split(','))

        for url in urls:
            if not url:
                continue
            if not url.startswith(("http://", "https://")):
                url = f"https://{url}"
            if url not in origins:
                origins.append(url)

        return origins

    @property
    def logging_config(self) -> LoggingConfig:
        """Get environment-specific logging configuration"""
        if self.environment == "production":
            return LoggingConfig(
                level="WARNING",
                format="json",
                handlers=["console", "file", "sentry"],
                include_context=True,
                sentry_enabled=True
            )
        elif self.environment == "development":
            return LoggingConfig(
                level="DEBUG",
                format="text",
                handlers=["console"],
                include_context=True,
                sentry_enabled=False
            )
        elif self.environment == "testing":
            return LoggingConfig(
                level="WARNING",
                format="text",
                handlers=["console"],
                include_context=False,
                sentry_enabled=False
            )
        return self.logging

    @property
    def is_production(self) -> bool:
        """Check if running in production"""
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development"""
        return self.environment == "development"

    @property
    def is_testing(self) -> bool:
        """Check if running in test environment"""
        return self.environment == "testing"

    def get_external_api_config(self, service_name: str) -> Dict[str, Any]:
        """Get configuration for external API service"""
        configs = {
            "coingecko": {
                "api_key": self.coingecko_api_key,
                "base_url": self.coingecko_base_url,
                "timeout": self.external_api_timeout,
                "retry_policy": self.external_api_retry,
            },
            "token_logo": {
                "base_url": self.token_logo_base_url,
                "timeout": self.external_api_timeout,
                "retry_policy": self.external_api_retry,
            },
        }
        return configs.get(service_name, {})


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Create a global settings instance
settings = get_settings()
