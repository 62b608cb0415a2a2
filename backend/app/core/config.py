from decimal import Decimal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "voiptax"
    version: str = "0.1.0"
    APP_DOMAIN: str = "example.com"
    APP_DATABASE_DSN: str = "sqlite:////tmp/database.db"
    REDIS_URL: str = "redis://localhost:6379"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # Calculation cache
    TAX_CACHE_BACKEND: str = "memory"  # "memory", "redis" or "none"
    TAX_CACHE_TTL_SECONDS: int = 3600

    # Tax engine
    TAX_ROUND_PRECISION: int = 4
    USF_DEFAULT_RATE: Decimal = Decimal("33.4")  # contribution factor, percent
    USF_RATE_TTL_SECONDS: int = 86400
    TAX_FALLBACK_RATE: Decimal | None = None  # flat percent used when lookups fail
    TAX_CALCULATION_TIMEOUT_SECONDS: float = 5.0
    TAX_EXEMPTIONS_ENABLED: bool = True
    TAX_PROBE_SCHEMA_ON_STARTUP: bool = False

    # Rate catalog sources, e.g. "external_api,json_file"
    TAX_RATE_SOURCES: str = ""
    TAX_EXTERNAL_API_URL: str = ""
    TAX_EXTERNAL_API_KEY: str = ""
    TAX_EXTERNAL_API_TIMEOUT_SECONDS: float = 60.0
    TAX_RATE_IMPORT_PATH: str = ""

    @property
    def tax_rate_sources(self) -> list[str]:
        return [s.strip() for s in self.TAX_RATE_SOURCES.split(",") if s.strip()]

    @property
    def tax_fallback_enabled(self) -> bool:
        return self.TAX_FALLBACK_RATE is not None


settings = Settings()
