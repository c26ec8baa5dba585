from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env.local",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Server
    PORT: int = 3001
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./shop.db"

    # CORS
    ALLOWED_ORIGINS: str = "http://localhost:5173,http://localhost:3000"

    # Payments
    CURRENCY: str = "BRL"
    CHARGE_PROVIDER: str = "simulated"  # simulated or http
    CHARGE_API_URL: str = ""
    CHARGE_API_KEY: str = ""
    CHARGE_TIMEOUT_SECONDS: float = 10.0

    # Webhooks
    WEBHOOK_SECRET: str = "webhook-secret"

    # Recurring billing
    BILLING_SCHEDULER_ENABLED: bool = True
    BILLING_TIMEZONE: str = "America/Sao_Paulo"
    BILLING_RUN_HOUR: int = 0

    @field_validator("CURRENCY")
    @classmethod
    def validate_currency(cls, value: str) -> str:
        v = (value or "").strip().upper()
        if len(v) != 3:
            raise ValueError("Invalid currency code: expected ISO4217 length 3")
        return v

    @field_validator("BILLING_RUN_HOUR")
    @classmethod
    def validate_run_hour(cls, value: int) -> int:
        if not 0 <= value <= 23:
            raise ValueError("BILLING_RUN_HOUR must be between 0 and 23")
        return value

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    def cors_origins(self):
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]


@lru_cache()
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
