from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    APP_NAME: str = "Revenue Recovery"
    version: str = "0.1.0"
    DEBUG: bool = False
    APP_DATABASE_DSN: str = "sqlite:////tmp/recovery.db"
    REDIS_URL: str = "redis://localhost:6379"

    # CORS
    CORS_ORIGINS: str = "http://localhost:3000,http://localhost:5173"

    # SMTP (emails are skipped when SMTP_HOST is empty)
    SMTP_HOST: str = ""
    SMTP_PORT: int = 587
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_USE_TLS: bool = True
    SMTP_FROM_EMAIL: str = "billing@example.com"
    SMTP_FROM_NAME: str = "Billing"

    # Payment execution service
    PAYMENT_SERVICE_URL: str = ""  # e.g. http://localhost:50051
    PAYMENT_SERVICE_API_KEY: str = ""
    PAYMENT_SERVICE_TIMEOUT_SECONDS: float = 30.0

    # Dunning
    DUNNING_BATCH_LIMIT: int = 50
    DUNNING_DETECTION_LOOKBACK_MINUTES: int = 60
    DUNNING_BATCH_TIME_BUDGET_SECONDS: int = 240
    DUNNING_RESUME_DELAY_HOURS: int = 24
    DUNNING_PAYMENT_LINK_BASE_URL: str = "https://app.example.com/payment/retry"
    DUNNING_UNSUBSCRIBE_BASE_URL: str = "https://app.example.com/unsubscribe"
    DUNNING_SUPPORT_EMAIL: str = "support@example.com"
    DUNNING_MERCHANT_NAME: str = "Billing"

    # Exchange rates
    EXCHANGE_RATE_API_URL: str = ""  # e.g. https://api.frankfurter.app
    EXCHANGE_RATE_TTL_SECONDS: int = 300
    EXCHANGE_RATE_TIMEOUT_SECONDS: float = 10.0

    @property
    def payment_service_enabled(self) -> bool:
        return bool(self.PAYMENT_SERVICE_URL)


settings = Settings()
