"""Environment-driven settings for the checkout service.

The process loads this once at startup. Behavior is controlled by environment
variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "stkpay-checkout"
    log_level: str = "INFO"
    database_url: str
    daraja_base_url: str = "https://sandbox.safaricom.co.ke"
    daraja_consumer_key: str
    daraja_consumer_secret: str
    daraja_business_short_code: str
    daraja_passkey: str
    daraja_callback_url: str
    daraja_account_reference: str = "StkPay"
    daraja_transaction_desc: str = "Payment for goods"
    daraja_timeout_seconds: float = 10.0
    daraja_max_attempts: int = 3
    daraja_backoff_seconds: float = 1.0
    daraja_token_cache: bool = True
    daraja_timezone: str = "Africa/Nairobi"
    minimum_amount: int = 1
    port: int = 3000
    frontend_dir: str = "frontend"
    cors_origins: list[str] = ["http://localhost:3000"]
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"
    tracing_enabled: bool = True
    create_schema_on_startup: bool = False
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
