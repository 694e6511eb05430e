"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///./loop_razorpay.db"
    log_level: str = "INFO"
    processor_name: str = "razorpay"  # "mock" runs against the in-memory gateway

    gateway_base_url: str = "https://api.razorpay.com/v1"
    gateway_timeout_seconds: float = 30.0
    checkout_display_name: str = "Loop Payment"

    webhook_timeout_seconds: float = 30.0
    webhook_max_attempts: int = 5
    webhook_base_delay_ms: int = 60_000  # 1 minute
    webhook_max_delay_ms: int = 86_400_000  # 24 hours

    mock_failure_rate: float = 0.0
    mock_latency_ms: int = 0

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
