from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    """Application settings - reads from environment variables"""

    # Process
    service_role: str = "registry"  # registry / registration / settlement
    service_name: str = ""
    port: int = 8080

    # Supabase
    supabase_url: str = ""
    supabase_key: str = ""
    supabase_service_key: str = ""
    db_schema: str = "public"

    # RabbitMQ
    rabbit_url: str = "amqp://localhost"
    rabbit_exchange: str = "events"
    rabbit_bind_queue: str = "events.debug"
    rabbit_bind_key: str = "event.#"  # comma separated
    rabbit_retry_ms: int = 2000
    rabbit_max_log_bytes: int = 2048
    rabbit_prefetch: int = 1
    rabbit_consumer_delay_ms: int = 0

    # Sibling services
    event_service_url: str = "http://localhost:3002"
    registration_service_url: str = "http://localhost:3005"
    sibling_timeout_seconds: float = 3.0

    # Lifecycle
    scheduler_poll_interval_seconds: int = 60
    event_timezone: str = "Asia/Bangkok"

    # Penalties / settlement
    penalty_window_hours: float = 1.0
    penalty_amount: float = 0.0
    penalty_percentage: float = 0.0
    settlement_currency: str = "THB"

    # Environment
    env: str = "development"
    debug: bool = False

    @field_validator('scheduler_poll_interval_seconds')
    @classmethod
    def floor_poll_interval(cls, v: int) -> int:
        return max(15, v)

    @property
    def bind_keys(self) -> List[str]:
        return [k.strip() for k in self.rabbit_bind_key.split(",") if k.strip()]

    @property
    def is_production(self) -> bool:
        return self.env.lower() == "production"

    @property
    def resolved_service_name(self) -> str:
        return self.service_name or f"{self.service_role}-service"

    # Pydantic v2 config
    model_config = SettingsConfigDict(
        env_file=".env" if Path(".env").exists() else None,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,  # RABBIT_URL == rabbit_url
    )


# Create settings instance
settings = Settings()
