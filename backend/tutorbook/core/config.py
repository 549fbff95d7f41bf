# backend/tutorbook/core/config.py
import logging
import os
from typing import List, Literal, Optional

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    environment: str = Field(default="development", description="Deployment environment name")
    log_level: str = Field(default="INFO", description="Root log level")

    database_url: str = Field(
        default="sqlite:///./tutorbook.db",
        description="SQLAlchemy database URL",
    )
    database_echo: bool = False

    # Reservation holds
    hold_ttl_minutes: int = Field(
        default=10,
        description="How long a reservation hold stays valid before it lapses",
    )
    hold_sweep_interval_seconds: int = Field(
        default=60,
        description="Interval between periodic sweeps of lapsed holds",
    )
    hold_sweep_batch_size: int = Field(default=500, description="Max holds released per sweep")
    hold_sweep_in_process: bool = Field(
        default=False,
        description="Run the hold sweep inside the API process instead of a Celery worker",
    )

    # Slot policy
    reject_past_slots: bool = Field(
        default=True,
        description="Reject slot creation/update for dates before today (UTC)",
    )

    # Payments
    payment_provider: Literal["mock", "stripe"] = Field(
        default="mock",
        description="Payment gateway adapter",
    )
    payment_currency: str = "usd"
    stripe_secret_key: SecretStr = Field(default=SecretStr(""), description="Stripe API key")
    mock_payment_decline_methods: List[str] = Field(
        default_factory=lambda: ["decline", "card_declined"],
        description="Payment method tokens the mock gateway declines",
    )

    # Notifications
    notification_provider: Literal["log", "in_app"] = Field(
        default="in_app",
        description="Notification gateway adapter",
    )

    # Celery / Redis
    redis_url: Optional[str] = Field(default="redis://localhost:6379/0")
    celery_broker_url: Optional[str] = None
    celery_result_backend: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("hold_ttl_minutes")
    @classmethod
    def _validate_hold_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("hold_ttl_minutes must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def _normalize_log_level(cls, v: str) -> str:
        return (v or "INFO").upper()

    def get_broker_url(self) -> str:
        return self.celery_broker_url or self.redis_url or "redis://localhost:6379/0"


settings = Settings()
