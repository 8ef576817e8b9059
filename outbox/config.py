"""
Centralized Configuration System
Environment-aware settings for the delivery outbox.
"""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )
    """
    Loads from environment variables with sensible defaults.
    """

    app_name: str = "WhatsApp Delivery Outbox"

    # ============================================
    # STORAGE
    # ============================================
    queue_backend: Literal["mongodb", "memory"] = "mongodb"
    mongodb_uri: str = "mongodb://localhost:27017"
    mongodb_database: str = "workforce_messaging"
    mongodb_max_pool_size: int = 50
    mongodb_min_pool_size: int = 5
    mongodb_server_selection_timeout_ms: int = 5000
    # Multi-document transactions need a replica set (Atlas always has one)
    mongodb_use_transactions: bool = False

    # ============================================
    # TWILIO GATEWAY
    # ============================================
    twilio_account_sid: str = ""
    twilio_auth_token: str = ""
    twilio_whatsapp_from: str = ""
    default_phone_region: str = "PK"
    gateway_timeout_seconds: float = 30.0

    # ============================================
    # QUEUE & RETRY
    # ============================================
    queue_batch_size: int = 10
    queue_poll_interval_seconds: float = 10.0
    queue_max_retries: int = 3
    retry_base_delay_ms: int = 5000
    retry_backoff_multiplier: int = 2
    process_on_enqueue: bool = True
    stuck_processing_threshold_seconds: int = 600
    stuck_sweep_interval_seconds: float = 60.0

    # ============================================
    # HEALTH
    # ============================================
    health_check_interval_seconds: float = 30.0
    daily_message_quota: int = 1000

    # ============================================
    # LOGGING
    # ============================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    enable_structured_logging: bool = False  # Set to True for production JSON logs

    # ============================================
    # ENVIRONMENT
    # ============================================
    environment: Literal["development", "test", "staging", "production"] = "development"

    @model_validator(mode="after")
    def check_batch_window(self) -> "Settings":
        # Every send in a batch must start before its claim can be swept as stuck
        window = self.queue_batch_size * self.gateway_timeout_seconds
        if window >= self.stuck_processing_threshold_seconds:
            raise ValueError(
                f"queue_batch_size * gateway_timeout_seconds ({window:g}s) must be below "
                f"stuck_processing_threshold_seconds ({self.stuck_processing_threshold_seconds}s)"
            )
        return self


@lru_cache()
def get_settings() -> Settings:
    """
    Singleton pattern for settings.
    Uses LRU cache to ensure only one Settings instance exists.
    """
    return Settings()


# Convenience accessor for common use
settings = get_settings()
