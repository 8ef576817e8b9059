"""
Tests for centralized configuration system.
Verifies environment variable loading and default values.
"""
import pytest
from pydantic import ValidationError

from outbox.config import Settings, get_settings


class TestConfigurationSystem:
    """Test suite for configuration management."""

    def test_default_values(self, monkeypatch):
        """Verify all configuration fields have sensible defaults."""
        for name in ("QUEUE_MAX_RETRIES", "GATEWAY_TIMEOUT_SECONDS", "QUEUE_BATCH_SIZE"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings(_env_file=None)

        # Queue & retry
        assert settings.queue_batch_size == 10
        assert settings.queue_max_retries == 3
        assert settings.retry_base_delay_ms == 5000
        assert settings.retry_backoff_multiplier == 2
        assert settings.stuck_processing_threshold_seconds == 600

        # Scheduling
        assert settings.queue_poll_interval_seconds == 10.0
        assert settings.stuck_sweep_interval_seconds == 60.0
        assert settings.health_check_interval_seconds == 30.0

        # Gateway
        assert settings.gateway_timeout_seconds == 30.0
        assert settings.default_phone_region == "PK"

    def test_environment_variable_override(self, monkeypatch):
        """Verify environment variables override defaults."""
        monkeypatch.setenv("QUEUE_MAX_RETRIES", "5")
        monkeypatch.setenv("QUEUE_BACKEND", "memory")
        monkeypatch.setenv("GATEWAY_TIMEOUT_SECONDS", "12.5")

        settings = Settings(_env_file=None)

        assert settings.queue_max_retries == 5
        assert settings.queue_backend == "memory"
        assert settings.gateway_timeout_seconds == 12.5

    def test_batch_must_finish_before_stuck_threshold(self):
        with pytest.raises(ValidationError, match="stuck_processing_threshold_seconds"):
            Settings(
                _env_file=None,
                queue_batch_size=20,
                gateway_timeout_seconds=30.0,
                stuck_processing_threshold_seconds=600,
            )

        settings = Settings(
            _env_file=None,
            queue_batch_size=19,
            gateway_timeout_seconds=30.0,
            stuck_processing_threshold_seconds=600,
        )
        assert settings.queue_batch_size == 19

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()

        assert get_settings() is get_settings()
