"""
Tests for structured delivery logging.
"""
import pytest
from loguru import logger

from outbox.utils.observability import log_delivery_event


@pytest.fixture
def records():
    captured = []
    handler_id = logger.add(lambda message: captured.append(message.record), level="DEBUG")
    yield captured
    logger.remove(handler_id)


class TestLogDeliveryEvent:
    def test_binds_ids(self, records):
        log_delivery_event("sent", queue_id="q1", message_id="m1", retry_count=0, provider_message_id="SM1")

        [record] = records
        assert record["level"].name == "INFO"
        assert record["extra"]["event_type"] == "sent"
        assert record["extra"]["queue_id"] == "q1"
        assert record["extra"]["provider_message_id"] == "SM1"

    def test_errors_log_as_warning(self, records):
        log_delivery_event("retry_scheduled", queue_id="q1", message_id="m1", retry_count=1, error="timeout")

        [record] = records
        assert record["level"].name == "WARNING"
        assert record["extra"]["error"] == "timeout"
