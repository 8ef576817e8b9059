import pytest
from fastapi.testclient import TestClient

from outbox.api.main import app, wire_services
from outbox.config import Settings
from outbox.message_queue import InMemoryOutboxStore


@pytest.fixture
def api_settings():
    return Settings(
        _env_file=None,
        queue_backend="memory",
        process_on_enqueue=False,
        twilio_account_sid="AC123",
        twilio_auth_token="secret",
        twilio_whatsapp_from="+14155238886",
    )


@pytest.fixture
def client(api_settings, gateway):
    """Test client with in-memory services; the lifespan handler is not run."""
    wire_services(app, api_settings, InMemoryOutboxStore(), gateway)
    return TestClient(app)
