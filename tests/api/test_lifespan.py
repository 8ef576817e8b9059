"""
Tests for application startup wiring.
"""
from fastapi.testclient import TestClient

from outbox.api import main
from outbox.config import Settings
from outbox.message_queue import InMemoryOutboxStore


class TestOpenStore:
    async def test_memory_backend(self):
        store = await main.open_store(Settings(_env_file=None, queue_backend="memory"))

        assert isinstance(store, InMemoryOutboxStore)


class TestLifespan:
    def test_startup_and_shutdown_with_memory_backend(self, monkeypatch):
        settings = Settings(_env_file=None, queue_backend="memory", queue_poll_interval_seconds=0.05)
        monkeypatch.setattr(main, "get_settings", lambda: settings)

        with TestClient(main.app) as client:
            assert client.get("/ready").status_code == 200
            assert not client.app.state.worker_task.done()
            assert client.app.state.processor.batch_size == settings.queue_batch_size

        assert not main.app.state.worker.running
