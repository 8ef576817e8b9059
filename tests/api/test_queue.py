"""
Tests for queue processing and statistics endpoints.
"""


class TestProcessEndpoint:
    """POST /queue/process"""

    def test_accepts_and_processes(self, client, gateway):
        client.post("/messages", json={"destination": "+923001234567", "content": "hello"})

        response = client.post("/queue/process")

        assert response.status_code == 202
        assert response.json() == {"accepted": True}
        # Background tasks complete before TestClient returns
        [message] = client.get("/messages/+923001234567").json()
        assert message["status"] == "sent"
        assert message["providerMessageId"] == "SM-fake"
        assert len(gateway.sent) == 1

    def test_empty_queue(self, client):
        assert client.post("/queue/process").status_code == 202


class TestQueueStats:
    """GET /queue/stats"""

    def test_counts_pending(self, client):
        client.post("/messages", json={"destination": "+923001234567", "content": "a", "priority": 0})
        client.post("/messages", json={"destination": "+923001234567", "content": "b", "priority": 3})

        data = client.get("/queue/stats").json()

        assert data["by_status"]["pending"] == 2
        assert data["pending_by_priority"]["0"] == 1
        assert data["pending_by_priority"]["3"] == 1
        assert data["stuck_processing"] == 0
        assert data["oldest_pending_age_seconds"] >= 0
