"""
Tests for health probes, metrics and request logging headers.
"""

from blueme.storage import JsonFileStore, get_store
from conftest import ALICE, register


class TestHealth:

    def test_live(self, client):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json()["status"] == "ok"

    def test_ready(self, client):
        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["status"] == "ready"

    def test_not_ready_when_storage_unwritable(self, client, test_app, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("not a directory")
        test_app.dependency_overrides[get_store] = lambda: JsonFileStore(blocker / "data")

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "not_ready"


class TestMetrics:

    def test_metrics_exposed(self, alice, bob):
        alice_client, _ = alice
        _, bob_user = bob
        alice_client.post("/messages", json={"receiverId": bob_user["id"], "content": "hi"})

        response = alice_client.get("/metrics")

        assert response.status_code == 200
        body = response.text
        assert "http_requests_total" in body
        assert "messages_sent_total" in body
        assert 'auth_attempts_total{action="login",result="success"}' in body

    def test_route_template_used_as_path_label(self, alice):
        alice_client, _ = alice
        alice_client.get("/users/nobody")

        body = alice_client.get("/metrics").text

        assert 'path="/users/{target_id}"' in body


class TestRequestId:

    def test_response_includes_request_id_header(self, client):
        response = client.get("/health/live")
        assert "x-request-id" in response.headers

    def test_incoming_request_id_is_echoed(self, client):
        response = client.get("/health/live", headers={"X-Request-ID": "trace-123"})
        assert response.headers["x-request-id"] == "trace-123"

    def test_errors_include_request_id_header(self, client):
        register(client, **ALICE)
        response = client.post("/auth/register", json=ALICE)

        assert response.status_code == 400
        assert "x-request-id" in response.headers
