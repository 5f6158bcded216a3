"""
Unit tests for /health endpoint.
"""


class TestHealthRoutes:
    """Tests for /health endpoint."""

    def test_health_check(self, client):
        """GET /health returns 200 when the store answers."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"ok": True}

    def test_health_no_auth_required(self, client):
        response = client.get("/health")

        assert response.status_code == 200

    def test_health_db_down(self, client, repo):
        repo.fail_on = "ping"

        response = client.get("/health")

        assert response.status_code == 500
        assert "connection refused" not in response.text
