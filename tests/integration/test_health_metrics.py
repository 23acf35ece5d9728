"""Integration tests for /health, /healthz and /metrics endpoints."""

from unittest.mock import AsyncMock, patch

from fastapi.testclient import TestClient


class TestHealthEndpoint:
    """Test health endpoints."""

    def test_health_always_ok(self, client: TestClient) -> None:
        """Test liveness endpoint."""
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "ok"}

    def test_healthz_ok_with_sqlite_index_and_no_redis(self, client: TestClient) -> None:
        """Test /healthz against the real index engine."""
        response = client.get("/healthz")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["components"] == {"index_db": "ok", "redis": "not_configured"}

    @patch("edu_cms.app.api.routes.health.check_redis", new_callable=AsyncMock)
    @patch("edu_cms.app.api.routes.health.check_db", new_callable=AsyncMock)
    def test_healthz_returns_503_when_db_fails(
        self,
        mock_check_db: AsyncMock,
        mock_check_redis: AsyncMock,
        client: TestClient,
    ) -> None:
        """Test /healthz returns 503 when the index database is down."""
        mock_check_db.return_value = (False, "connection refused")
        mock_check_redis.return_value = (True, "ok")

        response = client.get("/healthz")

        assert response.status_code == 503
        data = response.json()
        assert data["status"] == "degraded"
        assert data["components"]["index_db"] == "connection refused"
        assert data["components"]["redis"] == "ok"

    @patch("edu_cms.app.api.routes.health.check_redis", new_callable=AsyncMock)
    @patch("edu_cms.app.api.routes.health.check_db", new_callable=AsyncMock)
    def test_healthz_returns_503_when_redis_fails(
        self,
        mock_check_db: AsyncMock,
        mock_check_redis: AsyncMock,
        client: TestClient,
    ) -> None:
        """Test /healthz returns 503 when Redis check fails."""
        mock_check_db.return_value = (True, "ok")
        mock_check_redis.return_value = (False, "timeout")

        response = client.get("/healthz")

        assert response.status_code == 503
        assert response.json()["components"]["redis"] == "timeout"


class TestMetricsEndpoint:
    """Test /metrics endpoint."""

    def test_metrics_exposes_article_metrics(self, client: TestClient) -> None:
        """Test repository operations show up in Prometheus output."""
        client.post("/file-articles", json={"title": "Metrics", "body": "<p>count me</p>"})

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "article_operations_total" in response.text
        assert 'operation="save"' in response.text
        assert "article_lock_wait_ms" in response.text
