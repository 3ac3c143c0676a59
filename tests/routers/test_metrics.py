from typing import Iterator
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from userphone.dependencies import (
    get_call_metrics,
    get_cleanup_service,
    get_match_engine,
)
from userphone.main import app
from userphone.models.api.metrics import MatchingStats
from userphone.services.call_metrics import CallMetrics


class TestMetricsRouter:
    """Unit tests for the metrics and maintenance endpoints."""

    @pytest.fixture
    def metrics(self) -> CallMetrics:
        metrics = CallMetrics()
        metrics.record_command_time(200)
        metrics.record_command_time(1900)
        metrics.record_matching_time(50)
        return metrics

    @pytest.fixture
    def cleanup(self) -> MagicMock:
        cleanup = MagicMock()
        cleanup.run_once = AsyncMock(return_value=3)
        return cleanup

    @pytest.fixture
    def client(self, metrics: CallMetrics, cleanup: MagicMock) -> Iterator[TestClient]:
        engine = MagicMock()
        engine.get_matching_stats = AsyncMock(
            return_value=MatchingStats(
                average_match_time_ms=12.5, success_rate=0.5, queue_length=2
            )
        )
        app.dependency_overrides[get_call_metrics] = lambda: metrics
        app.dependency_overrides[get_match_engine] = lambda: engine
        app.dependency_overrides[get_cleanup_service] = lambda: cleanup
        yield TestClient(app)
        app.dependency_overrides.clear()

    def test_stats(self, client: TestClient) -> None:
        response = client.get("/api/metrics")

        assert response.status_code == 200
        data = response.json()
        assert data["average_command_time_ms"] == 1050
        assert data["command_sla_exceeded"] is True
        assert data["matching_sla_exceeded"] is False
        assert data["matching_success_rate"] == 1.0

    def test_detailed_report(self, client: TestClient) -> None:
        response = client.get("/api/metrics/report")

        assert response.json() == {
            "command_metrics": {"average": 1050.0},
            "matching_metrics": {"average": 50.0, "success_rate": 1.0},
        }

    def test_matching_stats(self, client: TestClient) -> None:
        response = client.get("/api/metrics/matching")

        assert response.json() == {
            "average_match_time_ms": 12.5,
            "success_rate": 0.5,
            "queue_length": 2,
        }

    def test_manual_cleanup(self, client: TestClient) -> None:
        response = client.post("/api/maintenance/cleanup")

        assert response.status_code == 200
        assert response.json() == {"deleted": 3}

    def test_manual_cleanup_failure(
        self, client: TestClient, cleanup: MagicMock
    ) -> None:
        cleanup.run_once.side_effect = RuntimeError("db down")

        response = client.post("/api/maintenance/cleanup")

        assert response.status_code == 500
        assert response.json() == {"detail": "Internal server error"}
