"""
Tests for the health check endpoint.
"""

import json

import pytest


@pytest.mark.django_db
class TestHealthCheck:
    def test_healthy(self, client, mocker):
        mocker.patch("core.views.get_redis_connection")

        response = client.get("/health/")

        assert response.status_code == 200
        assert json.loads(response.content) == {
            "status": "healthy",
            "database": "connected",
            "redis": "connected",
        }

    def test_redis_down(self, client, mocker):
        redis = mocker.patch("core.views.get_redis_connection")
        redis.return_value.ping.side_effect = ConnectionError("refused")

        response = client.get("/health/")

        assert response.status_code == 503
        assert json.loads(response.content)["redis"] == "disconnected"
