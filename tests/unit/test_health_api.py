"""
Unit tests for health and metrics endpoints.

Tests GET /health, GET /health/live and GET /metrics with the service
container patched (the application lifespan is not started).
"""

from unittest.mock import Mock, patch

from fastapi.testclient import TestClient

from camcontrol import __version__
from camcontrol.main import app


client = TestClient(app)


def make_controller(state="streaming"):
    controller = Mock()
    controller.snapshot.return_value = {"state": state, "recording": None}
    return controller


class TestHealthEndpoint:
    """Tests for GET /health."""

    def test_healthy_when_relay_and_transport_up(self):
        with patch("camcontrol.services.container.controller", make_controller()), \
             patch("camcontrol.services.container.relay", Mock(running=True)), \
             patch("camcontrol.services.container.transport", Mock(connected=True)), \
             patch("camcontrol.services.container.dispatcher", Mock(pending=2)):
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["device"] == {"state": "streaming", "recording": None}
        assert data["pending_commands"] == 2

    def test_degraded_when_relay_down(self):
        with patch("camcontrol.services.container.controller", make_controller("idle")), \
             patch("camcontrol.services.container.relay", Mock(running=False)), \
             patch("camcontrol.services.container.transport", Mock(connected=True)), \
             patch("camcontrol.services.container.dispatcher", None):
            response = client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "degraded"
        assert data["relay_running"] is False
        assert data["pending_commands"] == 0

    def test_returns_503_before_startup(self):
        with patch("camcontrol.services.container.controller", None):
            response = client.get("/health")

        assert response.status_code == 503
        assert "not initialized" in response.json()["detail"]


class TestLivenessEndpoint:

    def test_alive(self):
        response = client.get("/health/live")

        assert response.status_code == 200
        assert response.json() == {"status": "alive"}


class TestMetricsEndpoint:

    def test_exposes_device_state(self):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "camcontrol_device_state" in response.text
        assert "camcontrol_commands_total" in response.text

    def test_reports_package_version(self):
        response = client.get("/metrics")

        assert f'version="{__version__}"' in response.text
