"""Health and metrics endpoints.

Health Status Levels:
    - healthy: relay running, transport connected
    - degraded: relay down or transport disconnected (commands may fail)
    - 503: controller not initialized (startup failed)

Usage:
    >>> GET /health
    {
        "status": "healthy",
        "device": {"state": "recording", "recording": {...}},
        "relay_running": true,
        "transport_connected": true,
        "pending_commands": 0
    }

    >>> GET /health/live
    {"status": "alive"}
"""
from typing import Any, Dict, Literal
import logging

from fastapi import APIRouter, Depends, HTTPException, Response, status

from .. import metrics
from ..services import container
from ..services.lifecycle import LifecycleController

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

HealthStatus = Literal["healthy", "degraded"]


def get_controller() -> LifecycleController:
    """Dependency injection for the lifecycle controller."""
    try:
        return container.get_controller()
    except RuntimeError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=str(e)
        ) from e


def determine_health(relay_running: bool, transport_connected: bool) -> HealthStatus:
    if relay_running and transport_connected:
        return "healthy"
    return "degraded"


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(
    controller: LifecycleController = Depends(get_controller)
) -> Dict[str, Any]:
    """Device state, relay and transport status."""
    relay_running = container.relay is not None and container.relay.running
    transport_connected = container.transport is not None and container.transport.connected
    overall = determine_health(relay_running, transport_connected)

    if overall == "degraded":
        logger.warning(
            f"Health check: degraded (relay_running={relay_running}, "
            f"transport_connected={transport_connected})"
        )

    return {
        "status": overall,
        "device": controller.snapshot(),
        "relay_running": relay_running,
        "transport_connected": transport_connected,
        "pending_commands": container.dispatcher.pending if container.dispatcher else 0,
    }


@router.get("/health/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> Dict[str, str]:
    """Simple liveness check; no dependency checks."""
    logger.debug("Liveness check called")
    return {"status": "alive"}


@router.get("/metrics")
async def prometheus_metrics() -> Response:
    """Prometheus text exposition."""
    body, status_code, headers = metrics.get_metrics()
    return Response(content=body, status_code=status_code, headers=headers)
