"""Prometheus metrics for observability.

Provides metrics for:
- Device lifecycle (current state)
- Commands (received by kind and outcome)
- Recordings (started, finished by reason, trims)
- Still captures
- Black-frame probe (attempts, inconclusive runs)
- FFmpeg processes (active count, relay exits)

Logging Strategy:
    INFO  - Module initialization
    ERROR - Metric generation failures
"""
from __future__ import annotations

import logging

from prometheus_client import (
    Counter,
    Enum,
    Gauge,
    Histogram,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    REGISTRY
)

from . import __version__
from .models.device import DeviceState

logger = logging.getLogger(__name__)

# ============================================================================
# Application Info
# ============================================================================

app_info = Info("camcontrol_app", "Application information")
app_info.info({
    "version": __version__,
    "name": "camcontrol",
    "description": "Camera capture lifecycle controller"
})

# ============================================================================
# Device Lifecycle
# ============================================================================

device_state = Enum(
    "camcontrol_device_state",
    "Current capture device state",
    states=[state.value for state in DeviceState]
)
device_state.state(DeviceState.IDLE.value)

# ============================================================================
# Commands
# ============================================================================

commands_total = Counter(
    "camcontrol_commands_total",
    "Commands received",
    ["kind", "outcome"]  # kind: picture/record/stop/setting, outcome: accepted/rejected/invalid/failed
)

# ============================================================================
# Recordings
# ============================================================================

recordings_started_total = Counter("camcontrol_recordings_started_total", "Recordings started")

recordings_finished_total = Counter(
    "camcontrol_recordings_finished_total",
    "Recordings finished",
    ["reason"]  # completed, stopped, failed
)

trims_total = Counter(
    "camcontrol_trims_total",
    "Trim attempts",
    ["status"]  # success, failure
)

trim_duration_seconds = Histogram(
    "camcontrol_trim_duration_seconds",
    "Trim re-encode wall time",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0, 300.0, 600.0)
)

# ============================================================================
# Still Captures
# ============================================================================

captures_total = Counter(
    "camcontrol_captures_total",
    "Still image captures",
    ["status"]  # success, failure
)

# ============================================================================
# Black-Frame Probe
# ============================================================================

probe_attempts = Histogram(
    "camcontrol_probe_attempts",
    "Probe attempts needed per detection",
    buckets=(1, 2, 3, 5, 10, 15, 25, 50)
)

probe_inconclusive_total = Counter(
    "camcontrol_probe_inconclusive_total",
    "Probe runs that hit their bound without a result"
)

# ============================================================================
# FFmpeg Processes
# ============================================================================

ffmpeg_processes_active = Gauge("camcontrol_ffmpeg_processes_active", "Active long-lived FFmpeg processes")
relay_exits_total = Counter("camcontrol_relay_exits_total", "Relay process exits", ["status"])

# ============================================================================
# Metrics Export
# ============================================================================

def get_metrics() -> tuple[bytes, int, dict[str, str]]:
    """Generate Prometheus metrics in text format.

    Returns:
        (body, status_code, headers) for FastAPI Response
    """
    try:
        metrics = generate_latest(REGISTRY)
        return (metrics, 200, {"Content-Type": CONTENT_TYPE_LATEST})
    except Exception as e:
        logger.error(f"Metrics generation failed: {e}", exc_info=True)
        return (b"# Error\n", 500, {"Content-Type": "text/plain"})


def set_device_state(state: DeviceState) -> None:
    """Mirror the controller state into the state enum."""
    device_state.state(state.value)


logger.info("Prometheus metrics initialized")
