"""Service settings models.

Defines Pydantic v2 models for the controller configuration:
- MqttSettings: broker, topics and TLS material
- ProbeSettings: black-frame probe cadence and bounds
- RelaySettings: continuous relay encoding parameters
- Settings: top-level model with device, stream and timeouts

Field Validation:
- Stream URL must start with rtsp:// or rtsps://
- Timeouts and intervals must be positive
- Video size must look like WIDTHxHEIGHT
"""
from __future__ import annotations

import re
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

VIDEO_SIZE_PATTERN = re.compile(r"^\d+x\d+$")


# ============================================================================
# Transport
# ============================================================================

class MqttSettings(BaseModel):
    """MQTT broker connection and topic layout."""

    host: str = Field(default="camera-mosquitto", min_length=1)
    port: int = Field(default=8883, ge=1, le=65535)
    client_id: str = Field(default="camcontrol", min_length=1)
    keepalive: int = Field(default=60, ge=5)

    settings_topic: str = Field(default="camera/control/settings")
    action_topic: str = Field(default="camera/control/action")
    status_topic: str = Field(default="camera/status")

    tls: bool = Field(default=True, description="Use mutual TLS")
    ca_cert: Path = Field(default=Path("/app/backend-certs/ca_chain.crt"))
    client_cert: Path = Field(default=Path("/app/backend-certs/crt/client_chain.crt"))
    client_key: Path = Field(default=Path("/app/backend-certs/private/client_decrypted.key"))


# ============================================================================
# Black-Frame Probe
# ============================================================================

class ProbeSettings(BaseModel):
    """Bounds for the black-frame probe retry loop.

    The probe gives up at whichever comes first: max_attempts runs or
    deadline seconds since the first attempt.
    """

    interval: float = Field(default=0.2, ge=0.0, description="Sleep between attempts (s)")
    max_attempts: int = Field(default=25, ge=1)
    deadline: float = Field(default=20.0, gt=0.0, description="Overall time limit (s)")
    attempt_timeout: float = Field(default=10.0, gt=0.0, description="Per-run ffmpeg timeout (s)")
    black_min_duration: float = Field(default=0.1, gt=0.0)
    pixel_threshold: float = Field(default=0.01, ge=0.0, le=1.0)


# ============================================================================
# Relay
# ============================================================================

class RelaySettings(BaseModel):
    """Encoding parameters for the continuous device relay."""

    input_format: str = Field(default="mjpeg")
    framerate: int = Field(default=15, ge=1, le=120)
    video_size: str = Field(default="1280x720")
    preset: str = Field(default="ultrafast")

    @field_validator("video_size")
    @classmethod
    def validate_video_size(cls, value: str) -> str:
        if not VIDEO_SIZE_PATTERN.match(value):
            raise ValueError("video_size must be WIDTHxHEIGHT")
        return value


# ============================================================================
# Top-level Settings
# ============================================================================

class Settings(BaseModel):
    """Complete controller configuration."""

    device: str = Field(default="/dev/video0", min_length=1)
    stream_url: str = Field(default="rtsp://camera-mediamtx:8554/webcam")
    captures_dir: Path = Field(default=Path("./captures"))
    chown_user: str | None = Field(
        default=None,
        description="Owner for captured files (defaults to SUDO_USER/USER)"
    )

    capture_timeout: float = Field(default=30.0, gt=0.0)
    trim_timeout: float = Field(default=600.0, gt=0.0)
    stop_timeout: float = Field(default=10.0, gt=0.0)
    device_reset_timeout: float = Field(default=2.0, gt=0.0)
    control_timeout: float = Field(default=5.0, gt=0.0)

    mqtt: MqttSettings = Field(default_factory=MqttSettings)
    probe: ProbeSettings = Field(default_factory=ProbeSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)

    @field_validator("stream_url")
    @classmethod
    def validate_stream_url(cls, value: str) -> str:
        """Validate RTSP URL protocol."""
        if not value.startswith(("rtsp://", "rtsps://")):
            raise ValueError("stream_url must start with rtsp:// or rtsps://")
        return value
