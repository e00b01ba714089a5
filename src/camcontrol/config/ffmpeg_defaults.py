"""FFmpeg default parameter configuration.

Single source of truth for the FFmpeg parameters used by every job that
touches the camera: the continuous relay, the black-frame probe, still
capture, recording and trim.

Downstream consumers seek and cut the relay output, so the relay always
encodes with a fixed frame rate and one keyframe per second.
"""
from typing import Final

# ============================================================================
# Program Names
# ============================================================================

FFMPEG_BIN: Final[str] = "ffmpeg"
V4L2_CTL_BIN: Final[str] = "v4l2-ctl"

# ============================================================================
# Shared Parameters
# ============================================================================

RTSP_INPUT_PARAMS: Final[list[str]] = [
    '-rtsp_transport', 'tcp',
]
"""Input parameters for every job reading the relay endpoint."""

# ============================================================================
# Relay Parameters
# ============================================================================

RELAY_ENCODE_PARAMS: Final[list[str]] = [
    '-vcodec', 'libx264',
    '-pix_fmt', 'yuv420p',
]
"""Encoder parameters for the relay (preset and GOP are added per settings)."""

RELAY_OUTPUT_PARAMS: Final[list[str]] = [
    '-f', 'rtsp',
    '-rtsp_transport', 'tcp',
]
"""Output container for publishing to the RTSP server."""

# ============================================================================
# Black-Frame Probe Parameters
# ============================================================================

BLACKDETECT_FRAMES: Final[str] = '1'
"""Frames decoded per probe attempt."""

# ============================================================================
# Recording Parameters
# ============================================================================

RECORD_ENCODE_PARAMS: Final[list[str]] = [
    '-vcodec', 'libx264',
    '-pix_fmt', 'yuv420p',
]
"""Recording encoder parameters."""

# ============================================================================
# Trim Parameters
# ============================================================================

TRIM_ENCODE_PARAMS: Final[list[str]] = [
    '-c:v', 'libx264',
    '-preset', 'ultrafast',
    '-c:a', 'aac',
]
"""Re-encode parameters for trimming leading blank video."""

TRIM_LEAD_IN: Final[float] = 1.0
"""Seconds of blank video kept before the detected start offset."""
