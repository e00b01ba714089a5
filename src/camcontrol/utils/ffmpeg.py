"""FFmpeg command building and diagnostic parsing.

Pure helpers: every function returns an argument list for the process
runner (program name excluded) or parses ffmpeg output. Nothing here
spawns processes.

FFmpeg Pipeline:
    /dev/videoN → relay (x264, fixed GOP) → RTSP endpoint
    RTSP endpoint → probe | still capture | recording
    recording file → trim → recording file

Logging Strategy:
    DEBUG - Command building, parse results
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Final

from ..config.ffmpeg_defaults import (
    BLACKDETECT_FRAMES,
    RECORD_ENCODE_PARAMS,
    RELAY_ENCODE_PARAMS,
    RELAY_OUTPUT_PARAMS,
    RTSP_INPUT_PARAMS,
    TRIM_ENCODE_PARAMS,
    TRIM_LEAD_IN,
)
from ..models.settings import ProbeSettings, RelaySettings

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

BLACK_START_MARKER: Final[str] = "black_start"
"""Present in blackdetect output when a blank segment was seen."""

BLACK_END_PATTERN: Final[re.Pattern[str]] = re.compile(r"black_end:\s*(\S+)")
"""Captures the timestamp following each black_end marker."""

# ============================================================================
# Command Building
# ============================================================================

def build_relay_args(device: str, stream_url: str, relay: RelaySettings) -> list[str]:
    """Build the continuous relay command.

    Reads the raw device and republishes it to the RTSP endpoint with a
    fixed frame rate and a keyframe every second.

    Args:
        device: V4L2 device node (e.g. /dev/video0)
        stream_url: RTSP endpoint to publish to
        relay: Relay encoding settings

    Returns:
        ffmpeg argument list
    """
    gop = str(relay.framerate)
    args = [
        '-nostdin',
        '-loglevel', 'info',
        '-f', 'v4l2',
        '-input_format', relay.input_format,
        '-framerate', str(relay.framerate),
        '-video_size', relay.video_size,
        '-i', device,
    ]
    args.extend(RELAY_ENCODE_PARAMS)
    args.extend([
        '-preset', relay.preset,
        '-g', gop,
        '-keyint_min', gop,
        '-force_key_frames', 'expr:gte(t,n_forced*1)',
    ])
    args.extend(RELAY_OUTPUT_PARAMS)
    args.append(stream_url)

    logger.debug(f"Relay command built: {len(args)} args, fps={relay.framerate}")
    return args


def build_blackdetect_args(stream_url: str, probe: ProbeSettings) -> list[str]:
    """Build a single-frame blank-detection probe against the stream."""
    args = ['-nostdin']
    args.extend(RTSP_INPUT_PARAMS)
    args.extend([
        '-i', stream_url,
        '-vframes', BLACKDETECT_FRAMES,
        '-vf', f"blackdetect=d={probe.black_min_duration:g}:pix_th={probe.pixel_threshold:g}",
        '-an',
        '-f', 'null',
        '-',
    ])
    return args


def build_capture_args(stream_url: str, output: Path) -> list[str]:
    """Build a single-frame JPEG capture from the stream."""
    args = ['-nostdin']
    args.extend(RTSP_INPUT_PARAMS)
    args.extend([
        '-i', stream_url,
        '-frames:v', '1',
        '-f', 'image2',
        '-loglevel', 'error',
        '-y',
        str(output),
    ])
    return args


def build_record_args(
    stream_url: str,
    output: Path,
    duration: float | None = None,
) -> list[str]:
    """Build a recording command.

    The duration, when given, is ffmpeg's own stop condition (``-t``).
    Without it the process records until interrupted.
    """
    args = ['-nostdin']
    args.extend(RTSP_INPUT_PARAMS)
    if duration is not None:
        args.extend(['-t', f"{duration:g}"])
    args.extend(['-i', stream_url])
    args.extend(RECORD_ENCODE_PARAMS)
    args.extend(['-y', str(output)])
    return args


def trim_start(start_offset: float) -> float:
    """Seek point for trimming: one second of lead-in, never negative."""
    return max(start_offset - TRIM_LEAD_IN, 0.0)


def build_trim_args(source: Path, output: Path, start_offset: float) -> list[str]:
    """Build the trim re-encode command.

    The output path is always the final argument.
    """
    args = [
        '-nostdin',
        '-i', str(source),
        '-ss', f"{trim_start(start_offset):.3f}",
    ]
    args.extend(TRIM_ENCODE_PARAMS)
    args.extend(['-f', 'mp4', '-y', str(output)])
    return args


# ============================================================================
# Diagnostic Parsing
# ============================================================================

def parse_start_offset(output: str) -> float | None:
    """Extract the start of usable video from blackdetect output.

    Args:
        output: Combined ffmpeg output of one probe run

    Returns:
        0.0 when no blank segment was reported, the LAST parsable
        black_end timestamp when one was, or None when a blank segment
        was reported but no end timestamp could be parsed (retry).

    Examples:
        >>> parse_start_offset("frame=1 fps=0.0")
        0.0
        >>> parse_start_offset("black_start:0 black_end:1.2\\nblack_start:2 black_end:3.4")
        3.4
    """
    if BLACK_START_MARKER not in output:
        return 0.0

    offset: float | None = None
    for match in BLACK_END_PATTERN.finditer(output):
        try:
            value = float(match.group(1))
        except ValueError:
            continue
        if value >= 0.0:
            offset = value

    logger.debug(f"Parsed black_end offset: {offset}")
    return offset
