"""Device state and job models.

Defines:
- DeviceState: the four lifecycle states of the single capture device
- CaptureJob: one still-image capture (Pydantic, immutable value)
- RecordingJob: one in-flight recording owning its ffmpeg process

Only the lifecycle controller creates, mutates or discards these.
"""
from __future__ import annotations

import asyncio
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from ..services.process_runner import ProcessHandle


# ============================================================================
# Enums
# ============================================================================

class DeviceState(str, Enum):
    """Lifecycle state of the capture device."""
    IDLE = "idle"              # Relay not started yet
    STREAMING = "streaming"    # Relay running, no job in flight
    CAPTURING = "capturing"    # Still-image capture in flight
    RECORDING = "recording"    # Recording process in flight


class FinishReason(str, Enum):
    """Why a recording process exited."""
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"


# ============================================================================
# Jobs
# ============================================================================

class CaptureJob(BaseModel):
    """Still-image capture request."""

    model_config = ConfigDict(frozen=True)

    path: Path = Field(description="Absolute output path of the JPEG")
    stream_url: str = Field(description="Relay endpoint to grab the frame from")


class RecordingJob:
    """One in-flight recording.

    Created by the controller when a record command is accepted and owned
    by it until the completion task has trimmed the file.

    Attributes:
        path: Absolute output path of the MP4
        duration: Requested duration in seconds (None = until stopped)
        handle: ffmpeg process writing ``path``
        start_offset: Seconds of leading blank video (set after probing)
        stop_requested: True once a graceful interrupt was delivered
        announced: Set once "recording started" has been published
    """

    def __init__(
        self,
        path: Path,
        duration: float | None,
        handle: ProcessHandle,
    ) -> None:
        self.path = path
        self.duration = duration
        self.handle = handle
        self.start_offset: float = 0.0
        self.stop_requested = False
        self.announced = asyncio.Event()
        self.completion: asyncio.Task[None] | None = None

    def finish_reason(self, returncode: int) -> FinishReason:
        if self.stop_requested:
            return FinishReason.STOPPED
        if returncode == 0:
            return FinishReason.COMPLETED
        return FinishReason.FAILED

    def __repr__(self) -> str:
        return (
            f"RecordingJob(path={self.path!s}, duration={self.duration}, "
            f"pid={self.handle.pid}, offset={self.start_offset:.3f})"
        )
