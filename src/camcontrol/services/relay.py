"""Continuous device relay.

The relay is the only process that opens the camera device. It encodes
the raw feed with a fixed frame rate and keyframe interval and publishes
it to the RTSP endpoint; probe, still capture and recording jobs all read
that endpoint instead of the device.

Runs once for the lifetime of the service. An abnormal exit is logged
and counted; it is not restarted.

Logging Strategy:
    INFO  - Relay start/stop
    ERROR - Relay died immediately after launch
    CRITICAL - Relay exited unexpectedly while the service was running
"""
from __future__ import annotations

import asyncio
import logging
from typing import Final

from .. import metrics
from ..config.ffmpeg_defaults import FFMPEG_BIN
from ..errors import SubprocessFailure
from ..models.settings import Settings
from ..utils.ffmpeg import build_relay_args
from ..utils.strings import mask_rtsp_credentials, output_tail
from .process_runner import ProcessHandle, ProcessRunner

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

RELAY_STARTUP_GRACE: Final[float] = 0.5
"""Seconds to wait before checking that the relay survived launch."""


class CapturePipeline:
    """Owns the relay process and its supervisor task."""

    def __init__(self, runner: ProcessRunner, settings: Settings) -> None:
        self.runner = runner
        self.settings = settings
        self.handle: ProcessHandle | None = None
        self._supervisor: asyncio.Task[None] | None = None
        self._stopping = False

    @property
    def running(self) -> bool:
        return self.handle is not None and self.handle.running

    async def start(self) -> None:
        """Launch the relay and verify it did not die immediately.

        Raises:
            StartError: ffmpeg could not be launched
            SubprocessFailure: ffmpeg exited during the startup grace period
        """
        if self.running:
            logger.warning("Relay already running")
            return

        args = build_relay_args(self.settings.device, self.settings.stream_url, self.settings.relay)
        logger.info(
            f"Starting relay: {self.settings.device} → "
            f"{mask_rtsp_credentials(self.settings.stream_url)}"
        )

        self._stopping = False
        self.handle = await self.runner.start(FFMPEG_BIN, args, name="relay")
        metrics.ffmpeg_processes_active.inc()
        self._supervisor = asyncio.create_task(self._supervise(self.handle))

        await asyncio.sleep(RELAY_STARTUP_GRACE)
        if not self.handle.running:
            await self._supervisor
            raise SubprocessFailure(
                f"Relay exited immediately (code {self.handle.returncode})",
                returncode=self.handle.returncode,
                output=self.handle.output
            )

        logger.info(f"Relay started (PID={self.handle.pid})")

    async def stop(self, timeout: float) -> None:
        """Stop the relay gracefully and wait for its supervisor."""
        if self.handle is None:
            return

        self._stopping = True
        await self.handle.terminate(timeout)
        if self._supervisor is not None:
            await self._supervisor
        logger.info("Relay stopped")

    async def _supervise(self, handle: ProcessHandle) -> None:
        returncode, output = await handle.wait()
        metrics.ffmpeg_processes_active.dec()

        if self._stopping:
            metrics.relay_exits_total.labels(status="stopped").inc()
        elif returncode == 0:
            metrics.relay_exits_total.labels(status="normal").inc()
            logger.info("Relay exited normally")
        else:
            metrics.relay_exits_total.labels(status="error").inc()
            logger.critical(f"Relay exited with code {returncode}: {output_tail(output)}")
