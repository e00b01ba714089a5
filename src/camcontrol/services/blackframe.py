"""Black-frame probe for stream warm-up detection.

When a stream is first opened the camera delivers a few blank frames.
The probe runs ffmpeg's blackdetect filter against one frame of the
relay endpoint, repeatedly, until it can tell when usable video begins.

Result per attempt:
    no blank segment reported   → 0.0 (usable from the start, any exit code)
    blank segment with end(s)   → last black_end timestamp
    blank without a parsable end, timed-out or unstartable run → retry

The loop is bounded by ProbeSettings.max_attempts and
ProbeSettings.deadline; exhausting either raises ProbeInconclusive.

Logging Strategy:
    DEBUG - Each attempt and its outcome
    INFO  - Detected offset
    WARN  - Failed attempts, inconclusive result
"""
from __future__ import annotations

import asyncio
import logging

from .. import metrics
from ..config.ffmpeg_defaults import FFMPEG_BIN
from ..errors import ProbeInconclusive, StartError
from ..models.settings import ProbeSettings
from ..utils.ffmpeg import build_blackdetect_args, parse_start_offset
from ..utils.strings import mask_rtsp_credentials, output_tail
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)


class BlackFrameProbe:
    """Finds the start offset of usable video on the relay stream."""

    def __init__(self, runner: ProcessRunner, stream_url: str, settings: ProbeSettings) -> None:
        self.runner = runner
        self.stream_url = stream_url
        self.settings = settings

    async def detect(self) -> float:
        """Probe until a start offset is known.

        Returns:
            Non-negative start offset in seconds

        Raises:
            ProbeInconclusive: attempts or deadline exhausted
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.settings.deadline
        args = build_blackdetect_args(self.stream_url, self.settings)

        logger.debug(f"Probing for black frames: {mask_rtsp_credentials(self.stream_url)}")

        attempt = 0
        while attempt < self.settings.max_attempts:
            attempt += 1
            remaining = deadline - loop.time()
            if remaining <= 0:
                break

            timeout = min(self.settings.attempt_timeout, remaining)
            offset = await self._attempt(attempt, args, timeout)
            if offset is not None:
                metrics.probe_attempts.observe(attempt)
                logger.info(f"Usable video starts at {offset:.3f}s (attempt {attempt})")
                return offset

            if loop.time() + self.settings.interval >= deadline:
                break
            await asyncio.sleep(self.settings.interval)

        metrics.probe_inconclusive_total.inc()
        logger.warning(f"Black-frame probe inconclusive after {attempt} attempt(s)")
        raise ProbeInconclusive(
            f"No usable frame detected after {attempt} attempt(s)",
            attempts=attempt
        )

    async def _attempt(self, attempt: int, args: list[str], timeout: float) -> float | None:
        try:
            result = await self.runner.run_sync(FFMPEG_BIN, args, timeout)
        except StartError as e:
            logger.warning(f"Probe attempt {attempt} could not start: {e}")
            return None

        if result.timed_out:
            logger.warning(f"Probe attempt {attempt} timed out after {timeout:.1f}s")
            return None

        if result.returncode != 0:
            # Still parsed: no blank marker means usable from the start
            logger.warning(
                f"Probe attempt {attempt} exited with code {result.returncode}: "
                f"{output_tail(result.output, 2)}"
            )

        offset = parse_start_offset(result.output)
        if offset is None:
            logger.debug(f"Probe attempt {attempt}: blank frame without end marker, retrying")
        return offset
