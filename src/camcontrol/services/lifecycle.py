"""Capture lifecycle controller.

Owns the single device state and the single active recording. Every
state read and transition happens inside one asyncio.Lock section, so two
concurrent record commands can never both pass the "not recording" check.

State Flow:
    IDLE → STREAMING              relay up (permanent)
    STREAMING → CAPTURING         picture command
    CAPTURING → STREAMING         capture finished
    STREAMING → RECORDING         record command
    RECORDING → STREAMING         recording process exited

Recording Completion:
    Each accepted recording gets exactly one completion task, created in
    the same locked section as the job. The task is the only code that
    declares a recording finished: it waits for the ffmpeg process to exit
    (duration reached, stop requested, or failure), releases the state,
    publishes "stopped", then trims. A stop command only signals the
    process.

Status Ordering (per recording):
    started → [stopping] → stopped → [failure] → trim result

Logging Strategy:
    DEBUG - State transitions
    INFO  - Every published status, accepted commands
    WARN  - Rejections, inconclusive probes, slow shutdown
    ERROR - Publish failures, completion task crashes
"""
from __future__ import annotations

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any, Callable, Protocol

from .. import metrics
from ..config.ffmpeg_defaults import FFMPEG_BIN
from ..errors import PostProcessFailure, ProbeInconclusive, RejectedByState, StartError
from ..models.device import CaptureJob, DeviceState, FinishReason, RecordingJob
from ..models.settings import Settings
from ..utils.ffmpeg import build_capture_args, build_record_args
from ..utils.files import capture_path, chown_to_user, remove_quietly
from ..utils.strings import output_tail
from .blackframe import BlackFrameProbe
from .process_runner import ProcessRunner
from .trim import TrimPostProcessor

logger = logging.getLogger(__name__)


class StatusPublisher(Protocol):
    """Outbound status channel."""

    async def publish(self, message: str) -> None: ...


# ============================================================================
# Lifecycle Controller
# ============================================================================

class LifecycleController:
    """Arbitrates exclusive use of the capture pipeline.

    Attributes:
        runner: Process runner for capture/record subprocesses
        probe: Black-frame probe against the relay stream
        trimmer: Post-processor for finished recordings
        fixup: Ownership fixup applied to every finished file
    """

    def __init__(
        self,
        runner: ProcessRunner,
        settings: Settings,
        publisher: StatusPublisher,
        probe: BlackFrameProbe | None = None,
        trimmer: TrimPostProcessor | None = None,
        fixup: Callable[[Path], Any] | None = None,
    ) -> None:
        self.runner = runner
        self.settings = settings
        self.publisher = publisher
        self.probe = probe or BlackFrameProbe(runner, settings.stream_url, settings.probe)
        self.trimmer = trimmer or TrimPostProcessor(runner, settings.trim_timeout)
        self.fixup = fixup or partial(chown_to_user, user=settings.chown_user)

        self._lock = asyncio.Lock()
        self._state = DeviceState.IDLE
        self._streaming = False
        self._job: RecordingJob | None = None
        metrics.set_device_state(self._state)

    # ========================================================================
    # State
    # ========================================================================

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def active_job(self) -> RecordingJob | None:
        return self._job

    def snapshot(self) -> dict[str, Any]:
        """Point-in-time view for health reporting."""
        job = self._job
        return {
            "state": self._state.value,
            "recording": None if job is None else {
                "path": str(job.path),
                "duration": job.duration,
                "pid": job.handle.pid,
                "start_offset": job.start_offset,
                "stop_requested": job.stop_requested,
            },
        }

    async def mark_streaming(self) -> None:
        """Record that the relay is up; IDLE becomes STREAMING for good."""
        async with self._lock:
            self._streaming = True
            if self._state is DeviceState.IDLE:
                self._set_state(DeviceState.STREAMING)

    def _rest_state(self) -> DeviceState:
        return DeviceState.STREAMING if self._streaming else DeviceState.IDLE

    def _set_state(self, state: DeviceState) -> None:
        logger.debug(f"Device state: {self._state.value} → {state.value}")
        self._state = state
        metrics.set_device_state(state)

    async def _publish(self, message: str) -> None:
        logger.info(f"Status: {message}")
        try:
            await self.publisher.publish(message)
        except Exception as e:
            logger.error(f"Failed to publish status '{message}': {e}")

    async def _reject(self, kind: str, error: RejectedByState) -> bool:
        metrics.commands_total.labels(kind=kind, outcome="rejected").inc()
        logger.warning(f"Rejected {kind} [{error.code.value}]: {error}")
        await self._publish(error.message)
        return False

    async def _detect_offset(self) -> float:
        try:
            return await self.probe.detect()
        except ProbeInconclusive as e:
            logger.warning(f"{e}; assuming start offset 0.0")
            return 0.0

    # ========================================================================
    # Still Capture
    # ========================================================================

    async def capture_picture(self) -> bool:
        """Grab one frame from the relay as a JPEG.

        Returns:
            True if the image was saved
        """
        try:
            async with self._lock:
                if self._state is DeviceState.RECORDING:
                    raise RejectedByState("Recording already in progress")
                if self._state is DeviceState.CAPTURING:
                    raise RejectedByState("Image capture already in progress")
                self._set_state(DeviceState.CAPTURING)
        except RejectedByState as e:
            return await self._reject("picture", e)

        metrics.commands_total.labels(kind="picture", outcome="accepted").inc()
        try:
            job = CaptureJob(
                path=capture_path(self.settings.captures_dir, "picture", "jpg"),
                stream_url=self.settings.stream_url
            )
            return await self._capture(job)
        finally:
            async with self._lock:
                self._set_state(self._rest_state())

    async def _capture(self, job: CaptureJob) -> bool:
        # Warm-up probe; stills are not trimmed
        await self._detect_offset()
        await self._publish("Image capturing started now!")

        try:
            result = await self.runner.run_sync(
                FFMPEG_BIN,
                build_capture_args(job.stream_url, job.path),
                self.settings.capture_timeout
            )
        except StartError as e:
            detail = str(e)
        else:
            if result.ok and job.path.exists():
                self.fixup(job.path)
                metrics.captures_total.labels(status="success").inc()
                await self._publish(f"SUCCESS: Image saved to {job.path}")
                return True
            detail = (
                f"timed out after {self.settings.capture_timeout:.0f}s" if result.timed_out
                else output_tail(result.output) or f"exit code {result.returncode}"
            )

        remove_quietly(job.path)
        metrics.captures_total.labels(status="failure").inc()
        await self._publish(f"ERROR: Capture failed: {detail}")
        return False

    # ========================================================================
    # Recording
    # ========================================================================

    async def start_recording(self, duration: float | None = None) -> bool:
        """Start a recording and return once it is announced.

        The recording itself runs in the background; ``duration`` is handed
        to ffmpeg as its own stop condition.

        Returns:
            True if a recording process was started
        """
        try:
            async with self._lock:
                if self._state is DeviceState.RECORDING:
                    raise RejectedByState("Recording already in progress")
                if self._state is DeviceState.CAPTURING:
                    raise RejectedByState("Image capture in progress")

                path = capture_path(self.settings.captures_dir, "video", "mp4")
                handle = await self.runner.start(
                    FFMPEG_BIN,
                    build_record_args(self.settings.stream_url, path, duration),
                    name="recording"
                )
                job = RecordingJob(path, duration, handle)
                self._job = job
                self._set_state(DeviceState.RECORDING)
                job.completion = asyncio.create_task(self._complete(job))
                job.completion.add_done_callback(self._on_completion_done)
        except RejectedByState as e:
            return await self._reject("record", e)
        except StartError as e:
            metrics.commands_total.labels(kind="record", outcome="failed").inc()
            await self._publish(f"ERROR: Failed to start recording: {e}")
            return False

        metrics.commands_total.labels(kind="record", outcome="accepted").inc()
        metrics.recordings_started_total.inc()
        metrics.ffmpeg_processes_active.inc()
        logger.info(f"Recording accepted: {job!r}")

        try:
            job.start_offset = await self._detect_offset()
            await self._publish(f"Recording started: {job.path}")
        finally:
            job.announced.set()
        return True

    async def stop_recording(self) -> bool:
        """Ask the active recording to finish.

        Advisory only: the completion task finalizes and trims. A stop that
        arrives while the recording is still being announced waits for
        "Recording started" before publishing "Recording stopping...".

        Returns:
            True if the stop signal was delivered
        """
        try:
            async with self._lock:
                job = self._job
                if self._state is not DeviceState.RECORDING or job is None or not job.handle.running:
                    raise RejectedByState("No recording in progress")
                delivered = job.handle.signal_stop()
                if delivered:
                    job.stop_requested = True
        except RejectedByState as e:
            return await self._reject("stop", e)

        if not delivered:
            metrics.commands_total.labels(kind="stop", outcome="failed").inc()
            await self._publish("ERROR: Failed to stop recording: process already exited")
            return False

        metrics.commands_total.labels(kind="stop", outcome="accepted").inc()
        await job.announced.wait()
        await self._publish("Recording stopping...")
        return True

    async def _complete(self, job: RecordingJob) -> None:
        """Sole finalizer of ``job``: wait, release state, publish, trim."""
        try:
            returncode, output = await job.handle.wait()
            await job.announced.wait()
        finally:
            metrics.ffmpeg_processes_active.dec()
            async with self._lock:
                if self._job is job:
                    self._job = None
                    self._set_state(self._rest_state())

        reason = job.finish_reason(returncode)
        metrics.recordings_finished_total.labels(reason=reason.value).inc()
        await self._publish(f"Recording stopped: {job.path}")

        if reason is FinishReason.FAILED:
            await self._publish(
                f"ERROR: Recording process exited with code {returncode}: {output_tail(output)}"
            )

        try:
            await self.trimmer.trim(job.path, job.start_offset)
        except PostProcessFailure as e:
            await self._publish(f"ERROR: Trim failed, original kept: {e}")
        else:
            await self._publish(f"SUCCESS: Trimmed video saved: {job.path}")

        if job.path.exists():
            self.fixup(job.path)

    def _on_completion_done(self, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            logger.warning("Recording completion task cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Recording completion task failed: {exc}", exc_info=exc)

    # ========================================================================
    # Shutdown
    # ========================================================================

    async def shutdown(self, timeout: float) -> None:
        """Stop any active recording and wait for its completion task.

        If the task does not finish within ``timeout`` it is cancelled; the
        recording process is killed and reaped, and an interrupted trim
        leaves the original file in place.
        """
        async with self._lock:
            job = self._job

        if job is None or job.completion is None:
            return

        if job.handle.signal_stop():
            job.stop_requested = True

        try:
            await asyncio.wait_for(asyncio.shield(job.completion), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Recording did not finalize within {timeout:.0f}s, cancelling")
            job.completion.cancel()
            await job.handle.terminate(timeout=0.1)
            try:
                await job.completion
            except asyncio.CancelledError:
                pass
        except Exception as e:
            # Already logged by the done callback
            logger.debug(f"Completion task ended with error during shutdown: {e}")
