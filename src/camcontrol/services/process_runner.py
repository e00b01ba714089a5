"""External process management for FFmpeg and v4l2-ctl.

Every subprocess the controller launches goes through ProcessRunner:
- start(): long-lived processes (relay, recording) wrapped in a handle
- run_sync(): short-lived probes with a hard timeout

ProcessHandle owns one process from spawn to reap. Combined stdout and
stderr are drained continuously into a bounded tail buffer, so a
multi-minute recording never stalls on a full pipe, and each line is
logged by severity.

Logging Strategy:
    DEBUG - Process starts, exit codes, routine output lines
    INFO  - Graceful stop requests
    WARN  - Timeouts, kills, warning output lines
    ERROR - Error output lines, failed launches
"""
from __future__ import annotations

import asyncio
import logging
import re
import signal
import subprocess
from collections import deque
from typing import Final, NamedTuple

from ..errors import StartError

logger = logging.getLogger(__name__)

# ============================================================================
# Constants
# ============================================================================

OUTPUT_TAIL_LINES: Final[int] = 200
"""Lines of combined output retained per process."""

READ_CHUNK_SIZE: Final[int] = 4096
"""Bytes read per drain iteration."""

MAX_PARTIAL_LINE: Final[int] = 16384
"""A line longer than this is flushed unterminated."""

LINE_SPLIT_PATTERN: Final[re.Pattern[str]] = re.compile(r"[\r\n]+")
"""FFmpeg rewrites its progress line with bare carriage returns."""

# ============================================================================
# Results
# ============================================================================

class RunResult(NamedTuple):
    """Outcome of a short-lived process.

    Attributes:
        returncode: Exit status (negative if killed by a signal)
        output: Combined stdout/stderr text
        timed_out: True if the process was killed for exceeding its timeout
    """

    returncode: int | None
    output: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return not self.timed_out and self.returncode == 0


def log_output_line(name: str, message: str) -> None:
    """Log one line of process output at a level matching its content."""
    msg_lower = message.lower()
    if 'error' in msg_lower or 'fatal' in msg_lower:
        logger.error(f"{name}: {message}")
    elif 'warning' in msg_lower:
        logger.warning(f"{name}: {message}")
    else:
        logger.debug(f"{name}: {message}")


# ============================================================================
# Process Handle
# ============================================================================

class ProcessHandle:
    """One running external process.

    Attributes:
        name: Label used in logs (e.g. "recording")
        process: Underlying asyncio subprocess
    """

    def __init__(
        self,
        process: asyncio.subprocess.Process,
        name: str,
        tail_lines: int = OUTPUT_TAIL_LINES,
    ) -> None:
        self.process = process
        self.name = name
        self._tail: deque[str] = deque(maxlen=tail_lines)
        self._drain_task = asyncio.create_task(self._drain())

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def returncode(self) -> int | None:
        return self.process.returncode

    @property
    def running(self) -> bool:
        return self.process.returncode is None

    @property
    def output(self) -> str:
        """Retained tail of the combined output."""
        return "\n".join(self._tail)

    async def wait(self) -> tuple[int, str]:
        """Wait for exit and for the output pipe to be fully drained.

        Safe to call from several tasks at once.

        Returns:
            (exit status, captured output tail)
        """
        returncode = await self.process.wait()
        await asyncio.shield(self._drain_task)
        logger.debug(f"{self.name} exited: PID={self.pid}, code={returncode}")
        return returncode, self.output

    def signal_stop(self) -> bool:
        """Request a graceful stop (SIGINT, ffmpeg finalizes its output).

        Returns:
            True if the signal was delivered, False if already exited
        """
        if self.process.returncode is not None:
            return False
        try:
            self.process.send_signal(signal.SIGINT)
        except ProcessLookupError:
            return False
        logger.info(f"Sent SIGINT to {self.name}: PID={self.pid}")
        return True

    async def terminate(self, timeout: float) -> int:
        """Stop gracefully, kill after ``timeout`` seconds, always reap."""
        if self.running:
            self.signal_stop()
            try:
                await asyncio.wait_for(self.process.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Timeout, killing {self.name}: PID={self.pid}")
                try:
                    self.process.kill()
                except ProcessLookupError:
                    pass

        returncode, _ = await self.wait()
        return returncode

    async def _drain(self) -> None:
        """Read combined output until EOF, keeping the tail."""
        stream = self.process.stdout
        if stream is None:
            return

        partial = ""
        try:
            while True:
                chunk = await stream.read(READ_CHUNK_SIZE)
                if not chunk:
                    break
                partial += chunk.decode(errors="replace")
                *lines, partial = LINE_SPLIT_PATTERN.split(partial)
                if len(partial) > MAX_PARTIAL_LINE:
                    lines.append(partial)
                    partial = ""
                for line in lines:
                    self._record(line)
            self._record(partial)
        except asyncio.CancelledError:
            logger.debug(f"Output drain cancelled: {self.name}")
            raise

    def _record(self, line: str) -> None:
        message = line.strip()
        if not message:
            return
        self._tail.append(message)
        log_output_line(self.name, message)


# ============================================================================
# Process Runner
# ============================================================================

class ProcessRunner:
    """Launches external programs; the only place processes are spawned."""

    async def start(self, program: str, args: list[str], name: str | None = None) -> ProcessHandle:
        """Start a long-lived process without waiting for it.

        Raises:
            StartError: the program could not be launched
        """
        label = name or program
        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT
            )
        except OSError as e:
            logger.error(f"Failed to launch {label}: {e}")
            raise StartError(f"Failed to start {label}: {e}") from e

        logger.debug(f"{label} started: PID={process.pid}")
        return ProcessHandle(process, label)

    async def run_sync(self, program: str, args: list[str], timeout: float) -> RunResult:
        """Run a short-lived process to completion, killing it on timeout.

        Raises:
            StartError: the program could not be launched
        """
        try:
            process = await asyncio.create_subprocess_exec(
                program,
                *args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT
            )
        except OSError as e:
            logger.error(f"Failed to launch {program}: {e}")
            raise StartError(f"Failed to start {program}: {e}") from e

        buffer = bytearray()
        reader = asyncio.create_task(_read_into(process.stdout, buffer))
        timed_out = False

        try:
            await asyncio.wait_for(process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(f"{program} timed out after {timeout}s, killing PID={process.pid}")
            timed_out = True
            try:
                process.kill()
            except ProcessLookupError:
                pass
            await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                logger.warning(f"{program} cancelled, killing PID={process.pid}")
                try:
                    process.kill()
                except ProcessLookupError:
                    pass
                await asyncio.shield(process.wait())
            reader.cancel()
            raise

        # Output written before a kill is kept
        await reader
        return RunResult(process.returncode, buffer.decode(errors="replace"), timed_out=timed_out)


async def _read_into(stream: asyncio.StreamReader | None, buffer: bytearray) -> None:
    """Append everything from ``stream`` to ``buffer`` until EOF."""
    if stream is None:
        return
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        buffer.extend(chunk)
