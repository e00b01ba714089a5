"""Shared fixtures: in-memory process runner, handle and status publisher.

FakeRunner stands in for ProcessRunner. It records every launch and
answers run_sync() by recognising the ffmpeg invocation:

    blackdetect probe   → next queued probe result (default: no black frame)
    still capture       → writes the JPEG, or fails with capture_error
    trim re-encode      → writes trim_output to the last arg, returns trim_result
    v4l2-ctl            → v4l2_result

Queued/configured results that are exceptions are raised instead.
"""
from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import Mock

import pytest

from camcontrol.config.ffmpeg_defaults import V4L2_CTL_BIN
from camcontrol.errors import StartError
from camcontrol.models.settings import ProbeSettings, Settings
from camcontrol.services.lifecycle import LifecycleController
from camcontrol.services.process_runner import RunResult


class FakeProcessHandle:
    """ProcessHandle double whose exit is driven by the test."""

    _next_pid = 4000

    def __init__(self, name: str, args: list[str], exit_on_signal: bool = True) -> None:
        FakeProcessHandle._next_pid += 1
        self.pid = FakeProcessHandle._next_pid
        self.name = name
        self.args = args
        self.exit_on_signal = exit_on_signal
        self.signals = 0
        self.terminated = False
        self.returncode: int | None = None
        self._output = ""
        self._exited = asyncio.Event()

    @property
    def running(self) -> bool:
        return self.returncode is None

    @property
    def output(self) -> str:
        return self._output

    def finish(self, returncode: int, output: str = "") -> None:
        if self.returncode is not None:
            return
        self.returncode = returncode
        self._output = output
        self._exited.set()

    async def wait(self) -> tuple[int, str]:
        await self._exited.wait()
        return self.returncode, self._output

    def signal_stop(self) -> bool:
        if not self.running:
            return False
        self.signals += 1
        if self.exit_on_signal:
            # ffmpeg exits 255 after finalizing on SIGINT
            self.finish(255, "Exiting normally, received signal 2.")
        return True

    async def terminate(self, timeout: float) -> int:
        self.terminated = True
        self.finish(-9)
        return self.returncode


class FakeRunner:
    """ProcessRunner double."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, list[str]]] = []
        self.handles: list[FakeProcessHandle] = []

        self.start_error: Exception | None = None
        self.exit_on_signal = True
        self.exit_immediately: int | None = None
        self.recording_bytes = b"raw video"

        self.probe_results: list[RunResult | Exception] = []
        self.probe_gate: asyncio.Event | None = None

        self.capture_error: RunResult | Exception | None = None
        self.capture_gate: asyncio.Event | None = None

        self.trim_output = b"trimmed video"
        self.trim_result: RunResult | Exception = RunResult(0, "")

        self.v4l2_result: RunResult | Exception = RunResult(0, "")

    def calls_with(self, marker: str) -> list[list[str]]:
        return [args for _, args in self.calls if marker in args]

    async def start(self, program: str, args: list[str], name: str | None = None) -> FakeProcessHandle:
        self.calls.append((program, list(args)))
        if self.start_error is not None:
            raise self.start_error

        handle = FakeProcessHandle(name or program, list(args), self.exit_on_signal)
        if args[-1].endswith(".mp4"):
            Path(args[-1]).write_bytes(self.recording_bytes)
        if self.exit_immediately is not None:
            handle.finish(self.exit_immediately, "Device or resource busy")
        self.handles.append(handle)
        return handle

    async def run_sync(self, program: str, args: list[str], timeout: float) -> RunResult:
        self.calls.append((program, list(args)))

        if program == V4L2_CTL_BIN:
            return self._resolve(self.v4l2_result)

        if any(arg.startswith("blackdetect") for arg in args):
            if self.probe_gate is not None:
                await self.probe_gate.wait()
            result = self.probe_results.pop(0) if self.probe_results else RunResult(0, "frame=    1")
            return self._resolve(result)

        if "-frames:v" in args:
            if self.capture_gate is not None:
                await self.capture_gate.wait()
            if self.capture_error is not None:
                return self._resolve(self.capture_error)
            Path(args[-1]).write_bytes(b"\xff\xd8jpeg")
            return RunResult(0, "")

        if "-ss" in args:
            if self.trim_output:
                Path(args[-1]).write_bytes(self.trim_output)
            return self._resolve(self.trim_result)

        raise AssertionError(f"Unexpected command: {program} {args}")

    @staticmethod
    def _resolve(result: RunResult | Exception) -> RunResult:
        if isinstance(result, Exception):
            raise result
        return result


class FakePublisher:
    """Collects published status strings in order."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    async def publish(self, message: str) -> None:
        self.messages.append(message)


@pytest.fixture
def settings(tmp_path):
    return Settings(
        captures_dir=tmp_path,
        probe=ProbeSettings(interval=0.0, max_attempts=3, deadline=5.0),
    )


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def publisher():
    return FakePublisher()


@pytest.fixture
def fixup():
    return Mock()


@pytest.fixture
def controller(runner, settings, publisher, fixup):
    return LifecycleController(runner, settings, publisher, fixup=fixup)


@pytest.fixture
def start_error():
    return StartError("Failed to start recording: [Errno 2] No such file or directory: 'ffmpeg'")
