"""Command dispatch from the message channel to the controller.

Each inbound message becomes one short-lived asyncio task, so a slow
picture (probe + frame grab) never blocks the transport. The dispatcher
keeps a reference to every task until it finishes and can drain them at
shutdown.

Logging Strategy:
    DEBUG - Received payloads
    WARN  - Invalid payloads
    ERROR - Command task crashes
"""
from __future__ import annotations

import asyncio
import logging

from .. import metrics
from ..errors import InvalidCommand
from ..models.command import ActionCommand, SettingCommand
from .device_control import DeviceControl
from .lifecycle import LifecycleController, StatusPublisher

logger = logging.getLogger(__name__)


class CommandDispatcher:
    """Parses setting/action payloads and schedules their handling."""

    def __init__(
        self,
        controller: LifecycleController,
        device_control: DeviceControl,
        publisher: StatusPublisher,
    ) -> None:
        self.controller = controller
        self.device_control = device_control
        self.publisher = publisher
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def handle_setting(self, payload: str) -> asyncio.Task[None]:
        """Schedule a ``<control> <value>`` message. Must run on the loop."""
        logger.debug(f"Setting message: {payload!r}")
        return self._spawn(self._run_setting(payload), "setting")

    def handle_action(self, payload: str) -> asyncio.Task[None] | None:
        """Schedule an action message; empty payloads are ignored."""
        payload = payload.strip()
        if not payload:
            return None
        logger.debug(f"Action message: {payload!r}")
        return self._spawn(self._run_action(payload), "action")

    async def drain(self, timeout: float) -> None:
        """Wait for in-flight command tasks, cancelling stragglers."""
        if not self._tasks:
            return
        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning(f"Cancelled {len(pending)} command task(s) at shutdown")
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run_setting(self, payload: str) -> None:
        try:
            command = SettingCommand.parse(payload)
        except InvalidCommand as e:
            await self._invalid("setting", e)
            return

        metrics.commands_total.labels(kind="setting", outcome="accepted").inc()
        status = await self.device_control.set_control(command.control, command.value)
        await self._publish(status)

    async def _run_action(self, payload: str) -> None:
        try:
            command = ActionCommand.parse(payload)
        except InvalidCommand as e:
            await self._invalid("action", e)
            return

        if command.action == "picture":
            await self.controller.capture_picture()
        elif command.action == "record":
            await self.controller.start_recording(command.duration)
        else:
            await self.controller.stop_recording()

    async def _invalid(self, kind: str, error: InvalidCommand) -> None:
        metrics.commands_total.labels(kind=kind, outcome="invalid").inc()
        logger.warning(f"Invalid {kind} message: {error}")
        await self._publish(str(error))

    async def _publish(self, message: str) -> None:
        logger.info(f"Status: {message}")
        try:
            await self.publisher.publish(message)
        except Exception as e:
            logger.error(f"Failed to publish status '{message}': {e}")

    def _spawn(self, coro, kind: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=f"command-{kind}")
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Command task {task.get_name()} failed: {exc}", exc_info=exc)
