"""
Unit tests for command parsing and dispatch.

Tests SettingCommand/ActionCommand parsing and CommandDispatcher routing
to the lifecycle controller and device control.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from camcontrol.errors import InvalidCommand
from camcontrol.models.command import ActionCommand, SettingCommand
from camcontrol.services.commands import CommandDispatcher


class TestSettingCommand:
    """Tests for SettingCommand.parse()."""

    def test_two_tokens(self):
        command = SettingCommand.parse("focus_absolute 30")
        assert command.control == "focus_absolute"
        assert command.value == "30"

    @pytest.mark.parametrize("payload", ["", "brightness", "brightness 1 2"])
    def test_wrong_token_count(self, payload):
        with pytest.raises(InvalidCommand) as exc_info:
            SettingCommand.parse(payload)
        assert str(exc_info.value) == "ERROR: Invalid setting format. Expected <control> <value>"


class TestActionCommand:
    """Tests for ActionCommand.parse()."""

    def test_picture(self):
        assert ActionCommand.parse("picture") == ActionCommand(action="picture")

    def test_record_with_duration(self):
        command = ActionCommand.parse("record 10")
        assert command.action == "record"
        assert command.duration == 10.0

    def test_record_without_duration(self):
        assert ActionCommand.parse("record").duration is None

    def test_stop_ignores_extra_tokens(self):
        assert ActionCommand.parse("stop now").action == "stop"

    def test_unknown_action(self):
        with pytest.raises(InvalidCommand) as exc_info:
            ActionCommand.parse("dance")
        assert str(exc_info.value) == "ERROR: Unknown action: dance"

    @pytest.mark.parametrize("token", ["abc", "-5", "0", "inf", "nan"])
    def test_invalid_duration(self, token):
        with pytest.raises(InvalidCommand) as exc_info:
            ActionCommand.parse(f"record {token}")
        assert str(exc_info.value) == (
            f"ERROR: Invalid duration '{token}'. Expected a positive number of seconds"
        )


class TestCommandDispatcher:
    """Tests for CommandDispatcher routing."""

    @pytest.fixture
    def lifecycle(self):
        controller = Mock()
        controller.capture_picture = AsyncMock(return_value=True)
        controller.start_recording = AsyncMock(return_value=True)
        controller.stop_recording = AsyncMock(return_value=True)
        return controller

    @pytest.fixture
    def device_control(self):
        control = Mock()
        control.set_control = AsyncMock(return_value="SUCCESS: brightness set to 128")
        return control

    @pytest.fixture
    def dispatcher(self, lifecycle, device_control, publisher):
        return CommandDispatcher(lifecycle, device_control, publisher)

    @pytest.mark.asyncio
    async def test_picture(self, dispatcher, lifecycle):
        await dispatcher.handle_action("picture")
        lifecycle.capture_picture.assert_awaited_once_with()

    @pytest.mark.asyncio
    async def test_record_with_duration(self, dispatcher, lifecycle):
        await dispatcher.handle_action("record 10")
        lifecycle.start_recording.assert_awaited_once_with(10.0)

    @pytest.mark.asyncio
    async def test_record_until_stopped(self, dispatcher, lifecycle):
        await dispatcher.handle_action("  record  ")
        lifecycle.start_recording.assert_awaited_once_with(None)

    @pytest.mark.asyncio
    async def test_stop(self, dispatcher, lifecycle):
        await dispatcher.handle_action("stop")
        lifecycle.stop_recording.assert_awaited_once_with()

    def test_empty_action_is_ignored(self, dispatcher):
        assert dispatcher.handle_action("   ") is None

    @pytest.mark.asyncio
    async def test_unknown_action_publishes_error(self, dispatcher, lifecycle, publisher):
        await dispatcher.handle_action("dance")

        assert publisher.messages == ["ERROR: Unknown action: dance"]
        lifecycle.capture_picture.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_setting_is_applied(self, dispatcher, device_control, publisher):
        await dispatcher.handle_setting("brightness 128")

        device_control.set_control.assert_awaited_once_with("brightness", "128")
        assert publisher.messages == ["SUCCESS: brightness set to 128"]

    @pytest.mark.asyncio
    async def test_malformed_setting(self, dispatcher, device_control, publisher):
        await dispatcher.handle_setting("brightness")

        device_control.set_control.assert_not_awaited()
        assert publisher.messages == ["ERROR: Invalid setting format. Expected <control> <value>"]

    @pytest.mark.asyncio
    async def test_pending_tracks_in_flight_tasks(self, dispatcher):
        task = dispatcher.handle_action("picture")
        assert dispatcher.pending == 1
        await task
        await asyncio.sleep(0)
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_drain_cancels_stragglers(self, dispatcher, lifecycle):
        async def slow_capture():
            await asyncio.sleep(10)

        lifecycle.capture_picture = AsyncMock(side_effect=slow_capture)
        task = dispatcher.handle_action("picture")

        await dispatcher.drain(timeout=0.05)

        assert task.cancelled()
        assert dispatcher.pending == 0
