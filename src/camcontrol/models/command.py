"""Inbound command models.

Two message kinds arrive on the command channel:
- SettingCommand: ``<control> <value>`` (exactly two tokens)
- ActionCommand: ``picture`` | ``record [seconds]`` | ``stop``

``parse`` raises InvalidCommand with the status text to publish.
"""
from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidCommand
from ..utils.validation import parse_duration

ActionName = Literal["picture", "record", "stop"]
ACTIONS: tuple[str, ...] = ("picture", "record", "stop")


class SettingCommand(BaseModel):
    """Device control assignment."""

    model_config = ConfigDict(frozen=True)

    control: str = Field(min_length=1)
    value: str = Field(min_length=1)

    @classmethod
    def parse(cls, payload: str) -> SettingCommand:
        parts = payload.split()
        if len(parts) != 2:
            raise InvalidCommand("ERROR: Invalid setting format. Expected <control> <value>")
        return cls(control=parts[0], value=parts[1])


class ActionCommand(BaseModel):
    """Capture lifecycle action."""

    model_config = ConfigDict(frozen=True)

    action: ActionName
    duration: float | None = Field(default=None, gt=0)

    @classmethod
    def parse(cls, payload: str) -> ActionCommand:
        """Parse an action payload.

        Extra tokens after ``picture``/``stop`` and after the duration of
        ``record`` are ignored.
        """
        parts = payload.split()
        if not parts or parts[0] not in ACTIONS:
            raise InvalidCommand(f"ERROR: Unknown action: {payload.strip()}")

        action = parts[0]
        duration = None
        if action == "record" and len(parts) > 1:
            try:
                duration = parse_duration(parts[1])
            except ValueError:
                raise InvalidCommand(
                    f"ERROR: Invalid duration '{parts[1]}'. Expected a positive number of seconds"
                ) from None

        return cls(action=action, duration=duration)
