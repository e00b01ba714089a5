"""V4L2 device controls via v4l2-ctl.

Setting messages (``<control> <value>``) are passed through to
``v4l2-ctl -c control=value``. Common controls get friendlier status
messages, because a manual focus/white-balance/pan write is rejected by
the driver while the matching automatic mode is on.

Also provides the startup reset probe: a bounded ``--get-fmt-video``
query that releases a device left in a stuck state by a previous run.

Logging Strategy:
    DEBUG - Control writes
    INFO  - Reset probe
    WARN  - Reset probe failures/timeouts (never raised)
"""
from __future__ import annotations

import logging
from typing import Final

from ..config.ffmpeg_defaults import V4L2_CTL_BIN
from ..errors import StartError
from ..models.settings import Settings
from ..utils.strings import output_tail
from ..utils.validation import validate_control
from .process_runner import ProcessRunner

logger = logging.getLogger(__name__)

# ============================================================================
# Friendly Messages
# ============================================================================

AUTO_TOGGLE_LABELS: Final[dict[str, tuple[str, str]]] = {
    "focus_automatic_continuous": ("Auto Focus", "Focus"),
    "white_balance_automatic": ("Auto White Balance", "WB"),
}
"""Toggle controls: (label, manual-mode name)."""

AUTO_TOGGLE_HINTS: Final[dict[str, tuple[str, str]]] = {
    "focus_automatic_continuous": (
        "Manual slider is now ignored.",
        "Use the slider to adjust focus.",
    ),
    "white_balance_automatic": (
        "Manual slider is now ignored.",
        "Use the slider to adjust temperature.",
    ),
}

BLOCKED_CONTROL_MESSAGES: Final[dict[str, str]] = {
    "focus_absolute": "ERROR: Focus adjustment blocked. Please click 'Manual Focus' first.",
    "white_balance_temperature": (
        "ERROR: White Balance adjustment blocked. "
        "Please click 'Manual WB (Disable Auto)' first."
    ),
    "pan_absolute": (
        "ERROR: Pan adjustment blocked. The feature may be unsupported "
        "or require manual focus/zoom to be disabled."
    ),
}


def success_message(control: str, value: str) -> str:
    """Status text for a successful control write."""
    if control in AUTO_TOGGLE_LABELS:
        label, manual = AUTO_TOGGLE_LABELS[control]
        enabled_hint, manual_hint = AUTO_TOGGLE_HINTS[control]
        if value == "1":
            return f"SUCCESS: {label} ENABLED. {enabled_hint}"
        return f"SUCCESS: Manual {manual} ENABLED. {manual_hint}"
    return f"SUCCESS: {control} set to {value}"


def failure_message(control: str, output: str) -> str:
    """Status text for a failed control write."""
    if control in BLOCKED_CONTROL_MESSAGES:
        return BLOCKED_CONTROL_MESSAGES[control]
    if control in AUTO_TOGGLE_LABELS:
        label, _ = AUTO_TOGGLE_LABELS[control]
        return f"ERROR: {label} toggle failed. Output: {output}"
    return f"ERROR: Setting {control} failed. Output: {output}"


# ============================================================================
# Device Control
# ============================================================================

class DeviceControl:
    """Applies control settings to the capture device."""

    def __init__(self, runner: ProcessRunner, settings: Settings) -> None:
        self.runner = runner
        self.device = settings.device
        self.control_timeout = settings.control_timeout
        self.reset_timeout = settings.device_reset_timeout

    async def set_control(self, control: str, value: str) -> str:
        """Write one control and return the status to publish."""
        valid, error = validate_control(control, value)
        if not valid:
            return f"ERROR: {error}"

        logger.debug(f"Setting {control}={value} on {self.device}")
        try:
            result = await self.runner.run_sync(
                V4L2_CTL_BIN,
                ["-d", self.device, "-c", f"{control}={value}"],
                self.control_timeout
            )
        except StartError as e:
            return failure_message(control, str(e))

        if not result.ok:
            detail = "timed out" if result.timed_out else output_tail(result.output)
            return failure_message(control, detail)
        return success_message(control, value)

    async def reset_device(self) -> None:
        """Query the device format to release any stale lock. Never raises."""
        logger.info(f"Attempting to reset/unclog camera {self.device}...")
        try:
            result = await self.runner.run_sync(
                V4L2_CTL_BIN,
                ["-d", self.device, "--get-fmt-video"],
                self.reset_timeout
            )
        except StartError as e:
            logger.warning(f"Camera reset probe could not start: {e}")
            return

        if result.timed_out:
            logger.warning(f"Camera reset probe timed out after {self.reset_timeout:.1f}s")
        elif result.returncode != 0:
            logger.warning(f"Camera reset probe failed: {output_tail(result.output)}")
        logger.info("Camera reset attempt complete.")
