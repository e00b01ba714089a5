"""Command input validation utilities.

Provides validation functions for:
- Device control tokens (name and value passed to v4l2-ctl)
- Recording durations

Note on Logging:
    These are pure validation functions that return (bool, error_message)
    or a parsed value. Callers decide how to log and report.
"""
from __future__ import annotations

import math
import re
from typing import Final

# ============================================================================
# Constants
# ============================================================================

CONTROL_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,63}$")
"""V4L2 control names are identifier-like (e.g. focus_absolute)."""

FORBIDDEN_SHELL_CHARS: Final[set[str]] = {";", "&", "|", ">", "<", "`", "$", "=", "\n", "\r"}
"""Characters rejected in control values."""

MAX_CONTROL_VALUE_LENGTH: Final[int] = 32

# Type alias for validation results
ValidationResult = tuple[bool, str | None]
"""Validation result: (is_valid, error_message)"""

# ============================================================================
# Device Controls
# ============================================================================

def validate_control(name: str, value: str) -> ValidationResult:
    """Validate a control assignment before handing it to v4l2-ctl.

    Examples:
        >>> validate_control("focus_absolute", "30")
        (True, None)
        >>> validate_control("focus;rm", "1")[0]
        False
    """
    if not CONTROL_NAME_PATTERN.match(name or ""):
        return False, f"Invalid control name: {name!r}"

    if not value or len(value) > MAX_CONTROL_VALUE_LENGTH:
        return False, f"Invalid value for {name}: {value!r}"

    if any(char in value for char in FORBIDDEN_SHELL_CHARS):
        return False, f"Forbidden character in value for {name}"

    return True, None


# ============================================================================
# Durations
# ============================================================================

def parse_duration(token: str | None) -> float | None:
    """Parse an optional recording duration in seconds.

    Returns:
        None when no token was given, otherwise a positive finite float

    Raises:
        ValueError: token is not a positive finite number
    """
    if token is None or token == "":
        return None

    seconds = float(token)
    if not math.isfinite(seconds) or seconds <= 0:
        raise ValueError(f"Duration must be a positive number of seconds: {token!r}")
    return seconds
