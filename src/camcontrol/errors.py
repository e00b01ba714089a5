"""Error taxonomy for the capture lifecycle.

Every failure in the core degrades to a published status and a return to
a stable device state. Components raise these exceptions; the lifecycle
controller and the command dispatcher catch them at the operation
boundary and turn them into status strings.

Error Categories:
    - REJECTED_BY_STATE: command conflicts with the current device state
    - SUBPROCESS_FAILURE: ffmpeg/v4l2-ctl failed to start or exited non-zero
    - PROBE_INCONCLUSIVE: black-frame probe gave up within its bounds
    - POST_PROCESS_FAILURE: trim failed, original recording preserved
    - INVALID_COMMAND: malformed command payload

Logging Strategy:
    These classes do not log. Callers log at the boundary.
"""
from __future__ import annotations

from enum import Enum

# ============================================================================
# Error Codes Enum
# ============================================================================

class ErrorCode(str, Enum):
    """Machine-readable error codes attached to every CamControlError."""

    REJECTED_BY_STATE = "REJECTED_BY_STATE"
    SUBPROCESS_FAILURE = "SUBPROCESS_FAILURE"
    PROBE_INCONCLUSIVE = "PROBE_INCONCLUSIVE"
    POST_PROCESS_FAILURE = "POST_PROCESS_FAILURE"
    INVALID_COMMAND = "INVALID_COMMAND"


# ============================================================================
# Exceptions
# ============================================================================

class CamControlError(Exception):
    """Base class for recoverable controller errors."""

    code: ErrorCode = ErrorCode.SUBPROCESS_FAILURE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class RejectedByState(CamControlError):
    """Command conflicts with the current lifecycle state. No side effect."""

    code = ErrorCode.REJECTED_BY_STATE


class SubprocessFailure(CamControlError):
    """External process exited non-zero.

    Attributes:
        returncode: Exit status (None if the process never ran)
        output: Captured combined stdout/stderr
    """

    code = ErrorCode.SUBPROCESS_FAILURE

    def __init__(
        self,
        message: str,
        returncode: int | None = None,
        output: str = "",
    ) -> None:
        super().__init__(message)
        self.returncode = returncode
        self.output = output


class StartError(SubprocessFailure):
    """Program could not be launched (missing binary, permissions)."""


class ProbeInconclusive(CamControlError):
    """Black-frame probe exhausted its attempts or deadline."""

    code = ErrorCode.PROBE_INCONCLUSIVE

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts


class PostProcessFailure(CamControlError):
    """Trim failed. The original recording is left untouched."""

    code = ErrorCode.POST_PROCESS_FAILURE


class InvalidCommand(CamControlError):
    """Malformed setting or action payload."""

    code = ErrorCode.INVALID_COMMAND
