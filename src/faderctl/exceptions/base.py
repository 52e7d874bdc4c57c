"""Base exception class for faderctl.

All custom exceptions inherit from FaderControlError to allow catching
all controller errors in one place. The base class provides:

- `code`: Stable error code for programmatic handling
- `user_message`: Human-friendly message for display to users
- `technical_message`: Detailed message for logging
- `recoverable`: Whether the error can be recovered from
- `recovery_hint`: Optional suggestion for how to fix the issue
- `context`: Affected indices, positions, timing and similar details
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    """Stable error codes carried by every error event."""

    CONNECTION_FAILED = "CONNECTION_FAILED"
    SERIAL_PORT_NOT_OPEN = "SERIAL_PORT_NOT_OPEN"
    SERIAL_PORT_DISCONNECTED = "SERIAL_PORT_DISCONNECTED"
    MIDI_SEND_ERROR = "MIDI_SEND_ERROR"
    INVALID_CONFIG = "INVALID_CONFIG"
    MOVEMENT_ERROR = "MOVEMENT_ERROR"
    CALIBRATION_FAILED = "CALIBRATION_FAILED"
    DEVICE_NOT_READY = "DEVICE_NOT_READY"
    QUEUE_OVERFLOW = "QUEUE_OVERFLOW"
    QUEUE_LOCK_ERROR = "QUEUE_LOCK_ERROR"
    MIDI_FEEDBACK_ERROR = "MIDI_FEEDBACK_ERROR"
    FADER_NOT_FOUND = "FADER_NOT_FOUND"


class FaderControlError(Exception):
    """
    Base exception for all faderctl errors.

    Attributes:
        code: Stable error code
        user_message: Human-friendly message for display
        technical_message: Detailed message for logging
        recoverable: Whether the error can be recovered from
        recovery_hint: Optional hint for how to fix the issue
        context: Extra details (indices, positions, timing)
    """

    code: ErrorCode = ErrorCode.MOVEMENT_ERROR

    def __init__(
        self,
        user_message: str,
        technical_message: Optional[str] = None,
        recoverable: bool = False,
        recovery_hint: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
        code: Optional[ErrorCode] = None,
    ):
        """
        Initialize a faderctl error.

        Args:
            user_message: Message to show to users
            technical_message: Detailed message for logs (defaults to user_message)
            recoverable: True if operation can be retried/recovered
            recovery_hint: Suggestion for how to fix the issue
            context: Details sufficient for the caller to retry or alert
            code: Overrides the class-level error code
        """
        super().__init__(user_message)
        self.user_message = user_message
        self.technical_message = technical_message or user_message
        self.recoverable = recoverable
        self.recovery_hint = recovery_hint
        self.context: dict[str, Any] = dict(context or {})
        if code is not None:
            self.code = code

    def __str__(self) -> str:
        """Return user-friendly message."""
        return self.user_message

    def get_full_message(self) -> str:
        """Get complete error message with recovery hint."""
        msg = self.user_message
        if self.recovery_hint:
            msg += f"\n\nSuggestion: {self.recovery_hint}"
        return msg
