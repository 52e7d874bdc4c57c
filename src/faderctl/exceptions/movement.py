"""Movement, queue and calibration exceptions."""

from typing import Any, Optional

from .base import ErrorCode, FaderControlError


class MovementError(FaderControlError):
    """A fader move could not be computed or sent."""

    code = ErrorCode.MOVEMENT_ERROR

    def __init__(self, user_message: str, indexes: Optional[list[int]] = None, **kwargs):
        context = {"indexes": list(indexes or [])}
        context.update(kwargs.pop("context", {}))
        super().__init__(user_message, context=context, **kwargs)
        self.indexes = list(indexes or [])


class QueueOverflowError(FaderControlError):
    """Queue grew beyond its ceiling and the backlog was truncated."""

    code = ErrorCode.QUEUE_OVERFLOW

    def __init__(self, channel: int, count: int, limit: int, dropped: int):
        super().__init__(
            f"MIDI queue overflow on channel {channel}: dropped {dropped} pending message(s).",
            technical_message=f"Queue length {count} exceeded limit {limit} on channel {channel}",
            recoverable=True,
            recovery_hint="Lower the move speed or raise queue_overflow.",
            context={"channel": channel, "count": count, "limit": limit, "dropped": dropped},
        )


class QueueLockError(FaderControlError):
    """The send-positions lock could not be acquired."""

    code = ErrorCode.QUEUE_LOCK_ERROR

    def __init__(self, timeout: float, positions: Optional[list[Any]] = None):
        super().__init__(
            f"Could not acquire the send lock within {timeout}s.",
            recoverable=True,
            recovery_hint="Another move is still running; retry with interrupt=True.",
            context={"timeout": timeout, "positions": list(positions or [])},
        )


class MidiFeedbackError(FaderControlError):
    """Hardware never echoed a sent position within the feedback window."""

    code = ErrorCode.MIDI_FEEDBACK_ERROR

    def __init__(self, channel: int, target_position: int, timeout: float):
        super().__init__(
            f"Feedback timeout for fader {channel}.",
            technical_message=(
                f"No echo within {timeout}s for fader {channel} (target {target_position}); "
                "switching to software feedback"
            ),
            recoverable=True,
            recovery_hint="The device does not echo positions; set feedback_midi=False.",
            context={"index": channel, "target_position": target_position, "timeout": timeout},
        )


class CalibrationFailedError(FaderControlError):
    """Calibration could not be completed."""

    code = ErrorCode.CALIBRATION_FAILED

    def __init__(self, user_message: str, indexes: Optional[list[int]] = None, **kwargs):
        context = {"indexes": list(indexes or [])}
        context.update(kwargs.pop("context", {}))
        kwargs.setdefault("recoverable", True)
        super().__init__(user_message, context=context, **kwargs)
