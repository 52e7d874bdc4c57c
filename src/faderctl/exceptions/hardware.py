"""Serial link and device exceptions.

This module defines exceptions raised by the transport and device handshake:
- ConnectionFailedError: Serial port could not be opened or was lost for good
- SerialPortNotOpenError: An operation needs an open port
- SerialDisconnectedError: The port closed unexpectedly mid-session
- MidiSendError: Writing a frame to the port failed
- DeviceNotReadyError: The device never sent its readiness beacon
"""

from typing import Any, Optional, Sequence

from .base import ErrorCode, FaderControlError


class ConnectionFailedError(FaderControlError):
    """Serial connection could not be established."""

    code = ErrorCode.CONNECTION_FAILED

    def __init__(
        self,
        port: Optional[str],
        attempts: int = 0,
        max_attempts: Optional[int] = None,
        original_error: Optional[str] = None,
        user_message: Optional[str] = None,
        **kwargs,
    ):
        """
        Initialize connection failure.

        Args:
            port: Serial port path that failed
            attempts: Number of attempts made so far
            max_attempts: Configured attempt ceiling
            original_error: The error reported by pyserial
            user_message: Overrides the default message
        """
        user_msg = user_message or f"Could not connect to serial port {port} after {attempts} attempt(s)."
        tech_msg = user_msg
        if original_error:
            tech_msg += f"\nOriginal error: {original_error}"

        kwargs.setdefault(
            "recovery_hint",
            "Check the cable and the port name. Run 'faderctl ports list' to see available ports.",
        )
        context = {"port": port, "attempt": attempts, "max_attempts": max_attempts}
        context.update(kwargs.pop("context", {}))

        super().__init__(
            user_msg,
            technical_message=tech_msg,
            recoverable=kwargs.pop("recoverable", True),
            context=context,
            **kwargs,
        )
        self.port = port
        self.attempts = attempts
        self.max_attempts = max_attempts


class SerialPortNotOpenError(ConnectionFailedError):
    """Operation requires an open serial port."""

    code = ErrorCode.SERIAL_PORT_NOT_OPEN

    def __init__(self, operation: str, port: Optional[str] = None):
        super().__init__(
            port,
            user_message=f"Serial port not open: cannot {operation}.",
            recovery_hint="Call setup_serial() before starting the controller.",
        )
        self.operation = operation


class SerialDisconnectedError(ConnectionFailedError):
    """Serial port closed unexpectedly; a reconnect will be attempted."""

    code = ErrorCode.SERIAL_PORT_DISCONNECTED

    def __init__(self, port: Optional[str], original_error: Optional[str] = None):
        super().__init__(
            port,
            original_error=original_error,
            user_message=f"Serial port {port} disconnected.",
            recovery_hint="Reconnecting automatically. Check the USB cable if this repeats.",
        )


class MidiSendError(ConnectionFailedError):
    """Writing a MIDI frame to the serial port failed."""

    code = ErrorCode.MIDI_SEND_ERROR

    def __init__(self, port: Optional[str], frame: Sequence[int], original_error: Optional[str] = None):
        super().__init__(
            port,
            original_error=original_error,
            user_message=f"Failed to send MIDI message {list(frame)} on {port}.",
            context={"message": list(frame)},
        )
        self.frame = list(frame)


class DeviceNotReadyError(FaderControlError):
    """The fader device never signalled readiness."""

    code = ErrorCode.DEVICE_NOT_READY

    def __init__(self, attempts: int, last_messages: Optional[list[Any]] = None):
        super().__init__(
            f"MIDI device not responding after {attempts} attempts.",
            recoverable=True,
            recovery_hint="Power-cycle the fader unit and check the baud rate.",
            context={"attempts": attempts, "last_messages": list(last_messages or [])},
        )
        self.attempts = attempts
