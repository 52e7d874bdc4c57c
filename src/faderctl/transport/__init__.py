"""Byte transports to the fader hardware."""

from .serial_transport import SerialTransport

__all__ = ["SerialTransport"]
