"""Enumerations for the fader controller."""

from enum import Enum


class ControllerState(str, Enum):
    """Controller lifecycle states."""

    CONSTRUCTED = "constructed"
    SERIAL_CONNECTED = "serial_connected"
    DEVICE_READY = "device_ready"
    RUNNING = "running"
    STOPPED = "stopped"


class FeedbackStrategy(str, Enum):
    """How the queue decides a written position command has completed."""

    HARDWARE = "hardware"  # Wait for the device to echo the position
    SOFTWARE = "software"  # Complete as soon as the write succeeds


class CommandOutcome(str, Enum):
    """How a queued command's completion handle was resolved."""

    COMPLETED = "completed"  # Written and confirmed (echo or software)
    FLUSHED = "flushed"      # Cancelled by flush/interrupt
    SKIPPED = "skipped"      # Channel was touched, never written
    DROPPED = "dropped"      # Truncated by queue overflow
    TIMED_OUT = "timed_out"  # Hard timeout or feedback timeout
    FAILED = "failed"        # Write to the port failed
