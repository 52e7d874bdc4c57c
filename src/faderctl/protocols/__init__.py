"""Protocol definitions for events, observers and transports."""

from .events import DiagnosticEvent, FaderEvent
from .observers import DiagnosticObserver, FaderObserver, Transport

__all__ = [
    "DiagnosticEvent",
    "DiagnosticObserver",
    # Events
    "FaderEvent",
    # Observers
    "FaderObserver",
    "Transport",
]
