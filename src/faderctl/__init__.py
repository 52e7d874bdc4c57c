"""faderctl - control motorized touch faders over MIDI-over-serial."""

from .core import FaderController, FaderMove
from .models import FaderControllerConfig, SerialConfig
from .protocols import DiagnosticEvent, FaderEvent

__version__ = "0.1.0"

__all__ = [
    "DiagnosticEvent",
    "FaderController",
    "FaderControllerConfig",
    "FaderEvent",
    "FaderMove",
    "SerialConfig",
    "__version__",
]
