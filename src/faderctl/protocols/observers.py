"""Observer and transport protocol definitions.

- Fader observers: react to public controller events
- Diagnostic observers: react to wire-level events
- Transport: the byte link the controller writes to and reads from
"""

from typing import TYPE_CHECKING, Any, Callable, Optional, Protocol, runtime_checkable

from .events import DiagnosticEvent, FaderEvent

if TYPE_CHECKING:
    from faderctl.midi.codec import MidiMessage
    from faderctl.models import SerialConfig


@runtime_checkable
class FaderObserver(Protocol):
    """
    Observer that receives public fader events.

    This protocol allows loose coupling between the controller and
    whatever decides what the faders should track (e.g. a playback client).
    """

    def on_fader_event(self, event: FaderEvent, index: Optional[int], payload: Any) -> None:
        """
        Handle a fader event.

        Args:
            event: The type of fader event
            index: Fader index (0-3), or None for controller-wide events
            payload: FaderInfo snapshot, error, statistics or results

        Threading:
            Called from the serial reader thread, the queue worker thread
            or the caller's thread. Keep it fast and non-blocking.

        Error Handling:
            Exceptions raised by observers are caught and logged. They do
            not reach the controller or other observers.
        """
        ...


@runtime_checkable
class DiagnosticObserver(Protocol):
    """Observer that receives diagnostic events."""

    def on_diagnostic_event(self, event: DiagnosticEvent, details: dict[str, Any]) -> None:
        """
        Handle a diagnostic event.

        Args:
            event: The type of diagnostic event
            details: Event-specific data (channel, message, counts, ...)
        """
        ...


@runtime_checkable
class Transport(Protocol):
    """
    Byte link to the fader hardware.

    SerialTransport implements this over pyserial; tests substitute an
    in-memory fake.
    """

    @property
    def is_open(self) -> bool:
        """True while the link can be written to."""
        ...

    @property
    def port_name(self) -> Optional[str]:
        """Port path for logs and errors."""
        ...

    def open(self, config: "SerialConfig") -> None:
        """Open the link, retrying as configured."""
        ...

    def write(self, data: bytes) -> None:
        """Write raw bytes; raises when closed or on failure."""
        ...

    def close(self) -> None:
        """Release the link. Idempotent."""
        ...

    def on_message(self, callback: Callable[["MidiMessage"], None]) -> None:
        """Register the callback for decoded inbound messages."""
        ...

    def on_error(self, callback: Callable[[Exception], None]) -> None:
        """Register the callback for non-fatal and fatal link errors."""
        ...

    def on_connection_changed(self, callback: Callable[[bool, Optional[str]], None]) -> None:
        """Register the callback for open/close transitions (is_open, port_name)."""
        ...
