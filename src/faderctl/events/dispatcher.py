"""Event dispatch for one controller instance."""

import logging
from typing import Any, Callable, Iterable, Optional

from faderctl.protocols import DiagnosticEvent, DiagnosticObserver, FaderEvent, FaderObserver

from .observer import ObserverManager

logger = logging.getLogger(__name__)

# Published once per ramp step; too chatty for the debug log
QUIET_EVENTS = frozenset({FaderEvent.MOVE_STEP_START, FaderEvent.MOVE_STEP_COMPLETE})


class CallbackObserver:
    """
    Adapts a plain callable to the FaderObserver protocol.

    Args:
        callback: Called as callback(index, payload)
        events: Events to forward; None forwards every event
    """

    def __init__(
        self,
        callback: Callable[[Optional[int], Any], None],
        events: Optional[Iterable[FaderEvent]] = None,
    ):
        self.callback = callback
        self.events = frozenset(events) if events is not None else None

    def on_fader_event(self, event: FaderEvent, index: Optional[int], payload: Any) -> None:
        if self.events is None or event in self.events:
            self.callback(index, payload)

    def __repr__(self) -> str:
        names = sorted(e.value for e in self.events) if self.events else "all"
        return f"CallbackObserver({getattr(self.callback, '__name__', self.callback)!r}, {names})"


class EventDispatcher:
    """
    Routes public and diagnostic events to their observers.

    Each controller owns exactly one dispatcher; faders, queue, tracker and
    transport publish through it. Public events go to FaderObserver
    instances, diagnostic events to DiagnosticObserver instances.
    """

    def __init__(self, logger_instance: Optional[logging.Logger] = None):
        self._logger = logger_instance or logger
        self._observers = ObserverManager[FaderObserver](observer_type_name="fader")
        self._diagnostics = ObserverManager[DiagnosticObserver](observer_type_name="diagnostic")

    def register(self, observer: FaderObserver) -> None:
        self._observers.register(observer)

    def unregister(self, observer: FaderObserver) -> None:
        self._observers.unregister(observer)

    def register_diagnostic(self, observer: DiagnosticObserver) -> None:
        self._diagnostics.register(observer)

    def unregister_diagnostic(self, observer: DiagnosticObserver) -> None:
        self._diagnostics.unregister(observer)

    def subscribe(
        self,
        event: FaderEvent | Iterable[FaderEvent],
        callback: Callable[[Optional[int], Any], None],
    ) -> CallbackObserver:
        """
        Register a callable for one or more events.

        Returns:
            The created observer, to pass to unregister() later
        """
        events = [event] if isinstance(event, FaderEvent) else list(event)
        observer = CallbackObserver(callback, events)
        self._observers.register(observer)
        return observer

    def publish(self, event: FaderEvent, index: Optional[int] = None, payload: Any = None) -> None:
        """Deliver a public event to every registered observer, in registration order."""
        if event is FaderEvent.ERROR:
            message = getattr(payload, "technical_message", payload)
            self._logger.error(f"Error event (fader {index}): {message}")
        elif event not in QUIET_EVENTS:
            self._logger.debug(f"Event {event.value} (fader {index})")
        self._observers.notify("on_fader_event", event, index, payload)

    def diagnostic(self, event: DiagnosticEvent, **details: Any) -> None:
        """Deliver a diagnostic event; skipped entirely when nobody listens."""
        if not self._diagnostics:
            return
        self._diagnostics.notify("on_diagnostic_event", event, details)

    @property
    def observer_count(self) -> int:
        return len(self._observers)
