"""Observer registry and event dispatch."""

from .dispatcher import CallbackObserver, EventDispatcher
from .observer import ObserverManager

__all__ = ["CallbackObserver", "EventDispatcher", "ObserverManager"]
