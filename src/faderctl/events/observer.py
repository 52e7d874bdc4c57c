"""Thread-safe observer registry used by the event dispatcher."""

import logging
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)


class ObserverManager[T: object]:
    """
    Ordered set of observers of one protocol type.

    Observers are called synchronously in registration order. The list is
    copied under the lock and callbacks run without it, so an observer may
    register or unregister others from inside a callback. A failing
    observer is logged and skipped; the rest are still notified.

    Example:
        ```python
        observers = ObserverManager[FaderObserver](observer_type_name="fader")
        observers.register(my_observer)
        observers.notify("on_fader_event", FaderEvent.TOUCH, 0, info)
        ```
    """

    def __init__(self, observer_type_name: str = "observer"):
        self._observers: list[T] = []
        self._lock = Lock()
        self._kind = observer_type_name

    def register(self, observer: T) -> None:
        """Add an observer; registering the same one twice is a no-op."""
        with self._lock:
            if observer in self._observers:
                return
            self._observers.append(observer)
        logger.debug(f"Registered {self._kind} observer {observer!r}")

    def unregister(self, observer: T) -> None:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                logger.debug(f"{self._kind} observer {observer!r} was not registered")
                return
        logger.debug(f"Unregistered {self._kind} observer {observer!r}")

    def notify(self, callback_name: str, *args: Any, **kwargs: Any) -> None:
        with self._lock:
            snapshot = tuple(self._observers)

        for observer in snapshot:
            callback = getattr(observer, callback_name, None)
            if callback is None:
                logger.error(f"{self._kind} observer {observer!r} has no {callback_name}()")
                continue
            try:
                callback(*args, **kwargs)
            except Exception as e:
                logger.error(f"{self._kind} observer {observer!r} failed in {callback_name}: {e}", exc_info=True)

    def clear(self) -> None:
        with self._lock:
            self._observers.clear()

    def __contains__(self, observer: object) -> bool:
        with self._lock:
            return observer in self._observers

    def __len__(self) -> int:
        with self._lock:
            return len(self._observers)

    def __bool__(self) -> bool:
        return len(self) > 0
