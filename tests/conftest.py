"""Pytest fixtures for tests."""

import threading
import time
from typing import Any, Callable, Optional

import pytest

from faderctl.core import FaderController
from faderctl.exceptions import MidiSendError, SerialPortNotOpenError
from faderctl.midi import MidiMessage, MidiMessageType, MidiParser
from faderctl.models import SerialConfig

READY_FRAME = bytes([0xC0, 0x00, 102])

# Fast timings so controller tests finish in milliseconds
TEST_CONFIG = {
    "message_delay": 0,
    "calibrate_on_start": False,
    "feedback_timeout": 0.5,
    "command_timeout": 2.0,
    "lock_timeout": 1.0,
    "ready_max_attempts": 3,
    "ready_poll_interval": 0.01,
}


class FakeTransport:
    """
    In-memory Transport.

    Records every written frame. With `auto_echo`, each PITCH_BEND frame is
    played back as inbound MIDI shortly after the write, the way the fader
    hardware reports where its motor ended up. An `echo_delay` of 0 delivers
    the echo from inside write().
    """

    def __init__(self, auto_echo: bool = False, echo_delay: float = 0.005):
        self.auto_echo = auto_echo
        self.echo_delay = echo_delay
        self.fail_writes = False
        self.open_error: Optional[Exception] = None
        self.close_error: Optional[Exception] = None
        self.written: list[bytes] = []
        self.open_count = 0
        self._is_open = False
        self._port: Optional[str] = None
        self._parser = MidiParser()
        self._on_message: Optional[Callable[[MidiMessage], None]] = None
        self._on_error: Optional[Callable[[Exception], None]] = None
        self._on_connection_changed: Optional[Callable[[bool, Optional[str]], None]] = None

    @property
    def is_open(self) -> bool:
        return self._is_open

    @property
    def port_name(self) -> Optional[str]:
        return self._port

    def open(self, config: SerialConfig) -> None:
        self._port = config.port
        if self.open_error is not None:
            raise self.open_error
        self._is_open = True
        self.open_count += 1
        if self._on_connection_changed:
            self._on_connection_changed(True, self._port)

    def close(self) -> None:
        if self.close_error is not None:
            raise self.close_error
        was_open, self._is_open = self._is_open, False
        if was_open and self._on_connection_changed:
            self._on_connection_changed(False, self._port)

    def write(self, data: bytes) -> None:
        if not self._is_open:
            raise SerialPortNotOpenError("write", self._port)
        if self.fail_writes:
            raise MidiSendError(self._port, data, "write failed")
        self.written.append(bytes(data))

        message = MidiMessage.from_bytes(data)
        if not self.auto_echo or message.type is not MidiMessageType.PITCH_BEND:
            return
        if self.echo_delay <= 0:
            # Echo before write() returns, like a device faster than the host
            self.deliver(message)
        else:
            timer = threading.Timer(self.echo_delay, self.deliver, args=(message,))
            timer.daemon = True
            timer.start()

    def on_message(self, callback: Callable[[MidiMessage], None]) -> None:
        self._on_message = callback

    def on_error(self, callback: Callable[[Exception], None]) -> None:
        self._on_error = callback

    def on_connection_changed(self, callback: Callable[[bool, Optional[str]], None]) -> None:
        self._on_connection_changed = callback

    def deliver(self, message: MidiMessage) -> None:
        if self._on_message:
            self._on_message(message)

    def feed(self, data: bytes) -> None:
        """Simulate bytes arriving from the device."""
        for message in self._parser.feed(data):
            self.deliver(message)

    def report_error(self, error: Exception) -> None:
        if self._on_error:
            self._on_error(error)

    def written_messages(self, channel: Optional[int] = None) -> list[MidiMessage]:
        messages = [MidiMessage.from_bytes(frame) for frame in self.written]
        if channel is None:
            return messages
        return [m for m in messages if m.channel == channel]


class EventRecorder:
    """Observer that records public and diagnostic events."""

    def __init__(self):
        self.events: list[tuple[Any, Optional[int], Any]] = []
        self.diagnostics: list[tuple[Any, dict[str, Any]]] = []
        self._lock = threading.Lock()

    def on_fader_event(self, event, index, payload) -> None:
        with self._lock:
            self.events.append((event, index, payload))

    def on_diagnostic_event(self, event, details) -> None:
        with self._lock:
            self.diagnostics.append((event, details))

    def of(self, event) -> list[tuple[Optional[int], Any]]:
        """(index, payload) pairs recorded for one public event."""
        with self._lock:
            return [(i, p) for e, i, p in self.events if e is event]

    def diagnostics_of(self, event) -> list[dict[str, Any]]:
        with self._lock:
            return [d for e, d in self.diagnostics if e is event]


def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0, interval: float = 0.005) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait_until():
    """Poll a predicate until it holds or the timeout expires."""
    return _wait_until


@pytest.fixture
def fake_transport():
    """Create a closed FakeTransport."""
    return FakeTransport()


@pytest.fixture
def serial_config():
    """Serial config for the fake port."""
    return SerialConfig(port="/dev/ttyFAKE0", retry_interval=0, reconnect_interval=0)


@pytest.fixture
def recorder():
    """Create an EventRecorder."""
    return EventRecorder()


@pytest.fixture
def make_controller(fake_transport, recorder):
    """
    Factory for controllers wired to the fake transport.

    Keyword arguments override the fast test config. Every controller
    created is stopped at teardown.
    """
    created: list[FaderController] = []

    def factory(**overrides: Any) -> FaderController:
        controller = FaderController({**TEST_CONFIG, **overrides}, transport=fake_transport)
        controller.register_observer(recorder)
        controller.register_diagnostic_observer(recorder)
        created.append(controller)
        return controller

    yield factory

    for controller in created:
        fake_transport.close_error = None
        controller.stop(reset=False)


@pytest.fixture
def start_controller(make_controller, fake_transport, serial_config):
    """Factory for controllers that are connected, ready and RUNNING."""

    def factory(**overrides: Any) -> FaderController:
        controller = make_controller(**overrides)
        controller.setup_serial(serial_config)
        fake_transport.feed(READY_FRAME)
        controller.start()
        return controller

    return factory
