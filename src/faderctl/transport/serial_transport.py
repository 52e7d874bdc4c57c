"""Serial link to the fader hardware."""

import logging
import threading
from typing import Callable, Optional

import serial
from serial.tools import list_ports as serial_list_ports

from faderctl.exceptions import (
    ConnectionFailedError,
    MidiSendError,
    SerialDisconnectedError,
    SerialPortNotOpenError,
)
from faderctl.midi.codec import MidiMessage, MidiParser
from faderctl.models import SerialConfig

logger = logging.getLogger(__name__)

# Errors pyserial raises for missing, busy or vanished ports
SERIAL_ERRORS = (serial.SerialException, OSError)


class SerialTransport:
    """
    Serial connection with retrying open, automatic reconnect and a reader thread.

    Inbound bytes are framed by a MidiParser and every complete message is
    handed to the on_message callback, on the reader thread. Errors that
    do not stop the caller (a failed attempt, a disconnect) go to the
    on_error callback.
    """

    def __init__(self, logger_instance: Optional[logging.Logger] = None):
        self._logger = logger_instance or logger
        self._config: Optional[SerialConfig] = None
        self._serial: Optional[serial.Serial] = None
        self._port_lock = threading.Lock()
        self._parser = MidiParser()
        self._running = False
        self._stop_event = threading.Event()
        self._reader_thread: Optional[threading.Thread] = None
        self._on_message: Optional[Callable[[MidiMessage], None]] = None
        self._on_error: Optional[Callable[[Exception], None]] = None
        self._on_connection_changed: Optional[Callable[[bool, Optional[str]], None]] = None

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def on_message(self, callback: Callable[[MidiMessage], None]) -> None:
        self._on_message = callback

    def on_error(self, callback: Callable[[Exception], None]) -> None:
        self._on_error = callback

    def on_connection_changed(self, callback: Callable[[bool, Optional[str]], None]) -> None:
        """
        Register callback for connection state changes.

        Args:
            callback: Function that receives (is_open: bool, port_name: Optional[str])
        """
        self._on_connection_changed = callback

    def _report_error(self, error: Exception) -> None:
        if self._on_error is None:
            return
        try:
            self._on_error(error)
        except Exception as e:
            self._logger.error(f"Error in serial error callback: {e}", exc_info=True)

    def _notify_connection(self, is_open: bool) -> None:
        if self._on_connection_changed is None:
            return
        try:
            self._on_connection_changed(is_open, self.port_name)
        except Exception as e:
            self._logger.error(f"Error in connection callback: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_open(self) -> bool:
        with self._port_lock:
            return self._serial is not None and bool(self._serial.is_open)

    @property
    def port_name(self) -> Optional[str]:
        return self._config.port if self._config else None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def open(self, config: SerialConfig) -> None:
        """
        Open the port, retrying every `retry_interval` up to `retries` times.

        Raises:
            ConnectionFailedError: When every attempt failed
        """
        if self.is_open:
            self._logger.warning(f"Serial port {self.port_name} is already open")
            return

        self._config = config
        self._stop_event.clear()
        self._logger.info(f"Opening serial port {config.port} at {config.baud_rate} baud")

        handle: Optional[serial.Serial] = None
        last_error: Optional[Exception] = None
        attempt = 0
        while handle is None and attempt < config.retries:
            attempt += 1
            try:
                handle = self._open_handle(config)
            except SERIAL_ERRORS as e:
                last_error = e
                self._logger.warning(f"Serial open attempt {attempt}/{config.retries} failed: {e}")
                self._report_error(ConnectionFailedError(config.port, attempt, config.retries, str(e)))
                # close() during the retry wait aborts the remaining attempts
                if attempt < config.retries and self._stop_event.wait(config.retry_interval):
                    break

        if handle is None:
            raise ConnectionFailedError(
                config.port, attempt, config.retries, str(last_error), recoverable=False
            )

        with self._port_lock:
            self._serial = handle
        self._parser.reset()
        self._running = True
        self._reader_thread = threading.Thread(target=self._read_loop, name="serial-reader", daemon=True)
        self._reader_thread.start()
        self._logger.info(f"Serial port {config.port} opened")
        self._notify_connection(True)

    def _open_handle(self, config: SerialConfig) -> serial.Serial:
        return serial.Serial(config.port, config.baud_rate, timeout=config.read_timeout)

    def close(self) -> None:
        """Stop the reader and release the port. Safe to call repeatedly."""
        self._running = False
        self._stop_event.set()

        with self._port_lock:
            handle, self._serial = self._serial, None

        if handle is not None:
            try:
                handle.close()
            except Exception as e:
                self._logger.error(f"Error closing serial port {self.port_name}: {e}")
                self._report_error(
                    ConnectionFailedError(
                        self.port_name,
                        user_message=f"Error closing serial port {self.port_name}.",
                        original_error=str(e),
                    )
                )

        reader = self._reader_thread
        if reader and reader.is_alive() and reader is not threading.current_thread():
            reader.join(timeout=1.0)
        self._reader_thread = None

        if handle is not None:
            self._logger.info(f"Serial port {self.port_name} closed")
            self._notify_connection(False)

    # ------------------------------------------------------------------
    # I/O
    # ------------------------------------------------------------------

    def write(self, data: bytes) -> None:
        """
        Write one frame.

        Raises:
            SerialPortNotOpenError: If the port is closed
            MidiSendError: If pyserial fails to write
        """
        with self._port_lock:
            if self._serial is None or not self._serial.is_open:
                raise SerialPortNotOpenError("write", self.port_name)
            try:
                self._serial.write(data)
            except SERIAL_ERRORS as e:
                raise MidiSendError(self.port_name, data, str(e)) from e

    def _read_loop(self) -> None:
        self._logger.debug("Serial reader started")
        while self._running:
            with self._port_lock:
                handle = self._serial
            if handle is None:
                break

            try:
                data = handle.read(handle.in_waiting or 1)
            except SERIAL_ERRORS as e:
                if not self._running:
                    break
                if not self._reconnect(e):
                    break
                continue

            if not data:
                continue
            for message in self._parser.feed(data):
                self._deliver(message)
        self._logger.debug("Serial reader stopped")

    def _deliver(self, message: MidiMessage) -> None:
        if self._on_message is None:
            return
        try:
            self._on_message(message)
        except Exception as e:
            self._logger.error(f"Error handling MIDI message {message}: {e}", exc_info=True)

    def _reconnect(self, cause: Exception) -> bool:
        """
        Recover from a mid-session failure.

        Returns:
            True if the port was reopened, False after giving up
        """
        config = self._config
        self._logger.warning(f"Serial port {self.port_name} disconnected: {cause}")
        self._report_error(SerialDisconnectedError(self.port_name, str(cause)))

        with self._port_lock:
            handle, self._serial = self._serial, None
        if handle is not None:
            try:
                handle.close()
            except Exception as e:
                self._logger.debug(f"Ignoring close error on dead port: {e}")
        self._notify_connection(False)

        attempts = config.reconnect_attempts if config else 0
        for attempt in range(1, attempts + 1):
            if self._stop_event.wait(config.reconnect_interval) or not self._running:
                return False
            try:
                handle = self._open_handle(config)
            except SERIAL_ERRORS as e:
                self._logger.warning(f"Reconnect attempt {attempt}/{attempts} failed: {e}")
                continue
            with self._port_lock:
                # close() may have run while the port was opening
                stale = not self._running
                if not stale:
                    self._serial = handle
            if stale:
                try:
                    handle.close()
                except Exception as e:
                    self._logger.debug(f"Ignoring close error on abandoned port: {e}")
                return False
            self._parser.reset()
            self._logger.info(f"Reconnected to serial port {self.port_name}")
            self._notify_connection(True)
            return True

        self._running = False
        self._logger.error(f"Giving up on serial port {self.port_name} after {attempts} reconnect attempt(s)")
        self._report_error(
            ConnectionFailedError(
                self.port_name,
                attempts,
                attempts,
                str(cause),
                user_message=f"Lost serial port {self.port_name}; reconnect failed after {attempts} attempt(s).",
                recoverable=False,
            )
        )
        return False

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @staticmethod
    def list_ports() -> list[dict[str, str]]:
        """List serial ports visible to pyserial."""
        return [
            {"device": port.device, "description": port.description or "", "hwid": port.hwid or ""}
            for port in sorted(serial_list_ports.comports(), key=lambda p: p.device)
        ]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
