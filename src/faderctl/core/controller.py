"""Fader controller: owns the faders, queue, tracker and transport."""

import logging
import threading
import time
from collections import deque
from concurrent.futures import Future, wait
from typing import Any, Callable, Iterable, Optional

from faderctl.calibration import CalibrationEngine
from faderctl.events import CallbackObserver, EventDispatcher
from faderctl.exceptions import (
    ConnectionFailedError,
    DeviceNotReadyError,
    FaderControlError,
    FaderNotFoundError,
    InvalidConfigError,
    MovementError,
    QueueLockError,
    SerialPortNotOpenError,
    collect_errors,
)
from faderctl.midi import FeedbackTracker, MidiMessage, MidiMessageType, MidiQueue, QueuedCommand, position_message
from faderctl.models import (
    CommandOutcome,
    ControllerState,
    FaderCalibrationResult,
    FaderControllerConfig,
    FaderInfo,
    MoveStatistics,
    SerialConfig,
)
from faderctl.protocols import DiagnosticEvent, DiagnosticObserver, FaderEvent, FaderObserver, Transport
from faderctl.transport import SerialTransport

from .fader import Fader, progression_to_position
from .fader_move import FaderMove
from .movement import calculate_movement

logger = logging.getLogger(__name__)

MIN_EFFECTIVE_SPEED = 0.1
MAX_EFFECTIVE_SPEED = 100.0

READY_CACHE_SIZE = 10


class FaderController:
    """
    Drives up to four motorized faders over a MIDI-over-serial link.

    Lifecycle: CONSTRUCTED -> setup_serial() -> SERIAL_CONNECTED ->
    start() -> DEVICE_READY -> RUNNING -> stop() -> STOPPED.

    Threading:
        Inbound MIDI is dispatched on the transport's reader thread and
        outgoing commands are written by the queue worker. Public methods
        run on the caller's thread; move_faders() blocks until every step
        of the move is resolved. Observers are notified synchronously, in
        registration order, with no controller lock held.

    Example:
        ```python
        with FaderController({"fader_indexes": [0, 1]}) as controller:
            controller.setup_serial({"port": "/dev/ttyUSB0"})
            controller.start()
            controller.move_faders(FaderMove([0, 1], 75, 40))
        ```
    """

    def __init__(
        self,
        config: FaderControllerConfig | dict[str, Any] | None = None,
        transport: Optional[Transport] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = FaderControllerConfig.coerce(config)
        self._logger = logger or logging.getLogger(__name__)
        self._dispatcher = EventDispatcher(self._logger)
        self._state = ControllerState.CONSTRUCTED
        self.speed_multiplier = 1.0

        self._faders: dict[int, Fader] = {
            index: Fader(index, self._dispatcher) for index in self.config.fader_indexes
        }

        self._transport: Transport = transport or SerialTransport(logger_instance=self._logger)
        self._transport.on_message(self._handle_midi_message)
        self._transport.on_error(self._handle_transport_error)
        self._transport.on_connection_changed(self._handle_connection_changed)

        self._tracker = FeedbackTracker(
            hardware=self.config.feedback_midi,
            tolerance=self.config.feedback_tolerance,
            timeout=self.config.feedback_timeout,
            logger_instance=self._logger,
        )
        self._queue = MidiQueue(
            self._transport,
            self._dispatcher,
            self._tracker,
            is_touched=self._is_touched,
            current_position=self._current_position,
            message_delay=self.config.message_delay,
            command_timeout=self.config.command_timeout,
            queue_overflow=self.config.queue_overflow,
            max_in_flight=self.config.max_in_flight,
            value_log=self.config.value_log,
            logger_instance=self._logger,
        )
        self._queue.on_command_sent = self._on_step_sent
        self._queue.on_command_done = self._on_step_done

        self._send_lock = threading.Lock()
        self._ready_cache: deque[MidiMessage] = deque(maxlen=READY_CACHE_SIZE)
        self._ready_event = threading.Event()
        self._calibration = CalibrationEngine(
            self, self.config.calibration, self._dispatcher, logger_instance=self._logger
        )

        self._log_config()

    def _log_config(self) -> None:
        self._logger.debug(
            f"FaderController config: faders={self.config.fader_indexes} speeds={self.config.speeds} "
            f"feedback_midi={self.config.feedback_midi} message_delay={self.config.message_delay}s "
            f"command_timeout={self.config.command_timeout}s"
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def state(self) -> ControllerState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is ControllerState.RUNNING

    @property
    def fader_indexes(self) -> list[int]:
        return list(self._faders)

    @property
    def queue(self) -> MidiQueue:
        return self._queue

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def calibration_engine(self) -> CalibrationEngine:
        return self._calibration

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def register_observer(self, observer: FaderObserver) -> None:
        self._dispatcher.register(observer)

    def unregister_observer(self, observer: FaderObserver) -> None:
        self._dispatcher.unregister(observer)

    def register_diagnostic_observer(self, observer: DiagnosticObserver) -> None:
        self._dispatcher.register_diagnostic(observer)

    def unregister_diagnostic_observer(self, observer: DiagnosticObserver) -> None:
        self._dispatcher.unregister_diagnostic(observer)

    def subscribe(
        self,
        event: FaderEvent | Iterable[FaderEvent],
        callback: Callable[[Optional[int], Any], None],
    ) -> CallbackObserver:
        """Call `callback(index, payload)` for the given event(s); returns the observer to unregister."""
        return self._dispatcher.subscribe(event, callback)

    def _publish_error(self, error: Exception, index: Optional[int] = None) -> None:
        self._dispatcher.publish(FaderEvent.ERROR, index, error)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def setup_serial(self, serial_config: SerialConfig | dict[str, Any]) -> None:
        """
        Open the serial link and start the queue worker.

        Raises:
            ConfigValidationError: If the serial config is invalid
            ConnectionFailedError: If the port cannot be opened
        """
        config = SerialConfig.coerce(serial_config)
        try:
            self._transport.open(config)
        except ConnectionFailedError as e:
            self._publish_error(e)
            raise

        self._state = ControllerState.SERIAL_CONNECTED
        if not self._queue.is_running:
            self._queue.start()
        self._logger.info(f"Serial connected on {config.port}")

    def start(self) -> None:
        """
        Wait for the device, optionally calibrate, then enter RUNNING.

        Raises:
            SerialPortNotOpenError: If setup_serial() has not succeeded
            DeviceNotReadyError: If the device never signals readiness
        """
        if not self._transport.is_open:
            error = SerialPortNotOpenError("start the controller", self._transport.port_name)
            self._publish_error(error)
            raise error

        self.check_device_ready()
        if not self._queue.is_running:
            self._queue.start()

        if self.config.calibrate_on_start:
            self.calibrate(self.fader_indexes)

        self._state = ControllerState.RUNNING
        self._logger.info(f"FaderController running (faders {self.fader_indexes})")
        self._dispatcher.publish(FaderEvent.READY, None, {"fader_indexes": self.fader_indexes})

    def stop(self, reset: bool = True) -> None:
        """Reset faders (unless `reset` is False), stop the queue and close the port. Never raises."""
        collector = collect_errors("stop fader controller")

        if reset and self._transport.is_open and self._queue.is_running:
            with collector.try_operation("reset faders"):
                self.reset(self.fader_indexes)
        with collector.try_operation("stop MIDI queue"):
            self._queue.stop()
        with collector.try_operation("close serial port"):
            self.close_serial()

        self._state = ControllerState.STOPPED
        if collector.has_errors:
            self._logger.warning(collector.get_summary())
        self._logger.info("FaderController stopped")

    def close_serial(self) -> None:
        self._transport.close()

    def check_device_ready(
        self,
        max_attempts: Optional[int] = None,
        poll_interval: Optional[float] = None,
    ) -> bool:
        """
        Poll the cached PROGRAM_CHANGE frames for a readiness beacon.

        Raises:
            DeviceNotReadyError: After `max_attempts` polls without one
        """
        max_attempts = max_attempts or self.config.ready_max_attempts
        poll_interval = self.config.ready_poll_interval if poll_interval is None else poll_interval

        for attempt in range(1, max_attempts + 1):
            if any(message.is_ready_signal for message in list(self._ready_cache)):
                self._state = ControllerState.DEVICE_READY
                self._logger.debug("MIDI device ready signal received")
                return True
            self._logger.debug(f"Device check attempt {attempt}/{max_attempts}")
            if attempt < max_attempts:
                self._ready_event.wait(poll_interval)
                self._ready_event.clear()

        error = DeviceNotReadyError(max_attempts, [list(m.to_bytes()) for m in list(self._ready_cache)[-5:]])
        self._publish_error(error)
        raise error

    # ------------------------------------------------------------------
    # Faders
    # ------------------------------------------------------------------

    def get_fader(self, index: int) -> Fader:
        """
        Raises:
            FaderNotFoundError: If `index` is not a configured fader
        """
        fader = self._faders.get(index)
        if fader is None:
            error = FaderNotFoundError(index, self.fader_indexes)
            self._publish_error(error, index if isinstance(index, int) else None)
            raise error
        return fader

    def fader_info(self, index: Optional[int] = None) -> FaderInfo | dict[int, FaderInfo]:
        """Snapshot of one fader, or of all faders keyed by index."""
        if index is not None:
            return self.get_fader(index).info
        return {i: fader.info for i, fader in self._faders.items()}

    def _indexes(self, indexes: Optional[int | Iterable[int]]) -> list[int]:
        if indexes is None:
            return self.fader_indexes
        if isinstance(indexes, int):
            return [indexes]
        return list(indexes)

    def set_fader_progression_map(self, index: int | Iterable[int], progression_map: tuple[float, float]) -> None:
        minimum, maximum = progression_map
        for i in self._indexes(index):
            self.get_fader(i).set_progression_map(minimum, maximum)

    def set_faders_movement_speed_factor(self, index: int | Iterable[int], speed_factor: float) -> None:
        """Set the speed factor; an invalid factor logs a warning and resets it to 1.0."""
        for i in self._indexes(index):
            fader = self.get_fader(i)
            try:
                fader.speed_factor = speed_factor
            except InvalidConfigError:
                self._logger.warning(f"Invalid speed factor {speed_factor!r} for fader {i}; using 1.0")
                fader.speed_factor = 1.0

    def set_fader_echo_mode(self, index: int | Iterable[int], echo_mode: bool) -> None:
        for i in self._indexes(index):
            self.get_fader(i).set_echo_mode(echo_mode)

    def _is_touched(self, channel: int) -> bool:
        fader = self._faders.get(channel)
        return fader.touch if fader else False

    def _current_position(self, channel: int) -> int:
        fader = self._faders.get(channel)
        return fader.raw_position if fader else 0

    # ------------------------------------------------------------------
    # Moves
    # ------------------------------------------------------------------

    @staticmethod
    def combine_moves(moves: Iterable[FaderMove]) -> FaderMove:
        return FaderMove.combine(moves)

    @staticmethod
    def calculate_effective_speed(requested_speed: float, speed_factor: float) -> float:
        return min(MAX_EFFECTIVE_SPEED, max(MIN_EFFECTIVE_SPEED, requested_speed * speed_factor))

    def reset(self, indexes: Optional[int | Iterable[int]] = None) -> dict[int, MoveStatistics]:
        """Move faders to 0 at the medium speed, interrupting anything queued."""
        move = FaderMove(self._indexes(indexes), 0, self.config.speeds[1])
        return self.move_faders(move, interrupt=True, disable_feedback=True)

    def clear_queue(self, indexes: Optional[int | Iterable[int]] = None) -> int:
        """Flush queued commands for the given faders (all by default)."""
        return sum(self._queue.flush(i) for i in self._indexes(indexes))

    def move_faders(
        self,
        move: FaderMove,
        interrupt: bool = False,
        disable_feedback: bool = False,
    ) -> dict[int, MoveStatistics]:
        """
        Move faders along computed ramps and wait for completion.

        Args:
            move: Faders, targets (progression 0-100) and speeds
            interrupt: Flush anything still queued for these faders first
            disable_feedback: Complete steps on write instead of on echo

        Returns:
            MoveStatistics per fader index

        Raises:
            InvalidConfigError: If `move` is not a FaderMove
            FaderNotFoundError: If the move names an unconfigured fader
            QueueLockError: If another move holds the send lock too long
            MovementError: If any step could not be written
        """
        if not isinstance(move, FaderMove):
            raise InvalidConfigError(f"Expected a FaderMove, got {type(move).__name__}.")

        faders = [self.get_fader(index) for index in move.indexes]
        if not self._queue.is_running:
            error = SerialPortNotOpenError("move faders", self._transport.port_name)
            self._publish_error(error)
            raise error
        if interrupt:
            for fader in faders:
                self._queue.flush(fader.index)

        plans: list[tuple[Fader, int, int, list[int]]] = []
        for fader, target, speed in zip(faders, move.targets, move.speeds):
            start_position = fader.raw_position
            target_position = progression_to_position(fader.trim_progression(target))
            effective_speed = self.calculate_effective_speed(speed, fader.speed_factor)
            ramp = calculate_movement(
                start_position, target_position, effective_speed, move.resolution, self.speed_multiplier
            )
            plans.append((fader, start_position, target_position, ramp))

        return self._send_positions(plans, disable_feedback)

    def _send_positions(
        self,
        plans: list[tuple[Fader, int, int, list[int]]],
        disable_feedback: bool,
    ) -> dict[int, MoveStatistics]:
        if not self._send_lock.acquire(timeout=self.config.lock_timeout):
            error = QueueLockError(
                self.config.lock_timeout,
                positions=[{"index": f.index, "target_position": t} for f, _, t, _ in plans],
            )
            self._publish_error(error)
            raise error

        try:
            start_time = time.monotonic()
            futures: dict[int, list[Future]] = {}
            end_times: dict[int, float] = {}
            for fader, _, target_position, ramp in plans:
                fader.emit_move_start(target_position, start_time)
                futures[fader.index] = [
                    self._queue.add(position_message(fader.index, position), disable_feedback)
                    for position in ramp
                ]
                # The last step resolves last within a channel
                futures[fader.index][-1].add_done_callback(
                    lambda _, index=fader.index: end_times.setdefault(index, time.monotonic())
                )

            pending = [f for fs in futures.values() for f in fs]
            wait(pending, timeout=self.config.command_timeout + 1.0)
        finally:
            self._send_lock.release()

        results: dict[int, MoveStatistics] = {}
        failed: list[int] = []
        for fader, start_position, target_position, ramp in plans:
            outcomes = [f.result() if f.done() and not f.cancelled() else CommandOutcome.TIMED_OUT
                        for f in futures[fader.index]]
            outcome = CommandOutcome.FAILED if CommandOutcome.FAILED in outcomes else outcomes[-1]
            if outcome is CommandOutcome.FAILED:
                failed.append(fader.index)

            end_time = end_times.get(fader.index, time.monotonic())
            duration = end_time - start_time
            distance = abs(target_position - start_position)
            statistics = MoveStatistics(
                index=fader.index,
                target_position=target_position,
                start_time=start_time,
                end_time=end_time,
                duration=duration,
                steps=len(ramp),
                units_per_second=distance / duration if duration > 0 else None,
                outcome=outcome,
            )
            results[fader.index] = statistics
            fader.emit_move_complete(statistics)

            if self.config.move_log:
                self._logger.debug(
                    f"Move fader {fader.index}: target={target_position} steps={len(ramp)} "
                    f"duration={duration:.3f}s outcome={outcome.value}"
                )

        if failed:
            error = MovementError(
                f"Failed to move fader(s) {failed}.",
                indexes=failed,
                context={"targets": {i: results[i].target_position for i in failed}},
            )
            self._publish_error(error)
            raise error
        return results

    def _on_step_sent(self, command: QueuedCommand) -> None:
        fader = self._faders.get(command.channel)
        if fader is not None and command.position is not None:
            fader.emit_move_step_start(command.position, command.sent_at)

    def _on_step_done(self, command: QueuedCommand, outcome: CommandOutcome) -> None:
        fader = self._faders.get(command.channel)
        if fader is None or outcome is not CommandOutcome.COMPLETED:
            return
        record = command.record
        if record is None and command.position is not None:
            # No echo to learn from; assume the commanded position was reached
            fader.update_position_feedback(command.position)
        fader.emit_move_step_complete({
            "sequence": command.sequence,
            "target_position": command.position,
            "duration": record.duration if record else None,
            "units_per_second": record.units_per_second if record else None,
        })

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def calibrate(
        self,
        indexes: Optional[int | Iterable[int]] = None,
        speed_up: float = 50,
        speed_down: float = 10,
        resolution: float = 1.0,
    ) -> None:
        """Basic calibration: reset, then a full up/down round trip."""
        self._calibration.basic(self._indexes(indexes), speed_up, speed_down, resolution)

    def run_calibration(
        self, indexes: Optional[int | Iterable[int]] = None
    ) -> dict[int, FaderCalibrationResult]:
        """Advanced calibration across the configured speed/resolution sweep."""
        return self._calibration.run(self._indexes(indexes))

    # ------------------------------------------------------------------
    # Inbound MIDI (serial reader thread)
    # ------------------------------------------------------------------

    def _handle_midi_message(self, message: MidiMessage) -> None:
        if self.config.midi_log:
            self._logger.debug(message.format_for_log())
        self._dispatcher.diagnostic(DiagnosticEvent.MIDI_RECEIVED, message=list(message.to_bytes()))

        try:
            message_type = message.type
            if message_type is MidiMessageType.PITCH_BEND:
                self._handle_fader_move(message)
            elif message_type in (MidiMessageType.NOTE_ON, MidiMessageType.NOTE_OFF):
                self._handle_touch(message)
            elif message_type is MidiMessageType.PROGRAM_CHANGE:
                self._ready_cache.append(message)
                if message.is_ready_signal:
                    self._ready_event.set()
        except FaderControlError as e:
            self._publish_error(e, message.channel)

    def _handle_fader_move(self, message: MidiMessage) -> None:
        channel = message.channel
        position = message.position
        fader = self._faders.get(channel)
        if fader is None:
            return

        if not fader.touch and self._queue.is_tracking(channel):
            fader.update_position_feedback(position)
            self._queue.handle_feedback(channel, position)
            return

        fader.update_position_user(position)
        if fader.echo_mode:
            self._queue.add(position_message(channel, fader.trim_position(position)), disable_feedback=True)

    def _handle_touch(self, message: MidiMessage) -> None:
        fader = self._faders.get(message.channel)
        if fader is None:
            return
        # NOTE_ON with velocity 0 is a release by MIDI convention
        touched = message.type is MidiMessageType.NOTE_ON and message.data2 > 0
        fader.update_touch_state(touched)
        if touched:
            self._queue.release_touched(fader.index)

    def _handle_transport_error(self, error: Exception) -> None:
        self._publish_error(error)

    def _handle_connection_changed(self, is_open: bool, port: Optional[str]) -> None:
        event = DiagnosticEvent.SERIAL_CONNECTED if is_open else DiagnosticEvent.SERIAL_CLOSED
        self._dispatcher.diagnostic(event, port=port)

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False
