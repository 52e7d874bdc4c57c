"""Per-channel outgoing MIDI queue with closed-loop completion."""

import logging
import threading
import time
from collections import defaultdict, deque
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass
from typing import Callable, Optional

from faderctl.events import EventDispatcher
from faderctl.exceptions import FaderControlError, MidiFeedbackError, MidiSendError, QueueOverflowError
from faderctl.models import CommandOutcome
from faderctl.protocols import DiagnosticEvent, FaderEvent, Transport

from .codec import MidiMessage
from .feedback import FeedbackRecord, FeedbackTracker

logger = logging.getLogger(__name__)


@dataclass
class QueuedCommand:
    """A message waiting in, or sent from, the queue."""

    message: MidiMessage
    channel: int
    sequence: int
    future: "Future[CommandOutcome]"
    enqueued_at: float
    track_feedback: bool
    record: Optional[FeedbackRecord] = None
    sent_at: Optional[float] = None
    written: bool = False
    echoed: bool = False  # Echo matched before the write returned

    @property
    def position(self) -> Optional[int]:
        return self.message.position


class MidiQueue:
    """
    Rate-limited sender for position commands.

    Each channel has its own FIFO. The worker thread sends at most one
    command per channel that is not already in flight, up to
    `max_in_flight` channels per batch, then sleeps `message_delay`.

    A command leaves the queue when it is confirmed (hardware echo or, in
    software mode, a successful write), flushed, skipped because its fader
    is touched, dropped by overflow, failed, or timed out. Its Future
    resolves with the matching CommandOutcome in every case, at the latest
    `command_timeout` seconds after it was added.

    Futures are resolved and events published with the queue lock released.
    """

    def __init__(
        self,
        transport: Transport,
        dispatcher: EventDispatcher,
        tracker: FeedbackTracker,
        is_touched: Optional[Callable[[int], bool]] = None,
        current_position: Optional[Callable[[int], int]] = None,
        message_delay: float = 0.001,
        command_timeout: float = 60.0,
        queue_overflow: int = 16383,
        max_in_flight: int = 4,
        poll_interval: float = 0.02,
        clock: Callable[[], float] = time.monotonic,
        value_log: bool = False,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self._transport = transport
        self._dispatcher = dispatcher
        self._tracker = tracker
        self._is_touched = is_touched or (lambda channel: False)
        self._current_position = current_position or (lambda channel: 0)
        self._message_delay = message_delay
        self._command_timeout = command_timeout
        self._queue_overflow = queue_overflow
        self._max_in_flight = max_in_flight
        self._poll_interval = poll_interval
        self._clock = clock
        self._value_log = value_log
        self._logger = logger_instance or logger

        self._condition = threading.Condition()
        self._pending: dict[int, deque[QueuedCommand]] = defaultdict(deque)
        self._in_flight: dict[int, QueuedCommand] = {}
        self._sequences: dict[int, int] = defaultdict(int)
        self._running = False
        self._closed = False
        self._worker: Optional[threading.Thread] = None

        self.on_command_sent: Optional[Callable[[QueuedCommand], None]] = None
        self.on_command_done: Optional[Callable[[QueuedCommand, CommandOutcome], None]] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start the worker thread."""
        with self._condition:
            if self._running:
                self._logger.warning("MidiQueue is already running")
                return
            self._running = True
            self._closed = False
        self._worker = threading.Thread(target=self._run, name="midi-queue", daemon=True)
        self._worker.start()
        self._logger.debug("MidiQueue started")

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the worker and flush everything still pending."""
        with self._condition:
            self._running = False
            self._closed = True
            self._condition.notify_all()
        if self._worker and self._worker.is_alive() and self._worker is not threading.current_thread():
            self._worker.join(timeout=timeout)
        self._worker = None
        flushed = self.flush()
        self._logger.debug(f"MidiQueue stopped ({flushed} command(s) flushed)")

    @property
    def is_running(self) -> bool:
        return self._running

    # ------------------------------------------------------------------
    # Producer API
    # ------------------------------------------------------------------

    def add(self, message: MidiMessage, disable_feedback: bool = False) -> "Future[CommandOutcome]":
        """
        Queue a message.

        Args:
            message: Outgoing frame; its channel selects the FIFO
            disable_feedback: Complete on write instead of waiting for an echo

        Returns:
            Future resolving to a CommandOutcome
        """
        future: Future[CommandOutcome] = Future()
        channel = message.channel
        dropped: list[QueuedCommand] = []
        overflow: Optional[QueueOverflowError] = None

        with self._condition:
            if self._closed:
                command = None
            else:
                self._sequences[channel] += 1
                command = QueuedCommand(
                    message=message,
                    channel=channel,
                    sequence=self._sequences[channel],
                    future=future,
                    enqueued_at=self._clock(),
                    track_feedback=not disable_feedback,
                )
                backlog = self._pending[channel]
                backlog.append(command)

                total = sum(len(q) for q in self._pending.values())
                if total > self._queue_overflow:
                    # Oldest entries go first so the channel's final target survives
                    excess = min(total - self._queue_overflow, len(backlog) - 1)
                    dropped = [backlog.popleft() for _ in range(excess)]
                    if dropped:
                        overflow = QueueOverflowError(channel, total, self._queue_overflow, len(dropped))
                self._condition.notify_all()

        if command is None:
            self._logger.warning(f"MidiQueue is stopped; discarding message for fader {channel}")
            self._set_outcome(future, CommandOutcome.FLUSHED)
            return future

        for entry in dropped:
            self._finish(entry, CommandOutcome.DROPPED)
        if overflow is not None:
            self._logger.warning(overflow.technical_message)
            self._dispatcher.publish(FaderEvent.ERROR, channel, overflow)
        return future

    def flush(self, channel: Optional[int] = None) -> int:
        """
        Cancel pending commands for one channel, or all channels.

        In-flight commands on those channels are cancelled too and their
        feedback records invalidated, so a late echo is treated as user input.

        Returns:
            Number of commands resolved as FLUSHED
        """
        with self._condition:
            channels = [channel] if channel is not None else list(set(self._pending) | set(self._in_flight))
            cancelled: list[QueuedCommand] = []
            for ch in channels:
                backlog = self._pending.get(ch)
                if backlog:
                    cancelled.extend(backlog)
                    backlog.clear()
                in_flight = self._in_flight.pop(ch, None)
                if in_flight is not None:
                    cancelled.append(in_flight)
                self._tracker.invalidate(ch)
            self._condition.notify_all()

        for command in cancelled:
            self._finish(command, CommandOutcome.FLUSHED)
        if cancelled:
            self._logger.debug(f"Flushed {len(cancelled)} command(s) (channel={channel})")
        self._dispatcher.diagnostic(DiagnosticEvent.QUEUE_FLUSHED, channel=channel, count=len(cancelled))
        return len(cancelled)

    def release_touched(self, channel: int) -> bool:
        """
        Give up waiting for an echo on a channel the user just grabbed.

        Echoes are user input while the fader is touched, so the in-flight
        command's record could only time out. It is resolved SKIPPED and
        the feedback strategy is left alone.

        Returns:
            True if a tracked command was released
        """
        with self._condition:
            command = self._in_flight.get(channel)
            if command is None or command.record is None:
                return False
            del self._in_flight[channel]
            self._tracker.invalidate(channel)
            self._condition.notify_all()

        self._logger.debug(f"Fader {channel} touched; releasing command #{command.sequence}")
        self._finish(command, CommandOutcome.SKIPPED)
        return True

    # ------------------------------------------------------------------
    # Feedback path (serial reader thread)
    # ------------------------------------------------------------------

    def is_tracking(self, channel: int) -> bool:
        return self._tracker.is_tracking(channel)

    def handle_feedback(self, channel: int, position: int) -> Optional[FeedbackRecord]:
        """Feed an echoed position; completes the in-flight command when it matches."""
        with self._condition:
            record = self._tracker.handle_feedback(channel, position)
            if record is None:
                return None
            command = self._in_flight.get(channel)
            if command is None or command.record is not record:
                command = None
            elif not command.written:
                # The worker completes it once write() returns
                command.echoed = True
                command = None
            else:
                del self._in_flight[channel]
            self._condition.notify_all()

        self._dispatcher.diagnostic(
            DiagnosticEvent.FEEDBACK_CLOSED,
            channel=channel,
            target_position=record.target_position,
            duration=record.duration,
        )
        if command is not None:
            self._finish(command, CommandOutcome.COMPLETED)
        return record

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def pending_count(self, channel: Optional[int] = None) -> int:
        with self._condition:
            if channel is not None:
                return len(self._pending.get(channel, ()))
            return sum(len(q) for q in self._pending.values())

    def last_sequence(self, channel: int) -> int:
        with self._condition:
            return self._sequences.get(channel, 0)

    def is_in_flight(self, channel: int) -> bool:
        with self._condition:
            return channel in self._in_flight

    @property
    def tracker(self) -> FeedbackTracker:
        return self._tracker

    # ------------------------------------------------------------------
    # Worker
    # ------------------------------------------------------------------

    def _run(self) -> None:
        self._logger.debug("MidiQueue worker running")
        while True:
            with self._condition:
                if not self._running:
                    break
                batch = self._take_batch_locked()
                if not batch:
                    self._condition.wait(timeout=self._poll_interval)

            try:
                self._expire()
                for command in batch:
                    self._send(command)
            except Exception as e:
                self._logger.error(f"Error in MIDI queue worker: {e}", exc_info=True)

            if batch and self._message_delay:
                time.sleep(self._message_delay)
        self._logger.debug("MidiQueue worker exited")

    def _take_batch_locked(self) -> list[QueuedCommand]:
        """Pop one command per idle channel; reserves the channel as in flight."""
        free = self._max_in_flight - len(self._in_flight)
        batch = []
        for channel in sorted(self._pending):
            if free <= 0:
                break
            backlog = self._pending[channel]
            if not backlog or channel in self._in_flight:
                continue
            command = backlog.popleft()
            self._in_flight[channel] = command
            batch.append(command)
            free -= 1
        return batch

    def _release_locked(self, command: QueuedCommand) -> bool:
        """Remove a command from the in-flight set; False if a flush got there first."""
        if self._in_flight.get(command.channel) is command:
            del self._in_flight[command.channel]
            self._condition.notify_all()
            return True
        return False

    def _send(self, command: QueuedCommand) -> None:
        channel = command.channel

        if self._is_touched(channel):
            with self._condition:
                released = self._release_locked(command)
            if released:
                self._logger.debug(f"Fader {channel} touched; skipping command #{command.sequence}")
                self._finish(command, CommandOutcome.SKIPPED)
            return

        start_position = self._current_position(channel)
        frame = command.message.to_bytes()

        # The record has to exist before the write: a fast device can echo before write() returns
        with self._condition:
            if self._in_flight.get(channel) is not command:
                return
            if command.track_feedback and self._tracker.uses_hardware and command.position is not None:
                command.record = self._tracker.track(channel, command.position, start_position, command.sequence)
        if command.record is not None:
            self._dispatcher.diagnostic(
                DiagnosticEvent.FEEDBACK_TRACKED, channel=channel, target_position=command.position
            )

        error: Optional[FaderControlError] = None
        try:
            self._transport.write(frame)
        except FaderControlError as e:
            error = e
        except Exception as e:
            error = MidiSendError(self._transport.port_name, frame, str(e))

        if error is not None:
            with self._condition:
                released = self._release_locked(command)
                if released and command.record is not None:
                    self._tracker.invalidate(channel)
            if released:
                self._logger.error(f"Failed to send command #{command.sequence} to fader {channel}: {error}")
                self._finish(command, CommandOutcome.FAILED)
                self._dispatcher.publish(FaderEvent.ERROR, channel, error)
            return

        command.sent_at = self._clock()
        if self._value_log:
            self._logger.debug(f"Sent position {command.position} to fader {channel} (#{command.sequence})")
        self._dispatcher.diagnostic(
            DiagnosticEvent.MIDI_SENT, channel=channel, sequence=command.sequence, message=list(frame)
        )
        if self.on_command_sent is not None:
            self._run_hook(self.on_command_sent, command)

        with self._condition:
            command.written = True
            if self._in_flight.get(channel) is not command:
                return  # Flushed while writing
            completed = command.record is None or command.echoed
            if completed:
                del self._in_flight[channel]
                self._condition.notify_all()

        if completed:
            self._finish(command, CommandOutcome.COMPLETED)

    def _expire(self) -> None:
        """Resolve commands past their hard timeout and records past the feedback timeout."""
        now = self._clock()
        timed_out: list[QueuedCommand] = []
        feedback_errors: list[MidiFeedbackError] = []
        completed: list[QueuedCommand] = []
        downgraded = False

        with self._condition:
            for record in self._tracker.expire(now):
                command = self._in_flight.get(record.channel)
                if command is not None and command.record is record:
                    del self._in_flight[record.channel]
                    timed_out.append(command)
                feedback_errors.append(
                    MidiFeedbackError(record.channel, record.target_position, self._tracker.timeout)
                )

            if feedback_errors and self._tracker.downgrade():
                downgraded = True
                # Remaining echo waits are pointless once the device has gone quiet
                for channel, command in list(self._in_flight.items()):
                    if command.record is not None:
                        self._tracker.invalidate(channel)
                        del self._in_flight[channel]
                        completed.append(command)

            for backlog in self._pending.values():
                while backlog and now - backlog[0].enqueued_at >= self._command_timeout:
                    timed_out.append(backlog.popleft())
            for channel, command in list(self._in_flight.items()):
                if command.sent_at is not None and now - command.enqueued_at >= self._command_timeout:
                    self._tracker.invalidate(channel)
                    del self._in_flight[channel]
                    timed_out.append(command)

            if timed_out or completed:
                self._condition.notify_all()

        for error in feedback_errors:
            self._logger.warning(error.technical_message)
            self._dispatcher.publish(FaderEvent.ERROR, error.context["index"], error)
        if downgraded:
            self._dispatcher.diagnostic(
                DiagnosticEvent.STRATEGY_CHANGED, strategy=self._tracker.strategy.value
            )
        for command in timed_out:
            self._finish(command, CommandOutcome.TIMED_OUT)
        for command in completed:
            self._finish(command, CommandOutcome.COMPLETED)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @staticmethod
    def _set_outcome(future: "Future[CommandOutcome]", outcome: CommandOutcome) -> bool:
        try:
            future.set_result(outcome)
            return True
        except InvalidStateError:
            # Already resolved elsewhere or cancelled by the caller
            return False

    def _finish(self, command: QueuedCommand, outcome: CommandOutcome) -> None:
        """Run on_command_done, then resolve the future, so waiters see the hook's effects."""
        if command.future.done():
            return
        if self.on_command_done is not None:
            self._run_hook(self.on_command_done, command, outcome)
        self._set_outcome(command.future, outcome)

    def _run_hook(self, hook: Callable, *args) -> None:
        try:
            hook(*args)
        except Exception as e:
            self._logger.error(f"Error in MIDI queue callback {hook}: {e}", exc_info=True)
