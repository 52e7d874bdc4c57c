"""Feedback tracking: correlates sent positions with hardware echoes."""

import logging
import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from faderctl.models import FeedbackStrategy

logger = logging.getLogger(__name__)


@dataclass
class FeedbackRecord:
    """One tracked position command awaiting its echo."""

    channel: int
    target_position: int
    start_position: int
    start_time: float
    sequence: Optional[int] = None
    started: bool = False  # Set by the first echo, even an out-of-tolerance one
    completed: bool = False
    timed_out: bool = False
    end_time: Optional[float] = None
    duration: Optional[float] = None
    units_per_second: Optional[float] = None

    def close(self, end_time: float) -> None:
        self.completed = True
        self.end_time = end_time
        self.duration = max(end_time - self.start_time, 0.0)
        distance = abs(self.target_position - self.start_position)
        self.units_per_second = distance / self.duration if self.duration > 0 else None


class FeedbackTracker:
    """
    Tracks at most one outstanding position command per channel.

    The strategy is chosen once from `feedback_midi`. With hardware
    feedback a command completes when an echo lands within `tolerance` of
    its target. The first record that times out downgrades the tracker to
    software feedback for the rest of the session; there is no way back.

    Timeouts are polled: the owner calls expire() periodically. The clock
    is injectable for tests.
    """

    def __init__(
        self,
        hardware: bool = True,
        tolerance: int = 10,
        timeout: float = 5.0,
        history_size: int = 100,
        clock: Callable[[], float] = time.monotonic,
        logger_instance: Optional[logging.Logger] = None,
    ):
        self._strategy = FeedbackStrategy.HARDWARE if hardware else FeedbackStrategy.SOFTWARE
        self._tolerance = tolerance
        self._timeout = timeout
        self._clock = clock
        self._logger = logger_instance or logger
        self._lock = threading.Lock()
        self._records: dict[int, FeedbackRecord] = {}
        self._history: dict[int, deque[FeedbackRecord]] = defaultdict(lambda: deque(maxlen=history_size))

    @property
    def strategy(self) -> FeedbackStrategy:
        return self._strategy

    @property
    def uses_hardware(self) -> bool:
        return self._strategy is FeedbackStrategy.HARDWARE

    @property
    def timeout(self) -> float:
        return self._timeout

    def downgrade(self) -> bool:
        """Switch to software feedback. Returns True if the strategy changed."""
        with self._lock:
            if self._strategy is FeedbackStrategy.SOFTWARE:
                return False
            self._strategy = FeedbackStrategy.SOFTWARE
        self._logger.warning("Hardware feedback disabled for this session; using software feedback")
        return True

    def track(
        self,
        channel: int,
        target_position: int,
        start_position: int,
        sequence: Optional[int] = None,
    ) -> FeedbackRecord:
        """Open a record for a command that was just written."""
        record = FeedbackRecord(
            channel=channel,
            target_position=target_position,
            start_position=start_position,
            start_time=self._clock(),
            sequence=sequence,
        )
        with self._lock:
            replaced = self._records.get(channel)
            self._records[channel] = record
        if replaced is not None:
            self._logger.debug(f"Feedback record for fader {channel} replaced before completion")
        return record

    def is_tracking(self, channel: int) -> bool:
        with self._lock:
            return channel in self._records

    def get(self, channel: int) -> Optional[FeedbackRecord]:
        with self._lock:
            return self._records.get(channel)

    def handle_feedback(self, channel: int, position: int) -> Optional[FeedbackRecord]:
        """
        Match an echoed position against the channel's open record.

        Returns:
            The closed record if the echo is within tolerance, else None
        """
        with self._lock:
            record = self._records.get(channel)
            if record is None:
                return None
            record.started = True
            if abs(position - record.target_position) > self._tolerance:
                return None
            del self._records[channel]
            record.close(self._clock())
            self._history[channel].append(record)
        return record

    def invalidate(self, channel: Optional[int] = None) -> list[FeedbackRecord]:
        """Drop open records for one channel or all channels without closing them."""
        with self._lock:
            if channel is None:
                dropped = list(self._records.values())
                self._records.clear()
            else:
                record = self._records.pop(channel, None)
                dropped = [record] if record is not None else []
        if dropped:
            self._logger.debug(f"Invalidated {len(dropped)} feedback record(s)")
        return dropped

    def expire(self, now: Optional[float] = None) -> list[FeedbackRecord]:
        """Remove and return records older than the feedback timeout."""
        now = self._clock() if now is None else now
        with self._lock:
            expired = [r for r in self._records.values() if now - r.start_time >= self._timeout]
            for record in expired:
                del self._records[record.channel]
                record.timed_out = True
                record.end_time = now
                record.duration = now - record.start_time
                self._history[record.channel].append(record)
        return expired

    def history(self, channel: int) -> list[FeedbackRecord]:
        with self._lock:
            return list(self._history.get(channel, ()))

    def statistics(self, channel: int) -> dict[str, Optional[float]]:
        """Summary of the completed records kept in the channel's history."""
        completed = [r for r in self.history(channel) if r.completed]
        rates = [r.units_per_second for r in completed if r.units_per_second is not None]
        durations = [r.duration for r in completed if r.duration is not None]
        return {
            "count": len(completed),
            "mean_duration": float(np.mean(durations)) if durations else None,
            "mean_units_per_second": float(np.mean(rates)) if rates else None,
        }
