"""Per-channel fader state."""

import logging
import math
import threading
from typing import Any, Optional

from faderctl.constants import MAX_POSITION, MAX_PROGRESSION
from faderctl.events import EventDispatcher
from faderctl.exceptions import InvalidConfigError
from faderctl.models import FaderInfo, MoveStatistics
from faderctl.protocols import FaderEvent

logger = logging.getLogger(__name__)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def progression_to_position(progression: float) -> int:
    """Map a 0-100 progression onto the 14-bit position scale."""
    return round_half_up(progression / MAX_PROGRESSION * MAX_POSITION)


def position_to_progression(position: int) -> float:
    return position / MAX_POSITION * MAX_PROGRESSION


class Fader:
    """
    One motorized fader.

    State has two independent axes: touch (a finger is on the fader) and
    echo mode (user moves are sent back to the hardware). Positions are
    stored raw, on the full 14-bit scale; the progression map only affects
    what is presented and what software moves target.

    Events are published through the controller's dispatcher after the
    fader's own lock is released.
    """

    def __init__(self, index: int, dispatcher: Optional[EventDispatcher] = None):
        self.index = index
        self._dispatcher = dispatcher or EventDispatcher()
        self._lock = threading.Lock()
        self._position = 0
        self._touch = False
        self._echo_mode = False
        self._progression_map: tuple[float, float] = (0.0, float(MAX_PROGRESSION))
        self._speed_factor = 1.0
        self._optimal_resolution = 1.0

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def raw_position(self) -> int:
        return self._position

    @property
    def raw_progression(self) -> float:
        return position_to_progression(self._position)

    @property
    def touch(self) -> bool:
        return self._touch

    @property
    def echo_mode(self) -> bool:
        return self._echo_mode

    @property
    def progression_map(self) -> tuple[float, float]:
        return self._progression_map

    @property
    def speed_factor(self) -> float:
        return self._speed_factor

    @speed_factor.setter
    def speed_factor(self, factor: float) -> None:
        if not isinstance(factor, (int, float)) or not math.isfinite(factor) or factor <= 0:
            raise InvalidConfigError(
                f"Invalid speed factor {factor!r} for fader {self.index}.",
                recovery_hint="Speed factors must be positive numbers.",
                context={"index": self.index, "speed_factor": factor},
            )
        self._speed_factor = float(factor)

    @property
    def optimal_resolution(self) -> float:
        return self._optimal_resolution

    @optimal_resolution.setter
    def optimal_resolution(self, resolution: float) -> None:
        if not 0 < resolution <= 1:
            raise InvalidConfigError(
                f"Invalid resolution {resolution!r} for fader {self.index}.",
                context={"index": self.index, "resolution": resolution},
            )
        self._optimal_resolution = float(resolution)

    @property
    def info(self) -> FaderInfo:
        """Snapshot of the current state; may be stale as soon as it is returned."""
        with self._lock:
            return self._info_locked()

    def _info_locked(self) -> FaderInfo:
        raw_progression = position_to_progression(self._position)
        return FaderInfo(
            index=self.index,
            position=self._trim_position_locked(self._position),
            progression=self._trim_progression_locked(raw_progression),
            raw_position=self._position,
            raw_progression=raw_progression,
            touch=self._touch,
            echo_mode=self._echo_mode,
            progression_map=self._progression_map,
            speed_factor=self._speed_factor,
            optimal_resolution=self._optimal_resolution,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_progression_map(self, minimum: float, maximum: float) -> None:
        """
        Restrict the fader to a sub-range of its travel.

        Raises:
            InvalidConfigError: Unless 0 <= minimum < maximum <= 100
        """
        if not (0 <= minimum < maximum <= MAX_PROGRESSION):
            error = InvalidConfigError(
                f"Invalid progression map ({minimum}, {maximum}) for fader {self.index}.",
                recovery_hint="The map must satisfy 0 <= min < max <= 100.",
                context={"index": self.index, "min": minimum, "max": maximum},
            )
            self._dispatcher.publish(FaderEvent.ERROR, self.index, error)
            raise error

        with self._lock:
            self._progression_map = (float(minimum), float(maximum))
            progression_map = self._progression_map
        self._dispatcher.publish(FaderEvent.CONFIG_CHANGE, self.index, {"progression_map": progression_map})

    def set_echo_mode(self, enabled: bool) -> None:
        with self._lock:
            self._echo_mode = bool(enabled)
        payload = {"echo_mode": self._echo_mode}
        self._dispatcher.publish(FaderEvent.CONFIG_CHANGE, self.index, payload)
        self._dispatcher.publish(FaderEvent.ECHO_ON if enabled else FaderEvent.ECHO_OFF, self.index, payload)

    # ------------------------------------------------------------------
    # Hardware-originated updates
    # ------------------------------------------------------------------

    def update_touch_state(self, touched: bool) -> None:
        """Record touch/release; only a change publishes TOUCH or UNTOUCH."""
        with self._lock:
            if self._touch == touched:
                return
            self._touch = touched
            info = self._info_locked()
        self._dispatcher.publish(FaderEvent.TOUCH if touched else FaderEvent.UNTOUCH, self.index, info)

    def update_position_user(self, position: int) -> None:
        """Position reported by the hardware outside a tracked software move."""
        with self._lock:
            self._position = position
            info = self._info_locked() if self._touch else None
        if info is not None:
            self._dispatcher.publish(FaderEvent.MOVE, self.index, info)

    def update_position_feedback(self, position: int) -> None:
        """Echo of a software move; never published as a user MOVE."""
        with self._lock:
            self._position = position

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def _trim_progression_locked(self, progression: float) -> float:
        minimum, maximum = self._progression_map
        return minimum + progression / MAX_PROGRESSION * (maximum - minimum)

    def _trim_position_locked(self, position: int) -> int:
        minimum, maximum = (progression_to_position(p) for p in self._progression_map)
        return round_half_up(minimum + position / MAX_POSITION * (maximum - minimum))

    def trim_progression(self, progression: float) -> float:
        """Remap a full-scale progression into the progression map."""
        with self._lock:
            return self._trim_progression_locked(progression)

    def trim_position(self, position: int) -> int:
        """Same remap as trim_progression, on the 14-bit scale."""
        with self._lock:
            return self._trim_position_locked(position)

    progression_to_position = staticmethod(progression_to_position)
    position_to_progression = staticmethod(position_to_progression)

    # ------------------------------------------------------------------
    # Move events
    # ------------------------------------------------------------------

    def emit_move_start(self, target_position: int, start_time: float) -> None:
        self._publish_move(FaderEvent.MOVE_START, target_position=target_position, start_time=start_time)

    def emit_move_complete(self, statistics: MoveStatistics) -> None:
        self._publish_move(FaderEvent.MOVE_COMPLETE, statistics=statistics)

    def emit_move_step_start(self, target_position: int, start_time: float) -> None:
        self._publish_move(FaderEvent.MOVE_STEP_START, target_position=target_position, start_time=start_time)

    def emit_move_step_complete(self, statistics: dict[str, Any]) -> None:
        self._publish_move(FaderEvent.MOVE_STEP_COMPLETE, statistics=statistics)

    def _publish_move(self, event: FaderEvent, **details: Any) -> None:
        self._dispatcher.publish(event, self.index, {"info": self.info, **details})

    def __repr__(self) -> str:
        return f"Fader(index={self.index}, position={self._position}, touch={self._touch})"
