"""Tests for per-channel fader state."""

import math

import pytest

from faderctl.core import Fader, position_to_progression, progression_to_position
from faderctl.events import EventDispatcher
from faderctl.exceptions import InvalidConfigError
from faderctl.models import FaderInfo
from faderctl.protocols import FaderEvent


@pytest.fixture
def dispatcher(recorder):
    """Dispatcher with the recorder registered."""
    dispatcher = EventDispatcher()
    dispatcher.register(recorder)
    return dispatcher


@pytest.fixture
def fader(dispatcher):
    """Fader 1 publishing to the recorder."""
    return Fader(1, dispatcher)


@pytest.mark.unit
class TestConversions:
    """Test progression/position conversions."""

    def test_progression_to_position(self):
        """0-100 maps onto 0-16383 with half-up rounding."""
        assert progression_to_position(0) == 0
        assert progression_to_position(100) == 16383
        assert progression_to_position(50) == 8192

    def test_position_to_progression(self):
        """Positions map back to the 0-100 scale."""
        assert position_to_progression(0) == 0
        assert position_to_progression(16383) == 100

    def test_round_trip(self):
        """Progression survives the 14-bit scale to within one unit."""
        for tenths in range(0, 1001):
            progression = tenths / 10
            assert abs(position_to_progression(progression_to_position(progression)) - progression) <= 1

    def test_trimmed_progression_within_map(self, fader):
        """Every progression lands inside the map."""
        fader.set_progression_map(10, 90)
        for progression in range(0, 101):
            assert 10 <= fader.trim_progression(progression) <= 90

    def test_map_endpoints(self, fader):
        """With map (10, 90) the ends of travel present as 10 and 90."""
        fader.set_progression_map(10, 90)
        assert fader.info.progression == pytest.approx(10)
        fader.update_position_feedback(16383)
        assert fader.info.progression == pytest.approx(90)


@pytest.mark.unit
class TestFaderState:
    """Test fader defaults and snapshots."""

    def test_defaults(self, fader):
        """A new fader is at rest, untouched, unmapped."""
        info = fader.info
        assert isinstance(info, FaderInfo)
        assert info.index == 1
        assert info.raw_position == 0
        assert info.touch is False
        assert info.echo_mode is False
        assert info.progression_map == (0.0, 100.0)
        assert info.speed_factor == 1.0

    def test_info_is_frozen(self, fader):
        """Snapshots cannot be mutated."""
        with pytest.raises(Exception):
            fader.info.raw_position = 5

    def test_speed_factor(self, fader):
        """Positive finite factors are accepted."""
        fader.speed_factor = 1.5
        assert fader.speed_factor == 1.5

    @pytest.mark.parametrize("factor", [0, -1, math.nan, math.inf])
    def test_invalid_speed_factor(self, fader, factor):
        """Zero, negative and non-finite factors are rejected."""
        with pytest.raises(InvalidConfigError):
            fader.speed_factor = factor
        assert fader.speed_factor == 1.0


@pytest.mark.unit
class TestProgressionMap:
    """Test the trim map."""

    def test_set_progression_map(self, fader, recorder):
        """A valid map is stored and announced."""
        fader.set_progression_map(20, 80)
        assert fader.progression_map == (20.0, 80.0)
        assert recorder.of(FaderEvent.CONFIG_CHANGE) == [(1, {"progression_map": (20.0, 80.0)})]

    @pytest.mark.parametrize("bounds", [(50, 50), (60, 40), (-1, 10), (10, 101)])
    def test_invalid_progression_map(self, fader, recorder, bounds):
        """Invalid maps raise, publish an error and leave the map alone."""
        with pytest.raises(InvalidConfigError):
            fader.set_progression_map(*bounds)
        assert fader.progression_map == (0.0, 100.0)
        assert len(recorder.of(FaderEvent.ERROR)) == 1

    def test_trim_progression(self, fader):
        """Full-scale progressions are remapped into the map."""
        fader.set_progression_map(20, 80)
        assert fader.trim_progression(0) == pytest.approx(20)
        assert fader.trim_progression(50) == pytest.approx(50)
        assert fader.trim_progression(100) == pytest.approx(80)

    def test_trim_position(self, fader):
        """The same remap on the 14-bit scale."""
        fader.set_progression_map(0, 50)
        assert fader.trim_position(0) == 0
        assert fader.trim_position(16383) == 8192

    def test_info_reports_trimmed_and_raw(self, fader):
        """position/progression are trimmed, raw_* are not."""
        fader.set_progression_map(0, 50)
        fader.update_position_feedback(16383)
        info = fader.info
        assert info.raw_position == 16383
        assert info.raw_progression == pytest.approx(100)
        assert info.position == 8192
        assert info.progression == pytest.approx(50)


@pytest.mark.unit
class TestHardwareUpdates:
    """Test touch and position updates."""

    def test_touch_publishes_on_change_only(self, fader, recorder):
        """Repeated touch reports do not repeat the event."""
        fader.update_touch_state(True)
        fader.update_touch_state(True)
        fader.update_touch_state(False)
        fader.update_touch_state(False)

        touches = recorder.of(FaderEvent.TOUCH)
        releases = recorder.of(FaderEvent.UNTOUCH)
        assert len(touches) == 1
        assert len(releases) == 1
        assert touches[0][1].touch is True
        assert releases[0][1].touch is False

    def test_user_move_while_touched(self, fader, recorder):
        """User moves are published only while touched."""
        fader.update_position_user(1000)
        assert recorder.of(FaderEvent.MOVE) == []

        fader.update_touch_state(True)
        fader.update_position_user(2000)
        moves = recorder.of(FaderEvent.MOVE)
        assert len(moves) == 1
        assert moves[0][1].raw_position == 2000

    def test_feedback_position_is_silent(self, fader, recorder):
        """Echoes of software moves never look like user moves."""
        fader.update_touch_state(True)
        fader.update_position_feedback(3000)
        assert fader.raw_position == 3000
        assert recorder.of(FaderEvent.MOVE) == []

    def test_echo_mode(self, fader, recorder):
        """Echo mode changes publish configChange and echo/on|off."""
        fader.set_echo_mode(True)
        assert fader.echo_mode is True
        assert recorder.of(FaderEvent.CONFIG_CHANGE) == [(1, {"echo_mode": True})]
        assert recorder.of(FaderEvent.ECHO_ON) == [(1, {"echo_mode": True})]

        fader.set_echo_mode(False)
        assert recorder.of(FaderEvent.ECHO_OFF) == [(1, {"echo_mode": False})]


@pytest.mark.unit
class TestMoveEvents:
    """Test software move events."""

    def test_move_start_payload(self, fader, recorder):
        """Move events carry a snapshot plus details."""
        fader.emit_move_start(5000, 12.5)
        [(index, payload)] = recorder.of(FaderEvent.MOVE_START)
        assert index == 1
        assert payload["target_position"] == 5000
        assert payload["start_time"] == 12.5
        assert payload["info"].index == 1

    def test_step_complete_payload(self, fader, recorder):
        """Step statistics are passed through."""
        fader.emit_move_step_complete({"sequence": 3, "target_position": 10})
        [(_, payload)] = recorder.of(FaderEvent.MOVE_STEP_COMPLETE)
        assert payload["statistics"] == {"sequence": 3, "target_position": 10}
