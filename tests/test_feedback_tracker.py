"""Tests for the feedback tracker."""

import pytest

from faderctl.midi import FeedbackTracker
from faderctl.models import FeedbackStrategy


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self):
        self.now = 100.0

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def tracker(clock):
    """Hardware tracker with a 1s timeout and tolerance 10."""
    return FeedbackTracker(hardware=True, tolerance=10, timeout=1.0, clock=clock)


@pytest.mark.unit
class TestFeedbackTracker:
    """Test record lifecycle."""

    def test_strategy(self):
        """The strategy follows the hardware flag."""
        assert FeedbackTracker(hardware=True).strategy is FeedbackStrategy.HARDWARE
        assert FeedbackTracker(hardware=False).strategy is FeedbackStrategy.SOFTWARE
        assert not FeedbackTracker(hardware=False).uses_hardware

    def test_echo_within_tolerance_closes(self, tracker, clock):
        """An echo within tolerance closes the record with timing."""
        tracker.track(0, target_position=1000, start_position=0, sequence=1)
        assert tracker.is_tracking(0)

        clock.advance(0.5)
        record = tracker.handle_feedback(0, 995)

        assert record is not None
        assert record.completed
        assert record.duration == pytest.approx(0.5)
        assert record.units_per_second == pytest.approx(2000)
        assert not tracker.is_tracking(0)
        assert tracker.history(0) == [record]

    def test_echo_outside_tolerance_keeps_waiting(self, tracker):
        """Intermediate echoes mark the move started but do not close it."""
        record = tracker.track(0, 1000, 0)
        assert tracker.handle_feedback(0, 500) is None
        assert record.started
        assert not record.completed
        assert tracker.is_tracking(0)

    def test_echo_without_record(self, tracker):
        """Untracked channels ignore echoes."""
        assert tracker.handle_feedback(2, 1000) is None

    def test_one_record_per_channel(self, tracker):
        """Tracking again replaces the channel's record."""
        tracker.track(1, 100, 0)
        second = tracker.track(1, 200, 100)
        assert tracker.get(1) is second

    def test_expire(self, tracker, clock):
        """Records older than the timeout expire."""
        tracker.track(0, 1000, 0)
        tracker.track(1, 1000, 0)
        clock.advance(0.5)
        tracker.track(2, 1000, 0)

        clock.advance(0.5)
        expired = tracker.expire()

        assert sorted(r.channel for r in expired) == [0, 1]
        assert all(r.timed_out for r in expired)
        assert tracker.is_tracking(2)
        assert not tracker.is_tracking(0)

    def test_downgrade_is_one_way(self, tracker):
        """Only the first downgrade changes the strategy."""
        assert tracker.downgrade() is True
        assert tracker.strategy is FeedbackStrategy.SOFTWARE
        assert tracker.downgrade() is False
        assert not tracker.uses_hardware

    def test_invalidate(self, tracker):
        """Invalidated records are dropped without completing."""
        record = tracker.track(0, 1000, 0)
        tracker.track(1, 1000, 0)

        assert tracker.invalidate(0) == [record]
        assert not record.completed
        assert not tracker.is_tracking(0)
        assert tracker.is_tracking(1)

        tracker.invalidate()
        assert not tracker.is_tracking(1)

    def test_statistics(self, tracker, clock):
        """Statistics average completed records only."""
        tracker.track(0, 1000, 0)
        clock.advance(1.0)
        tracker.handle_feedback(0, 1000)
        tracker.track(0, 0, 1000)
        clock.advance(0.5)
        tracker.handle_feedback(0, 0)

        stats = tracker.statistics(0)
        assert stats["count"] == 2
        assert stats["mean_duration"] == pytest.approx(0.75)
        assert stats["mean_units_per_second"] == pytest.approx(1500)

    def test_statistics_empty(self, tracker):
        """No history, no averages."""
        assert tracker.statistics(3) == {"count": 0, "mean_duration": None, "mean_units_per_second": None}
