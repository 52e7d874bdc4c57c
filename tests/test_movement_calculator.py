"""Tests for ramp generation."""

import pytest

from faderctl.core.movement import MIN_STEP, apply_resolution, calculate_movement, calculate_steps


@pytest.mark.unit
class TestCalculateSteps:
    """Test step counts."""

    def test_speed_maps_to_steps(self):
        """Faster speeds mean fewer steps."""
        assert calculate_steps(50) == 50
        assert calculate_steps(75) == 25

    def test_full_speed_minimum(self):
        """Speed 100 still yields start and end."""
        assert calculate_steps(100) == 2

    def test_speed_multiplier(self):
        """The multiplier scales the step count."""
        assert calculate_steps(50, 2.0) == 100


@pytest.mark.unit
class TestCalculateMovement:
    """Test ramps."""

    def test_short_move_single_step(self):
        """Moves within MIN_STEP go straight to the target."""
        assert calculate_movement(100, 100 + MIN_STEP, 10) == [110]
        assert calculate_movement(100, 95, 10) == [95]
        assert calculate_movement(100, 100, 10) == [100]

    def test_ramp_shape(self):
        """Ramps exclude the start, end on the target and are monotonic."""
        ramp = calculate_movement(0, 16383, 50)
        assert len(ramp) == 49
        assert ramp[0] > 0
        assert ramp[-1] == 16383
        assert ramp == sorted(ramp)

    def test_descending_ramp(self):
        """Downward moves are monotonic decreasing."""
        ramp = calculate_movement(16383, 0, 75)
        assert len(ramp) == 24
        assert ramp[-1] == 0
        assert ramp == sorted(ramp, reverse=True)

    def test_full_speed_single_command(self):
        """Speed 100 sends only the target."""
        assert calculate_movement(0, 16383, 100) == [16383]

    def test_deterministic(self):
        """Same inputs, same ramp."""
        assert calculate_movement(123, 9876, 33, 0.7) == calculate_movement(123, 9876, 33, 0.7)

    def test_resolution_thins_ramp(self):
        """Resolution keeps a fraction of the points, target included."""
        full = calculate_movement(0, 16383, 50)
        half = calculate_movement(0, 16383, 50, resolution=0.5)
        assert len(half) == 25
        assert half[0] == full[0]
        assert half[-1] == 16383
        assert set(half) <= set(full)

    def test_minimum_resolution_keeps_endpoints(self):
        """Tiny resolutions keep at least two points."""
        ramp = calculate_movement(0, 16383, 50, resolution=0.01)
        assert len(ramp) == 2
        assert ramp[-1] == 16383


@pytest.mark.unit
class TestApplyResolution:
    """Test ramp thinning."""

    def test_full_resolution_unchanged(self):
        """Resolution 1 is a no-op."""
        assert apply_resolution([1, 2, 3, 4], 1.0) == [1, 2, 3, 4]

    def test_short_ramps_unchanged(self):
        """Two points cannot be thinned."""
        assert apply_resolution([1, 2], 0.1) == [1, 2]

    def test_even_spacing(self):
        """Kept points are evenly spaced."""
        assert apply_resolution([0, 1, 2, 3, 4], 0.5) == [0, 2, 4]
