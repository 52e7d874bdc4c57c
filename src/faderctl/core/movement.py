"""Ramp generation for software fader moves."""

import math

import numpy as np

from faderctl.constants import MAX_POSITION

# Moves this short are sent as a single command
MIN_STEP = 10

MIN_STEPS = 2


def calculate_steps(speed: float, speed_multiplier: float = 1.0) -> int:
    """Number of interpolation points (start included) for a speed in (0, 100]."""
    steps = math.ceil((1 - speed / 100) * speed_multiplier * 100)
    return max(MIN_STEPS, min(steps, MAX_POSITION))


def apply_resolution(positions: list[int], resolution: float) -> list[int]:
    """Keep max(2, ceil(n * resolution)) evenly spaced positions, first and last included."""
    count = len(positions)
    if resolution >= 1 or count <= MIN_STEPS:
        return positions
    keep = max(MIN_STEPS, math.ceil(count * resolution))
    picks = np.unique(np.floor(np.linspace(0, count - 1, keep) + 0.5).astype(int))
    return [positions[i] for i in picks]


def calculate_movement(
    current: int,
    target: int,
    speed: float,
    resolution: float = 1.0,
    speed_multiplier: float = 1.0,
) -> list[int]:
    """
    Ramp of positions from `current` towards `target`.

    The ramp excludes the starting position and always ends exactly on
    the target. Identical inputs always give identical ramps.

    Args:
        current: Raw position now
        target: Raw target position
        speed: 0-100; higher means fewer, larger steps
        resolution: Fraction of the ramp to keep, in (0, 1]
        speed_multiplier: Scales the step count (1.0 = nominal)

    Returns:
        Positions to send, in order
    """
    if abs(target - current) <= MIN_STEP:
        return [target]

    steps = calculate_steps(speed, speed_multiplier)
    points = np.floor(np.linspace(current, target, steps) + 0.5).astype(int)
    ramp = [int(p) for p in points[1:]]
    ramp[-1] = target
    return apply_resolution(ramp, resolution)
