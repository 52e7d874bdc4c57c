"""Snapshot and result models published with fader events."""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .enums import CommandOutcome


class FaderInfo(BaseModel):
    """
    Read-only snapshot of one fader.

    `position` and `progression` are trimmed through the fader's
    progression map; the `raw_*` fields stay on the full scale.
    """

    model_config = ConfigDict(frozen=True)

    index: int = Field(description="Fader index, equal to its MIDI channel")
    position: int = Field(description="Trimmed 14-bit position")
    progression: float = Field(description="Trimmed progression (0-100)")
    raw_position: int = Field(description="Position as reported by the hardware")
    raw_progression: float = Field(description="raw_position on the 0-100 scale")
    touch: bool = Field(description="True while a finger rests on the fader")
    echo_mode: bool = Field(description="Echo user moves back to the hardware")
    progression_map: tuple[float, float] = Field(description="(min, max) trim range")
    speed_factor: float = Field(description="Calibrated speed multiplier")
    optimal_resolution: float = Field(default=1.0, description="Calibrated ramp resolution")


class MoveStatistics(BaseModel):
    """Timing of one fader's part of a move."""

    index: int
    target_position: int
    start_time: float
    end_time: Optional[float] = None
    duration: Optional[float] = None
    steps: int = 0
    units_per_second: Optional[float] = None
    outcome: CommandOutcome = CommandOutcome.COMPLETED


class CalibrationCell(BaseModel):
    """Measurements for one (resolution, speed) pair of the calibration sweep."""

    resolution: float
    speed: float
    run_times: list[float] = Field(default_factory=list)
    avg_time: float
    std_dev: float
    effective_speed: float = Field(description="Progression units per second")


class FaderCalibrationResult(BaseModel):
    """Per-fader outcome of the advanced calibration."""

    index: int
    optimal_resolution: float
    speed_factor: float
    consistency: float = Field(description="Mean std_dev of the chosen resolution (lower is better)")
    cells: list[CalibrationCell] = Field(default_factory=list)
