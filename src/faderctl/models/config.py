"""Controller configuration models."""

from typing import Any

from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator, model_validator

from faderctl.constants import MAX_CHANNELS
from faderctl.exceptions import wrap_pydantic_error


class SerialConfig(BaseModel):
    """Serial link settings."""

    port: str = Field(description="Serial port path (e.g. /dev/ttyUSB0, COM3)")
    baud_rate: int = Field(
        default=1_000_000,
        gt=0,
        validation_alias=AliasChoices("baud_rate", "baudRate"),
        description="Fixed baud rate of the fader firmware",
    )
    retries: int = Field(default=5, ge=1, description="Open attempts before giving up")
    retry_interval: float = Field(default=5.0, ge=0, description="Seconds between open attempts")
    reconnect_attempts: int = Field(
        default=5, ge=0, description="Reconnect attempts after an unexpected disconnect"
    )
    reconnect_interval: float = Field(default=2.0, ge=0, description="Seconds between reconnect attempts")
    read_timeout: float = Field(default=0.1, gt=0, description="Reader poll timeout (seconds)")

    @classmethod
    def coerce(cls, value: "SerialConfig | dict[str, Any]") -> "SerialConfig":
        """Accept a model or a plain dict, raising ConfigValidationError on bad input."""
        if isinstance(value, cls):
            return value
        try:
            return cls.model_validate(value)
        except ValidationError as e:
            raise wrap_pydantic_error(e, "serial config") from e


class CalibrationConfig(BaseModel):
    """Advanced calibration sweep settings."""

    start_progression: float = Field(default=0, ge=0, le=100, description="Progression each run starts from")
    end_progression: float = Field(default=100, ge=0, le=100, description="Progression each run ends at")
    calibration_count: int = Field(default=20, ge=1, description="Number of speeds in the sweep")
    start_speed: float = Field(default=10, gt=0, le=100, description="Slowest sweep speed")
    end_speed: float = Field(default=100, gt=0, le=100, description="Fastest sweep speed")
    resolutions: list[float] = Field(
        default_factory=lambda: [1.0, 0.8, 0.5, 0.2],
        min_length=1,
        description="Candidate ramp resolutions",
    )
    warmup_runs: int = Field(default=1, ge=0, description="Discarded runs per cell")
    measure_runs: int = Field(default=2, ge=1, description="Measured runs per cell")
    reference_speed: float = Field(
        default=100, gt=0, le=100, description="Speed whose real-world rate the speed factor normalises"
    )
    run_delay: float = Field(default=0.1, ge=0, description="Pause between runs (seconds)")

    @field_validator("resolutions")
    @classmethod
    def validate_resolutions(cls, v: list[float]) -> list[float]:
        for resolution in v:
            if not 0 < resolution <= 1:
                raise ValueError(f"resolution {resolution} must be in (0, 1]")
        return v

    @model_validator(mode="after")
    def validate_ranges(self) -> "CalibrationConfig":
        if self.start_progression == self.end_progression:
            raise ValueError("start_progression and end_progression must differ")
        if self.start_speed > self.end_speed:
            raise ValueError("start_speed must not exceed end_speed")
        return self


class FaderControllerConfig(BaseModel):
    """Fader controller settings."""

    fader_indexes: list[int] = Field(
        default_factory=lambda: list(range(MAX_CHANNELS)),
        min_length=1,
        max_length=MAX_CHANNELS,
        description="Faders (= MIDI channels) driven by this controller",
    )
    speeds: list[float] = Field(
        default_factory=lambda: [60, 30, 10],
        description="Preset speeds: fast, medium (used by reset), slow",
    )
    message_delay: float = Field(default=0.001, ge=0, description="Pause between queue batches (seconds)")
    calibrate_on_start: bool = Field(default=True, description="Run the basic calibration in start()")
    feedback_midi: bool = Field(default=True, description="Device echoes positions (hardware feedback)")
    feedback_tolerance: int = Field(default=10, ge=0, description="Echo distance counted as arrival")
    feedback_timeout: float = Field(default=5.0, gt=0, description="Seconds to wait for an echo")
    command_timeout: float = Field(default=60.0, gt=0, description="Hard ceiling per queued command")
    queue_overflow: int = Field(default=16383, ge=1, description="Maximum queued commands")
    max_in_flight: int = Field(default=MAX_CHANNELS, ge=1, le=MAX_CHANNELS, description="Channels sent per batch")
    lock_timeout: float = Field(default=30.0, gt=0, description="Seconds to wait for the send lock")
    ready_max_attempts: int = Field(default=10, ge=1, description="Readiness polls before giving up")
    ready_poll_interval: float = Field(default=1.5, ge=0, description="Seconds between readiness polls")
    midi_log: bool = Field(default=False, description="Log every MIDI frame")
    value_log: bool = Field(default=False, description="Log every position sent")
    move_log: bool = Field(default=False, description="Log a summary of each move")
    calibration: CalibrationConfig = Field(default_factory=CalibrationConfig)

    @field_validator("fader_indexes")
    @classmethod
    def validate_fader_indexes(cls, v: list[int]) -> list[int]:
        if len(set(v)) != len(v):
            raise ValueError("fader indexes must be unique")
        for index in v:
            if not 0 <= index < MAX_CHANNELS:
                raise ValueError(f"fader index {index} must be 0-{MAX_CHANNELS - 1}")
        return v

    @field_validator("speeds")
    @classmethod
    def validate_speeds(cls, v: list[float]) -> list[float]:
        if len(v) != 3:
            raise ValueError("exactly three speeds are required")
        for speed in v:
            if not 0 < speed <= 100:
                raise ValueError(f"speed {speed} must be in (0, 100]")
        return v

    @model_validator(mode="after")
    def validate_timeouts(self) -> "FaderControllerConfig":
        if self.command_timeout <= self.feedback_timeout:
            raise ValueError("command_timeout must be longer than feedback_timeout")
        return self

    @classmethod
    def coerce(cls, value: "FaderControllerConfig | dict[str, Any] | None") -> "FaderControllerConfig":
        """Accept a model, a plain dict or None, raising ConfigValidationError on bad input."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        try:
            return cls.model_validate(value)
        except ValidationError as e:
            raise wrap_pydantic_error(e, "controller config") from e
