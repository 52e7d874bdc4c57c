"""Configuration, snapshot and result models."""

from .config import CalibrationConfig, FaderControllerConfig, SerialConfig
from .enums import CommandOutcome, ControllerState, FeedbackStrategy
from .info import CalibrationCell, FaderCalibrationResult, FaderInfo, MoveStatistics

__all__ = [
    # Config
    "CalibrationConfig",
    # Results
    "CalibrationCell",
    # Enums
    "CommandOutcome",
    "ControllerState",
    "FaderCalibrationResult",
    "FaderControllerConfig",
    "FaderInfo",
    "FeedbackStrategy",
    "MoveStatistics",
    "SerialConfig",
]
