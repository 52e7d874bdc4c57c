"""Core fader model, movement and controller."""

from .fader import Fader, position_to_progression, progression_to_position
from .fader_move import FaderMove
from .movement import MIN_STEP, calculate_movement
from .controller import FaderController

__all__ = [
    "MIN_STEP",
    "Fader",
    "FaderController",
    "FaderMove",
    "calculate_movement",
    "position_to_progression",
    "progression_to_position",
]
