"""CLI commands for faderctl."""

from .fader import fader_group
from .ports import ports_group

__all__ = ["fader_group", "ports_group"]
