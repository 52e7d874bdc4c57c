"""Command-line interface for faderctl."""

from .main import cli

__all__ = ["cli"]
