"""
Error handling helpers shared by the controller and the CLI.

Library exceptions (pyserial, pydantic) are converted to
`FaderControlError` subclasses close to where they happen. The controller
publishes non-fatal ones as error events; the CLI shows `user_message`
and `recovery_hint` through `format_error_for_display`.
"""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from pydantic import ValidationError

from .base import FaderControlError
from .config import ConfigValidationError

logger = logging.getLogger(__name__)


def _field_path(location: tuple) -> str:
    return ".".join(str(part) for part in location) or "model"


def wrap_pydantic_error(error: Exception, source: str) -> ConfigValidationError:
    """
    Convert a pydantic validation failure into a ConfigValidationError.

    A single problem keeps its field name; several are folded into one
    message listing every field.
    """
    if not isinstance(error, ValidationError):
        return ConfigValidationError(field="unknown", value=None, error_msg=str(error), source=source)

    problems = error.errors()
    if len(problems) == 1:
        problem = problems[0]
        return ConfigValidationError(
            field=_field_path(problem.get("loc", ())),
            value=problem.get("input"),
            error_msg=problem.get("msg", "validation failed"),
            source=source,
        )

    lines = [f"  - {_field_path(p.get('loc', ()))}: {p.get('msg', 'validation failed')}" for p in problems]
    return ConfigValidationError(
        field="multiple fields",
        value=None,
        error_msg=f"{len(problems)} validation errors:\n" + "\n".join(lines),
        source=source,
    )


def format_error_for_display(error: Exception) -> tuple[str, Optional[str]]:
    """Return (message, recovery hint or None) for printing to a terminal."""
    if isinstance(error, FaderControlError):
        return f"[{error.code.value}] {error.user_message}", error.recovery_hint
    return f"{type(error).__name__}: {error}", None


class ErrorCollector:
    """
    Run a series of best-effort steps and remember which ones failed.

    Used on shutdown, where resetting faders must not prevent the serial
    port from being closed.
    """

    def __init__(self, operation: str):
        self.operation = operation
        self.errors: list[tuple[str, Exception]] = []
        self.success_count = 0

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @contextmanager
    def try_operation(self, step: str) -> Iterator[None]:
        # KeyboardInterrupt and SystemExit are not Exception subclasses and propagate
        try:
            yield
        except Exception as e:
            logger.debug(f"{self.operation}: {step} failed: {e}")
            self.errors.append((step, e))
        else:
            self.success_count += 1

    def get_summary(self) -> str:
        if not self.errors:
            return f"{self.operation}: all {self.success_count} steps succeeded"

        total = self.error_count + self.success_count
        lines = [f"Failed {self.error_count} of {total} operations in {self.operation}:"]
        for step, error in self.errors:
            detail = error.user_message if isinstance(error, FaderControlError) else str(error)
            lines.append(f"  - {step}: {detail}")
        return "\n".join(lines)


def collect_errors(operation: str) -> ErrorCollector:
    """Shorthand for ``ErrorCollector(operation)``."""
    return ErrorCollector(operation)
