"""Configuration-related exceptions.

This module defines exceptions for configuration errors:
- InvalidConfigError: A value violates a fader or move invariant
- ConfigValidationError: A configuration model failed validation
- FaderNotFoundError: An index does not name a configured fader
"""

from typing import Any, Iterable, Optional

from .base import ErrorCode, FaderControlError


class InvalidConfigError(FaderControlError):
    """Configuration or request values violate an invariant."""

    code = ErrorCode.INVALID_CONFIG

    def __init__(self, user_message: str, **kwargs):
        kwargs.setdefault("recoverable", True)
        super().__init__(user_message, **kwargs)


class ConfigValidationError(InvalidConfigError):
    """Configuration values fail validation."""

    def __init__(self, field: str, value: Any, error_msg: str, source: Optional[str] = None):
        """
        Initialize config validation error.

        Args:
            field: The configuration field that failed validation
            value: The invalid value
            error_msg: Why the value is invalid
            source: Where the configuration came from (optional)
        """
        user_msg = f"Invalid configuration value for '{field}': {error_msg}"

        recovery = f"Update the '{field}' value in your configuration"
        if source:
            recovery += f"\nSource: {source}"

        if "port" in field.lower():
            recovery += "\nRun 'faderctl ports list' to see available serial ports"
        elif "fader_indexes" in field.lower():
            recovery += "\nValid fader indexes are 0-3"
        elif "speeds" in field.lower():
            recovery += "\nProvide exactly three speeds in (0, 100]"

        super().__init__(
            user_msg,
            technical_message=f"Config validation failed for {field}={value!r}: {error_msg}",
            recovery_hint=recovery,
            context={"field": field, "value": value},
        )
        self.field = field
        self.value = value
        self.source = source


class FaderNotFoundError(FaderControlError):
    """Requested fader index is not configured."""

    code = ErrorCode.FADER_NOT_FOUND

    def __init__(self, index: Any, available: Iterable[int]):
        available = list(available)
        super().__init__(
            f"Fader {index} not found.",
            technical_message=f"Fader {index} not found (available: {available})",
            recovery_hint=f"Use one of the configured fader indexes: {available}",
            context={"requested_index": index, "available_indexes": available},
        )
        self.index = index
        self.available = available
