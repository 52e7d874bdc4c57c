"""
Custom exception hierarchy for faderctl.

## Exception Hierarchy

```
FaderControlError (base, carries ErrorCode + context)
├── ConnectionFailedError
│   ├── SerialPortNotOpenError
│   ├── SerialDisconnectedError
│   └── MidiSendError
├── InvalidConfigError
│   └── ConfigValidationError
├── FaderNotFoundError
├── MovementError
├── QueueOverflowError
├── QueueLockError
├── MidiFeedbackError
├── CalibrationFailedError
└── DeviceNotReadyError
```

Programmer errors (bad index, bad config) are raised to the caller.
Transient hardware errors are published as error events and the controller
keeps running.

### Example: Serial port never opens

```python
from faderctl.exceptions import ConnectionFailedError

try:
    controller.setup_serial({"port": "/dev/ttyUSB0", "baud_rate": 1000000})
except ConnectionFailedError as e:
    print(e.user_message)      # "Could not connect to serial port ... after 5 attempt(s)."
    print(e.context["attempt"])
```
"""

from .base import ErrorCode, FaderControlError
from .config import ConfigValidationError, FaderNotFoundError, InvalidConfigError
from .handlers import (
    ErrorCollector,
    collect_errors,
    format_error_for_display,
    wrap_pydantic_error,
)
from .hardware import (
    ConnectionFailedError,
    DeviceNotReadyError,
    MidiSendError,
    SerialDisconnectedError,
    SerialPortNotOpenError,
)
from .movement import (
    CalibrationFailedError,
    MidiFeedbackError,
    MovementError,
    QueueLockError,
    QueueOverflowError,
)

__all__ = [
    "CalibrationFailedError",
    "ConfigValidationError",
    "ConnectionFailedError",
    "DeviceNotReadyError",
    "ErrorCode",
    "ErrorCollector",
    "FaderControlError",
    "FaderNotFoundError",
    "InvalidConfigError",
    "MidiFeedbackError",
    "MidiSendError",
    "MovementError",
    "QueueLockError",
    "QueueOverflowError",
    "SerialDisconnectedError",
    "SerialPortNotOpenError",
    "collect_errors",
    "format_error_for_display",
    "wrap_pydantic_error",
]
