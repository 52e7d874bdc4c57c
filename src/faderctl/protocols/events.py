"""Controller events, split into two tiers.

- FaderEvent: the public API consumed by external collaborators
- DiagnosticEvent: wire-level and internal bookkeeping events for
  logging and debugging tools
"""

from enum import Enum


class FaderEvent(Enum):
    """Public events published by the fader controller."""

    TOUCH = "touch"                              # User touched a fader
    UNTOUCH = "untouch"                          # User released a fader
    MOVE = "move"                                # User moved a touched fader
    MOVE_START = "move/start"                    # Software move started on a fader
    MOVE_COMPLETE = "move/complete"              # Software move finished on a fader
    MOVE_STEP_START = "move/step/start"          # Single ramp step written
    MOVE_STEP_COMPLETE = "move/step/complete"    # Single ramp step confirmed
    CONFIG_CHANGE = "configChange"               # Trim map or echo mode changed
    ECHO_ON = "echo/on"                          # Echo mode enabled
    ECHO_OFF = "echo/off"                        # Echo mode disabled
    ERROR = "error"                              # Non-fatal or fatal error
    READY = "ready"                              # Controller running
    CALIBRATION = "calibration"                  # Advanced calibration results


class DiagnosticEvent(Enum):
    """Diagnostic events, not part of the public contract."""

    MIDI_RECEIVED = "midi/received"              # Decoded inbound frame
    MIDI_SENT = "midi/sent"                      # Frame written to the port
    QUEUE_FLUSHED = "queue/flushed"              # Pending commands cancelled
    FEEDBACK_TRACKED = "feedback/tracked"        # Feedback record opened
    FEEDBACK_CLOSED = "feedback/closed"          # Feedback record closed by echo
    STRATEGY_CHANGED = "feedback/strategy"       # Hardware feedback downgraded
    SERIAL_CONNECTED = "serial/connected"        # Port opened
    SERIAL_CLOSED = "serial/closed"              # Port closed
