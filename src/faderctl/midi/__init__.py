"""MIDI codec, outgoing queue and feedback tracking."""

from .codec import (
    MidiMessage,
    MidiMessageType,
    MidiParser,
    decode_position,
    encode_position,
    encode_touch,
    position_message,
    translate_status_byte,
)
from .feedback import FeedbackRecord, FeedbackTracker
from .queue import MidiQueue, QueuedCommand

__all__ = [
    "FeedbackRecord",
    "FeedbackTracker",
    "MidiMessage",
    "MidiMessageType",
    "MidiParser",
    "MidiQueue",
    "QueuedCommand",
    "decode_position",
    "encode_position",
    "encode_touch",
    "position_message",
    "translate_status_byte",
]
