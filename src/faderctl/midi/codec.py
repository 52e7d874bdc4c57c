"""
MIDI codec for the fader wire protocol.

Frames are always three bytes: [status, data1, data2]. The device never
uses running status.

- PITCH_BEND (0xE0 | channel, lsb, msb): 14-bit fader position
- NOTE_ON / NOTE_OFF (0x90 / 0x80, 104 + channel, velocity): touch / release
- PROGRAM_CHANGE (0xC0, x, 102 | 116): readiness beacon

Standard messages are built with mido so the byte layout matches what
every other MIDI tool produces.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

import mido

from faderctl.constants import MAX_CHANNELS, MAX_POSITION, READY_SIGNALS, TOUCH_NOTE_BASE
from faderctl.exceptions import InvalidConfigError

logger = logging.getLogger(__name__)

# mido centres pitchwheel values on zero
PITCH_OFFSET = 8192

FRAME_LENGTH = 3


class MidiMessageType(str, Enum):
    """Message types, keyed on the status byte's upper nibble."""

    NOTE_OFF = "NOTE_OFF"
    NOTE_ON = "NOTE_ON"
    POLYPHONIC_AFTERTOUCH = "POLYPHONIC_AFTERTOUCH"
    CONTROL_CHANGE = "CONTROL_CHANGE"
    PROGRAM_CHANGE = "PROGRAM_CHANGE"
    CHANNEL_AFTERTOUCH = "CHANNEL_AFTERTOUCH"
    PITCH_BEND = "PITCH_BEND"
    UNKNOWN = "UNKNOWN"


_STATUS_TYPES = {
    0x80: MidiMessageType.NOTE_OFF,
    0x90: MidiMessageType.NOTE_ON,
    0xA0: MidiMessageType.POLYPHONIC_AFTERTOUCH,
    0xB0: MidiMessageType.CONTROL_CHANGE,
    0xC0: MidiMessageType.PROGRAM_CHANGE,
    0xD0: MidiMessageType.CHANNEL_AFTERTOUCH,
    0xE0: MidiMessageType.PITCH_BEND,
}

NOTE_TYPES = frozenset({MidiMessageType.NOTE_ON, MidiMessageType.NOTE_OFF})


def translate_status_byte(status: int) -> MidiMessageType:
    """Map a status byte to its message type (channel bits ignored)."""
    return _STATUS_TYPES.get(status & 0xF0, MidiMessageType.UNKNOWN)


def decode_position(lsb: int, msb: int) -> int:
    return ((msb & 0x7F) << 7) | (lsb & 0x7F)


@dataclass(frozen=True)
class MidiMessage:
    """One decoded 3-byte frame."""

    status: int
    data1: int
    data2: int

    @classmethod
    def from_bytes(cls, frame: Iterable[int]) -> "MidiMessage":
        status, data1, data2 = frame
        return cls(status, data1, data2)

    @property
    def type(self) -> MidiMessageType:
        return translate_status_byte(self.status)

    @property
    def channel(self) -> int:
        """
        Fader channel the message refers to.

        Touch notes carry the channel in the note number; every other
        message carries it in the status byte's lower nibble.
        """
        if self.type in NOTE_TYPES:
            return self.data1 - TOUCH_NOTE_BASE
        return self.status & 0x0F

    @property
    def position(self) -> Optional[int]:
        """14-bit position for PITCH_BEND, None for anything else."""
        if self.type is not MidiMessageType.PITCH_BEND:
            return None
        return decode_position(self.data1, self.data2)

    @property
    def is_ready_signal(self) -> bool:
        return self.type is MidiMessageType.PROGRAM_CHANGE and self.data2 in READY_SIGNALS

    def to_bytes(self) -> bytes:
        return bytes((self.status, self.data1, self.data2))

    def to_mido(self) -> Optional[mido.Message]:
        """Convert to a mido message; None for frames mido cannot represent."""
        try:
            return mido.Message.from_bytes(list(self.to_bytes()))
        except ValueError:
            return None

    def format_for_log(self) -> str:
        return (
            f"MIDI MESSAGE: STATUS: {self.type.value} CHANNEL: {self.channel} "
            f"DATA1: {self.data1} DATA2: {self.data2}"
        )

    def __str__(self) -> str:
        return self.format_for_log()


class MidiParser:
    """
    Incremental framer for the inbound byte stream.

    Data bytes that arrive while no frame is open are dropped. A status
    byte inside an incomplete frame discards the partial frame and opens a
    new one. Noise on the line is logged at debug level, never raised.
    """

    def __init__(self):
        self._frame: list[int] = []
        self.dropped_bytes = 0

    def feed(self, data: bytes | Iterable[int]) -> list[MidiMessage]:
        """Consume bytes and return every frame they completed."""
        messages = []
        for byte in data:
            byte &= 0xFF
            if byte & 0x80:
                if self._frame:
                    logger.debug(f"Discarding partial MIDI frame {self._frame}")
                    self.dropped_bytes += len(self._frame)
                self._frame = [byte]
                continue

            if not self._frame:
                self.dropped_bytes += 1
                continue

            self._frame.append(byte)
            if len(self._frame) == FRAME_LENGTH:
                messages.append(MidiMessage.from_bytes(self._frame))
                self._frame = []
        return messages

    def reset(self) -> None:
        self._frame = []

    @property
    def has_partial_frame(self) -> bool:
        return bool(self._frame)


def _validate_channel(channel: int) -> None:
    if not isinstance(channel, int) or not 0 <= channel < MAX_CHANNELS:
        raise InvalidConfigError(
            f"Invalid fader channel {channel!r}.",
            recovery_hint=f"Channels range from 0 to {MAX_CHANNELS - 1}.",
            context={"channel": channel},
        )


def encode_position(channel: int, position: int) -> bytes:
    """Encode a PITCH_BEND frame moving `channel` to `position`."""
    _validate_channel(channel)
    if not isinstance(position, int) or not 0 <= position <= MAX_POSITION:
        raise InvalidConfigError(
            f"Invalid fader position {position!r}.",
            recovery_hint=f"Positions range from 0 to {MAX_POSITION}.",
            context={"channel": channel, "position": position},
        )
    return bytes(mido.Message("pitchwheel", channel=channel, pitch=position - PITCH_OFFSET).bytes())


def encode_touch(channel: int, touched: bool) -> bytes:
    """Encode the NOTE_ON/NOTE_OFF frame a fader sends when touched or released."""
    _validate_channel(channel)
    note = TOUCH_NOTE_BASE + channel
    if touched:
        message = mido.Message("note_on", note=note, velocity=127)
    else:
        message = mido.Message("note_off", note=note, velocity=0)
    return bytes(message.bytes())


def position_message(channel: int, position: int) -> MidiMessage:
    """Build the outgoing MidiMessage for a position command."""
    return MidiMessage.from_bytes(encode_position(channel, position))
