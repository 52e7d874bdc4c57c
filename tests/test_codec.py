"""Tests for the MIDI wire codec."""

import pytest

from faderctl.exceptions import InvalidConfigError
from faderctl.midi import (
    MidiMessage,
    MidiMessageType,
    MidiParser,
    decode_position,
    encode_position,
    encode_touch,
    position_message,
    translate_status_byte,
)


@pytest.mark.unit
class TestStatusByte:
    """Test status byte translation."""

    def test_known_types(self):
        """Upper nibble selects the type, channel bits are ignored."""
        assert translate_status_byte(0xE0) is MidiMessageType.PITCH_BEND
        assert translate_status_byte(0xE3) is MidiMessageType.PITCH_BEND
        assert translate_status_byte(0x90) is MidiMessageType.NOTE_ON
        assert translate_status_byte(0x81) is MidiMessageType.NOTE_OFF
        assert translate_status_byte(0xC0) is MidiMessageType.PROGRAM_CHANGE
        assert translate_status_byte(0xB2) is MidiMessageType.CONTROL_CHANGE

    def test_unknown_type(self):
        """System messages are not part of the fader protocol."""
        assert translate_status_byte(0xF0) is MidiMessageType.UNKNOWN


@pytest.mark.unit
class TestMidiMessage:
    """Test decoded MIDI frames."""

    def test_decode_position(self):
        """14-bit positions are little-endian 7-bit pairs."""
        assert decode_position(0x00, 0x00) == 0
        assert decode_position(0x00, 0x40) == 8192
        assert decode_position(0x7F, 0x7F) == 16383
        assert decode_position(0x01, 0x01) == 129

    def test_pitch_bend_channel_and_position(self):
        """Pitch bend carries the channel in the status byte."""
        message = MidiMessage(0xE2, 0x7F, 0x7F)
        assert message.type is MidiMessageType.PITCH_BEND
        assert message.channel == 2
        assert message.position == 16383

    def test_touch_channel_from_note(self):
        """Touch notes carry the channel as note - 104."""
        assert MidiMessage(0x90, 104, 127).channel == 0
        assert MidiMessage(0x90, 107, 127).channel == 3
        assert MidiMessage(0x80, 105, 0).channel == 1

    def test_position_only_for_pitch_bend(self):
        """Non pitch bend messages have no position."""
        assert MidiMessage(0x90, 104, 127).position is None
        assert MidiMessage(0xC0, 0, 102).position is None

    def test_ready_signal(self):
        """Program change with payload 102 or 116 is the readiness beacon."""
        assert MidiMessage(0xC0, 0, 102).is_ready_signal
        assert MidiMessage(0xC0, 0, 116).is_ready_signal
        assert not MidiMessage(0xC0, 0, 103).is_ready_signal
        assert not MidiMessage(0xB0, 0, 102).is_ready_signal

    def test_from_and_to_bytes(self):
        """Frames survive conversion to bytes unchanged."""
        message = MidiMessage.from_bytes(b"\xe1\x10\x20")
        assert message == MidiMessage(0xE1, 0x10, 0x20)
        assert message.to_bytes() == b"\xe1\x10\x20"

    def test_format_for_log(self):
        """Log lines name the type, channel and both data bytes."""
        line = MidiMessage(0xE1, 5, 6).format_for_log()
        assert line == "MIDI MESSAGE: STATUS: PITCH_BEND CHANNEL: 1 DATA1: 5 DATA2: 6"
        assert str(MidiMessage(0xE1, 5, 6)) == line

    def test_to_mido(self):
        """Standard messages convert to mido."""
        message = MidiMessage(0xE1, 0x00, 0x40).to_mido()
        assert message.type == "pitchwheel"
        assert message.channel == 1
        assert message.pitch == 0

    def test_to_mido_readiness_beacon(self):
        """The 3-byte program change beacon is not a valid MIDI message."""
        assert MidiMessage(0xC0, 0, 102).to_mido() is None


@pytest.mark.unit
class TestEncoding:
    """Test outgoing frame encoding."""

    def test_encode_position(self):
        """Positions encode as pitch bend lsb/msb."""
        assert encode_position(0, 0) == bytes([0xE0, 0x00, 0x00])
        assert encode_position(0, 8192) == bytes([0xE0, 0x00, 0x40])
        assert encode_position(3, 16383) == bytes([0xE3, 0x7F, 0x7F])
        assert encode_position(1, 129) == bytes([0xE1, 0x01, 0x01])

    @pytest.mark.parametrize("channel", [-1, 4, 15])
    def test_encode_position_invalid_channel(self, channel):
        """Only channels 0-3 exist."""
        with pytest.raises(InvalidConfigError):
            encode_position(channel, 100)

    @pytest.mark.parametrize("position", [-1, 16384])
    def test_encode_position_out_of_range(self, position):
        """Positions are 14-bit."""
        with pytest.raises(InvalidConfigError):
            encode_position(0, position)

    def test_encode_touch(self):
        """Touch and release use note 104 + channel."""
        assert encode_touch(2, True) == bytes([0x90, 106, 127])
        assert encode_touch(2, False) == bytes([0x80, 106, 0])

    def test_position_message(self):
        """position_message decodes back to channel and position."""
        message = position_message(1, 12345)
        assert message.channel == 1
        assert message.position == 12345


@pytest.mark.unit
class TestMidiParser:
    """Test inbound framing."""

    def test_complete_frames(self):
        """Back-to-back frames decode in order."""
        parser = MidiParser()
        messages = parser.feed(bytes([0xE0, 0x00, 0x40, 0x90, 104, 127]))
        assert [m.type for m in messages] == [MidiMessageType.PITCH_BEND, MidiMessageType.NOTE_ON]
        assert messages[0].position == 8192

    def test_frame_split_across_reads(self):
        """Partial frames are kept until completed."""
        parser = MidiParser()
        assert parser.feed(bytes([0xE1, 0x01])) == []
        assert parser.has_partial_frame
        messages = parser.feed(bytes([0x01]))
        assert messages == [MidiMessage(0xE1, 0x01, 0x01)]
        assert not parser.has_partial_frame

    def test_leading_data_bytes_dropped(self):
        """Data bytes without a status byte are noise."""
        parser = MidiParser()
        messages = parser.feed(bytes([0x10, 0x20, 0xE0, 0x00, 0x00]))
        assert messages == [MidiMessage(0xE0, 0x00, 0x00)]
        assert parser.dropped_bytes == 2

    def test_status_byte_restarts_frame(self):
        """A status byte inside a partial frame discards it."""
        parser = MidiParser()
        messages = parser.feed(bytes([0xE0, 0x05, 0x90, 105, 127]))
        assert messages == [MidiMessage(0x90, 105, 127)]
        assert parser.dropped_bytes == 2

    def test_reset(self):
        """reset() forgets a partial frame."""
        parser = MidiParser()
        parser.feed(bytes([0xE0, 0x05]))
        parser.reset()
        assert parser.feed(bytes([0x06])) == []
