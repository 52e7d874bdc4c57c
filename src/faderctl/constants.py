"""Protocol constants shared across the package."""

# Channel nibble width of the fader protocol: one fader per channel, four channels
MAX_CHANNELS = 4

# 14-bit pitch-bend position range
MAX_POSITION = 16383

# Touch notes are 104 + channel (Mackie-style fader touch)
TOUCH_NOTE_BASE = 104

# PROGRAM_CHANGE payloads the device sends once it is ready
READY_SIGNALS = (102, 116)

# Progression scale
MAX_PROGRESSION = 100
