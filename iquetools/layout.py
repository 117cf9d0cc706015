"""Where everything lives inside the iQue Player boot animation ROM.

The animation is stored as LZ77-compressed 8bpp frames, each with its own
BGR555 palette, addressed through two parallel u32 tables of GBA bus
addresses. The soundtrack is one raw block of signed 8-bit PCM.
"""
import json
from dataclasses import dataclass, fields

# GBA screen
GBA_WIDTH = 240
GBA_HEIGHT = 160
GBA_LENGTH = GBA_WIDTH * GBA_HEIGHT

GBA_PALETTE_ENTRIES = 256

# Cartridge ROM is mapped at this bus address
GBA_ROM_LOAD_ADDRESS = 0x8000000

# File offsets
FRAME_TABLE_LOCATION = 0xB0BFB8
PALETTE_TABLE_LOCATION = 0xB0D8D0
AUDIO_LOCATION = 0xCE2C80
AUDIO_LENGTH = 0xEB6C0

NUM_FRAMES = 1606
FRAME_RATE = 15

AUDIO_CHANNELS = 1
AUDIO_BITS = 8
AUDIO_SAMPLE_RATE = 9000

# Upper bound for one compressed frame: palette plus twice the image
SAFE_LENGTH = (GBA_PALETTE_ENTRIES * 2) + (GBA_LENGTH * 2)


@dataclass(frozen=True)
class RomLayout:
    width: int = GBA_WIDTH
    height: int = GBA_HEIGHT
    palette_entries: int = GBA_PALETTE_ENTRIES
    load_address: int = GBA_ROM_LOAD_ADDRESS
    frame_table: int = FRAME_TABLE_LOCATION
    palette_table: int = PALETTE_TABLE_LOCATION
    audio_offset: int = AUDIO_LOCATION
    audio_length: int = AUDIO_LENGTH
    num_frames: int = NUM_FRAMES
    frame_rate: int = FRAME_RATE
    audio_channels: int = AUDIO_CHANNELS
    audio_bits: int = AUDIO_BITS
    audio_sample_rate: int = AUDIO_SAMPLE_RATE

    @property
    def image_size(self):
        """Bytes in one decompressed 8bpp image."""
        return self.width * self.height

    @property
    def frame_size(self):
        """Bytes in one 24-bit output frame."""
        return self.image_size * 3

    @property
    def palette_size(self):
        return self.palette_entries * 2

    @property
    def safe_length(self):
        return self.palette_size + self.image_size * 2

    @classmethod
    def from_dict(cls, values):
        """Build a layout from a dict of field overrides.

        Values may be ints or numeric strings ("0xB0BFB8", "1606").
        """
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            raise ValueError(f"Unknown layout keys: {', '.join(sorted(unknown))}")

        parsed = {}
        for key, val in values.items():
            if isinstance(val, str):
                val = int(val, 0)
            elif isinstance(val, bool) or not isinstance(val, int):
                raise ValueError(f"Layout key {key!r} must be an integer, got {val!r}")
            if val < 0:
                raise ValueError(f"Layout key {key!r} must not be negative")
            parsed[key] = val
        return cls(**parsed)

    @classmethod
    def from_json(cls, path):
        with open(path, 'r') as f:
            values = json.load(f)
        if not isinstance(values, dict):
            raise ValueError(f"{path}: expected a JSON object")
        return cls.from_dict(values)


DEFAULT_LAYOUT = RomLayout()
