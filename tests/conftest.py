import struct

import pytest

from iquetools.layout import RomLayout

LOAD_ADDRESS = 0x8000000


def lz77_literals(payload, declared=None, kind=0x10):
    """Compress `payload` as literal tokens only."""
    size = len(payload) if declared is None else declared
    out = bytearray(struct.pack('<I', (size << 8) | kind))
    for i in range(0, len(payload), 8):
        out.append(0x00)
        out += payload[i:i+8]
    return bytes(out)


def backref(distance, length):
    """Encode one back-reference token."""
    d = distance - 1
    return bytes([((length - 3) << 4) | (d >> 8), d & 0xFF])


def build_rom(frames, palettes, audio, width, height, pad=0):
    """Lay out a ROM: tables at 0, then frames, palettes and audio.

    Returns (rom_bytes, layout).
    """
    n = len(frames)
    frame_table = 0
    palette_table = n * 4
    cursor = palette_table + n * 4

    blobs = bytearray()
    frame_addrs = []
    for data in frames:
        frame_addrs.append(LOAD_ADDRESS + cursor + len(blobs))
        blobs += data
    palette_addrs = []
    for data in palettes:
        palette_addrs.append(LOAD_ADDRESS + cursor + len(blobs))
        blobs += data
    audio_offset = cursor + len(blobs)
    blobs += audio
    blobs += bytes(pad)

    rom = struct.pack(f'<{n}I', *frame_addrs) + struct.pack(f'<{n}I', *palette_addrs) + blobs
    layout = RomLayout(
        width=width, height=height, load_address=LOAD_ADDRESS,
        frame_table=frame_table, palette_table=palette_table,
        audio_offset=audio_offset, audio_length=len(audio), num_frames=n)
    return bytes(rom), layout


@pytest.fixture
def small_rom(tmp_path):
    """Two 8x4 frames with distinct palettes and a short audio block."""
    width, height = 8, 4
    frame0 = bytes(range(width * height))
    frame1 = bytes([3]) * (width * height)
    palette0 = struct.pack('<256H', *[(i * 0x421) & 0x7FFF for i in range(256)])
    palette1 = struct.pack('<256H', *([0x7C1F] * 256))
    audio = bytes([0x00, 0x7F, 0x80, 0xFF, 0x10, 0x90])

    rom, layout = build_rom(
        [lz77_literals(frame0), lz77_literals(frame1)], [palette0, palette1],
        audio, width, height)
    path = tmp_path / 'test.gba'
    path.write_bytes(rom)
    return path, layout, [frame0, frame1], [palette0, palette1], audio
