import os

import numpy as np

from iquetools.errors import RomReadError
from iquetools.common.gba import rom_offset
from iquetools.layout import DEFAULT_LAYOUT


class RomReader:
    """Offset-addressed reads over a GBA ROM image.

    Every read seeks first, so nothing but the file handle is shared between
    calls.
    """

    def __init__(self, rom_path, layout=DEFAULT_LAYOUT):
        self.rom_path = rom_path
        self.layout = layout
        try:
            self.f = open(rom_path, 'rb')
            self.size = os.fstat(self.f.fileno()).st_size
        except OSError as e:
            raise RomReadError(f"{rom_path}: {e.strerror or e}") from e

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def read_at(self, offset, length):
        """Read exactly `length` bytes at `offset`; anything less is an error."""
        data = self._read(offset, length)
        if len(data) != length:
            raise RomReadError(
                f"Short read at 0x{offset:X}: wanted {length} bytes, got {len(data)}")
        return data

    def read_upto(self, offset, length):
        """Read at most `length` bytes at `offset`, stopping at end of file.

        Used for blocks whose real length is only known after decoding their
        header. The offset itself must still lie inside the file.
        """
        if offset >= self.size:
            raise RomReadError(f"Offset 0x{offset:X} is past end of ROM (0x{self.size:X} bytes)")
        length = min(length, self.size - offset)
        return self.read_at(offset, length)

    def read_at_address(self, address, length):
        return self.read_at(rom_offset(address, self.layout.load_address), length)

    def read_u32_table(self, offset, count):
        """Read `count` little-endian u32 entries starting at `offset`."""
        data = self.read_at(offset, count * 4)
        return np.frombuffer(data, dtype='<u4').tolist()

    def read_tables(self):
        """Read the frame and palette address tables.

        Returns (frames, palettes), two lists of bus addresses of equal length.
        """
        n = self.layout.num_frames
        frames = self.read_u32_table(self.layout.frame_table, n)
        palettes = self.read_u32_table(self.layout.palette_table, n)
        if len(frames) != n or len(palettes) != n:
            raise RomReadError(
                f"Expected {n} table entries, got {len(frames)} frames / {len(palettes)} palettes")
        return frames, palettes

    def _read(self, offset, length):
        if offset < 0 or length < 0:
            raise RomReadError(f"Invalid read of {length} bytes at {offset}")
        try:
            self.f.seek(offset)
            return self.f.read(length)
        except (OSError, ValueError) as e:
            raise RomReadError(f"Error reading {self.rom_path} at 0x{offset:X}: {e}") from e

    def close(self):
        self.f.close()
