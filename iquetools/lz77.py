"""
GBA BIOS LZ77 (LZ77UnCompWram) decompressor.

Stream layout:
- header: u32 little endian
   - bits 0-7: type (0x10 on cartridges, not checked here)
   - bits 8-31: decompressed length
- n x block:
   - flags: 8 bits, read high bit first
   - 8 x token:
      - flag clear: one literal byte
      - flag set: two bytes, LLLL DDDD DDDD DDDD
          - length = L + 3
          - distance = D + 1, counted back from the output cursor
"""
from iquetools.common.gba import read_u32_le
from iquetools.errors import DecodeError


def decompressed_length(data):
    """Length declared by the header of a compressed block."""
    if len(data) < 4:
        raise DecodeError("Compressed block too short for LZ77 header")
    return read_u32_le(data) >> 8


def decompress(data, out=None):
    """Decompress `data` into `out` (a bytearray) or into a new buffer.

    Returns the output buffer. When `out` is given it must be able to hold
    the declared length; only the first declared-length bytes are written.
    """
    size = decompressed_length(data)
    if out is None:
        out = bytearray(size)
    elif size > len(out):
        raise DecodeError(
            f"Declared length {size} exceeds output buffer of {len(out)} bytes")

    s = 4
    d = 0
    end = size
    try:
        while d < end:
            flags = data[s]
            s += 1

            mask = 0x80
            while mask and d < end:
                if flags & mask:
                    # Back-reference
                    b0 = data[s]
                    b1 = data[s + 1]
                    s += 2

                    distance = (((b0 & 0x0F) << 8) | b1) + 1
                    length = (b0 >> 4) + 3

                    if distance > d:
                        raise DecodeError(
                            f"Back-reference distance {distance} at output offset {d} "
                            f"reaches before start of output")

                    # Byte at a time: the source may overlap what we're writing
                    for _ in range(length):
                        if d >= end:
                            break
                        out[d] = out[d - distance]
                        d += 1
                else:
                    out[d] = data[s]
                    s += 1
                    d += 1
                mask >>= 1
    except IndexError:
        raise DecodeError(
            f"Compressed data ended after {s} bytes with {d}/{size} bytes decoded") from None

    return out
