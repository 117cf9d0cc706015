import numpy as np
from PIL import Image

from iquetools.errors import DecodeError


def expand_palette(raw_palette):
    """
    Convert a table of little-endian 15-bit colours to 24-bit values.

    Vectorised form of common.gba.convert_555_888: each 5-bit channel is
    shifted to the top of its byte, low 3 bits left at zero.
    Returns a uint32 array with one entry per input colour.
    """
    n = np.frombuffer(bytes(raw_palette), dtype='<u2').astype(np.uint32)
    return ((n & 0x7C00) << 9) | ((n & 0x03E0) << 6) | ((n & 0x001F) << 3)


def palette_bytes(palette):
    """Split 24-bit palette values into an (N, 3) array, high byte first."""
    palette = np.asarray(palette, dtype=np.uint32)
    return np.stack([
        (palette >> 16) & 0xFF,
        (palette >> 8) & 0xFF,
        palette & 0xFF,
    ], axis=-1).astype(np.uint8)


def convert_frame(image, palette, width, height):
    """
    Depalettise an 8bpp image and flip it vertically for AVI.

    `image` holds width*height palette indices, top row first.
    `palette` is the expanded palette from expand_palette().
    Returns width*height*3 bytes, bottom row first, each pixel as the
    palette entry's bytes from most to least significant. For GBA BGR555
    source colours that is B, G, R: the byte order of a 24-bit DIB.
    """
    if len(image) != width * height:
        raise DecodeError(
            f"Indexed image is {len(image)} bytes, expected {width * height}")

    lut = palette_bytes(palette)
    indices = np.frombuffer(bytes(image), dtype=np.uint8).reshape(height, width)
    if indices.max(initial=0) >= len(lut):
        raise DecodeError(f"Pixel index {int(indices.max())} outside {len(lut)}-entry palette")

    rgb = lut[indices[::-1]]
    return rgb.tobytes()


def frame_to_image(frame, width, height):
    """Turn an output frame back into an upright RGB PIL Image."""
    pixels = np.frombuffer(frame, dtype=np.uint8).reshape(height, width, 3)
    # Undo the AVI flip and the DIB channel order
    pixels = np.ascontiguousarray(pixels[::-1, :, ::-1])
    return Image.fromarray(pixels)
