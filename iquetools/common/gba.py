import struct

from iquetools.errors import RomReadError
from iquetools.layout import GBA_ROM_LOAD_ADDRESS


def read_u32_le(data, offset=0):
    return struct.unpack('<I', data[offset:offset+4])[0]

def rom_offset(address, load_address=GBA_ROM_LOAD_ADDRESS):
    """Translate a ROM bus address into a file offset."""
    if address < load_address:
        raise RomReadError(
            f"Address 0x{address:08X} is below ROM load address 0x{load_address:08X}")
    return address - load_address

def convert_555_888(val):
    """
    Expand a 15-bit colour into a 24-bit 0xXXYYZZ value.
    Bits 10-14 land in bits 19-23, bits 5-9 in bits 11-15, bits 0-4 in bits 3-7.
    The low 3 bits of each byte stay zero, matching the hardware's truncation.
    On the GBA (BGR555) the top byte is therefore blue and the bottom byte red.
    """
    return ((val & 0x7C00) << 9) | ((val & 0x03E0) << 6) | ((val & 0x001F) << 3)
