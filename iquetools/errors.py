class IqueError(Exception):
    """Base class for everything this package raises on bad input."""


class RomReadError(IqueError, IOError):
    """ROM could not be opened, seeked or read in full."""


class DecodeError(IqueError, ValueError):
    """Compressed frame data is inconsistent with the expected image."""


class MuxError(IqueError):
    """The AVI writer failed or was handed data it cannot store."""
