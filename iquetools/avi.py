import struct
from collections import namedtuple

from iquetools.errors import MuxError

AudioFormat = namedtuple('AudioFormat', ['channels', 'bits', 'sample_rate'])

# Uncompressed 24-bit DIB frames
FOURCC_RGB24 = b'\0\0\0\0'

AVIF_HASINDEX = 0x10
AVIIF_KEYFRAME = 0x10


class AviWriter:
    """
    Streaming RIFF/AVI writer: one video stream, optionally one PCM audio stream.

    The headers are written on open with zero counts; chunks are appended to
    the movi list as they arrive and the counts and sizes are patched in on
    close(), followed by the idx1 index.
    """

    def __init__(self, filename, width, height, fourcc=FOURCC_RGB24, fps=15, audio=None):
        if len(fourcc) != 4:
            raise MuxError(f"fourcc must be 4 bytes, got {fourcc!r}")
        self.filename = filename
        self.width = width
        self.height = height
        self.fourcc = bytes(fourcc)
        self.fps = fps
        self.audio = audio
        self.frame_size = width * height * 3
        self.num_frames = 0
        self.num_samples = 0
        self.idx = []
        self.closed = False

        # Raw frames are 'db' (DIB), anything else 'dc' (compressed)
        self.video_id = b'00db' if self.fourcc == FOURCC_RGB24 else b'00dc'
        self.audio_id = b'01wb'

        try:
            self.f = open(filename, 'wb')
        except OSError as e:
            raise MuxError(f"{filename}: {e.strerror or e}") from e

        try:
            self._guard(self._write_headers)
        except MuxError:
            self.f.close()
            raise

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def add_frame(self, frame):
        """Append one video frame. Raw frames must be width*height*3 bytes."""
        self._check_open()
        if self.fourcc == FOURCC_RGB24 and len(frame) != self.frame_size:
            raise MuxError(
                f"Frame is {len(frame)} bytes, expected {self.frame_size}")
        self._guard(self._write_chunk, self.video_id, frame)
        self.num_frames += 1

    def add_audio(self, data):
        """Append a block of PCM samples in the stream's format."""
        self._check_open()
        if self.audio is None:
            raise MuxError("AVI was opened without an audio stream")
        block_align = self._block_align()
        if len(data) % block_align:
            raise MuxError(
                f"Audio block of {len(data)} bytes is not a multiple of {block_align}")
        self._guard(self._write_chunk, self.audio_id, data)
        self.num_samples += len(data) // block_align

    def close(self):
        if self.closed:
            return
        self.closed = True
        try:
            self._guard(self._finish)
        finally:
            self.f.close()

    def _check_open(self):
        if self.closed:
            raise MuxError(f"{self.filename} is already closed")

    def _guard(self, fn, *args):
        try:
            fn(*args)
        except OSError as e:
            raise MuxError(f"Error writing {self.filename}: {e}") from e

    def _block_align(self):
        return self.audio.channels * (self.audio.bits // 8)

    def _write_headers(self):
        f = self.f
        # Write RIFF header placeholder
        f.write(b'RIFF\0\0\0\0AVI ')
        self._write_hdrl_list(f)

        # idx1 offsets are relative to the 'movi' 4cc
        self.movi_list_start = f.tell()
        f.write(b'LIST\0\0\0\0movi')
        self.movi_id_pos = self.movi_list_start + 8

    def _write_chunk(self, chunk_id, data):
        f = self.f
        offset = f.tell() - self.movi_id_pos
        size = len(data)

        f.write(chunk_id)
        f.write(struct.pack('<I', size))
        f.write(data)
        # Pad payload if odd (not included in size)
        if size % 2 != 0:
            f.write(b'\0')

        self.idx.append((chunk_id, AVIIF_KEYFRAME, offset, size))

    def _write_hdrl_list(self, f):
        us_per_frame = int(1000000 / self.fps)
        streams = 2 if self.audio else 1
        max_bytes_per_sec = self.frame_size * self.fps
        if self.audio:
            max_bytes_per_sec += self.audio.sample_rate * self._block_align()

        hdrl_start = f.tell()
        f.write(b'LIST\0\0\0\0hdrl')

        # avih
        f.write(b'avih')
        f.write(struct.pack('<I', 56))
        f.write(struct.pack('<I', us_per_frame))
        f.write(struct.pack('<I', max_bytes_per_sec))
        f.write(struct.pack('<I', 0)) # Padding granularity
        f.write(struct.pack('<I', AVIF_HASINDEX))
        self.avih_frames_pos = f.tell()
        f.write(struct.pack('<I', 0)) # Total frames, patched on close
        f.write(struct.pack('<I', 0)) # Initial frames
        f.write(struct.pack('<I', streams))
        f.write(struct.pack('<I', self.frame_size)) # Suggested buffer size
        f.write(struct.pack('<I', self.width))
        f.write(struct.pack('<I', self.height))
        f.write(b'\0' * 16) # Reserved

        self.video_length_pos = self._write_video_strl(f)
        if self.audio:
            self.audio_length_pos = self._write_audio_strl(f)

        self._patch_size(hdrl_start)

    def _write_strh(self, f, fcc_type, handler, scale, rate, buffer_size, sample_size, frame_rect):
        """Write a stream header, returning the file position of its length field."""
        f.write(b'strh')
        f.write(struct.pack('<I', 56))
        f.write(fcc_type)
        f.write(handler)
        f.write(struct.pack('<I', 0)) # Flags
        f.write(struct.pack('<H', 0)) # Priority
        f.write(struct.pack('<H', 0)) # Language
        f.write(struct.pack('<I', 0)) # Initial frames
        f.write(struct.pack('<I', scale))
        f.write(struct.pack('<I', rate))
        f.write(struct.pack('<I', 0)) # Start
        length_pos = f.tell()
        f.write(struct.pack('<I', 0)) # Length, patched on close
        f.write(struct.pack('<I', buffer_size))
        f.write(struct.pack('<i', -1)) # Quality (default)
        f.write(struct.pack('<I', sample_size))
        f.write(struct.pack('<4H', *frame_rect))
        return length_pos

    def _write_video_strl(self, f):
        strl_start = f.tell()
        f.write(b'LIST\0\0\0\0strl')

        length_pos = self._write_strh(
            f, b'vids', self.fourcc, 1, self.fps, self.frame_size, 0,
            (0, 0, self.width, self.height))

        # strf: BITMAPINFOHEADER, positive height = bottom-up rows
        f.write(b'strf')
        f.write(struct.pack('<I', 40))
        f.write(struct.pack('<I', 40))
        f.write(struct.pack('<i', self.width))
        f.write(struct.pack('<i', self.height))
        f.write(struct.pack('<H', 1)) # Planes
        f.write(struct.pack('<H', 24)) # Bitcount
        f.write(self.fourcc) # Compression, BI_RGB when zero
        f.write(struct.pack('<I', self.frame_size))
        f.write(struct.pack('<i', 0)) # XPelsPerMeter
        f.write(struct.pack('<i', 0)) # YPelsPerMeter
        f.write(struct.pack('<I', 0)) # ClrUsed
        f.write(struct.pack('<I', 0)) # ClrImportant

        self._patch_size(strl_start)
        return length_pos

    def _write_audio_strl(self, f):
        strl_start = f.tell()
        f.write(b'LIST\0\0\0\0strl')

        block_align = self._block_align()
        bytes_per_sec = self.audio.sample_rate * block_align
        length_pos = self._write_strh(
            f, b'auds', b'\0\0\0\0', block_align, bytes_per_sec, bytes_per_sec,
            block_align, (0, 0, 0, 0))

        # strf: WAVEFORMATEX
        f.write(b'strf')
        f.write(struct.pack('<I', 18))
        f.write(struct.pack('<H', 1)) # WAVE_FORMAT_PCM
        f.write(struct.pack('<H', self.audio.channels))
        f.write(struct.pack('<I', self.audio.sample_rate))
        f.write(struct.pack('<I', bytes_per_sec))
        f.write(struct.pack('<H', block_align))
        f.write(struct.pack('<H', self.audio.bits))
        f.write(struct.pack('<H', 0)) # cbSize

        self._patch_size(strl_start)
        return length_pos

    def _write_idx1(self, f):
        f.write(b'idx1')
        f.write(struct.pack('<I', len(self.idx) * 16))
        for chunk_id, flags, offset, chunk_size in self.idx:
            f.write(chunk_id)
            f.write(struct.pack('<I', flags))
            f.write(struct.pack('<I', offset))
            f.write(struct.pack('<I', chunk_size))

    def _finish(self):
        f = self.f
        self._patch_size(self.movi_list_start)
        self._write_idx1(f)

        self._patch_u32(self.avih_frames_pos, self.num_frames)
        self._patch_u32(self.video_length_pos, self.num_frames)
        if self.audio:
            self._patch_u32(self.audio_length_pos, self.num_samples)

        # RIFF size covers everything after the first 8 bytes
        self._patch_u32(4, f.seek(0, 2) - 8)

    def _patch_size(self, list_start):
        """Fill in the size field of a LIST that ends at the current position."""
        self._patch_u32(list_start + 4, self.f.tell() - list_start - 8)

    def _patch_u32(self, pos, value):
        current_pos = self.f.tell()
        self.f.seek(pos)
        self.f.write(struct.pack('<I', value))
        self.f.seek(current_pos)
