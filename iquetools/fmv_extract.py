#!/usr/bin/env python3
"""Extract the iQue Player boot animation from a GBA ROM into an AVI.

Usage:
  python -m iquetools.fmv_extract rom.gba out.avi
  python -m iquetools.fmv_extract rom.gba out.avi --frames-dir output/frames --wav output/ique.wav
  python -m iquetools.fmv_extract rom.gba --info
"""
import argparse
import os
import sys

from iquetools.avi import AudioFormat, AviWriter, FOURCC_RGB24
from iquetools.common.gba import rom_offset
from iquetools.common.rom import RomReader
from iquetools.errors import DecodeError, IqueError, MuxError, RomReadError
from iquetools.frames import convert_frame, expand_palette, frame_to_image
from iquetools.layout import DEFAULT_LAYOUT, RomLayout
from iquetools.lz77 import decompress, decompressed_length
from iquetools.pcm import flip_sign, write_wav


def decode_frame(data, raw_palette, layout=DEFAULT_LAYOUT, image=None):
    """Decompress one frame and resolve it through its palette.

    `data` starts at the frame's LZ77 header and may run past its end.
    `image` is an optional reusable buffer of layout.image_size bytes.
    Returns the output frame (layout.frame_size bytes, bottom row first).
    """
    size = decompressed_length(data)
    if size != layout.image_size:
        raise DecodeError(
            f"Frame declares {size} bytes, expected {layout.image_size} "
            f"({layout.width}x{layout.height})")
    if image is None:
        image = bytearray(layout.image_size)

    decompress(data, image)
    palette = expand_palette(raw_palette)
    return convert_frame(image, palette, layout.width, layout.height)


class FmvExtractor:
    """Walks the frame and palette tables of an opened ROM.

    The two address tables are read once on construction; every frame and
    the audio block are then fetched with their own seek-and-read.
    """

    def __init__(self, rom, layout=None):
        self.rom = rom
        self.layout = layout or rom.layout
        self.frames, self.palettes = rom.read_tables()
        self._image = bytearray(self.layout.image_size)

    def __len__(self):
        return len(self.frames)

    def decode_frame(self, i):
        layout = self.layout
        offset = rom_offset(self.frames[i], layout.load_address)
        # True compressed size is only known from the header, so read the worst case
        data = self.rom.read_upto(offset, layout.safe_length)
        raw_palette = self.rom.read_at_address(self.palettes[i], layout.palette_size)
        return decode_frame(data, raw_palette, layout, self._image)

    def iter_frames(self, start=0, count=None, on_error=None):
        """Yield (index, frame) in ascending index order.

        Without `on_error` a bad frame raises. With it, a frame that cannot
        be read or decoded is passed to on_error(index, exc) and yielded as
        (index, None).
        """
        stop = len(self) if count is None else min(len(self), start + count)
        for i in range(start, stop):
            try:
                frame = self.decode_frame(i)
            except (DecodeError, RomReadError) as e:
                if on_error is None:
                    raise
                on_error(i, e)
                frame = None
            yield i, frame

    def read_audio(self):
        """Read the soundtrack and convert it to unsigned 8-bit PCM."""
        data = self.rom.read_at(self.layout.audio_offset, self.layout.audio_length)
        return flip_sign(data)

    def audio_format(self):
        layout = self.layout
        return AudioFormat(layout.audio_channels, layout.audio_bits, layout.audio_sample_rate)

    def extract(self, writer):
        """Feed every frame, then the audio, into `writer`."""
        for _, frame in self.iter_frames():
            writer.add_frame(frame)
        writer.add_audio(self.read_audio())


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Extract the iQue Player boot animation from a GBA ROM into an AVI.",
        usage="%(prog)s rom.gba out.avi [options]")
    parser.add_argument('paths', nargs='*', metavar='path', help="ROM image, then output AVI")
    parser.add_argument('--layout', help="JSON file overriding ROM offsets/geometry")
    parser.add_argument('--start', type=int, default=0, help="First frame to decode (default: 0)")
    parser.add_argument('--count', type=int, help="Number of frames to decode (default: all)")
    parser.add_argument('--frames-dir', help="Also save each frame as a PNG in this directory")
    parser.add_argument('--wav', help="Also save the audio as a WAV file")
    parser.add_argument('--skip-bad-frames', action='store_true',
                        help="Repeat the previous frame instead of aborting on a frame "
                             "that cannot be read or decoded")
    parser.add_argument('--info', action='store_true', help="Print the frame/palette tables and exit")
    return parser, parser.parse_args(argv)


def print_tables(extractor):
    load_address = extractor.layout.load_address
    print(f"{'#':>5} {'Frame':>10} {'Offset':>8} {'Palette':>10} {'Offset':>8}")
    for i, (frame, palette) in enumerate(zip(extractor.frames, extractor.palettes)):
        print(f"{i:>5} 0x{frame:08X} {frame - load_address:>8X} "
              f"0x{palette:08X} {palette - load_address:>8X}")


def report_bad_frame(i, e):
    print(f"Error decoding frame {i}: {e}")


def write_frames(extractor, writer, start, count, frames_dir=None, skip_bad_frames=False):
    layout = extractor.layout
    previous = bytes(layout.frame_size)
    on_error = report_bad_frame if skip_bad_frames else None

    done = 0
    for i, frame in extractor.iter_frames(start, count, on_error):
        if frame is None:
            frame = previous

        writer.add_frame(frame)
        if frames_dir:
            frame_to_image(frame, layout.width, layout.height).save(
                os.path.join(frames_dir, f"frame_{i:04d}.png"))
        previous = frame

        done += 1
        if done % 100 == 0:
            print(f"Processed {done} frames...")
    print(f"Processed {done} video frames.")


def main(argv=None):
    parser, args = parse_args(argv)

    if len(args.paths) != 2 and not (args.info and len(args.paths) == 1):
        parser.print_usage()
        return 0

    rom_path = args.paths[0]
    try:
        layout = RomLayout.from_json(args.layout) if args.layout else DEFAULT_LAYOUT
    except (OSError, ValueError) as e:
        print(f"Error loading layout {args.layout}: {e}")
        return 1

    if not 0 <= args.start < layout.num_frames:
        parser.error(f"--start must be between 0 and {layout.num_frames - 1}")
    if args.count is not None and args.count < 1:
        parser.error("--count must be at least 1")

    print(f"Opening ROM: {rom_path}")
    try:
        rom = RomReader(rom_path, layout)
    except RomReadError as e:
        print(f"Error opening ROM: {e}")
        return 1

    with rom:
        try:
            extractor = FmvExtractor(rom, layout)
        except IqueError as e:
            print(f"Error: {e}")
            return 1
        print(f"Found {len(extractor)} frames.")

        if args.info:
            print_tables(extractor)
            return 0

        if args.frames_dir:
            try:
                os.makedirs(args.frames_dir, exist_ok=True)
            except OSError as e:
                print(f"Error creating {args.frames_dir}: {e}")
                return 1

        try:
            writer = AviWriter(args.paths[1], layout.width, layout.height, FOURCC_RGB24,
                               layout.frame_rate, extractor.audio_format())
        except MuxError as e:
            print(f"Error opening AVI: {e}")
            return 1

        try:
            with writer:
                write_frames(extractor, writer, args.start, args.count,
                             args.frames_dir, args.skip_bad_frames)

                print("Writing audio...")
                audio = extractor.read_audio()
                writer.add_audio(audio)
        except (IqueError, OSError) as e:
            # OSError here comes from saving PNGs
            print(f"Error: {e}")
            return 1

        if args.wav:
            try:
                write_wav(audio, args.wav, layout.audio_sample_rate, layout.audio_bits,
                          layout.audio_channels)
            except OSError as e:
                print(f"Error: {e}")
                return 1
            print(f"Saved Audio: {args.wav}")

    print("Done!")
    return 0


if __name__ == '__main__':
    sys.exit(main())
