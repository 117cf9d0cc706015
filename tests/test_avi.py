import struct

import pytest

from iquetools.avi import AudioFormat, AviWriter
from iquetools.errors import MuxError


def read_chunks(data, start, end):
    """Return [(id, payload, list_type)] for the chunks in data[start:end]."""
    chunks = []
    pos = start
    while pos < end:
        chunk_id = data[pos:pos+4]
        size = struct.unpack_from('<I', data, pos + 4)[0]
        payload = data[pos+8:pos+8+size]
        list_type = payload[:4] if chunk_id in (b'LIST', b'RIFF') else None
        chunks.append((chunk_id, payload, list_type, pos))
        pos += 8 + size + (size & 1)
    return chunks


def write_avi(path, frames, audio_blocks, width=4, height=2):
    with AviWriter(str(path), width, height, fps=15, audio=AudioFormat(1, 8, 9000)) as avi:
        for frame in frames:
            avi.add_frame(frame)
        for block in audio_blocks:
            avi.add_audio(block)
    return path.read_bytes()


def test_structure(tmp_path):
    frames = [bytes([i]) * 24 for i in range(3)]
    audio = bytes(range(101))
    data = write_avi(tmp_path / 'out.avi', frames, [audio])

    assert data[0:4] == b'RIFF'
    assert data[8:12] == b'AVI '
    assert struct.unpack_from('<I', data, 4)[0] == len(data) - 8

    top = read_chunks(data, 12, len(data))
    assert [(c[0], c[2]) for c in top] == [
        (b'LIST', b'hdrl'), (b'LIST', b'movi'), (b'idx1', None)]

    hdrl = top[0][1]
    avih = read_chunks(hdrl, 4, len(hdrl))[0]
    assert avih[0] == b'avih'
    us_per_frame, _, _, flags, total_frames, _, streams = struct.unpack_from('<7I', avih[1])
    assert us_per_frame == 66666
    assert flags & 0x10
    assert total_frames == 3
    assert streams == 2

    strls = [c for c in read_chunks(hdrl, 4, len(hdrl)) if c[2] == b'strl']
    assert len(strls) == 2
    vid = read_chunks(strls[0][1], 4, len(strls[0][1]))
    aud = read_chunks(strls[1][1], 4, len(strls[1][1]))

    strh = vid[0][1]
    assert strh[0:4] == b'vids'
    assert struct.unpack_from('<I', strh, 24)[0] == 15  # rate
    assert struct.unpack_from('<I', strh, 32)[0] == 3   # length
    bih = vid[1][1]
    assert struct.unpack_from('<IiiHHI', bih) == (40, 4, 2, 1, 24, 0)

    strh = aud[0][1]
    assert strh[0:4] == b'auds'
    assert struct.unpack_from('<I', strh, 32)[0] == 101
    wfx = aud[1][1]
    assert struct.unpack('<HHIIHHH', wfx) == (1, 1, 9000, 9000, 1, 8, 0)

    movi = top[1]
    movi_chunks = read_chunks(data, movi[3] + 12, movi[3] + 8 + len(movi[1]))
    assert [c[0] for c in movi_chunks] == [b'00db'] * 3 + [b'01wb']
    assert [c[1] for c in movi_chunks] == frames + [audio]

    idx = top[2][1]
    assert len(idx) == 4 * 16
    movi_id_pos = movi[3] + 8
    for i, chunk in enumerate(movi_chunks):
        chunk_id, flags, offset, size = struct.unpack_from('<4sIII', idx, i * 16)
        assert chunk_id == chunk[0]
        assert flags == 0x10
        assert offset == chunk[3] - movi_id_pos
        assert size == len(chunk[1])


def test_video_only(tmp_path):
    path = tmp_path / 'video.avi'
    with AviWriter(str(path), 2, 2) as avi:
        avi.add_frame(bytes(12))
        with pytest.raises(MuxError):
            avi.add_audio(b'\x80')
    data = path.read_bytes()
    assert struct.unpack_from('<I', data, 4)[0] == len(data) - 8


def test_wrong_frame_size(tmp_path):
    with AviWriter(str(tmp_path / 'x.avi'), 2, 2) as avi:
        with pytest.raises(MuxError):
            avi.add_frame(bytes(11))


def test_use_after_close(tmp_path):
    avi = AviWriter(str(tmp_path / 'x.avi'), 2, 2)
    avi.close()
    avi.close()
    with pytest.raises(MuxError):
        avi.add_frame(bytes(12))


def test_unwritable_path(tmp_path):
    with pytest.raises(MuxError):
        AviWriter(str(tmp_path / 'missing' / 'x.avi'), 2, 2)
