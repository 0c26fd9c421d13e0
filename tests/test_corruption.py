import struct
import subprocess
import sys
import zlib
from pathlib import Path

import numpy as np
import pytest

from prt_core import ChannelLayout, CorruptStreamError, DataType, EndOfStream, FormatError
from prt_io import PRTReader, PRTWriter
from prt_io.header import patch_particle_count, write_header

REPO = Path(__file__).resolve().parents[1]


def write_file(path, count, seed=3):
    w = PRTWriter()
    w.add_channel("Position", DataType.FLOAT32, 3)
    w.add_channel("Density", DataType.FLOAT32, 1)
    rng = np.random.default_rng(seed)
    records = [rng.bytes(16) for _ in range(count)]
    with w.open(path):
        for rec in records:
            w.write_record(rec)
    return records


def set_count(path, count):
    with open(path, "r+b") as f:
        patch_particle_count(f, 44, count)


@pytest.mark.parametrize("target", ["magic", "signature"])
def test_corrupt_identity_fails_before_layout(tmp_path, target):
    path = tmp_path / "ident.prt"
    write_file(path, 10)

    r = subprocess.run(
        [sys.executable, "scripts/corrupt_one_byte.py", str(path), target],
        cwd=REPO, capture_output=True, text=True,
    )
    assert r.returncode == 0, r.stderr + r.stdout

    reader = PRTReader()
    with pytest.raises(FormatError, match=target):
        reader.open(path)
    assert not reader.is_open
    assert reader.layout.num_channels() == 0


def test_truncated_payload(tmp_path):
    path = tmp_path / "trunc.prt"
    write_file(path, 200)
    data = path.read_bytes()
    header_len = 52 + 4 + 8 + 2 * 44
    path.write_bytes(data[: header_len + (len(data) - header_len) // 2])

    r = PRTReader(path)
    with pytest.raises(CorruptStreamError):
        for _ in range(200):
            r.read_next_record()
    assert not r.is_open


def test_overstated_count(tmp_path):
    path = tmp_path / "over.prt"
    records = write_file(path, 10)
    set_count(path, 12)

    with PRTReader(path) as r:
        assert [r.read_next_record() for _ in range(10)] == records
        with pytest.raises(CorruptStreamError):
            r.read_next_record()


def test_understated_count(tmp_path):
    path = tmp_path / "under.prt"
    records = write_file(path, 10)
    set_count(path, 9)

    with PRTReader(path) as r:
        with pytest.warns(UserWarning, match="more particle data"):
            got = [r.read_next_record() for _ in range(9)]
        assert got == records[:9]
        with pytest.raises(EndOfStream):
            r.read_next_record()


def test_garbage_payload(tmp_path):
    path = tmp_path / "garbage.prt"
    layout = ChannelLayout()
    layout.add_channel("ID", DataType.INT64, 1, 0)
    with open(path, "wb") as f:
        off = write_header(f, layout)
        f.write(b"this is not a deflate stream at all")
        patch_particle_count(f, off, 1)

    with PRTReader(path) as r:
        with pytest.raises(CorruptStreamError):
            r.read_next_record()


def test_stream_ending_early(tmp_path):
    path = tmp_path / "short.prt"
    layout = ChannelLayout()
    layout.add_channel("ID", DataType.INT64, 1, 0)
    with open(path, "wb") as f:
        off = write_header(f, layout)
        f.write(zlib.compress(struct.pack("<2q", 1, 2)))
        patch_particle_count(f, off, 3)

    with PRTReader(path) as r:
        assert struct.unpack("<q", r.read_next_record()) == (1,)
        assert struct.unpack("<q", r.read_next_record()) == (2,)
        with pytest.raises(CorruptStreamError, match="2 of 3"):
            r.read_next_record()
