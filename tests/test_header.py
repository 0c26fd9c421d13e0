import io
import struct

import pytest

from prt_core import ChannelLayout, DataType, DuplicateChannelError, FormatError, VersionError
from prt_core.protocol import (
    CHANNEL_ENTRY_FMT,
    CHANNEL_ENTRY_LEN,
    CHANNEL_TABLE_FMT,
    MAX_CHANNEL_ENTRY_LEN,
    HEADER_FMT,
    HEADER_LEN,
    MAGIC_NUMBER,
    RESERVED_FMT,
    RESERVED_VALUE,
    SIGNATURE,
)
from prt_io.header import encode_channel_name, patch_particle_count, read_header, write_header


def make_layout() -> ChannelLayout:
    layout = ChannelLayout()
    layout.add_channel("Position", DataType.FLOAT32, 3, 0)
    layout.add_channel("Density", DataType.FLOAT32, 1, 12)
    return layout


def raw_header(entries, count=0, entry_pad=0, header_pad=b"", version=1) -> bytes:
    b = struct.pack(HEADER_FMT, MAGIC_NUMBER, HEADER_LEN + len(header_pad), SIGNATURE, version, count)
    b += header_pad
    b += struct.pack(RESERVED_FMT, RESERVED_VALUE)
    b += struct.pack(CHANNEL_TABLE_FMT, len(entries), CHANNEL_ENTRY_LEN + entry_pad)
    for name, arity, dtype, offset in entries:
        b += struct.pack(CHANNEL_ENTRY_FMT, name.encode(), arity, int(dtype), offset) + b"\x00" * entry_pad
    return b


def test_on_disk_layout():
    buf = io.BytesIO()
    off = write_header(buf, make_layout())
    data = buf.getvalue()

    assert off == 44
    assert data[:4] == b"\xc0PRT"
    assert struct.unpack_from("<I", data, 4)[0] == HEADER_LEN == 52
    assert data[8:40].rstrip(b"\x00") == b"Extensible Particle Format"
    assert struct.unpack_from("<i", data, 40)[0] == 1
    assert data[44:52] == b"\xff" * 8
    assert struct.unpack_from("<iii", data, 52) == (4, 2, 44)
    assert len(data) == 52 + 4 + 8 + 2 * 44

    name, arity, type_code, offset = struct.unpack_from(CHANNEL_ENTRY_FMT, data, 64 + 44)
    assert name.rstrip(b"\x00") == b"Density"
    assert (arity, type_code, offset) == (1, int(DataType.FLOAT32), 12)


def test_round_trip_with_patched_count_and_prefix():
    buf = io.BytesIO()
    buf.write(b"xx")
    off = write_header(buf, make_layout())
    assert off == 46
    patch_particle_count(buf, off, 7)

    buf.seek(2)
    header = read_header(buf)
    assert header.version == 1
    assert header.particle_count == 7
    assert header.count_offset == 46
    assert header.data_offset == len(buf.getvalue())
    assert header.layout.channel_names() == ["Position", "Density"]
    assert header.layout.get_channel("Density").offset == 12
    assert header.layout.size() == 16


def test_unfinalized_count_is_reported_as_is():
    buf = io.BytesIO()
    write_header(buf, make_layout())
    buf.seek(0)
    assert read_header(buf).particle_count == -1


def test_long_names_truncated():
    layout = ChannelLayout()
    layout.add_channel("N" * 40, DataType.INT32, 1, 0)
    buf = io.BytesIO()
    write_header(buf, layout)
    buf.seek(0)
    assert read_header(buf).layout.channel_names() == ["N" * 32]


def test_bad_magic_and_signature():
    good = raw_header([("Position", 3, DataType.FLOAT32, 0)])
    bad_magic = bytearray(good)
    bad_magic[1] ^= 0xFF
    with pytest.raises(FormatError, match="magic"):
        read_header(io.BytesIO(bytes(bad_magic)))

    bad_sig = bytearray(good)
    bad_sig[10] ^= 0x01
    with pytest.raises(FormatError, match="signature"):
        read_header(io.BytesIO(bytes(bad_sig)))


def test_unsupported_version():
    with pytest.raises(VersionError):
        read_header(io.BytesIO(raw_header([], version=2)))


def test_truncated_header():
    data = raw_header([("Position", 3, DataType.FLOAT32, 0)])
    with pytest.raises(FormatError, match="Truncated"):
        read_header(io.BytesIO(data[:30]))
    with pytest.raises(FormatError, match="Truncated"):
        read_header(io.BytesIO(data[:-5]))


def test_newer_revisions_skip_trailing_fields():
    data = raw_header(
        [("Position", 3, DataType.FLOAT32, 0), ("ID", 1, DataType.INT64, 12)],
        count=5,
        entry_pad=4,
        header_pad=b"\x01\x02\x03\x04",
    )
    buf = io.BytesIO(data)
    with pytest.warns(UserWarning):
        header = read_header(buf)
    assert header.particle_count == 5
    assert header.layout.channel_names() == ["Position", "ID"]
    assert header.layout.get_channel("ID").type is DataType.INT64
    assert header.data_offset == len(data)
    assert buf.tell() == len(data)


def test_undersized_entries_rejected():
    data = bytearray(raw_header([("Position", 3, DataType.FLOAT32, 0)]))
    struct.pack_into("<i", data, 60, 40)
    with pytest.raises(FormatError):
        read_header(io.BytesIO(bytes(data)))


def test_invalid_tables_rejected():
    with pytest.raises(FormatError, match="overlaps"):
        read_header(io.BytesIO(raw_header([("A", 1, DataType.FLOAT32, 0), ("B", 1, DataType.FLOAT32, 2)])))
    with pytest.raises(FormatError, match="past"):
        read_header(io.BytesIO(raw_header([("A", 1, DataType.FLOAT32, 8)])))
    with pytest.raises(FormatError, match="type code"):
        read_header(io.BytesIO(raw_header([("A", 1, 77, 0)])))
    with pytest.raises(DuplicateChannelError):
        read_header(io.BytesIO(raw_header([("A", 1, DataType.FLOAT32, 0), ("A", 1, DataType.FLOAT32, 4)])))


def test_truncation_keeps_utf8_characters_whole():
    name = "a" + "é" * 16  # 33 bytes, the 32-byte cut falls inside a character
    assert encode_channel_name(name) == ("a" + "é" * 15).encode("utf-8")

    layout = ChannelLayout()
    layout.add_channel(name, DataType.FLOAT32, 1, 0)
    buf = io.BytesIO()
    write_header(buf, layout)
    buf.seek(0)
    assert read_header(buf).layout.channel_names() == ["a" + "é" * 15]


def test_oversized_entries_rejected():
    data = bytearray(raw_header([("Position", 3, DataType.FLOAT32, 0)]))
    struct.pack_into("<i", data, 60, MAX_CHANNEL_ENTRY_LEN + 1)
    with pytest.raises(FormatError, match="entry size"):
        read_header(io.BytesIO(bytes(data)))
