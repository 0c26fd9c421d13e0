"""PRT file header codec.

The header is written uncompressed ahead of the deflate stream:

    [Magic | HeaderLen | Signature | Version | ParticleCount]   fixed block
    [Reserved]                                                 extension marker
    [ChannelCount | ChannelEntrySize]                          channel table
    ChannelCount x [Name | Arity | Type | Offset]

ParticleCount is written as -1 and patched by the writer on close.
"""
from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import BinaryIO
from warnings import warn

from prt_core.errors import DuplicateChannelError, FormatError, PRTError, PRTIOError, VersionError
from prt_core.layout import ChannelLayout
from prt_core.protocol import (
    CHANNEL_ENTRY_FMT,
    CHANNEL_ENTRY_LEN,
    CHANNEL_NAME_LEN,
    CHANNEL_TABLE_FMT,
    COUNT_FMT,
    COUNT_OFFSET,
    COUNT_PLACEHOLDER,
    HEADER_FMT,
    HEADER_LEN,
    MAGIC_NUMBER,
    MAX_CHANNELS,
    MAX_CHANNEL_ENTRY_LEN,
    MAX_HEADER_LEN,
    RESERVED_FMT,
    RESERVED_VALUE,
    SIGNATURE,
    SUPPORTED_VERSIONS,
    VERSION,
)
from prt_core.types import DataType


@dataclass
class PRTHeader:
    version: int
    particle_count: int
    layout: ChannelLayout
    count_offset: int
    data_offset: int


def encode_channel_name(name: str) -> bytes:
    """UTF-8 name, truncated on a character boundary to the fixed field width (struct pads with NUL)."""
    return name.encode("utf-8")[:CHANNEL_NAME_LEN].decode("utf-8", "ignore").encode("utf-8")


def write_header(sink: BinaryIO, layout: ChannelLayout) -> int:
    """Write the header for ``layout`` and return the absolute offset of the count field."""
    try:
        start = sink.tell()
        sink.write(struct.pack(HEADER_FMT, MAGIC_NUMBER, HEADER_LEN, SIGNATURE, VERSION, COUNT_PLACEHOLDER))
        sink.write(struct.pack(RESERVED_FMT, RESERVED_VALUE))
        sink.write(struct.pack(CHANNEL_TABLE_FMT, layout.num_channels(), CHANNEL_ENTRY_LEN))
        for ch in layout:
            sink.write(
                struct.pack(CHANNEL_ENTRY_FMT, encode_channel_name(ch.name), ch.arity, int(ch.type), ch.offset)
            )
    except OSError as e:
        raise PRTIOError(f"Failed to write PRT header: {e}") from e
    return start + COUNT_OFFSET


def patch_particle_count(sink: BinaryIO, count_offset: int, count: int) -> None:
    """Overwrite the count placeholder in place. The sink must be seekable."""
    try:
        end = sink.tell()
        sink.seek(count_offset)
        sink.write(struct.pack(COUNT_FMT, count))
        sink.seek(end)
    except OSError as e:
        raise PRTIOError(f"Failed to patch particle count at offset {count_offset}: {e}") from e


def _read_exact(source: BinaryIO, n: int, what: str) -> bytes:
    try:
        data = source.read(n)
    except OSError as e:
        raise PRTIOError(f"Failed to read {what}: {e}") from e
    if data is None or len(data) != n:
        raise FormatError(f"Truncated PRT header: expected {n} bytes of {what}, got {len(data or b'')}")
    return data


def _decode_name(raw: bytes) -> str:
    raw = raw.split(b"\x00", 1)[0]
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError:
        raise FormatError(f"Channel name {raw!r} is not valid UTF-8") from None


def read_header(source: BinaryIO) -> PRTHeader:
    """Parse a header and rebuild its layout.

    Magic and signature are checked before anything else. Header blocks and
    channel entries larger than this version knows are tolerated by skipping
    their trailing bytes.
    """
    try:
        start = source.tell()
    except OSError:
        start = 0

    fixed = _read_exact(source, HEADER_LEN, "fixed header")
    magic, header_len, signature, version, count = struct.unpack(HEADER_FMT, fixed)

    if magic != MAGIC_NUMBER:
        raise FormatError(f"Invalid PRT magic number 0x{magic:08x}")
    sig = signature.rstrip(b"\x00")
    if sig != SIGNATURE:
        raise FormatError(f"Invalid PRT signature {sig!r}")
    if version not in SUPPORTED_VERSIONS:
        raise VersionError(f"Unsupported PRT version {version} (supported: {SUPPORTED_VERSIONS})")

    if header_len < HEADER_LEN or header_len > MAX_HEADER_LEN:
        raise FormatError(f"Invalid header length {header_len}")
    if header_len > HEADER_LEN:
        warn(f"PRT header is {header_len} bytes, skipping {header_len - HEADER_LEN} unknown bytes")
        _read_exact(source, header_len - HEADER_LEN, "header extension")

    (reserved,) = struct.unpack(RESERVED_FMT, _read_exact(source, 4, "reserved field"))
    if reserved != RESERVED_VALUE:
        warn(f"Unexpected reserved header value {reserved}")

    channel_count, entry_size = struct.unpack(CHANNEL_TABLE_FMT, _read_exact(source, 8, "channel table"))
    if channel_count < 0 or channel_count > MAX_CHANNELS:
        raise FormatError(f"Invalid channel count {channel_count}")
    if entry_size < CHANNEL_ENTRY_LEN or entry_size > MAX_CHANNEL_ENTRY_LEN:
        raise FormatError(f"Invalid channel entry size {entry_size} (expected {CHANNEL_ENTRY_LEN}..{MAX_CHANNEL_ENTRY_LEN})")
    if entry_size > CHANNEL_ENTRY_LEN and channel_count:
        warn(f"Channel entries are {entry_size} bytes, skipping {entry_size - CHANNEL_ENTRY_LEN} unknown bytes each")

    layout = ChannelLayout()
    for i in range(channel_count):
        entry = _read_exact(source, entry_size, f"channel entry {i}")
        raw_name, arity, type_code, offset = struct.unpack_from(CHANNEL_ENTRY_FMT, entry)
        name = _decode_name(raw_name)
        if not name:
            raise FormatError(f"Channel entry {i} has an empty name")
        if arity < 1 or offset < 0:
            raise FormatError(f"Channel {name!r} has invalid arity {arity} or offset {offset}")
        layout.add_channel(name, DataType.from_code(type_code), arity, offset)

    validate_layout(layout)

    data_offset = start + header_len + 4 + 8 + channel_count * entry_size
    return PRTHeader(
        version=version,
        particle_count=count,
        layout=layout,
        count_offset=start + COUNT_OFFSET,
        data_offset=data_offset,
    )


def validate_layout(layout: ChannelLayout, error: type[PRTError] = FormatError) -> None:
    """Channels must fit inside the record, must not overlap and must keep distinct on-disk names."""
    seen: dict[bytes, str] = {}
    for ch in layout:
        key = encode_channel_name(ch.name)
        if key in seen:
            raise DuplicateChannelError(
                f"Channels {seen[key]!r} and {ch.name!r} share the on-disk name {key.decode('utf-8')!r}"
            )
        seen[key] = ch.name

    size = layout.size()
    prev = None
    for ch in sorted(layout, key=lambda c: c.offset):
        if ch.end > size:
            raise error(f"Channel {ch.name!r} extends past the {size}-byte record")
        if prev is not None and ch.offset < prev.end:
            raise error(f"Channel {ch.name!r} overlaps channel {prev.name!r}")
        prev = ch
