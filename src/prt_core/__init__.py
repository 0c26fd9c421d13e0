"""PRT Core - format constants, data types and channel layouts."""
from .errors import (
    ArityMismatchError,
    ChannelIndexError,
    ChannelNotFoundError,
    CompressionStreamError,
    CorruptStreamError,
    DuplicateChannelError,
    EndOfStream,
    FormatError,
    LayoutError,
    LayoutFrozenError,
    PRTError,
    PRTIOError,
    StreamStateError,
    VersionError,
)
from .layout import Channel, ChannelLayout
from .types import DataType

__all__ = [
    "ArityMismatchError",
    "Channel",
    "ChannelIndexError",
    "ChannelLayout",
    "ChannelNotFoundError",
    "CompressionStreamError",
    "CorruptStreamError",
    "DataType",
    "DuplicateChannelError",
    "EndOfStream",
    "FormatError",
    "LayoutError",
    "LayoutFrozenError",
    "PRTError",
    "PRTIOError",
    "StreamStateError",
    "VersionError",
]
