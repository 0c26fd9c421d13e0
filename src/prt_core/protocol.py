"""PRT protocol constants.

Single source of truth for on-disk magic values and header layouts.
Keep this file stable. Writer and reader must remain synchronized.
"""

import struct

# File identity. Little-endian bytes are b"\xc0PRT".
MAGIC_NUMBER = 0x545250C0
SIGNATURE = b"Extensible Particle Format"
SIGNATURE_LEN = 32

VERSION = 1
SUPPORTED_VERSIONS = (1,)

# Header: [Magic(4) | HeaderLen(4) | Signature(32) | Version(4) | Count(8)] = 52 bytes
HEADER_FMT = "<II32siq"
HEADER_LEN = struct.calcsize(HEADER_FMT)
COUNT_OFFSET = 4 + 4 + SIGNATURE_LEN + 4
COUNT_FMT = "<q"
COUNT_PLACEHOLDER = -1

# Format extension marker written after the fixed header.
RESERVED_FMT = "<i"
RESERVED_VALUE = 4

# Channel table: [Count(4) | EntrySize(4)] then Count x [Name(32) | Arity(4) | Type(4) | Offset(4)]
CHANNEL_TABLE_FMT = "<ii"
CHANNEL_NAME_LEN = 32
CHANNEL_ENTRY_FMT = "<32siii"
CHANNEL_ENTRY_LEN = struct.calcsize(CHANNEL_ENTRY_FMT)

# Stream defaults
DEFAULT_BUFFER_SIZE = 1 << 19  # 512 KiB
DEFAULT_COMPRESSION_LEVEL = -1  # zlib.Z_DEFAULT_COMPRESSION

# Safety bounds for headers read from disk
MAX_CHANNELS = 4096
MAX_HEADER_LEN = 64 * 1024
MAX_CHANNEL_ENTRY_LEN = 4096
