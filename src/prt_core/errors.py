"""Error kinds raised by the PRT codec."""


class PRTError(Exception):
    """Base class for every codec failure."""


class FormatError(PRTError):
    """Bad magic number, signature or malformed header."""


class VersionError(PRTError):
    """The file declares a format version this codec cannot read."""


class LayoutError(PRTError):
    pass


class DuplicateChannelError(LayoutError):
    pass


class ChannelNotFoundError(LayoutError, KeyError):
    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message.
        return str(self.args[0]) if self.args else ""


class ChannelIndexError(LayoutError, IndexError):
    pass


class ArityMismatchError(LayoutError):
    pass


class LayoutFrozenError(LayoutError):
    """The layout was mutated after record I/O started."""


class PRTIOError(PRTError, OSError):
    """Open, read, write or seek failure on the underlying file."""


class CompressionStreamError(PRTError):
    """zlib reported an internal fault. The stream cannot be resumed."""


class CorruptStreamError(PRTError):
    """The compressed payload ended or failed before the declared particle count."""


class EndOfStream(PRTError):
    """All declared particles have been read."""


class StreamStateError(PRTError):
    """Operation not valid in the stream's current open/closed state."""
