"""Streaming PRT writer.

Records are deflated on the fly and written in fixed-size chunks. The particle
count is unknown until the stream closes, so the header carries a -1
placeholder whose file offset is recorded and patched on close.
"""
from __future__ import annotations

import logging
import os
import zlib
from pathlib import Path
from typing import BinaryIO
from warnings import warn

import numpy as np

from prt_core.errors import (
    CompressionStreamError,
    DuplicateChannelError,
    LayoutError,
    LayoutFrozenError,
    PRTIOError,
    StreamStateError,
)
from prt_core.layout import Channel, ChannelLayout
from prt_core.protocol import CHANNEL_NAME_LEN, DEFAULT_BUFFER_SIZE, DEFAULT_COMPRESSION_LEVEL
from prt_core.types import DataType

from .binder import ChannelBinder
from .header import encode_channel_name, patch_particle_count, validate_layout, write_header

logger = logging.getLogger(__name__)


class PRTWriter:
    """Write particles to a PRT file.

    Define the layout with ``add_channel`` first, then ``open``; the layout is
    frozen for as long as the stream stays open::

        w = PRTWriter()
        w.add_channel("Position", "float32", 3)
        w.add_channel("Density", "float32", 1)
        with w.open("out.prt"):
            w.write_record(record_bytes)

    ``layout`` is exposed for inspection. Build it through ``add_channel`` only;
    ``open`` re-validates it and refuses overlapping or colliding channels.
    """

    def __init__(
        self,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        compression_level: int = DEFAULT_COMPRESSION_LEVEL,
    ):
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        self.buffer_size = int(buffer_size)
        self.compression_level = compression_level
        self.layout = ChannelLayout()

        self._sink: BinaryIO | None = None
        self._owns_sink = False
        self._path = ""
        self._compressor = None
        self._buffer: bytearray | None = None
        self._count_offset = 0
        self._particle_count = 0
        self._binder: ChannelBinder | None = None
        self._record: bytearray | None = None

    def add_channel(self, name: str, type: DataType | str | int, arity: int) -> Channel:
        """Append a channel packed directly after the previous one."""
        if self.is_open:
            raise LayoutFrozenError(f"Cannot add channel {name!r} while writing {self._path!r}")
        key = encode_channel_name(name)
        for other in self.layout.channel_names():
            if other != name and encode_channel_name(other) == key:
                raise DuplicateChannelError(
                    f"Channel {name!r} collides with {other!r} once truncated to {CHANNEL_NAME_LEN} bytes"
                )
        if len(name.encode("utf-8")) > CHANNEL_NAME_LEN:
            warn(f"Channel name {name!r} exceeds {CHANNEL_NAME_LEN} bytes and will be truncated on disk")
        return self.layout.add_channel(name, type, arity, self.layout.size())

    def bind(self, channel_name: str, target: np.ndarray, arity: int) -> None:
        if self._binder is None:
            self._binder = ChannelBinder(self.layout)
        self._binder.bind(channel_name, target, arity)

    @property
    def is_open(self) -> bool:
        return self._sink is not None

    @property
    def particle_count(self) -> int:
        return self._particle_count

    def open(self, target: str | os.PathLike | BinaryIO) -> "PRTWriter":
        if self.is_open:
            raise StreamStateError(f"Writer is already open on {self._path!r}")
        validate_layout(self.layout, error=LayoutError)

        if isinstance(target, (str, os.PathLike)):
            path = Path(target)
            try:
                sink = open(path, "wb")
            except OSError as e:
                raise PRTIOError(f'Failed to open file "{path}" for writing: {e}') from e
            owns = True
            self._path = str(path)
        else:
            sink = target
            owns = False
            self._path = getattr(target, "name", "<stream>")
            seekable = getattr(sink, "seekable", None)
            if seekable is None or not seekable():
                raise PRTIOError(f"PRT output {self._path!r} must be seekable to patch the particle count")

        self._sink = sink
        self._owns_sink = owns
        try:
            self._count_offset = write_header(sink, self.layout)
            self._compressor = zlib.compressobj(self.compression_level)
        except zlib.error as e:
            self._release()
            raise CompressionStreamError(f'Unable to initialize a deflate stream for "{self._path}": {e}') from e
        except BaseException:
            self._release()
            raise

        self.layout.freeze()
        self._buffer = bytearray()
        self._record = bytearray(self.layout.size())
        self._particle_count = 0
        logger.debug("Opened %s for writing (%d channels, %d-byte records)",
                     self._path, self.layout.num_channels(), self.layout.size())
        return self

    def close(self) -> None:
        """Finish the deflate stream, patch the particle count and release the file.

        Calling close on a closed writer does nothing.
        """
        if not self.is_open:
            return
        try:
            if self._compressor is not None:
                try:
                    tail = self._compressor.flush(zlib.Z_FINISH)
                except zlib.error as e:
                    raise CompressionStreamError(f'Failed to finish deflate stream for "{self._path}": {e}') from e
                self._buffer += tail
                self._flush(everything=True)
                self._compressor = None
            patch_particle_count(self._sink, self._count_offset, self._particle_count)
            try:
                self._sink.flush()
            except OSError as e:
                raise PRTIOError(f'Failed to flush "{self._path}": {e}') from e
            logger.debug("Closed %s with %d particles", self._path, self._particle_count)
        finally:
            self._release()

    def abort(self) -> None:
        """Drop the stream without finalizing. The count stays at the -1 placeholder."""
        if self.is_open:
            logger.debug("Aborting %s after %d particles", self._path, self._particle_count)
            self._release()

    def _release(self) -> None:
        sink, owns = self._sink, self._owns_sink
        self._sink = None
        self._owns_sink = False
        self._compressor = None
        self._buffer = None
        self._record = None
        self._binder = None
        self._count_offset = 0
        self._path = ""
        self.layout.clear()
        if owns and sink is not None:
            try:
                sink.close()
            except OSError as e:
                raise PRTIOError(f"Failed to close PRT output: {e}") from e

    def __enter__(self) -> "PRTWriter":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def __del__(self):
        if getattr(self, "_sink", None) is not None:
            self.close()

    def write_record(self, data: bytes | bytearray | memoryview) -> None:
        """Compress one particle record of exactly ``layout.size()`` bytes."""
        self._require_open()
        size = self.layout.size()
        nbytes = memoryview(data).nbytes
        if nbytes != size:
            raise ValueError(f"Record is {nbytes} bytes, layout requires {size}")
        self._compress(data)
        self._particle_count += 1

    def write_next_particle(self) -> None:
        """Assemble a record from the bound arrays and write it.

        Unbound channels keep whatever the previous particle held (zero at first).
        """
        self._require_open()
        if self._binder is not None:
            self._binder.pack(self._record)
        self.write_record(self._record)

    def write_array(self, records: np.ndarray) -> int:
        """Write every row of a structured array (matched by channel name) or an (n, size) uint8 array.

        A structured array must carry a field for every channel in the layout.
        """
        self._require_open()
        records = np.asarray(records)
        size = self.layout.size()
        if records.dtype.names and records.ndim == 1:
            missing = [n for n in self.layout.channel_names() if n not in records.dtype.names]
            if missing:
                raise ValueError(f"Structured array lacks channel fields: {', '.join(missing)}")
            block = np.zeros(len(records), dtype=self.layout.dtype())
            for name in self.layout.channel_names():
                block[name] = records[name]
        elif records.dtype == np.uint8 and records.ndim == 2 and records.shape[1] == size:
            block = records
        else:
            raise ValueError(f"Cannot write array of dtype {records.dtype} and shape {records.shape}")

        n = len(block)
        if n:
            self._compress(np.ascontiguousarray(block).tobytes())
            self._particle_count += n
        return n

    def _require_open(self) -> None:
        if not self.is_open:
            raise StreamStateError("Writer is not open")

    def _compress(self, data) -> None:
        try:
            out = self._compressor.compress(data)
        except zlib.error as e:
            path = self._path
            self.abort()
            raise CompressionStreamError(f'deflate() call writing to "{path}" failed: {e}') from e
        if out:
            self._buffer += out
            self._flush(everything=False)

    def _flush(self, everything: bool) -> None:
        """Write full buffers to disk; with ``everything`` also the partial tail."""
        buf = self._buffer
        try:
            while len(buf) >= self.buffer_size:
                self._sink.write(bytes(buf[: self.buffer_size]))
                del buf[: self.buffer_size]
            if everything and buf:
                self._sink.write(bytes(buf))
                buf.clear()
        except OSError as e:
            path = self._path
            self.abort()
            raise PRTIOError(f'Failed writing compressed particles to "{path}": {e}') from e
