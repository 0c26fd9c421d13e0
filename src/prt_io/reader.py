"""Streaming PRT reader."""
from __future__ import annotations

import logging
import os
import zlib
from pathlib import Path
from typing import BinaryIO, Iterator
from warnings import warn

import numpy as np

from prt_core.errors import (
    CorruptStreamError,
    EndOfStream,
    FormatError,
    PRTIOError,
    StreamStateError,
)
from prt_core.layout import ChannelLayout
from prt_core.protocol import DEFAULT_BUFFER_SIZE

from .binder import ChannelBinder
from .header import PRTHeader, read_header

logger = logging.getLogger(__name__)


class PRTReader:
    """Read particles back from a PRT file, one decompressed record at a time.

    The stream is strict about its declared particle count: reading past it
    raises ``EndOfStream``, and a deflate payload that runs out (or fails)
    before the count is reached raises ``CorruptStreamError``.
    """

    def __init__(self, source: str | os.PathLike | BinaryIO | None = None, buffer_size: int = DEFAULT_BUFFER_SIZE):
        if buffer_size <= 0:
            raise ValueError(f"buffer_size must be positive, got {buffer_size}")
        self.buffer_size = int(buffer_size)
        self.layout = ChannelLayout()
        self.header: PRTHeader | None = None

        self._source: BinaryIO | None = None
        self._owns_source = False
        self._path = ""
        self._decompressor = None
        self._pending: bytearray | None = None
        self._read_count = 0
        self._binder: ChannelBinder | None = None

        if source is not None:
            self.open(source)

    @property
    def is_open(self) -> bool:
        return self._source is not None

    def open(self, source: str | os.PathLike | BinaryIO) -> "PRTReader":
        if self.is_open:
            raise StreamStateError(f"Reader is already open on {self._path!r}")

        if isinstance(source, (str, os.PathLike)):
            path = Path(source)
            try:
                f = open(path, "rb")
            except OSError as e:
                raise PRTIOError(f'Failed to open file "{path}" for reading: {e}') from e
            owns = True
            self._path = str(path)
        else:
            f = source
            owns = False
            self._path = getattr(source, "name", "<stream>")

        self._source = f
        self._owns_source = owns
        try:
            header = read_header(f)
            if header.particle_count < 0:
                raise FormatError(f'"{self._path}" was never finalized (particle count is unset)')
        except BaseException:
            self._release()
            raise

        self.header = header
        self.layout = header.layout
        self.layout.freeze()
        self._decompressor = zlib.decompressobj()
        self._pending = bytearray()
        self._read_count = 0
        logger.debug("Opened %s: %d particles, channels %s",
                     self._path, header.particle_count, self.layout.channel_names())
        return self

    def close(self) -> None:
        if not self.is_open:
            return
        logger.debug("Closing %s after %d of %d particles",
                     self._path, self._read_count, self.particle_count)
        self._release()

    def _release(self) -> None:
        src, owns = self._source, self._owns_source
        self._source = None
        self._owns_source = False
        self._decompressor = None
        self._pending = None
        self._binder = None
        self.layout.clear()
        if owns and src is not None:
            try:
                src.close()
            except OSError as e:
                raise PRTIOError(f"Failed to close PRT input: {e}") from e

    def __enter__(self) -> "PRTReader":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __del__(self):
        if getattr(self, "_source", None) is not None:
            self.close()

    @property
    def particle_count(self) -> int:
        return self.header.particle_count if self.header is not None else 0

    @property
    def version(self) -> int:
        return self.header.version if self.header is not None else 0

    @property
    def remaining(self) -> int:
        return self.particle_count - self._read_count

    @property
    def channels(self) -> list[str]:
        return self.layout.channel_names()

    def has_channel(self, name: str) -> bool:
        return self.layout.has_channel(name)

    def bind(self, channel_name: str, target: np.ndarray, arity: int) -> None:
        self._require_open()
        if self._binder is None:
            self._binder = ChannelBinder(self.layout)
        self._binder.bind(channel_name, target, arity)

    def read_next_record(self) -> bytes:
        """Return the next raw record, ``layout.size()`` bytes long."""
        self._require_open()
        if self._read_count >= self.particle_count:
            raise EndOfStream(f"All {self.particle_count} particles of {self._path!r} have been read")
        size = self.layout.size()
        self._fill(size)
        record = bytes(self._pending[:size])
        del self._pending[:size]
        self._read_count += 1
        if self._read_count == self.particle_count:
            self._check_trailing()
        return record

    def read_next_particle(self) -> bool:
        """Read one record into the bound arrays. Returns False at end of stream."""
        try:
            record = self.read_next_record()
        except EndOfStream:
            return False
        if self._binder is not None:
            self._binder.unpack(record)
        return True

    def read_array(self, count: int | None = None) -> np.ndarray:
        """Read up to ``count`` remaining records (all by default) into a structured array."""
        self._require_open()
        n = self.remaining if count is None else max(0, min(int(count), self.remaining))
        dtype = self.layout.dtype()
        size = self.layout.size()
        if n == 0 or size == 0:
            self._read_count += n
            return np.zeros(n, dtype=dtype)
        self._fill(n * size)
        block = bytes(self._pending[: n * size])
        del self._pending[: n * size]
        self._read_count += n
        if self._read_count == self.particle_count:
            self._check_trailing()
        return np.frombuffer(block, dtype=dtype, count=n).copy()

    def __iter__(self) -> Iterator[bytes]:
        while self.is_open and self.remaining > 0:
            yield self.read_next_record()

    def _require_open(self) -> None:
        if not self.is_open:
            raise StreamStateError("Reader is not open")

    def _fill(self, need: int) -> None:
        """Inflate until at least ``need`` bytes are pending."""
        d = self._decompressor
        while len(self._pending) < need:
            if d.eof:
                self._corrupt("deflate stream ended")
            data = d.unconsumed_tail
            if not data:
                try:
                    data = self._source.read(self.buffer_size)
                except OSError as e:
                    path = self._path
                    self._release()
                    raise PRTIOError(f'Failed reading compressed particles from "{path}": {e}') from e
                if not data:
                    self._corrupt("file ended")
            try:
                self._pending += d.decompress(data, self.buffer_size)
            except zlib.error as e:
                self._corrupt(f"inflate failed ({e})")

    def _corrupt(self, why: str) -> None:
        msg = f'{why} in "{self._path}" after {self._read_count} of {self.particle_count} particles'
        self._release()
        raise CorruptStreamError(msg)

    def _check_trailing(self) -> None:
        d = self._decompressor
        # The tail may only hold the final block and checksum.
        if d.unconsumed_tail and not self._pending:
            try:
                self._pending += d.decompress(d.unconsumed_tail, 1)
            except zlib.error as e:
                warn(f'"{self._path}" has a damaged deflate trailer: {e}')
                return
        if self._pending:
            warn(f'"{self._path}" holds more particle data than its declared count of {self.particle_count}')
