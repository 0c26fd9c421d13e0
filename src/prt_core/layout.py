"""Channel layout: how named, typed fields are packed into one particle record."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator

import numpy as np

from .errors import (
    ChannelIndexError,
    ChannelNotFoundError,
    DuplicateChannelError,
    LayoutFrozenError,
)
from .types import DataType, coerce_type


@dataclass(frozen=True)
class Channel:
    name: str
    type: DataType
    arity: int
    offset: int

    @property
    def nbytes(self) -> int:
        return self.arity * self.type.size

    @property
    def end(self) -> int:
        return self.offset + self.nbytes


class ChannelLayout:
    """Ordered set of channels plus the cumulative record size.

    Layouts are built by the writer's ``add_channel`` builder or rebuilt from a
    file header by the reader. Offsets are taken as given; the layout does not
    repack them. Once a stream starts record I/O it freezes the layout, and any
    later ``add_channel`` raises ``LayoutFrozenError`` until ``clear()``.
    """

    def __init__(self) -> None:
        self._channels: dict[str, Channel] = {}
        self._order: list[str] = []
        self._size = 0
        self._frozen = False

    def add_channel(self, name: str, type: DataType | str | int, arity: int, offset: int) -> Channel:
        if self._frozen:
            raise LayoutFrozenError(f"Cannot add channel {name!r}: layout is in use by an open stream")
        if name in self._channels:
            raise DuplicateChannelError(f'Duplicate channel "{name}" detected')
        arity = int(arity)
        offset = int(offset)
        if arity < 1:
            raise ValueError(f"Channel {name!r} arity must be >= 1, got {arity}")
        if offset < 0:
            raise ValueError(f"Channel {name!r} offset must be >= 0, got {offset}")

        ch = Channel(name, coerce_type(type), arity, offset)
        self._channels[name] = ch
        self._order.append(name)
        self._size += ch.nbytes
        return ch

    def has_channel(self, name: str) -> bool:
        return name in self._channels

    def get_channel(self, name: str) -> Channel:
        try:
            return self._channels[name]
        except KeyError:
            raise ChannelNotFoundError(f'There is no channel named "{name}"') from None

    def get_channel_name(self, index: int) -> str:
        if index < 0 or index >= len(self._order):
            raise ChannelIndexError(
                f"Channel index {index} out of range for layout with {len(self._order)} channels"
            )
        return self._order[index]

    def num_channels(self) -> int:
        return len(self._order)

    def channel_names(self) -> list[str]:
        return list(self._order)

    def size(self) -> int:
        return self._size

    def clear(self) -> None:
        self._channels.clear()
        self._order.clear()
        self._size = 0
        self._frozen = False

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def dtype(self) -> np.dtype:
        """Structured numpy dtype with one field per channel at its record offset."""
        names, formats, offsets = [], [], []
        for ch in self:
            names.append(ch.name)
            formats.append(ch.type.dtype if ch.arity == 1 else (ch.type.dtype, (ch.arity,)))
            offsets.append(ch.offset)
        return np.dtype({"names": names, "formats": formats, "offsets": offsets, "itemsize": self._size})

    def __iter__(self) -> Iterator[Channel]:
        for name in self._order:
            yield self._channels[name]

    def __len__(self) -> int:
        return len(self._order)

    def __contains__(self, name: object) -> bool:
        return name in self._channels

    def __repr__(self) -> str:
        chans = ", ".join(f"{c.name}:{c.type.name.lower()}[{c.arity}]@{c.offset}" for c in self)
        return f"ChannelLayout({chans}; size={self._size})"
