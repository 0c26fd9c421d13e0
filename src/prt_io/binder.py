"""Bind layout channels to caller-owned numpy arrays."""
from __future__ import annotations

import numpy as np

from prt_core.errors import ArityMismatchError
from prt_core.layout import Channel, ChannelLayout


class ChannelBinder:
    """Copies bound channels between a record buffer and caller arrays in one pass.

    Targets may have any numeric dtype; values are cast on copy. Channels with
    no binding are skipped.
    """

    def __init__(self, layout: ChannelLayout):
        self.layout = layout
        self._bindings: dict[str, tuple[Channel, np.ndarray]] = {}

    def bind(self, channel_name: str, target: np.ndarray, expected_arity: int) -> None:
        ch = self.layout.get_channel(channel_name)
        if expected_arity != ch.arity:
            raise ArityMismatchError(
                f"Channel {channel_name!r} has arity {ch.arity}, binding expected {expected_arity}"
            )
        if not isinstance(target, np.ndarray):
            raise TypeError(f"Binding target for {channel_name!r} must be a numpy array")
        if target.size < ch.arity:
            raise ArityMismatchError(
                f"Target for {channel_name!r} holds {target.size} elements, channel needs {ch.arity}"
            )
        if not target.flags.writeable:
            raise ValueError(f"Target for {channel_name!r} is read-only")
        self._bindings[channel_name] = (ch, target)

    def unbind(self, channel_name: str) -> None:
        self._bindings.pop(channel_name, None)

    def clear(self) -> None:
        self._bindings.clear()

    @property
    def bound(self) -> list[str]:
        return list(self._bindings)

    def unpack(self, record: bytes) -> None:
        """Record buffer -> bound targets."""
        for ch, target in self._bindings.values():
            values = np.frombuffer(record, dtype=ch.type.dtype, count=ch.arity, offset=ch.offset)
            target.flat[: ch.arity] = values

    def pack(self, record: bytearray) -> None:
        """Bound targets -> record buffer."""
        for ch, target in self._bindings.values():
            view = np.frombuffer(record, dtype=ch.type.dtype, count=ch.arity, offset=ch.offset)
            view[:] = target.flat[: ch.arity]
