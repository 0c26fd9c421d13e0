"""Channel element types and their on-disk codes."""
from __future__ import annotations

from enum import IntEnum

import numpy as np

from .errors import FormatError


class DataType(IntEnum):
    INT16 = 0
    INT32 = 1
    INT64 = 2
    FLOAT16 = 3
    FLOAT32 = 4
    FLOAT64 = 5
    UINT16 = 6
    UINT32 = 7
    UINT64 = 8

    @property
    def size(self) -> int:
        return _SIZES[self]

    @property
    def dtype(self) -> np.dtype:
        """Little-endian numpy dtype for one element."""
        return np.dtype(_DTYPES[self])

    @classmethod
    def from_code(cls, code: int) -> "DataType":
        try:
            return cls(code)
        except ValueError:
            raise FormatError(f"Unknown channel data type code {code}") from None

    @classmethod
    def from_name(cls, name: str) -> "DataType":
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Unknown channel data type {name!r}") from None

    @classmethod
    def from_dtype(cls, dtype) -> "DataType":
        dt = np.dtype(dtype)
        for t, s in _DTYPES.items():
            if np.dtype(s).kind == dt.kind and np.dtype(s).itemsize == dt.itemsize:
                return t
        raise ValueError(f"No channel data type for numpy dtype {dt}")


_SIZES = {
    DataType.INT16: 2,
    DataType.INT32: 4,
    DataType.INT64: 8,
    DataType.FLOAT16: 2,
    DataType.FLOAT32: 4,
    DataType.FLOAT64: 8,
    DataType.UINT16: 2,
    DataType.UINT32: 4,
    DataType.UINT64: 8,
}

_DTYPES = {
    DataType.INT16: "<i2",
    DataType.INT32: "<i4",
    DataType.INT64: "<i8",
    DataType.FLOAT16: "<f2",
    DataType.FLOAT32: "<f4",
    DataType.FLOAT64: "<f8",
    DataType.UINT16: "<u2",
    DataType.UINT32: "<u4",
    DataType.UINT64: "<u8",
}


def coerce_type(value) -> DataType:
    """Accept a DataType, its name or its integer code."""
    if isinstance(value, DataType):
        return value
    if isinstance(value, str):
        return DataType.from_name(value)
    return DataType(int(value))
