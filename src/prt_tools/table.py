"""PRT <-> table conversion (pandas / parquet).

Vector channels are flattened to one column per component, named
``Name[0]``, ``Name[1]``, ... Scalar channels keep their plain name.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from prt_core.layout import ChannelLayout
from prt_core.protocol import DEFAULT_BUFFER_SIZE, DEFAULT_COMPRESSION_LEVEL
from prt_core.types import DataType
from prt_io.reader import PRTReader
from prt_io.writer import PRTWriter

logger = logging.getLogger(__name__)

EXPORT_CHUNK = 65536  # particles per parquet row group
_COMPONENT_RE = re.compile(r"^(?P<name>.+)\[(?P<index>\d+)\]$")

_ARROW_TYPES = {
    DataType.INT16: pa.int16(),
    DataType.INT32: pa.int32(),
    DataType.INT64: pa.int64(),
    # Parquet has no portable half float; widen on export.
    DataType.FLOAT16: pa.float32(),
    DataType.FLOAT32: pa.float32(),
    DataType.FLOAT64: pa.float64(),
    DataType.UINT16: pa.uint16(),
    DataType.UINT32: pa.uint32(),
    DataType.UINT64: pa.uint64(),
}


def column_names(layout: ChannelLayout) -> list[str]:
    cols = []
    for ch in layout:
        if ch.arity == 1:
            cols.append(ch.name)
        else:
            cols.extend(f"{ch.name}[{i}]" for i in range(ch.arity))
    return cols


def arrow_schema(layout: ChannelLayout) -> pa.Schema:
    fields = []
    for ch in layout:
        t = _ARROW_TYPES[ch.type]
        if ch.arity == 1:
            fields.append((ch.name, t))
        else:
            fields.extend((f"{ch.name}[{i}]", t) for i in range(ch.arity))
    return pa.schema(fields)


def records_to_dataframe(records: np.ndarray, layout: ChannelLayout) -> pd.DataFrame:
    data = {}
    for ch in layout:
        values = records[ch.name]
        if ch.type is DataType.FLOAT16:
            values = values.astype(np.float32)
        if ch.arity == 1:
            data[ch.name] = values
        else:
            for i in range(ch.arity):
                data[f"{ch.name}[{i}]"] = values[:, i]
    return pd.DataFrame(data, columns=column_names(layout))


def prt_to_dataframe(path: str | Path) -> pd.DataFrame:
    """Load a whole PRT file into memory as a DataFrame."""
    with PRTReader(path) as r:
        layout = _copy_layout(r.layout)
        records = r.read_array()
    return records_to_dataframe(records, layout)


def export_parquet(prt_path: str | Path, out_path: str | Path, chunk: int = EXPORT_CHUNK) -> int:
    """Stream a PRT file into a parquet file, ``chunk`` particles at a time. Returns the particle count."""
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)

    with PRTReader(prt_path) as r:
        layout = _copy_layout(r.layout)
        schema = arrow_schema(layout)
        written = 0
        with pq.ParquetWriter(out_path, schema) as pw:
            # An empty file still gets one (empty) row group so the schema is kept.
            while True:
                records = r.read_array(chunk)
                df = records_to_dataframe(records, layout)
                pw.write_table(pa.Table.from_pandas(df, schema=schema, preserve_index=False))
                written += len(records)
                if r.remaining == 0:
                    break

    logger.info("Exported %d particles from %s to %s", written, prt_path, out_path)
    return written


def infer_channels(columns, dtypes) -> list[tuple[str, DataType, int]]:
    """Group ``Name[i]`` columns into vector channels, keeping first-seen column order."""
    order: list[str] = []
    arity: dict[str, int] = {}
    types: dict[str, DataType] = {}
    for col, dt in zip(columns, dtypes):
        m = _COMPONENT_RE.match(str(col))
        name = m.group("name") if m else str(col)
        index = int(m.group("index")) if m else 0
        if name not in arity:
            order.append(name)
            arity[name] = 0
            types[name] = DataType.from_dtype(dt)
        if index != arity[name]:
            raise ValueError(f"Column {col!r} is out of order; expected component {arity[name]} of {name!r}")
        arity[name] += 1
    return [(n, types[n], arity[n]) for n in order]


def _records_from_dataframe(df: pd.DataFrame, layout: ChannelLayout) -> np.ndarray:
    records = np.zeros(len(df), dtype=layout.dtype())
    for ch in layout:
        if ch.arity == 1:
            records[ch.name] = df[ch.name].to_numpy()
        else:
            cols = [f"{ch.name}[{i}]" for i in range(ch.arity)]
            records[ch.name] = df[cols].to_numpy()
    return records


def dataframe_to_prt(
    df: pd.DataFrame,
    path: str | Path,
    channels: list[tuple[str, DataType | str, int]] | None = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> int:
    """Write a DataFrame as a PRT file. Channels are inferred from the columns unless given."""
    if channels is None:
        channels = infer_channels(df.columns, df.dtypes)

    w = PRTWriter(buffer_size=buffer_size)
    for name, dtype, arity in channels:
        w.add_channel(name, dtype, arity)
    with w.open(path):
        n = w.write_array(_records_from_dataframe(df, w.layout))
    return n


def import_parquet(
    in_path: str | Path,
    out_path: str | Path,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
    compression_level: int = DEFAULT_COMPRESSION_LEVEL,
) -> int:
    """Stream a parquet file (as produced by ``export_parquet``) into a PRT file."""
    pf = pq.ParquetFile(in_path)
    schema = pf.schema_arrow
    channels = infer_channels(schema.names, [f.type.to_pandas_dtype() for f in schema])

    w = PRTWriter(buffer_size=buffer_size, compression_level=compression_level)
    for name, dtype, arity in channels:
        w.add_channel(name, dtype, arity)
    written = 0
    with w.open(out_path):
        for batch in pf.iter_batches(batch_size=EXPORT_CHUNK):
            written += w.write_array(_records_from_dataframe(batch.to_pandas(), w.layout))

    logger.info("Imported %d particles from %s to %s", written, in_path, out_path)
    return written


def _copy_layout(layout: ChannelLayout) -> ChannelLayout:
    # Readers clear their layout on close.
    copy = ChannelLayout()
    for ch in layout:
        copy.add_channel(ch.name, ch.type, ch.arity, ch.offset)
    return copy
