import numpy as np
import pytest

from prt_core import ArityMismatchError, ChannelLayout, ChannelNotFoundError, DataType
from prt_io import ChannelBinder, PRTReader, PRTWriter


def particle_writer() -> PRTWriter:
    w = PRTWriter()
    w.add_channel("Position", DataType.FLOAT32, 3)
    w.add_channel("Density", DataType.FLOAT32, 1)
    w.add_channel("ID", DataType.INT64, 1)
    return w


def test_bind_errors():
    layout = ChannelLayout()
    layout.add_channel("Position", DataType.FLOAT32, 3, 0)
    b = ChannelBinder(layout)
    with pytest.raises(ChannelNotFoundError):
        b.bind("Velocity", np.zeros(3), 3)
    with pytest.raises(ArityMismatchError):
        b.bind("Position", np.zeros(3), 1)
    with pytest.raises(ArityMismatchError):
        b.bind("Position", np.zeros(2), 3)
    with pytest.raises(TypeError):
        b.bind("Position", [0.0, 0.0, 0.0], 3)
    assert b.bound == []


def test_pack_unpack_with_conversion():
    layout = ChannelLayout()
    layout.add_channel("Position", DataType.FLOAT32, 3, 0)
    layout.add_channel("ID", DataType.INT64, 1, 12)
    b = ChannelBinder(layout)

    pos = np.array([1.5, -2.0, 3.25])  # float64 target
    pid = np.array([42], dtype=np.int32)
    b.bind("Position", pos, 3)
    b.bind("ID", pid, 1)

    record = bytearray(layout.size())
    b.pack(record)
    assert np.frombuffer(bytes(record), "<f4", 3).tolist() == [1.5, -2.0, 3.25]
    assert np.frombuffer(bytes(record), "<i8", 1, 12)[0] == 42

    pos[:] = 0
    pid[:] = 0
    b.unpack(bytes(record))
    assert pos.tolist() == [1.5, -2.0, 3.25]
    assert pid[0] == 42


def test_bound_write_and_read(tmp_path):
    path = tmp_path / "bound.prt"
    pos = np.zeros(3, dtype=np.float32)
    density = np.zeros(1, dtype=np.float32)

    w = particle_writer()
    w.bind("Position", pos, 3)
    w.bind("Density", density, 1)
    with w.open(path):
        for i in range(4):
            pos[:] = (i, i * 2, i * 3)
            density[0] = i / 4
            w.write_next_particle()

    out_pos = np.zeros((3,), dtype=np.float64)
    out_density = np.zeros(1, dtype=np.float64)
    out_id = np.full(1, -1, dtype=np.int64)
    seen = []
    with PRTReader(path) as r:
        r.bind("Position", out_pos, 3)
        r.bind("Density", out_density, 1)
        r.bind("ID", out_id, 1)
        while r.read_next_particle():
            seen.append((tuple(out_pos), out_density[0], out_id[0]))
        assert not r.read_next_particle()

    # ID was never bound on the writer, so it stays zero.
    assert seen == [((i, i * 2, i * 3), i / 4, 0) for i in range(4)]


def test_unbound_channels_left_untouched(tmp_path):
    path = tmp_path / "partial.prt"
    pid = np.zeros(1, dtype=np.int64)
    w = particle_writer()
    w.bind("ID", pid, 1)
    with w.open(path):
        for i in range(3):
            pid[0] = 100 + i
            w.write_next_particle()

    out_pos = np.full(3, 7.0)
    out_id = np.zeros(1, dtype=np.int64)
    ids = []
    with PRTReader(path) as r:
        r.bind("ID", out_id, 1)
        r.bind("Position", out_pos, 3)
        with pytest.raises(ArityMismatchError):
            r.bind("Density", np.zeros(3), 3)
        while r.read_next_particle():
            ids.append(int(out_id[0]))
    assert ids == [100, 101, 102]
    assert out_pos.tolist() == [0.0, 0.0, 0.0]
