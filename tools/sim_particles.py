"""Generate synthetic PRT files for demos and tests.

Usage:
    python tools/sim_particles.py OUT_DIR [--count N] [--files N] [--seed S]
"""
import sys
from pathlib import Path

import numpy as np

from prt_io.writer import PRTWriter

DEFAULT_COUNT = 10000
SPREAD = 5.0  # emitter half-width in scene units


def generate_file(path: Path, count: int, rng: np.random.Generator) -> Path:
    """A ballistic burst: positions around the origin, outward velocities, per-particle IDs."""
    pos = np.zeros(3, dtype=np.float32)
    vel = np.zeros(3, dtype=np.float32)
    col = np.zeros(3, dtype=np.float32)
    density = np.zeros(1, dtype=np.float32)
    pid = np.zeros(1, dtype=np.int64)

    w = PRTWriter()
    w.add_channel("Position", "float32", 3)
    w.add_channel("Velocity", "float32", 3)
    w.add_channel("Color", "float32", 3)
    w.add_channel("Density", "float32", 1)
    w.add_channel("ID", "int64", 1)
    w.bind("Position", pos, 3)
    w.bind("Velocity", vel, 3)
    w.bind("Color", col, 3)
    w.bind("Density", density, 1)
    w.bind("ID", pid, 1)

    with w.open(path):
        for i in range(count):
            pos[:] = rng.uniform(-SPREAD, SPREAD, 3)
            vel[:] = pos * rng.uniform(0.5, 2.0)
            col[:] = rng.uniform(0.0, 1.0, 3)
            density[0] = rng.exponential(1.0)
            pid[0] = i
            w.write_next_particle()

    print(f"GENERATED: {path} ({count} particles)")
    return path


def main(argv: list[str]) -> None:
    args = [a for a in argv if a]

    def pop_option(arg_list: list[str], flag: str, default: int) -> tuple[int, list[str]]:
        """Remove ``flag VALUE`` from an argv-style list."""
        if flag not in arg_list:
            return default, arg_list
        i = arg_list.index(flag)
        if i + 1 >= len(arg_list):
            raise SystemExit(f"{flag} requires a value")
        return int(arg_list[i + 1]), arg_list[:i] + arg_list[i + 2:]

    count, args = pop_option(args, "--count", DEFAULT_COUNT)
    files, args = pop_option(args, "--files", 1)
    seed, args = pop_option(args, "--seed", 0)

    out = Path(args[0] if args else "sim_particles")
    out.mkdir(parents=True, exist_ok=True)
    rng = np.random.default_rng(seed)
    for n in range(files):
        generate_file(out / f"burst_{n:04d}.prt", count, rng)


if __name__ == "__main__":
    main(sys.argv[1:])
