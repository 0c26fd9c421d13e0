"""PRT command line: inspect, export and import particle files."""
from __future__ import annotations

import json
import logging
from pathlib import Path

import click

from prt_core.errors import PRTError
from prt_core.protocol import DEFAULT_BUFFER_SIZE, DEFAULT_COMPRESSION_LEVEL
from prt_io.reader import PRTReader
from prt_tools.table import export_parquet, import_parquet


def describe(path: Path) -> dict:
    with PRTReader(path) as r:
        return {
            "file": str(path),
            "version": r.version,
            "particle_count": r.particle_count,
            "record_size": r.layout.size(),
            "channels": [
                {"name": ch.name, "type": ch.type.name.lower(), "arity": ch.arity, "offset": ch.offset}
                for ch in r.layout
            ],
        }


def _fatal(e: Exception) -> None:
    # Fail closed with a single-line reason; no stack traces in pipelines.
    click.echo(f"FATAL: {e}", err=True)
    raise SystemExit(1)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log stream activity to stderr")
def main(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%H:%M:%S",
    )


@main.command("info")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def info_cmd(path: Path) -> None:
    """Print the header of a PRT file as JSON."""
    try:
        result = describe(path)
    except (PRTError, OSError) as e:
        _fatal(e)
    click.echo(json.dumps(result, sort_keys=True, separators=(",", ":"), ensure_ascii=False))


@main.command("export")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("out", type=click.Path(dir_okay=False, path_type=Path))
def export_cmd(path: Path, out: Path) -> None:
    """Convert a PRT file to parquet."""
    try:
        n = export_parquet(path, out)
    except (PRTError, OSError) as e:
        _fatal(e)
    click.echo(f"PASS: {n} particles exported to {out}")


@main.command("import")
@click.argument("src", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("out", type=click.Path(dir_okay=False, path_type=Path))
@click.option("--buffer-size", type=int, default=DEFAULT_BUFFER_SIZE, show_default=True,
              help="Compressed output buffer in bytes")
@click.option("--level", type=click.IntRange(-1, 9), default=DEFAULT_COMPRESSION_LEVEL, show_default=True,
              help="zlib compression level")
def import_cmd(src: Path, out: Path, buffer_size: int, level: int) -> None:
    """Convert a parquet file (one column per channel component) to PRT."""
    try:
        n = import_parquet(src, out, buffer_size=buffer_size, compression_level=level)
    except (PRTError, OSError, ValueError) as e:
        _fatal(e)
    click.echo(f"PASS: {n} particles written to {out}")


if __name__ == "__main__":
    main()
