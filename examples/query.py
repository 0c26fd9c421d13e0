"""Query an exported particle table - densest particles inside a box."""
from __future__ import annotations

import sys
from pathlib import Path

import duckdb


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python query.py <particles.parquet> [half_width]")
        print("Example: prt export burst_0000.prt burst.parquet && python query.py burst.parquet 2.5")
        sys.exit(1)

    table = Path(sys.argv[1])
    half = float(sys.argv[2]) if len(sys.argv) > 2 else 1.0

    con = duckdb.connect(":memory:")
    con.execute(f"CREATE VIEW particles AS SELECT * FROM '{table}'")

    sql = """
    SELECT
        "ID" AS id,
        "Density" AS density,
        "Position[0]" AS x,
        "Position[1]" AS y,
        "Position[2]" AS z
    FROM particles
    WHERE abs("Position[0]") <= ? AND abs("Position[1]") <= ? AND abs("Position[2]") <= ?
    ORDER BY density DESC
    LIMIT 10
    """

    print(f"--- Densest particles within +/-{half} of the origin ---\n")

    df = con.execute(sql, [half, half, half]).fetchdf()
    if df.empty:
        print("No particles in range.")
    else:
        for _, row in df.iterrows():
            print(f"ID {int(row['id'])}: density={row['density']:.4f} at ({row['x']:.3f}, {row['y']:.3f}, {row['z']:.3f})")


if __name__ == "__main__":
    main()
