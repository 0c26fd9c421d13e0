import sys
from pathlib import Path

# Byte 0 is inside the magic number; byte 8 is inside the signature.
TARGETS = {"magic": 0, "signature": 8}


def main():
    if len(sys.argv) not in (2, 3):
        print("Usage: corrupt_one_byte.py <file> [magic|signature]")
        raise SystemExit(2)

    p = Path(sys.argv[1])
    target = sys.argv[2] if len(sys.argv) == 3 else "magic"
    if target not in TARGETS:
        print(f"Unknown target {target!r}; choose from {', '.join(TARGETS)}")
        raise SystemExit(2)

    b = bytearray(p.read_bytes())
    if len(b) < 64:
        print("File too small to corrupt safely.")
        raise SystemExit(2)

    idx = TARGETS[target]
    b[idx] ^= 0x01
    p.write_bytes(bytes(b))
    print(f"Corrupted 1 byte at offset {idx} ({target}) in {p}")


if __name__ == "__main__":
    main()
