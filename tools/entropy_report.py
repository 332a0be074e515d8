#!/usr/bin/env python3
"""
entropy_report.py - Per-block Shannon entropy of a binary file

Usage:
    python tools/entropy_report.py firmware.bin
    python tools/entropy_report.py firmware.bin --block-size 1024 --json

High-entropy regions (close to 8 bits/byte) usually hold compressed or
encrypted data; low-entropy regions hold padding, tables or text.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import List

# Add tools to path
sys.path.insert(0, str(Path(__file__).parent))
from byte_source import FileByteSource
from entropy_calculator import DEFAULT_BLOCK_SIZE, source_entropy

BAR_WIDTH = 32


def entropy_bar(entropy: float) -> str:
    filled = round(min(entropy / 8.0, 1.0) * BAR_WIDTH)
    return '#' * filled + '.' * (BAR_WIDTH - filled)


def print_report(values: List[float], block_size: int):
    for i, entropy in enumerate(values):
        print(f"0x{i * block_size:08x}  {entropy:5.3f}  {entropy_bar(entropy)}")
    if values:
        print("-" * 50)
        print(f"{len(values)} blocks, mean {sum(values) / len(values):.3f}, "
              f"max {max(values):.3f} bits/byte")


def main():
    parser = argparse.ArgumentParser(
        description='Report per-block Shannon entropy of a binary file'
    )
    parser.add_argument('binary', help='Path to binary file')
    parser.add_argument('-b', '--block-size', type=int, default=DEFAULT_BLOCK_SIZE,
                        help=f'Block size in bytes (default {DEFAULT_BLOCK_SIZE})')
    parser.add_argument('--json', action='store_true',
                        help='Output entropy values as JSON')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        source = FileByteSource(args.binary)
        values = asyncio.run(source_entropy(source, args.block_size))
    except (OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        print(json.dumps({'blockSize': args.block_size, 'entropy': values}, indent=2))
    else:
        print_report(values, args.block_size)

    sys.exit(0)


if __name__ == '__main__':
    main()
