#!/usr/bin/env python3
"""
decode_binary.py - Decode a binary file with a structure project

Usage:
    python tools/decode_binary.py project.yaml firmware.bin
    python tools/decode_binary.py project.json firmware.bin --json
    python tools/decode_binary.py project.json firmware.bin --at 0x40
    python tools/decode_binary.py project.json firmware.bin -v

Prints the decoded field tree (offset, length, name, type, value), or the
whole result as JSON. Exit status is 1 when the project or binary cannot
be loaded; data problems are reported as warnings, not failures.
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

# Add tools to path
sys.path.insert(0, str(Path(__file__).parent))
from byte_source import FileByteSource
from field_types import format_hex
from project_loader import load_project
from structure_decoder import (
    DEFAULT_MAX_DEPTH, DecodeResult, StructureDecoder, find_field_at, iter_decoded
)
from structure_model import DecodedField, ProjectStructure

MAX_VALUE_WIDTH = 60


def format_value(value: Any) -> str:
    """Short single-line rendering of a decoded value."""
    if value is None:
        text = '(null)'
    elif isinstance(value, (bytes, bytearray)):
        text = format_hex(value)
    elif isinstance(value, float):
        text = f"{value:g}"
    elif isinstance(value, list):
        text = '[' + ', '.join(format_value(v) for v in value) + ']'
    elif isinstance(value, str):
        text = repr(value)
    else:
        text = str(value)

    if len(text) > MAX_VALUE_WIDTH:
        text = text[:MAX_VALUE_WIDTH - 3] + '...'
    return text


def format_tree(fields: List[DecodedField]) -> List[str]:
    lines = []
    for depth, decoded in iter_decoded(fields):
        definition = decoded.definition
        lines.append(
            f"0x{decoded.offset:08x} {decoded.length:>8}  "
            f"{'  ' * depth}{definition.name} ({definition.type.value}): "
            f"{format_value(decoded.value)}"
        )
    return lines


def result_to_dict(result: DecodeResult) -> dict:
    return {
        'fields': [f.to_dict() for f in result.fields],
        'bytesConsumed': result.bytes_consumed,
        'warnings': result.warnings,
    }


async def decode_file(project: ProjectStructure, binary: Path,
                      max_depth: int = DEFAULT_MAX_DEPTH) -> DecodeResult:
    decoder = StructureDecoder(FileByteSource(binary), project.substructures,
                               max_depth=max_depth)
    return await decoder.decode_result(project.main_structure.fields)


def print_results(result: DecodeResult, at: Optional[int] = None):
    if at is not None:
        match = find_field_at(result.fields, at)
        if match is None:
            print(f"No field covers offset 0x{at:x}")
        else:
            print(f"0x{at:x} is in {match.definition.name} "
                  f"[0x{match.offset:x}, 0x{match.end:x}): {format_value(match.value)}")
        return

    print(f"{'offset':<10} {'length':>8}  field")
    print("-" * 50)
    for line in format_tree(result.fields):
        print(line)
    print("-" * 50)
    print(f"{len(result.fields)} top-level fields, {result.bytes_consumed} bytes consumed")

    if result.warnings:
        print(f"\n{len(result.warnings)} warnings:")
        for warning in result.warnings:
            print(f"  WARNING: {warning}")


def main():
    parser = argparse.ArgumentParser(
        description='Decode a binary file using a structure project'
    )
    parser.add_argument('project', help='Path to project JSON/YAML file')
    parser.add_argument('binary', help='Path to binary file to decode')
    parser.add_argument('--json', action='store_true',
                        help='Output results as JSON')
    parser.add_argument('--at', type=lambda s: int(s, 0), metavar='OFFSET',
                        help='Only show the field covering OFFSET (e.g. 0x40)')
    parser.add_argument('--max-depth', type=int, default=DEFAULT_MAX_DEPTH,
                        help='Maximum substructure nesting depth')
    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Enable debug logging')
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(levelname)s %(name)s: %(message)s',
    )

    try:
        project = load_project(Path(args.project))
    except Exception as e:
        print(f"Error loading project: {e}", file=sys.stderr)
        sys.exit(1)

    binary = Path(args.binary)
    if not binary.is_file():
        print(f"Error loading binary: {binary} is not a file", file=sys.stderr)
        sys.exit(1)

    result = asyncio.run(decode_file(project, binary, args.max_depth))

    if args.json:
        print(json.dumps(result_to_dict(result), indent=2))
    else:
        print(f"Decoding: {args.binary} with {project.main_structure.name}")
        print("=" * 50)
        print_results(result, args.at)

    sys.exit(0)


if __name__ == '__main__':
    main()
