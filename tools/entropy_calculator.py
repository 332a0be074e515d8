"""
entropy_calculator.py - Per-block Shannon entropy

H(X) = -sum(p(x) * log2(p(x))) over the byte values x of a block, giving
0.0 (constant block) to 8.0 bits (uniformly random bytes). Large files
are read through a ByteSource in chunks, never loaded whole.
"""

import math
from collections import Counter
from typing import List

from byte_source import ByteSource

DEFAULT_BLOCK_SIZE = 256


def block_entropy(block: bytes) -> float:
    """Shannon entropy of one block in bits (0-8)."""
    if not block:
        return 0.0

    total = len(block)
    entropy = 0.0
    for count in Counter(block).values():
        probability = count / total
        entropy -= probability * math.log2(probability)
    return entropy


def calculate_entropy(data: bytes, block_size: int = DEFAULT_BLOCK_SIZE) -> List[float]:
    """Entropy of each ``block_size`` block of ``data``; the last block may be short."""
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")

    return [block_entropy(data[i:i + block_size])
            for i in range(0, len(data), block_size)]


async def source_entropy(source: ByteSource, block_size: int = DEFAULT_BLOCK_SIZE,
                         chunk_blocks: int = 1024) -> List[float]:
    """
    Per-block entropy of a whole byte source.

    Reads ``chunk_blocks`` blocks per range request; chunks are aligned to
    ``block_size`` so the block boundaries match ``calculate_entropy``.
    """
    if block_size <= 0:
        raise ValueError(f"block_size must be positive, got {block_size}")
    if chunk_blocks <= 0:
        raise ValueError(f"chunk_blocks must be positive, got {chunk_blocks}")

    chunk_size = block_size * chunk_blocks
    values: List[float] = []
    for start in range(0, source.size, chunk_size):
        chunk = await source.read_range(start, min(start + chunk_size, source.size))
        values.extend(calculate_entropy(chunk, block_size))
    return values
