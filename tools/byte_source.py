"""
byte_source.py - Random-access byte sources for the structure decoder

The decoder never holds the whole blob in memory; it asks a source for
the byte range it needs, one awaited read at a time.

Usage:
    from byte_source import FileByteSource, MemoryByteSource

    source = FileByteSource('firmware.bin')
    header = await source.read_range(0, 16)

    source = MemoryByteSource(bytes([0x01, 0x02]))
"""

import asyncio
import logging
import os
from pathlib import Path
from typing import Protocol, Tuple, Union

logger = logging.getLogger(__name__)


class ByteSource(Protocol):
    """Anything with a fixed ``size`` and an awaitable ``read_range``."""

    size: int

    async def read_range(self, start: int, end: int) -> bytes:
        ...


def clamp_range(start: int, end: int, size: int) -> Tuple[int, int]:
    """Clamp [start, end) into [0, size]; an inverted range becomes empty."""
    start = min(max(int(start), 0), size)
    end = min(max(int(end), 0), size)
    if end < start:
        end = start
    return start, end


class MemoryByteSource:
    """Byte source over an in-memory buffer (tests, small payloads)."""

    def __init__(self, data: Union[bytes, bytearray, memoryview]):
        self._data = bytes(data)
        self.size = len(self._data)

    async def read_range(self, start: int, end: int) -> bytes:
        start, end = clamp_range(start, end, self.size)
        return self._data[start:end]

    def __repr__(self) -> str:
        return f"MemoryByteSource(size={self.size})"


class FileByteSource:
    """
    Byte source backed by a file on disk.

    The size is captured once at construction. Each read opens the file,
    seeks and reads only the requested range in a worker thread so the
    event loop is not blocked and large files stay on disk.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.name = self.path.name
        self.size = os.path.getsize(self.path)

    def _read_sync(self, start: int, length: int) -> bytes:
        with open(self.path, 'rb') as f:
            f.seek(start)
            return f.read(length)

    async def read_range(self, start: int, end: int) -> bytes:
        start, end = clamp_range(start, end, self.size)
        if end == start:
            return b''
        logger.debug("read_range %s [%d, %d)", self.name, start, end)
        return await asyncio.to_thread(self._read_sync, start, end - start)

    def __repr__(self) -> str:
        return f"FileByteSource({str(self.path)!r}, size={self.size})"
