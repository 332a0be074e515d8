"""
structure_decoder.py - Structure-driven binary decoder

Decodes a binary source into a tree of DecodedField results following an
ordered list of field descriptors. This is the reference decoder for
structure projects.

Usage:
    from byte_source import FileByteSource
    from structure_decoder import StructureDecoder

    decoder = StructureDecoder(FileByteSource('dump.bin'), project.substructures)
    fields = await decoder.decode(project.main_structure.fields)

    # Or synchronously, from bytes
    fields = decode_bytes(payload, fields)

Decoding never raises for data problems. Running out of data, short
reads, unresolved references and failing scripts all produce fields
with a null (or error string) value and a well-defined offset/length,
so a viewer can always render the span a field was meant to cover.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Sequence, Tuple

from byte_source import ByteSource, MemoryByteSource
from field_types import DataType, decode_primitive, size_of
from post_processing import apply_bit_descriptions, apply_value_mapping
from reference_index import ReferenceIndex
from script_fields import ScriptContext, ScriptError, ScriptRegistry, run_script
from structure_model import DecodedField, FieldDescriptor, SubstructureTemplate

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 64


class DecodeCancelled(Exception):
    """Raised when the cancel event passed to a decode is set."""


@dataclass
class DecodeResult:
    """Result of one decode pass."""
    fields: List[DecodedField]
    bytes_consumed: int
    warnings: List[str] = field(default_factory=list)


class StructureDecoder:
    """
    Decoder for one byte source and one substructure catalog.

    Every call to ``decode`` is an independent pass: it starts at offset 0
    with an empty reference index and rebuilds the whole result tree.
    Nested field lists (substructures, inline children) get their own
    empty index, so references never cross a structure boundary.
    """

    def __init__(self, source: ByteSource,
                 substructures: Optional[Sequence[SubstructureTemplate]] = None,
                 scripts: Optional[ScriptRegistry] = None,
                 max_depth: int = DEFAULT_MAX_DEPTH):
        self.source = source
        self.size = source.size
        self.scripts = scripts if scripts is not None else ScriptRegistry()
        self.max_depth = max_depth

        # First template wins on duplicate ids
        self.substructures = {}
        for template in substructures or []:
            self.substructures.setdefault(template.id, template)

        self._warnings: List[str] = []
        self._cancel_event: Optional[asyncio.Event] = None

    async def decode(self, fields: Sequence[FieldDescriptor],
                     cancel_event: Optional[asyncio.Event] = None) -> List[DecodedField]:
        result = await self.decode_result(fields, cancel_event)
        return result.fields

    async def decode_result(self, fields: Sequence[FieldDescriptor],
                            cancel_event: Optional[asyncio.Event] = None) -> DecodeResult:
        """
        Decode a top-level field list.

        Args:
            fields: Ordered field descriptors
            cancel_event: Optional event checked between fields; when set the
                pass stops with DecodeCancelled

        Returns:
            DecodeResult with one DecodedField per descriptor reached
        """
        logger.info("Decoding %d fields over %d bytes", len(fields), self.size)
        start = time.perf_counter()
        self._warnings = []
        self._cancel_event = cancel_event

        decoded, end = await self._decode_field_list(fields, 0, depth=0, top_level=True)

        logger.info("Finished decoding %d fields in %.2f ms",
                    len(decoded), (time.perf_counter() - start) * 1000)
        return DecodeResult(
            fields=decoded,
            bytes_consumed=max(0, min(end, self.size)),
            warnings=list(self._warnings),
        )

    def _warn(self, message: str) -> None:
        logger.warning(message)
        if message not in self._warnings:
            self._warnings.append(message)

    def _check_cancelled(self) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            raise DecodeCancelled("decode cancelled")

    async def _read(self, start: int, end: int) -> bytes:
        try:
            return await self.source.read_range(start, end)
        except OSError as e:
            self._warn(f"Read of [{start}, {end}) failed: {e}")
            return b''

    async def _decode_field_list(self, fields: Sequence[FieldDescriptor], start: int,
                                 depth: int, top_level: bool = False
                                 ) -> Tuple[List[DecodedField], int]:
        """
        Decode fields sequentially from ``start`` with a fresh reference scope.

        The top level always decodes the field it is on and stops once the
        running offset reaches the end of data; nested lists stop before
        decoding a field that would start past the end.
        """
        index = ReferenceIndex()
        results: List[DecodedField] = []
        offset = start

        for definition in fields:
            if not top_level and offset >= self.size:
                break
            self._check_cancelled()

            if top_level:
                t0 = time.perf_counter()
            decoded = await self._decode_field(definition, offset, index, depth)
            if top_level:
                logger.debug("decoded %s (%s) at %d+%d in %.3f ms", definition.name,
                             definition.id, decoded.offset, decoded.length,
                             (time.perf_counter() - t0) * 1000)

            results.append(decoded)
            index.register(definition.id, decoded)
            offset = decoded.end

            if top_level and offset >= self.size:
                logger.debug("Reached end of data at offset %d", offset)
                break

        return results, offset

    async def _decode_field(self, definition: FieldDescriptor, start: int,
                            index: ReferenceIndex, depth: int,
                            repeat_count: Optional[int] = None) -> DecodedField:
        """
        Decode one descriptor at ``start`` (or its explicit offset).

        ``repeat_count`` is passed when decoding a single array element so the
        element is not expanded into an array again.
        """
        offset = definition.offset if definition.offset is not None else start

        if offset >= self.size:
            return DecodedField(definition, None, b'', offset, 0)

        if definition.type == DataType.SCRIPT:
            return await self._decode_script(definition, offset, index)

        if definition.type == DataType.STRUCT and definition.substructure_ref:
            return await self._decode_substructure(definition, offset, depth)

        requested = self._field_length(definition, index)
        available = min(requested, self.size - offset)

        type_size = size_of(definition.type)
        if type_size is not None and available < type_size:
            raw = await self._read(offset, offset + available)
            self._warn(f"{definition.id}: insufficient data at offset {offset} "
                       f"(need {type_size} bytes, {available} available)")
            return DecodedField(definition, None, raw, offset, requested)

        if repeat_count is None:
            repeat_count = self._repeat_count(definition, index)
        if repeat_count > 1:
            return await self._decode_repeated(definition, offset, repeat_count, index, depth)

        raw = await self._read(offset, offset + available)
        try:
            value = decode_primitive(definition.type, raw, definition.endianness)
            value = apply_value_mapping(definition, value)
            value = apply_bit_descriptions(definition, value)
        except Exception as e:
            self._warn(f"{definition.id}: error parsing value: {e}")
            value = None

        if (definition.type == DataType.STRUCT and definition.children is not None
                and value is not None):
            if depth >= self.max_depth:
                return self._too_deep(definition, offset)
            children, end = await self._decode_field_list(
                definition.children, offset, depth + 1)
            return DecodedField(definition, value, raw, offset, end - offset, children)

        return DecodedField(definition, value, raw, offset, requested)

    def _field_length(self, definition: FieldDescriptor, index: ReferenceIndex) -> int:
        """Requested byte length: lengthRef, then length, then type size, then 1."""
        if definition.length_ref:
            ref_value = index.numeric_value(definition.length_ref)
            if ref_value is not None and ref_value >= 0:
                return ref_value
            self._warn(f"{definition.id}: lengthRef '{definition.length_ref}' "
                       "did not resolve, using static length")

        if definition.length is not None:
            return definition.length

        type_size = size_of(definition.type)
        if type_size is not None:
            return type_size

        return 1

    def _repeat_count(self, definition: FieldDescriptor, index: ReferenceIndex) -> int:
        if definition.repeat_ref:
            ref_value = index.numeric_value(definition.repeat_ref)
            if ref_value is not None:
                return ref_value
            self._warn(f"{definition.id}: repeatRef '{definition.repeat_ref}' "
                       "did not resolve, using static repeats")

        return definition.repeats or 1

    def _too_deep(self, definition: FieldDescriptor, offset: int) -> DecodedField:
        self._warn(f"{definition.id}: nesting deeper than {self.max_depth} levels")
        return DecodedField(definition, None, b'', offset, 0)

    async def _aggregate(self, definition: FieldDescriptor, offset: int, end: int,
                         children: List[DecodedField]) -> DecodedField:
        """Wrap decoded children as one array-valued field clamped to the source."""
        length = max(0, min(end - offset, self.size - offset))
        raw = await self._read(offset, offset + length)
        return DecodedField(
            definition=definition,
            value=[child.value for child in children],
            raw_value=raw,
            offset=offset,
            length=length,
            children=children,
        )

    async def _decode_substructure(self, definition: FieldDescriptor, offset: int,
                                   depth: int) -> DecodedField:
        template = self.substructures.get(definition.substructure_ref)
        if template is None:
            self._warn(f"{definition.id}: substructure "
                       f"'{definition.substructure_ref}' not found")
            return DecodedField(definition, None, b'', offset, 0)
        if depth >= self.max_depth:
            return self._too_deep(definition, offset)

        children, end = await self._decode_field_list(template.fields, offset, depth + 1)
        return await self._aggregate(definition, offset, end, children)

    async def _decode_repeated(self, definition: FieldDescriptor, offset: int,
                               count: int, index: ReferenceIndex,
                               depth: int) -> DecodedField:
        """
        Decode ``count`` consecutive instances of a descriptor.

        Instances are ``id[i]`` copies with repeats and explicit offset
        cleared. They resolve references in the enclosing scope but are not
        registered in it. A null, zero-length instance ends the array early.
        """
        children: List[DecodedField] = []
        current = offset
        # Offset is cleared too: an explicit offset places the first instance
        # only, the rest follow it instead of re-reading the same bytes.
        item_base = definition.with_changes(repeats=None, repeat_ref=None, offset=None)

        for i in range(count):
            if current >= self.size:
                break
            self._check_cancelled()

            item_def = item_base.with_changes(id=f"{definition.id}[{i}]")
            item = await self._decode_field(item_def, current, index, depth, repeat_count=1)

            if item.value is None and item.length == 0:
                break

            children.append(item)
            current = item.end

        return await self._aggregate(definition, offset, current, children)

    async def _decode_script(self, definition: FieldDescriptor, offset: int,
                             index: ReferenceIndex) -> DecodedField:
        if not definition.script:
            return DecodedField(definition, None, b'', offset, 0)

        ctx = ScriptContext(self.source, offset, index)
        try:
            result = await run_script(definition.script, ctx, self.scripts)
            length = min(result.length, self.size - offset)
            raw = await self.source.read_range(offset, offset + length)
        except (ScriptError, OSError) as e:
            message = f"Script Error: {e}"
            self._warn(f"{definition.id}: {message}")
            return DecodedField(definition, message, b'', offset, 0)

        return DecodedField(definition, result.value, raw, offset, length)


def iter_decoded(fields: Sequence[DecodedField],
                 depth: int = 0) -> Iterator[Tuple[int, DecodedField]]:
    """Depth-first walk yielding (depth, field)."""
    for decoded in fields:
        yield depth, decoded
        if decoded.children:
            yield from iter_decoded(decoded.children, depth + 1)


def find_field_at(fields: Sequence[DecodedField], offset: int) -> Optional[DecodedField]:
    """Innermost decoded field whose span covers ``offset``, for highlighting."""
    match = None
    for decoded in fields:
        if decoded.offset <= offset < decoded.end:
            match = decoded
            if decoded.children:
                inner = find_field_at(decoded.children, offset)
                if inner is not None:
                    match = inner
            break
    return match


async def decode_structure(source: ByteSource, fields: Sequence[FieldDescriptor],
                           substructures: Optional[Sequence[SubstructureTemplate]] = None,
                           scripts: Optional[ScriptRegistry] = None) -> List[DecodedField]:
    """Convenience coroutine: one decode pass with a throwaway decoder."""
    decoder = StructureDecoder(source, substructures, scripts)
    return await decoder.decode(fields)


def decode_bytes(data: bytes, fields: Sequence[FieldDescriptor],
                 substructures: Optional[Sequence[SubstructureTemplate]] = None,
                 scripts: Optional[ScriptRegistry] = None) -> List[DecodedField]:
    """Convenience function to decode an in-memory buffer synchronously."""
    return asyncio.run(decode_structure(MemoryByteSource(data), fields,
                                        substructures, scripts))
