"""
test_hypothesis.py - Property-based testing with Hypothesis

Generates random payloads and random (but well-formed) structure
definitions and checks the properties every decode pass must keep:

- Decoding never raises for data problems, whatever the bytes are
- Decoding terminates and is deterministic
- Without explicit offsets, each field starts where the previous ended
- Fixed-size integers decode to the value they were packed from
- Per-block entropy stays within [0, 8] bits

Run with:
    pytest tests/test_hypothesis.py -v
    pytest tests/test_hypothesis.py -v --hypothesis-show-statistics
"""

import struct

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from conftest import as_fields
from entropy_calculator import block_entropy, calculate_entropy
from field_types import decode_primitive
from structure_decoder import decode_bytes, iter_decoded


# =============================================================================
# Strategies for generating test data
# =============================================================================

bytes_strategy = st.binary(min_size=0, max_size=128)

FIXED_KINDS = ['uint8', 'uint16', 'uint32', 'uint64',
               'int8', 'int16', 'int32', 'int64', 'float32', 'float64']
INTEGER_FORMATS = {
    'uint8': 'B', 'uint16': 'H', 'uint32': 'I', 'uint64': 'Q',
    'int8': 'b', 'int16': 'h', 'int32': 'i', 'int64': 'q',
}


@st.composite
def field_lists(draw, allow_offsets=False):
    """Well-formed field lists; references only point at earlier siblings."""
    count = draw(st.integers(min_value=1, max_value=8))
    fields = []
    for i in range(count):
        field = {
            'id': f'f{i}',
            'type': draw(st.sampled_from(FIXED_KINDS + ['string', 'bytes', 'struct'])),
            'endianness': draw(st.sampled_from(['big', 'little'])),
        }
        if field['type'] in ('string', 'bytes', 'struct'):
            field['length'] = draw(st.integers(min_value=0, max_value=12))
        if i and draw(st.booleans()):
            field['lengthRef'] = f'f{draw(st.integers(min_value=0, max_value=i - 1))}'
        if draw(st.integers(min_value=0, max_value=4)) == 0:
            field['repeats'] = draw(st.integers(min_value=0, max_value=4))
        if allow_offsets and draw(st.integers(min_value=0, max_value=5)) == 0:
            field['offset'] = draw(st.integers(min_value=0, max_value=64))
        fields.append(field)
    return fields


# =============================================================================
# Property Tests: Decoder Safety
# =============================================================================

class TestDecoderSafety:
    """Decoding arbitrary bytes with arbitrary layouts stays well-behaved."""

    @given(bytes_strategy, field_lists(allow_offsets=True))
    @settings(max_examples=300, suppress_health_check=[HealthCheck.too_slow])
    def test_never_crashes_on_random_bytes(self, data, fields):
        """Decoder MUST NOT raise on any byte sequence."""
        result = decode_bytes(data, as_fields(fields))

        assert 1 <= len(result) <= len(fields)
        for _, decoded in iter_decoded(result):
            assert decoded.length >= 0
            assert len(decoded.raw_value) <= decoded.length

    @given(bytes_strategy, field_lists(allow_offsets=True))
    @settings(max_examples=200)
    def test_decode_is_deterministic(self, data, fields):
        """Two passes over the same input give equal results."""
        descriptors = as_fields(fields)

        first = [f.to_dict() for f in decode_bytes(data, descriptors)]
        second = [f.to_dict() for f in decode_bytes(data, descriptors)]

        assert repr(first) == repr(second)

    @given(bytes_strategy, field_lists())
    @settings(max_examples=300)
    def test_offsets_follow_previous_field(self, data, fields):
        """Without offset overrides every field starts where the last one ended."""
        result = decode_bytes(data, as_fields(fields))

        assert result[0].offset == 0
        for prev, cur in zip(result, result[1:]):
            assert cur.offset == prev.offset + prev.length

    @given(bytes_strategy)
    @settings(max_examples=200)
    def test_self_describing_strings(self, data):
        """A length prefix followed by lengthRef'd data never runs past the source."""
        fields = as_fields([
            {'id': 'n', 'type': 'uint8'},
            {'id': 'body', 'type': 'bytes', 'lengthRef': 'n'},
        ])

        result = decode_bytes(data, fields)

        if len(data) > 1:
            body = result[1]
            assert body.length == data[0]
            assert body.raw_value == data[1:1 + data[0]]


# =============================================================================
# Property Tests: Type Boundaries
# =============================================================================

class TestTypeBoundaries:
    """Packed integers decode back to the same number in both byte orders."""

    @given(st.data())
    def test_integers_match_struct(self, data):
        kind = data.draw(st.sampled_from(sorted(INTEGER_FORMATS)))
        fmt = INTEGER_FORMATS[kind]
        bits = struct.calcsize(fmt) * 8
        if fmt.islower():
            value = data.draw(st.integers(min_value=-2**(bits - 1), max_value=2**(bits - 1) - 1))
        else:
            value = data.draw(st.integers(min_value=0, max_value=2**bits - 1))
        endianness = data.draw(st.sampled_from(['big', 'little']))
        prefix = '>' if endianness == 'big' else '<'

        packed = struct.pack(prefix + fmt, value)

        assert decode_primitive(kind, packed, endianness) == value

    @given(st.lists(st.integers(min_value=0, max_value=255), min_size=1, max_size=16),
           st.integers(min_value=1, max_value=16))
    def test_repeat_count_matches_available_items(self, values, repeats):
        fields = as_fields([{'id': 'arr', 'type': 'uint8', 'repeats': repeats}])

        result = decode_bytes(bytes(values), fields)

        expected = values[:repeats]
        if repeats == 1:
            assert result[0].value == expected[0]
        else:
            assert result[0].value == expected
            assert result[0].length == len(expected)


# =============================================================================
# Property Tests: Entropy
# =============================================================================

class TestEntropyBounds:
    @given(st.binary(max_size=1024), st.integers(min_value=1, max_value=300))
    def test_entropy_in_range(self, data, block_size):
        values = calculate_entropy(data, block_size)

        assert len(values) == -(-len(data) // block_size)
        assert all(0.0 <= v <= 8.0 + 1e-9 for v in values)

    @given(st.integers(min_value=0, max_value=255), st.integers(min_value=1, max_value=64))
    def test_constant_block_has_zero_entropy(self, byte, length):
        assert block_entropy(bytes([byte]) * length) == 0.0
