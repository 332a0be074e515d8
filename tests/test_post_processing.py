"""
Tests for value maps, bit descriptions and the reference index.
"""

import pytest

from post_processing import apply_bit_descriptions, apply_value_mapping, strict_equals
from reference_index import ReferenceIndex
from structure_model import DecodedField, FieldDescriptor


def descriptor(**extra):
    return FieldDescriptor.from_dict({'id': 'f', 'type': 'uint8', **extra})


class TestStrictEquals:
    @pytest.mark.parametrize('a,b,expected', [
        (1, 1, True),
        (1, 1.0, True),
        (1, '1', False),
        ('a', 'a', True),
        (True, 1, False),
        (None, None, True),
        ([1], [1], False),
    ])
    def test_pairs(self, a, b, expected):
        assert strict_equals(a, b) is expected


class TestValueMapping:
    def test_first_match_wins(self):
        definition = descriptor(valueMap=[
            {'value': 3, 'description': 'first'},
            {'value': 3, 'description': 'second'},
        ])

        assert apply_value_mapping(definition, 3) == 'first'

    def test_null_is_never_mapped(self):
        definition = descriptor(valueMap=[{'value': None, 'description': 'nothing'}])

        assert apply_value_mapping(definition, None) is None

    def test_no_map(self):
        assert apply_value_mapping(descriptor(), 9) == 9


class TestBitDescriptions:
    def test_set_and_unset_labels(self):
        definition = descriptor(bitDescriptions=[
            {'bitIndex': 0, 'descriptionIfSet': 'on', 'descriptionIfUnset': 'off'},
            {'bitIndex': 3, 'descriptionIfSet': 'hi', 'descriptionIfUnset': 'lo'},
        ])

        assert apply_bit_descriptions(definition, 0b0001) == ['on', 'lo']
        assert apply_bit_descriptions(definition, 0b1000) == ['off', 'hi']

    @pytest.mark.parametrize('kind', ['uint64', 'int64'])
    def test_64bit_values_pass_through(self, kind):
        """Wide integers keep their numeric value even when a bit matches."""
        definition = FieldDescriptor.from_dict({
            'id': 'f', 'type': kind,
            'bitDescriptions': [{'bitIndex': 0, 'descriptionIfSet': 'ready'}],
        })

        assert apply_bit_descriptions(definition, 1) == 1

    def test_high_bits_of_32bit_values(self):
        definition = descriptor(type='uint32',
                                bitDescriptions=[{'bitIndex': 31, 'descriptionIfSet': 'top'}])

        assert apply_bit_descriptions(definition, 1 << 31) == ['top']

    def test_negative_numbers_use_twos_complement_bits(self):
        definition = descriptor(bitDescriptions=[{'bitIndex': 7, 'descriptionIfSet': 'sign'}])

        assert apply_bit_descriptions(definition, -1) == ['sign']

    def test_floats_are_truncated(self):
        definition = descriptor(bitDescriptions=[{'bitIndex': 1, 'descriptionIfSet': 'two'}])

        assert apply_bit_descriptions(definition, 2.9) == ['two']

    def test_non_numbers_pass_through(self):
        definition = descriptor(bitDescriptions=[{'bitIndex': 0, 'descriptionIfSet': 'x'}])

        assert apply_bit_descriptions(definition, 'text') == 'text'
        assert apply_bit_descriptions(definition, None) is None
        assert apply_bit_descriptions(definition, float('inf')) == float('inf')


class TestReferenceIndex:
    def make(self, value):
        return DecodedField(descriptor(), value, b'', 0, 1)

    def test_numeric_values(self):
        index = ReferenceIndex()
        index.register('n', self.make(7))
        index.register('f', self.make(3.7))
        index.register('s', self.make('7'))
        index.register('b', self.make(True))
        index.register('z', self.make(None))

        assert index.numeric_value('n') == 7
        assert index.numeric_value('f') == 3
        assert index.numeric_value('s') is None
        assert index.numeric_value('b') is None
        assert index.numeric_value('z') is None
        assert index.numeric_value('missing') is None
        assert index.numeric_value(None) is None

    def test_later_registration_replaces_earlier(self):
        index = ReferenceIndex()
        index.register('n', self.make(1))
        index.register('n', self.make(2))

        assert len(index) == 1
        assert index['n'].value == 2

    def test_is_a_mapping(self):
        index = ReferenceIndex()
        index.register('a', self.make(1))

        assert 'a' in index
        assert list(index) == ['a']
        assert dict(index)['a'].value == 1
