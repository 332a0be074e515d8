"""
post_processing.py - Value interpretation applied after the raw decode

Both steps are pure functions of (descriptor, value):

    value = apply_value_mapping(definition, value)
    value = apply_bit_descriptions(definition, value)

A value map swaps an exactly matching raw value for its description.
Bit descriptions turn a still-numeric value into the list of labels of
its set/unset bits, in the order the descriptions are listed. 64-bit
kinds are skipped.
"""

from typing import Any, List

from field_types import DataType
from structure_model import FieldDescriptor

# 64-bit kinds decode to wide integers, not plain numbers
_WIDE_INTEGER_TYPES = (DataType.UINT64, DataType.INT64)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(a: Any, b: Any) -> bool:
    """Equality without cross-type coercion: 1 matches 1.0 but not '1' or True."""
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, (list, dict)) or isinstance(b, (list, dict)):
        return False
    return type(a) is type(b) and a == b


def apply_value_mapping(definition: FieldDescriptor, value: Any) -> Any:
    if not definition.value_map or value is None:
        return value

    for mapping in definition.value_map:
        if strict_equals(mapping.value, value):
            return mapping.description

    return value


def apply_bit_descriptions(definition: FieldDescriptor, value: Any) -> Any:
    """
    Replace a numeric value with the labels of its described bits.

    Floats are truncated toward zero before bits are tested. Values of
    64-bit kinds are left alone. If no description yields a label the
    numeric value is returned unchanged.
    """
    if not definition.bit_descriptions or not _is_number(value):
        return value
    if definition.type in _WIDE_INTEGER_TYPES:
        return value
    if isinstance(value, float) and value != value:
        return value

    try:
        bits = int(value)
    except OverflowError:  # +/- inf
        return value

    labels: List[str] = []
    for bit_desc in definition.bit_descriptions:
        if (bits >> bit_desc.bit_index) & 1:
            if bit_desc.description_if_set:
                labels.append(bit_desc.description_if_set)
        elif bit_desc.description_if_unset:
            labels.append(bit_desc.description_if_unset)

    return labels if labels else value
