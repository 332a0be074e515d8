"""
reference_index.py - Per-scope index of already decoded fields

A fresh index is built for every top-level decode and for every nested
field list (substructure or inline children). Fields register in decode
order, so a lengthRef/repeatRef can only see earlier siblings of the
same list.
"""

from collections.abc import Mapping
from typing import Dict, Iterator, Optional

from structure_model import DecodedField


class ReferenceIndex(Mapping):
    """Read-only mapping of field id -> DecodedField, plus ``register``."""

    def __init__(self):
        self._fields: Dict[str, DecodedField] = {}

    def register(self, field_id: str, decoded: DecodedField) -> None:
        self._fields[field_id] = decoded

    def __getitem__(self, field_id: str) -> DecodedField:
        return self._fields[field_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def numeric_value(self, field_id: Optional[str]) -> Optional[int]:
        """
        Integer value of a referenced field, or None when the reference does
        not resolve (missing id, not yet decoded, null or non-numeric value).

        Floats are truncated; booleans do not count as numbers.
        """
        if not field_id:
            return None
        decoded = self._fields.get(field_id)
        if decoded is None:
            return None
        value = decoded.value
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            return None
        if value != value or value in (float('inf'), float('-inf')):
            return None
        return int(value)

    def __repr__(self) -> str:
        return f"ReferenceIndex({list(self._fields)})"
