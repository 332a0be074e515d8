"""
structure_model.py - Structure definition and decode result types

Field descriptors are authored by the user (or loaded from a project
file) and stay unchanged for a decode pass. DecodedField is the output
node: one per evaluated descriptor, carrying the typed value, the exact
bytes consumed and the span it covers in the source.

Project files use camelCase keys:

    {
      "mainStructure": {"id": "main", "name": "Header", "fields": [...]},
      "substructures": [{"id": "entry", "name": "Entry", "fields": [...]}],
      "version": "1.0"
    }
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional

from field_types import DataType, Endianness, format_hex


class ProjectFormatError(ValueError):
    """Raised when a structure or project mapping cannot be understood."""


@dataclass
class ValueMapping:
    """Exact raw value -> human readable description."""
    value: Any
    description: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ValueMapping':
        if 'value' not in data or 'description' not in data:
            raise ProjectFormatError("valueMap entry needs 'value' and 'description'")
        return cls(value=data['value'], description=str(data['description']))

    def to_dict(self) -> Dict[str, Any]:
        return {'value': self.value, 'description': self.description}


@dataclass
class BitDescription:
    """Labels for one bit (0 = least significant) of a numeric value."""
    bit_index: int
    description_if_set: Optional[str] = None
    description_if_unset: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BitDescription':
        if 'bitIndex' not in data:
            raise ProjectFormatError("bitDescriptions entry needs 'bitIndex'")
        try:
            bit_index = int(data['bitIndex'])
        except (TypeError, ValueError):
            raise ProjectFormatError(f"bitIndex must be an integer, got {data['bitIndex']!r}")
        if bit_index < 0:
            raise ProjectFormatError(f"bitIndex must be >= 0, got {bit_index}")
        return cls(
            bit_index=bit_index,
            description_if_set=data.get('descriptionIfSet') or None,
            description_if_unset=data.get('descriptionIfUnset') or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'bitIndex': self.bit_index}
        if self.description_if_set:
            result['descriptionIfSet'] = self.description_if_set
        if self.description_if_unset:
            result['descriptionIfUnset'] = self.description_if_unset
        return result


@dataclass
class FieldDescriptor:
    """
    One field of a binary structure.

    ``type`` selects the decode path: a primitive kind, ``struct``
    (substructure reference, inline children or raw bytes) or ``script``.
    ``length_ref``/``repeat_ref`` name an earlier sibling whose numeric
    value overrides ``length``/``repeats`` when it resolves.
    """
    id: str
    type: DataType
    name: str = ''
    endianness: Endianness = Endianness.BIG
    length: Optional[int] = None
    length_ref: Optional[str] = None
    offset: Optional[int] = None
    description: Optional[str] = None
    repeats: Optional[int] = None
    repeat_ref: Optional[str] = None
    children: Optional[List['FieldDescriptor']] = None
    substructure_ref: Optional[str] = None
    script: Optional[str] = None
    value_map: List[ValueMapping] = field(default_factory=list)
    bit_descriptions: List[BitDescription] = field(default_factory=list)

    def __post_init__(self):
        self.type = DataType(self.type)
        self.endianness = Endianness(self.endianness)
        if not self.name:
            self.name = self.id

    def with_changes(self, **changes) -> 'FieldDescriptor':
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FieldDescriptor':
        if not isinstance(data, dict):
            raise ProjectFormatError(f"Field definition must be a mapping, got {type(data).__name__}")
        field_id = data.get('id')
        if field_id is None or field_id == '':
            raise ProjectFormatError(f"Field '{data.get('name', '?')}' has no id")

        try:
            kind = DataType(data.get('type', 'uint8'))
        except ValueError:
            raise ProjectFormatError(f"Field '{field_id}': unknown type {data.get('type')!r}")
        try:
            endianness = Endianness(data.get('endianness') or 'big')
        except ValueError:
            raise ProjectFormatError(
                f"Field '{field_id}': endianness must be 'big' or 'little'"
            )

        children = data.get('children')
        if children is not None:
            children = [cls.from_dict(c) for c in children]

        def optional_int(key):
            value = data.get(key)
            if value is None or value == '':
                return None
            try:
                number = int(value)
            except (TypeError, ValueError):
                raise ProjectFormatError(f"Field '{field_id}': {key} must be an integer")
            if number < 0:
                raise ProjectFormatError(f"Field '{field_id}': {key} must not be negative")
            return number

        return cls(
            id=str(field_id),
            type=kind,
            name=str(data.get('name') or field_id),
            endianness=endianness,
            length=optional_int('length'),
            length_ref=data.get('lengthRef') or None,
            offset=optional_int('offset'),
            description=data.get('description'),
            repeats=optional_int('repeats'),
            repeat_ref=data.get('repeatRef') or None,
            children=children,
            substructure_ref=data.get('substructureRef') or None,
            script=data.get('script'),
            value_map=[ValueMapping.from_dict(m) for m in data.get('valueMap') or []],
            bit_descriptions=[BitDescription.from_dict(b)
                              for b in data.get('bitDescriptions') or []],
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.id,
            'name': self.name,
            'type': self.type.value,
            'endianness': self.endianness.value,
        }
        optional = [
            ('length', self.length),
            ('lengthRef', self.length_ref),
            ('offset', self.offset),
            ('description', self.description),
            ('repeats', self.repeats),
            ('repeatRef', self.repeat_ref),
            ('substructureRef', self.substructure_ref),
            ('script', self.script),
        ]
        for key, value in optional:
            if value is not None:
                result[key] = value
        if self.children is not None:
            result['children'] = [c.to_dict() for c in self.children]
        if self.value_map:
            result['valueMap'] = [m.to_dict() for m in self.value_map]
        if self.bit_descriptions:
            result['bitDescriptions'] = [b.to_dict() for b in self.bit_descriptions]
        return result


def _fields_from_list(owner: str, data: Dict[str, Any]) -> List[FieldDescriptor]:
    fields = data.get('fields')
    if not isinstance(fields, list):
        raise ProjectFormatError(f"{owner} must have a 'fields' list")
    return [FieldDescriptor.from_dict(f) for f in fields]


@dataclass
class SubstructureTemplate:
    """Named reusable field list, referenced by id via substructureRef."""
    id: str
    name: str
    fields: List[FieldDescriptor] = field(default_factory=list)
    description: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'SubstructureTemplate':
        if not isinstance(data, dict) or 'id' not in data:
            raise ProjectFormatError("Substructure must be a mapping with an 'id'")
        return cls(
            id=str(data['id']),
            name=str(data.get('name') or data['id']),
            fields=_fields_from_list(f"Substructure '{data['id']}'", data),
            description=data.get('description'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'id': self.id, 'name': self.name,
                  'fields': [f.to_dict() for f in self.fields]}
        if self.description is not None:
            result['description'] = self.description
        return result


@dataclass
class StructureDefinition:
    id: str
    name: str
    fields: List[FieldDescriptor] = field(default_factory=list)
    description: Optional[str] = None
    extends: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'StructureDefinition':
        if not isinstance(data, dict):
            raise ProjectFormatError("Structure definition must be a mapping")
        return cls(
            id=str(data.get('id') or 'main'),
            name=str(data.get('name') or 'Main Structure'),
            fields=_fields_from_list('Structure', data),
            description=data.get('description'),
            extends=data.get('extends'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {'id': self.id, 'name': self.name,
                  'fields': [f.to_dict() for f in self.fields]}
        if self.description is not None:
            result['description'] = self.description
        if self.extends is not None:
            result['extends'] = self.extends
        return result


@dataclass
class ProjectStructure:
    """Main structure plus the substructure catalog it may reference."""
    main_structure: StructureDefinition
    substructures: List[SubstructureTemplate] = field(default_factory=list)
    version: str = '1.0'
    saved_at: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProjectStructure':
        subs = data.get('substructures') or []
        if not isinstance(subs, list):
            raise ProjectFormatError("'substructures' must be a list")
        return cls(
            main_structure=StructureDefinition.from_dict(data.get('mainStructure')),
            substructures=[SubstructureTemplate.from_dict(s) for s in subs],
            version=str(data.get('version', '1.0')),
            saved_at=data.get('savedAt'),
        )

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'mainStructure': self.main_structure.to_dict(),
            'substructures': [s.to_dict() for s in self.substructures],
            'version': self.version,
        }
        if self.saved_at is not None:
            result['savedAt'] = self.saved_at
        return result


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).hex()
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return repr(value)


@dataclass
class DecodedField:
    """
    Result of applying one descriptor to the source.

    ``length`` is the span attributed to the field. For partial reads it
    is the requested length, which can exceed ``len(raw_value)``.
    """
    definition: FieldDescriptor
    value: Any
    raw_value: bytes
    offset: int
    length: int
    children: Optional[List['DecodedField']] = None

    @property
    def end(self) -> int:
        return self.offset + self.length

    def to_dict(self) -> Dict[str, Any]:
        result = {
            'id': self.definition.id,
            'name': self.definition.name,
            'type': self.definition.type.value,
            'offset': self.offset,
            'length': self.length,
            'value': _jsonable(self.value),
            'rawValue': format_hex(self.raw_value),
        }
        if self.children is not None:
            result['children'] = [c.to_dict() for c in self.children]
        return result
