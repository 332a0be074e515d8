"""
project_loader.py - Load and save structure projects

A project file holds the main structure and the substructure catalog:

    mainStructure:
      id: main
      name: Record header
      fields:
        - {id: count, type: uint8}
        - {id: entries, type: struct, substructureRef: entry, repeatRef: count}
    substructures:
      - id: entry
        name: Entry
        fields:
          - {id: tag, type: uint16, endianness: little}
    version: '1.0'

JSON and YAML are both accepted (YAML is a superset of JSON). A mapping
that is not a project but has a ``fields`` list is loaded as a bare
structure with an empty catalog.

Usage:
    from project_loader import load_project, dump_project

    project = load_project('formats/header.yaml')
    text = dump_project(project)
"""

import json
import logging
from pathlib import Path
from typing import Any, Union

import yaml

from structure_model import ProjectFormatError, ProjectStructure, StructureDefinition

logger = logging.getLogger(__name__)

PROJECT_FILE_SUFFIXES = ('.json', '.yaml', '.yml')


def parse_project(data: Any) -> ProjectStructure:
    """Build a ProjectStructure from an already parsed mapping."""
    if not isinstance(data, dict):
        raise ProjectFormatError(
            f"Project must be a mapping, got {type(data).__name__}")

    if data.get('version') and 'mainStructure' in data and 'substructures' in data:
        return ProjectStructure.from_dict(data)

    logger.debug("No project envelope found, loading as a bare structure")
    return ProjectStructure(main_structure=StructureDefinition.from_dict(data))


def loads_project(text: str) -> ProjectStructure:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ProjectFormatError(f"Cannot parse project: {e}")
    return parse_project(data)


def _looks_like_path(text: str) -> bool:
    if '\n' in text or text.lstrip().startswith(('{', '[')):
        return False
    if text.endswith(PROJECT_FILE_SUFFIXES):
        return True
    try:
        return Path(text).is_file()
    except OSError:
        return False


def load_project(path_or_text: Union[str, Path]) -> ProjectStructure:
    """
    Load a project from a file path or from JSON/YAML text.

    A string is treated as a path when it ends in a project file suffix
    or names an existing file; anything else is parsed as text.
    """
    if isinstance(path_or_text, Path) or _looks_like_path(path_or_text):
        p = Path(path_or_text)
        logger.info("Loading project %s", p)
        return loads_project(p.read_text(encoding='utf-8'))

    return loads_project(path_or_text)


def dump_project(project: ProjectStructure) -> str:
    """Serialize a project as pretty JSON with camelCase keys."""
    return json.dumps(project.to_dict(), indent=2)


def save_project(project: ProjectStructure, path: Union[str, Path]) -> None:
    p = Path(path)
    if p.suffix in ('.yaml', '.yml'):
        text = yaml.safe_dump(project.to_dict(), sort_keys=False)
    else:
        text = dump_project(project)
    p.write_text(text, encoding='utf-8')
    logger.info("Saved project %s", p)
