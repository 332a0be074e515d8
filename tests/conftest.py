"""
pytest configuration and fixtures for structure decoder tests.

Provides reusable fixtures for:
- Building field descriptors from plain dicts
- Synchronous decoding of in-memory buffers
- Hypothesis property-based testing configuration
"""

import os
import sys
from pathlib import Path

import pytest
from hypothesis import Phase, Verbosity, settings

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

from structure_decoder import decode_bytes
from structure_model import FieldDescriptor, SubstructureTemplate

# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,  # Disable deadline for slow interpreters
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=500,
    deadline=None,
    suppress_health_check=[],
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


def as_fields(defs):
    return [d if isinstance(d, FieldDescriptor) else FieldDescriptor.from_dict(d)
            for d in defs]


def as_templates(defs):
    return [d if isinstance(d, SubstructureTemplate) else SubstructureTemplate.from_dict(d)
            for d in defs or []]


@pytest.fixture
def decode():
    """
    Decode bytes with field definitions given as dicts or descriptors.

    Usage:
        def test_u8(decode):
            result = decode([0x01], [{'id': 'a', 'type': 'uint8'}])
    """
    def _decode(data, fields, substructures=None, scripts=None):
        return decode_bytes(bytes(data), as_fields(fields),
                            as_templates(substructures), scripts)
    return _decode


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
