"""
Pytest configuration and shared fixtures for schema engine tests

APPROACH: every test gets its own SchemaRegistry and FakeDatabase
- No shared registry state between tests
- Repositories run the same code path they use against PostgreSQL
- Integration tests against a real database live in test_postgres_integration.py
"""

import sys
from pathlib import Path

import pytest

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from schema_engine.config import EngineConfig
from schema_engine.container import EntityEngine
from tests.engine_test_utils import FakeDatabase, build_sample_registry


@pytest.fixture
def sample_registry():
    """Registry with Company, Contact and Note registered (schemas not yet built)."""
    reg, _ = build_sample_registry()
    return reg


@pytest.fixture
def sample_types(sample_registry):
    return {name: sample_registry.resolve_type(name) for name in ("Company", "Contact", "Note")}


@pytest.fixture
def contact_schema(sample_registry):
    return sample_registry.get_schema("Contact")


@pytest.fixture
def company_schema(sample_registry):
    return sample_registry.get_schema("Company")


@pytest.fixture
def note_schema(sample_registry):
    return sample_registry.get_schema("Note")


@pytest.fixture
def resolve(sample_registry):
    """Schema lookup by entity name, as the builder expects."""
    return sample_registry.get_schema


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def engine(fake_db, sample_registry):
    return EntityEngine(fake_db, sample_registry, EngineConfig(max_limit=200, batch_size=2))


@pytest.fixture
def contacts(engine):
    return engine.repository("Contact")


@pytest.fixture
def companies(engine):
    return engine.repository("Company")
