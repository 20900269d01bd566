"""
Schema Definition System

Field and relationship descriptors, the immutable EntitySchema aggregate
and the process-wide registry that builds and caches it.
"""

from .fields import FieldDescriptor, FieldType, field
from .relationships import RelationshipDescriptor, RelationshipKind, belongs_to, has_many, has_one
from .definition import EntitySchema, SchemaDefinition, SoftDeleteConfig, TimestampConfig
from .registry import SchemaRegistry, registry, register, define_schema, get_schema
from .validation import validate_payload

__all__ = [
    'FieldDescriptor',
    'FieldType',
    'field',
    'RelationshipDescriptor',
    'RelationshipKind',
    'belongs_to',
    'has_many',
    'has_one',
    'EntitySchema',
    'SchemaDefinition',
    'SoftDeleteConfig',
    'TimestampConfig',
    'SchemaRegistry',
    'registry',
    'register',
    'define_schema',
    'get_schema',
    'validate_payload',
]
