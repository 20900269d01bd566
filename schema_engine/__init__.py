"""
Schema-driven CRUD/query engine for PostgreSQL.

Declare an entity once (fields, relationships, validation rules) and get
parameterized SQL, typed instances and structured errors without per-entity
query code.
"""

from .entity import Entity
from .errors import (
    DuplicateError,
    EngineError,
    InvalidQueryError,
    NoUpdatableFieldsError,
    NotFoundError,
    ReferenceViolationError,
    RequiredFieldError,
    SchemaConfigError,
    StorageError,
    UnsupportedOperatorError,
    ValidationError,
)
from .schema import (
    EntitySchema,
    FieldType,
    SchemaDefinition,
    SchemaRegistry,
    SoftDeleteConfig,
    TimestampConfig,
    belongs_to,
    define_schema,
    field,
    get_schema,
    has_many,
    has_one,
    register,
    registry,
)
from .query import QueryRequest
from .config import DatabaseConfig, EngineConfig
from .database import DatabaseConnection, QueryResult
from .repository import EntityRepository, Page
from .container import EntityEngine

__version__ = "1.0.0"

__all__ = [
    'Entity',
    'EngineError',
    'SchemaConfigError',
    'ValidationError',
    'InvalidQueryError',
    'UnsupportedOperatorError',
    'NoUpdatableFieldsError',
    'NotFoundError',
    'DuplicateError',
    'ReferenceViolationError',
    'RequiredFieldError',
    'StorageError',
    'EntitySchema',
    'FieldType',
    'SchemaDefinition',
    'SchemaRegistry',
    'SoftDeleteConfig',
    'TimestampConfig',
    'belongs_to',
    'define_schema',
    'field',
    'get_schema',
    'has_many',
    'has_one',
    'register',
    'registry',
    'QueryRequest',
    'DatabaseConfig',
    'EngineConfig',
    'DatabaseConnection',
    'QueryResult',
    'EntityRepository',
    'Page',
    'EntityEngine',
]
