"""
Engine Errors

Typed error taxonomy for the schema engine, plus translation of backend
constraint violations into typed errors.

Every error carries a stable machine-readable ``kind`` and a human-readable
message. ``to_dict()`` produces the same structured shape the query
validators use: {"error": True, "code": ..., "message": ..., ...details}.
"""

import logging
import re
from typing import Any, Optional

logger = logging.getLogger(__name__)


class EngineError(Exception):
    """Base class for all schema engine errors."""

    kind = "ENGINE_ERROR"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        err = {"error": True, "code": self.kind, "message": self.message}
        err.update({k: v for k, v in self.details.items() if v is not None})
        return err


class SchemaConfigError(EngineError):
    """Malformed schema declaration. Fatal at entity-type initialization."""

    kind = "SCHEMA_CONFIG_ERROR"


class ValidationError(EngineError):
    """
    Payload failed field constraints.

    ``field`` and ``rule`` name the first offending field; ``errors`` maps
    every failing field to {"rule": ..., "message": ...}.
    """

    kind = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None, rule: Optional[str] = None,
                 errors: Optional[dict] = None, **details: Any):
        super().__init__(message, field=field, rule=rule, errors=errors, **details)
        self.field = field
        self.rule = rule
        self.errors = errors or ({field: {"rule": rule, "message": message}} if field else {})


class InvalidQueryError(EngineError):
    """Malformed query request (unknown field, bad operator value, ...)."""

    kind = "INVALID_QUERY"


class UnsupportedOperatorError(InvalidQueryError):
    kind = "UNSUPPORTED_OPERATOR"


class NoUpdatableFieldsError(EngineError):
    kind = "NO_UPDATABLE_FIELDS"


class NotFoundError(EngineError):
    """Mutating operation on a row that does not exist."""

    kind = "NOT_FOUND"


class DuplicateError(EngineError):
    kind = "DUPLICATE_ERROR"


class ReferenceViolationError(EngineError):
    kind = "REFERENCE_ERROR"


class RequiredFieldError(EngineError):
    kind = "REQUIRED_FIELD_ERROR"


class StorageError(EngineError):
    """Catch-all for backend failures that have no typed translation."""

    kind = "STORAGE_ERROR"

    def __init__(self, message: str, original: Optional[BaseException] = None, **details: Any):
        super().__init__(message, **details)
        self.original = original


# SQLSTATE codes (PostgreSQL)
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"
CHECK_VIOLATION = "23514"

_KEY_DETAIL_RE = re.compile(r"Key \(([^)]+)\)=\((.*)\)")
_TABLE_RE = re.compile(r'table "(\w+)"')
_CONSTRAINT_RE = re.compile(r'constraint "(\w+)"')
_NULL_COLUMN_RE = re.compile(r'null value in column "(\w+)"')


def _error_code(error: BaseException) -> Optional[str]:
    """Read the SQLSTATE from an asyncpg (sqlstate) or DB-API (pgcode) error."""
    return getattr(error, "sqlstate", None) or getattr(error, "pgcode", None)


def _field_for_column(schema, column: Optional[str]) -> Optional[str]:
    if schema is None or not column:
        return column
    field_def = schema.field_for_column(column)
    return field_def.api_name if field_def else column


def translate_database_error(error: BaseException, schema=None, operation: str = "") -> EngineError:
    """
    Translate a backend exception into a typed engine error.

    Args:
        error: Exception raised by the execution interface
        schema: EntitySchema of the entity being operated on (maps columns back to fields)
        operation: Operation name for diagnostics (create, update, ...)

    Returns:
        The typed error to raise. The caller chains it to the original.
    """
    code = _error_code(error)
    text = str(error)
    detail = getattr(error, "detail", None) or ""
    constraint = getattr(error, "constraint_name", None)
    if not constraint:
        m = _CONSTRAINT_RE.search(text)
        constraint = m.group(1) if m else None
    entity = schema.entity_name if schema is not None else None

    key_match = _KEY_DETAIL_RE.search(detail) or _KEY_DETAIL_RE.search(text)
    columns = key_match.group(1) if key_match else getattr(error, "column_name", None)
    field_name = _field_for_column(schema, columns) if columns and "," not in columns else columns

    if code == UNIQUE_VIOLATION:
        label = field_name or "value"
        return DuplicateError(
            f"Duplicate entry: a {entity or 'record'} with this {label} already exists",
            entity=entity, field=field_name, constraint=constraint, operation=operation,
        )

    if code == FOREIGN_KEY_VIOLATION:
        table_match = _TABLE_RE.search(detail) or _TABLE_RE.search(text)
        referenced = table_match.group(1) if table_match else None
        if "still referenced" in detail or "still referenced" in text:
            message = f"Cannot delete {entity or 'record'}: it is still referenced by {referenced or 'another table'}"
        else:
            message = f"Invalid reference: {field_name or 'value'} does not exist in {referenced or 'the referenced table'}"
        return ReferenceViolationError(
            message, entity=entity, field=field_name, referenced_table=referenced,
            constraint=constraint, operation=operation,
        )

    if code == NOT_NULL_VIOLATION:
        column = getattr(error, "column_name", None)
        if not column:
            m = _NULL_COLUMN_RE.search(text)
            column = m.group(1) if m else None
        field_name = _field_for_column(schema, column)
        return RequiredFieldError(
            f"Required field missing: '{field_name}' cannot be null",
            entity=entity, field=field_name, operation=operation,
        )

    if code == CHECK_VIOLATION:
        return ValidationError(
            f"Constraint violation ({constraint or 'check'})",
            field=None, rule="check", entity=entity, constraint=constraint, operation=operation,
        )

    return StorageError(
        f"Database error during {operation or 'operation'} on {entity or 'entity'}: {text}",
        original=error, entity=entity, operation=operation, sqlstate=code,
    )
