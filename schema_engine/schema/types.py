"""
Value conversion between API values and asyncpg parameters/results.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from .fields import FieldDescriptor, FieldType, JSON_TYPES


def serialize_value(f: FieldDescriptor, value: Any) -> Any:
    """Convert an API value into the form asyncpg expects for the field's column."""
    if value is None:
        return None
    if f.type == FieldType.DATE and isinstance(value, str):
        return date.fromisoformat(value)
    if f.type == FieldType.DATETIME and isinstance(value, str):
        # Accept the trailing "Z" JavaScript clients send
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    if f.type in JSON_TYPES and not isinstance(value, str):
        return json.dumps(value)
    if f.type == FieldType.ARRAY and isinstance(value, tuple):
        return list(value)
    return value


def deserialize_value(f: FieldDescriptor, value: Any) -> Any:
    """Convert a column value from a result row into its API form."""
    if value is None:
        return None
    if f.type in JSON_TYPES and isinstance(value, str):
        return json.loads(value)
    if isinstance(value, Decimal):
        return int(value) if f.type == FieldType.INTEGER else float(value)
    return value
