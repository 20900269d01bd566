"""
Row → instance mapping.

Every instance is built field-by-field from its EntitySchema: undeclared
columns are dropped and declared fields missing from the row take their
default value.
"""

from typing import Any, Mapping, Optional

from .entity import Entity
from .schema.definition import EntitySchema
from .schema.types import deserialize_value


def values_from_row(schema: EntitySchema, row: Mapping[str, Any], prefix: str = "") -> dict[str, Any]:
    """
    API-keyed values for every declared field.

    ``row`` is keyed by API name (optionally prefixed, as for joined columns).
    """
    values = {}
    for name, f in schema.fields.items():
        key = prefix + name
        if key in row:
            values[name] = deserialize_value(f, row[key])
        else:
            values[name] = f.default_value()
    return values


def instance_from_row(entity_type: type, schema: EntitySchema, row: Mapping[str, Any],
                      prefix: str = "") -> Entity:
    """Build an instance from a SELECT row (columns aliased to API names)."""
    return entity_type(values_from_row(schema, row, prefix))


def instance_from_record(entity_type: type, schema: EntitySchema, record: Mapping[str, Any]) -> Entity:
    """Build an instance from a RETURNING * row (keyed by column name)."""
    return entity_type(values_from_row(schema, schema.from_db(record)))


def joined_instance(entity_type: type, schema: EntitySchema, row: Mapping[str, Any],
                    prefix: str) -> Optional[Entity]:
    """Related instance from prefixed LEFT JOIN columns, or None when no row matched."""
    if row.get(prefix + schema.primary_key_field) is None:
        return None
    return instance_from_row(entity_type, schema, row, prefix)
