"""
Schema Registry

Process-wide, read-through registry of entity schemas keyed by entity-type
identity. Definitions are registered up front; the immutable EntitySchema is
built once on first access and cached for the life of the process.
"""

import logging
import threading
from dataclasses import replace
from typing import Optional, Union

from ..entity import Entity
from ..errors import SchemaConfigError
from .definition import EntitySchema, SchemaDefinition, TimestampConfig
from .fields import FieldDescriptor, FieldType, bind_field, is_identifier
from .relationships import RelationshipDescriptor, RelationshipKind

logger = logging.getLogger(__name__)

EntityRef = Union[type, str]

_DIRECTIONS = {"asc": "ASC", "desc": "DESC"}


class SchemaRegistry:
    """Owns every EntitySchema; callers only ever hold references."""

    def __init__(self):
        self._definitions: dict[type, SchemaDefinition] = {}
        self._types_by_name: dict[str, type] = {}
        self._schemas: dict[type, EntitySchema] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, entity_type: type, definition: Optional[SchemaDefinition] = None) -> type:
        """
        Register an entity type. Usable as a class decorator.

        The definition defaults to ``entity_type.__schema__``. Registering the
        same type twice with the same definition is a no-op.
        """
        definition = definition or getattr(entity_type, "__schema__", None)
        if not isinstance(definition, SchemaDefinition):
            raise SchemaConfigError(
                f"{getattr(entity_type, '__name__', entity_type)} has no SchemaDefinition. "
                f"Declare __schema__ = SchemaDefinition(...) on the class.",
            )
        if not definition.entity_name:
            raise SchemaConfigError("entity_name must be defined")

        with self._lock:
            existing = self._types_by_name.get(definition.entity_name)
            if existing is not None and existing is not entity_type:
                raise SchemaConfigError(
                    f"Entity name '{definition.entity_name}' is already registered by {existing.__name__}",
                    entity=definition.entity_name,
                )
            current = self._definitions.get(entity_type)
            if current is not None and current is not definition:
                raise SchemaConfigError(
                    f"{entity_type.__name__} is already registered with a different definition",
                    entity=definition.entity_name,
                )
            self._definitions[entity_type] = definition
            self._types_by_name[definition.entity_name] = entity_type

        logger.debug(f"Registered entity type '{definition.entity_name}'")
        return entity_type

    def define_schema(self, definition: SchemaDefinition, entity_type: Optional[type] = None) -> EntitySchema:
        """
        Register a definition and build its schema immediately.

        Without an entity type, a new Entity subclass named after the entity
        is created. Fails with SchemaConfigError on a malformed definition.
        """
        if entity_type is None:
            entity_type = self._types_by_name.get(definition.entity_name)
            if entity_type is None or self._definitions.get(entity_type) is not definition:
                entity_type = type(definition.entity_name, (Entity,), {
                    "__schema__": definition,
                    "__module__": __name__,
                })
        self.register(entity_type, definition)
        return self.get_schema(entity_type)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def resolve_type(self, entity: EntityRef) -> type:
        """Entity type for a class or registered entity name."""
        if isinstance(entity, str):
            entity_type = self._types_by_name.get(entity)
            if entity_type is None:
                raise SchemaConfigError(f"Entity '{entity}' is not registered", entity=entity)
            return entity_type
        if entity not in self._definitions:
            raise SchemaConfigError(
                f"Entity type {getattr(entity, '__name__', entity)} is not registered",
            )
        return entity

    def get_schema(self, entity: EntityRef) -> EntitySchema:
        """
        Get the schema for an entity type (class or name).

        Memoized: the first call builds the schema, later calls return the
        same object. Concurrent first calls converge on one instance.
        """
        entity_type = self.resolve_type(entity)
        schema = self._schemas.get(entity_type)
        if schema is not None:
            return schema

        with self._lock:
            schema = self._schemas.get(entity_type)
            if schema is None:
                schema = self._build(self._definitions[entity_type])
                self._schemas[entity_type] = schema
                logger.info(f"✅ Built schema for '{schema.entity_name}' ({len(schema.fields)} fields)")
        return schema

    def is_registered(self, entity: EntityRef) -> bool:
        if isinstance(entity, str):
            return entity in self._types_by_name
        return entity in self._definitions

    def entity_names(self) -> list[str]:
        return list(self._types_by_name)

    def export(self, entity: EntityRef) -> dict:
        """Plain-structure snapshot of an entity schema for UI consumption."""
        return self.get_schema(entity).to_dict()

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def _build(self, definition: SchemaDefinition) -> EntitySchema:
        """Validate a definition and assemble its EntitySchema. Caller holds the lock."""
        name = definition.entity_name

        def fail(message: str) -> SchemaConfigError:
            return SchemaConfigError(f"{name}: {message}", entity=name)

        if not definition.table_name:
            raise fail("table_name must be defined")
        if not is_identifier(definition.table_name):
            raise fail(f"invalid table name '{definition.table_name}'")
        if not definition.primary_key_column:
            raise fail("primary_key_column must be defined")

        fields: dict[str, FieldDescriptor] = {}
        for section, declared in (("form_fields", definition.form_fields),
                                  ("entity_fields", definition.entity_fields)):
            for api_name, descriptor in declared.items():
                if api_name in fields:
                    raise fail(f"field '{api_name}' is declared in both form_fields and entity_fields")
                if not is_identifier(api_name):
                    raise fail(f"invalid field name '{api_name}'")
                bound = bind_field(api_name, descriptor)
                if section == "form_fields":
                    if bound.is_computed:
                        raise fail(f"computed field '{api_name}' cannot be a form field")
                    if bound.read_only:
                        raise fail(f"read-only field '{api_name}' cannot be a form field")
                if not bound.is_computed and not is_identifier(bound.db_column):
                    raise fail(f"field '{api_name}' has invalid column '{bound.db_column}'")
                fields[api_name] = bound

        timestamps = definition.timestamps
        if timestamps is True:
            timestamps = TimestampConfig()
        elif not timestamps:
            timestamps = None
        if timestamps is not None:
            for api_name, column in ((timestamps.created_at_field, timestamps.created_at_column),
                                     (timestamps.updated_at_field, timestamps.updated_at_column)):
                if not is_identifier(column):
                    raise fail(f"invalid timestamp column '{column}'")
                declared = fields.get(api_name)
                if declared is None:
                    fields[api_name] = FieldDescriptor(
                        api_name=api_name, type=FieldType.DATETIME, db_column=column, read_only=True,
                    )
                elif declared.is_writable or declared.db_column != column:
                    # Stamped by every INSERT/UPDATE, so it must not also be projected from payloads
                    raise fail(f"timestamp field '{api_name}' must be read-only on column '{column}'")

        columns_seen: dict[str, str] = {}
        for f in fields.values():
            if f.db_column is None:
                continue
            if f.db_column in columns_seen:
                raise fail(f"fields '{columns_seen[f.db_column]}' and '{f.api_name}' share column '{f.db_column}'")
            columns_seen[f.db_column] = f.api_name

        pk_field = columns_seen.get(definition.primary_key_column)
        if pk_field is None:
            raise fail(f"primary key column '{definition.primary_key_column}' is not the column of any declared field")

        if definition.soft_delete is not None:
            for column in (definition.soft_delete.flag_column, definition.soft_delete.timestamp_column):
                if column is not None and not is_identifier(column):
                    raise fail(f"invalid soft-delete column '{column}'")

        relationships = {
            rel_name: self._bind_relationship(definition, fields, pk_field, rel_name, rel, fail)
            for rel_name, rel in definition.relationships.items()
        }

        default_order = []
        for field_name, direction in definition.default_order or []:
            f = fields.get(field_name)
            if f is None or not f.is_selectable:
                raise fail(f"default_order references unknown field '{field_name}'")
            if str(direction).lower() not in _DIRECTIONS:
                raise fail(f"invalid sort direction '{direction}'")
            default_order.append((field_name, _DIRECTIONS[str(direction).lower()]))
        if not default_order:
            default_order = [(pk_field, "ASC")]

        return EntitySchema(
            entity_name=name,
            table_name=definition.table_name,
            primary_key_column=definition.primary_key_column,
            primary_key_field=pk_field,
            fields=fields,
            relationships=relationships,
            form_field_names=tuple(definition.form_fields),
            validators=tuple(definition.validators),
            timestamps=timestamps,
            soft_delete=definition.soft_delete,
            default_order=tuple(default_order),
            description=definition.description,
        )

    def _bind_relationship(self, definition, fields, pk_field, rel_name, rel: RelationshipDescriptor, fail):
        """Resolve default keys and check both sides of the join exist."""
        if not is_identifier(rel_name):
            raise fail(f"invalid relationship name '{rel_name}'")
        if rel_name in fields:
            raise fail(f"relationship '{rel_name}' collides with a field of the same name")

        if rel.target_entity == definition.entity_name:
            target_def = definition
        else:
            target_type = self._types_by_name.get(rel.target_entity)
            if target_type is None:
                raise fail(f"relationship '{rel_name}' references unregistered entity '{rel.target_entity}'")
            target_def = self._definitions[target_type]

        target_fields = {**target_def.form_fields, **target_def.entity_fields}
        target_pk = next(
            (n for n, f in target_fields.items()
             if (f.db_column or n) == target_def.primary_key_column and f.db_column is not None),
            None,
        )

        local_key, foreign_key = rel.local_key, rel.foreign_key
        if rel.kind == RelationshipKind.BELONGS_TO:
            foreign_key = foreign_key or target_pk
        else:
            local_key = local_key or pk_field

        local_def = fields.get(local_key) if local_key else None
        if local_def is None or local_def.is_computed:
            raise fail(f"relationship '{rel_name}' local key '{local_key}' is not a stored field")
        target_key_def = target_fields.get(foreign_key) if foreign_key else None
        if target_key_def is None or target_key_def.db_column is None:
            raise fail(
                f"relationship '{rel_name}' foreign key '{foreign_key}' is not a stored field "
                f"of '{rel.target_entity}'"
            )

        return replace(rel, name=rel_name, local_key=local_key, foreign_key=foreign_key)


# Process-wide default registry
registry = SchemaRegistry()


def register(entity_type: type, definition: Optional[SchemaDefinition] = None) -> type:
    return registry.register(entity_type, definition)


def define_schema(definition: SchemaDefinition, entity_type: Optional[type] = None) -> EntitySchema:
    return registry.define_schema(definition, entity_type)


def get_schema(entity: EntityRef) -> EntitySchema:
    return registry.get_schema(entity)
