"""
Entity Schema Definition

SchemaDefinition is the declarative input an entity type provides.
EntitySchema is the immutable aggregate the registry builds from it: field
and relationship descriptors keyed by name, the primary key, capabilities
(timestamps, soft delete) and entity-level validators.
"""

import copy
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Iterator, Mapping, Optional, Union

from .fields import FieldDescriptor
from .relationships import RelationshipDescriptor

EntityValidator = Callable[[Mapping[str, Any]], Optional[Mapping[str, str]]]


@dataclass(frozen=True)
class TimestampConfig:
    """Automatically managed creation/update timestamps."""
    created_at_field: str = "createdAt"
    created_at_column: str = "created_at"
    updated_at_field: str = "updatedAt"
    updated_at_column: str = "updated_at"


@dataclass(frozen=True)
class SoftDeleteConfig:
    """Configures status-flip deletion for an entity."""
    flag_column: str = "is_deleted"
    timestamp_column: Optional[str] = "deleted_at"


@dataclass
class SchemaDefinition:
    """
    Declarative schema for one entity type.

    form_fields are user-editable; entity_fields are server-managed, read-only
    or computed. Relationship targets are referenced by entity name.
    """
    entity_name: str
    table_name: str
    primary_key_column: str
    form_fields: dict[str, FieldDescriptor] = field(default_factory=dict)
    entity_fields: dict[str, FieldDescriptor] = field(default_factory=dict)
    relationships: dict[str, RelationshipDescriptor] = field(default_factory=dict)
    validators: list[EntityValidator] = field(default_factory=list)
    timestamps: Union[bool, TimestampConfig] = False
    soft_delete: Optional[SoftDeleteConfig] = None
    default_order: Optional[list[tuple[str, str]]] = None
    description: str = ""


@dataclass(frozen=True, eq=False)
class EntitySchema:
    """Complete, immutable metadata for one entity type."""
    entity_name: str
    table_name: str
    primary_key_column: str
    primary_key_field: str
    fields: Mapping[str, FieldDescriptor]
    relationships: Mapping[str, RelationshipDescriptor]
    form_field_names: tuple[str, ...]
    validators: tuple[EntityValidator, ...] = ()
    timestamps: Optional[TimestampConfig] = None
    soft_delete: Optional[SoftDeleteConfig] = None
    default_order: tuple[tuple[str, str], ...] = ()
    description: str = ""

    def __post_init__(self):
        # Freeze mappings so no caller can mutate a cached schema
        object.__setattr__(self, "fields", MappingProxyType(dict(self.fields)))
        object.__setattr__(self, "relationships", MappingProxyType(dict(self.relationships)))
        object.__setattr__(self, "_by_column", MappingProxyType({
            f.db_column: f for f in self.fields.values() if f.db_column is not None
        }))

    def __iter__(self) -> Iterator[FieldDescriptor]:
        return iter(self.fields.values())

    @property
    def primary_key(self) -> FieldDescriptor:
        return self.fields[self.primary_key_field]

    def get_field(self, api_name: str) -> Optional[FieldDescriptor]:
        return self.fields.get(api_name)

    def has_field(self, api_name: str) -> bool:
        return api_name in self.fields

    def field_for_column(self, column: str) -> Optional[FieldDescriptor]:
        return self._by_column.get(column)

    def column_for(self, api_name: str) -> Optional[str]:
        field_def = self.fields.get(api_name)
        return field_def.db_column if field_def else None

    def writable_fields(self) -> list[FieldDescriptor]:
        """Fields that may appear in generated INSERT/UPDATE statements."""
        return [f for f in self.fields.values() if f.is_writable]

    def is_form_field(self, api_name: str) -> bool:
        return api_name in self.form_field_names

    @property
    def entity_field_names(self) -> tuple[str, ...]:
        return tuple(name for name in self.fields if name not in self.form_field_names)

    def defaults(self) -> dict[str, Any]:
        """Default-instantiated values for every declared field."""
        return {name: f.default_value() for name, f in self.fields.items()}

    def to_db(self, data: Mapping[str, Any]) -> dict[str, Any]:
        """API-keyed data to column-keyed data. Unknown and computed keys are dropped."""
        return {
            f.db_column: data[name]
            for name, f in self.fields.items()
            if name in data and not f.is_computed
        }

    def from_db(self, row: Mapping[str, Any]) -> dict[str, Any]:
        """Column-keyed row to API-keyed data. Undeclared columns are dropped."""
        return {
            name: row[f.db_column]
            for name, f in self.fields.items()
            if f.db_column is not None and f.db_column in row
        }

    def to_dict(self) -> dict:
        """
        Serializable snapshot for UI form builders.

        Callables (custom validators, default factories) are omitted and the
        result shares no state with the schema.
        """
        fields_out = []
        for name, f in self.fields.items():
            default = None if callable(f.default) else copy.deepcopy(f.default)
            fields_out.append({
                "name": name,
                "type": f.type.value,
                "column": f.db_column,
                "label": f.label or name,
                "description": f.description,
                "placeholder": f.placeholder,
                "default": default,
                "required": f.required,
                "readOnly": f.read_only,
                "computed": f.is_computed,
                "formField": self.is_form_field(name),
                "sortable": f.sortable,
                "filterable": f.filterable,
                "showOn": list(f.show_on) if f.show_on is not None else None,
                "validation": {
                    k: v for k, v in (
                        ("minLength", f.min_length),
                        ("maxLength", f.max_length),
                        ("min", f.min),
                        ("max", f.max),
                        ("pattern", f.pattern),
                        ("enumValues", list(f.enum_values) if f.enum_values is not None else None),
                    ) if v is not None
                },
            })

        return {
            "entityName": self.entity_name,
            "tableName": self.table_name,
            "description": self.description,
            "primaryKey": self.primary_key_field,
            "fields": fields_out,
            "relationships": [
                {
                    "name": rel.name,
                    "type": rel.kind.value,
                    "target": rel.target_entity,
                    "localKey": rel.local_key,
                    "foreignKey": rel.foreign_key,
                    "autoLoad": rel.auto_load,
                }
                for rel in self.relationships.values()
            ],
            "timestamps": self.timestamps is not None,
            "softDelete": self.soft_delete is not None,
            "defaultOrder": [list(pair) for pair in self.default_order],
        }
