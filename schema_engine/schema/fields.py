"""
Field Descriptors

Describe one entity attribute: value type, storage column, default,
constraints and UI metadata. Descriptors are immutable.
"""

import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Callable, Optional

IDENTIFIER_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


class FieldType(str, Enum):
    """Value types supported by the schema system"""
    STRING = "string"
    EMAIL = "email"
    PHONE = "phone"
    URL = "url"
    NUMBER = "number"
    INTEGER = "integer"
    BOOLEAN = "boolean"
    DATE = "date"
    DATETIME = "datetime"
    JSON = "json"
    OBJECT = "object"
    ARRAY = "array"


STRING_TYPES = {FieldType.STRING, FieldType.EMAIL, FieldType.PHONE, FieldType.URL}
NUMERIC_TYPES = {FieldType.NUMBER, FieldType.INTEGER}
TEMPORAL_TYPES = {FieldType.DATE, FieldType.DATETIME}
JSON_TYPES = {FieldType.JSON, FieldType.OBJECT}


@dataclass(frozen=True)
class FieldDescriptor:
    """Metadata for one entity attribute."""
    api_name: str
    type: FieldType
    db_column: Optional[str]  # None for computed fields
    required: bool = False
    default: Any = None  # value, or zero-arg callable producing one
    read_only: bool = False
    label: str = ""
    description: str = ""
    placeholder: str = ""
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None
    pattern: Optional[str] = None
    enum_values: Optional[tuple] = None
    sortable: bool = True
    filterable: bool = True
    show_on: Optional[tuple] = None
    expression: Optional[str] = None  # trusted SQL for computed fields
    validate: Optional[Callable[[Any, dict], Optional[str]]] = None

    @property
    def is_computed(self) -> bool:
        return self.db_column is None

    @property
    def is_writable(self) -> bool:
        return not self.read_only and not self.is_computed

    @property
    def is_selectable(self) -> bool:
        return not self.is_computed or self.expression is not None

    @property
    def display_name(self) -> str:
        return self.label or self.api_name

    def default_value(self) -> Any:
        if callable(self.default):
            return self.default()
        return self.default


def field(
    type: FieldType = FieldType.STRING,
    *,
    db_column: Optional[str] = None,
    computed: bool = False,
    expression: Optional[str] = None,
    required: bool = False,
    default: Any = None,
    read_only: bool = False,
    label: str = "",
    description: str = "",
    placeholder: str = "",
    min_length: Optional[int] = None,
    max_length: Optional[int] = None,
    min: Optional[float] = None,
    max: Optional[float] = None,
    pattern: Optional[str] = None,
    enum_values: Optional[list] = None,
    sortable: Optional[bool] = None,
    filterable: bool = True,
    show_on: Optional[list] = None,
    validate: Optional[Callable[[Any, dict], Optional[str]]] = None,
) -> FieldDescriptor:
    """
    Declare a field. The API name is bound when the schema is built; the
    storage column defaults to the API name unless the field is computed.

    Example:
        "email": field(FieldType.EMAIL, required=True, max_length=254,
                       pattern=r"^[^@\\s]+@[^@\\s]+\\.[a-zA-Z]{2,}$")
    """
    if computed or expression is not None:
        computed = True
    return FieldDescriptor(
        api_name="",
        type=FieldType(type),
        # Placeholder marker resolved by bind_field(); "" means "use the API name"
        db_column=None if computed else (db_column or ""),
        required=required,
        default=default,
        read_only=read_only or computed,
        label=label,
        description=description,
        placeholder=placeholder,
        min_length=min_length,
        max_length=max_length,
        min=min,
        max=max,
        pattern=pattern,
        enum_values=tuple(enum_values) if enum_values is not None else None,
        sortable=(not computed or expression is not None) if sortable is None else sortable,
        filterable=filterable,
        show_on=tuple(show_on) if show_on is not None else None,
        expression=expression,
        validate=validate,
    )


def bind_field(api_name: str, descriptor: FieldDescriptor) -> FieldDescriptor:
    """Return a copy of ``descriptor`` bound to ``api_name`` with its column resolved."""
    column = descriptor.db_column
    if column == "":
        column = api_name
    return replace(descriptor, api_name=api_name, db_column=column)


def is_identifier(name: Optional[str]) -> bool:
    return bool(name) and IDENTIFIER_RE.match(name) is not None
