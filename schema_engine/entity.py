"""
Entity instances

An entity instance is a plain record keyed by API field name. Instances
built by the engine always carry exactly the fields their schema declares;
related entities loaded through ``include`` live in a separate mapping.
"""

from typing import Any, ClassVar, Iterator, Mapping, Optional


class Entity:
    """
    Base class for entity types.

    Subclasses declare their schema with a ``__schema__`` SchemaDefinition and
    are registered with a SchemaRegistry:

        @registry.register
        class Contact(Entity):
            __schema__ = SchemaDefinition(entity_name="Contact", ...)

    Field values are reachable as attributes (``contact.email``) and items
    (``contact["email"]``).
    """

    __schema__: ClassVar[Optional[Any]] = None

    def __init__(self, values: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        data = dict(values or {})
        data.update(kwargs)
        object.__setattr__(self, "_values", data)
        object.__setattr__(self, "_related", {})
        object.__setattr__(self, "_related_counts", {})

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal attribute lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        values = self.__dict__["_values"]
        if name in values:
            return values[name]
        related = self.__dict__["_related"]
        if name in related:
            return related[name]
        raise AttributeError(f"'{type(self).__name__}' has no field '{name}'")

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
        else:
            self._values[name] = value

    def __getitem__(self, name: str) -> Any:
        return self._values[name]

    def __setitem__(self, name: str, value: Any) -> None:
        self._values[name] = value

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return self._values == other._values and self._related == other._related

    __hash__ = None  # mutable record

    def __repr__(self) -> str:
        fields = ", ".join(f"{k}={v!r}" for k, v in self._values.items())
        return f"{type(self).__name__}({fields})"

    def get(self, name: str, default: Any = None) -> Any:
        return self._values.get(name, default)

    def keys(self):
        return self._values.keys()

    @property
    def related(self) -> dict[str, Any]:
        """Related entities loaded through ``include`` (instance, list or None)."""
        return self._related

    @property
    def related_counts(self) -> dict[str, int]:
        """HasMany counts loaded through ``include_counts``."""
        return self._related_counts

    def to_dict(self, include_related: bool = True) -> dict[str, Any]:
        data = dict(self._values)
        if include_related:
            for name, value in self._related.items():
                if isinstance(value, list):
                    data[name] = [item.to_dict() for item in value]
                elif isinstance(value, Entity):
                    data[name] = value.to_dict()
                else:
                    data[name] = value
            for name, total in self._related_counts.items():
                data[f"{name}Count"] = total
        return data

    def _replace_values(self, values: Mapping[str, Any]) -> None:
        """Overwrite field values in place (used after update/save/reload)."""
        self._values.clear()
        self._values.update(values)
