"""
Entity Repository

Generic CRUD runtime for one entity type: validates payloads, builds SQL
through the query builder, runs it on the execution interface, maps rows
to instances and translates backend failures into typed errors.

Each operation awaits the execution interface once per statement and
holds no connection between statements.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Optional, Union

from .config import EngineConfig
from .database import ExecutionInterface
from .entity import Entity
from .errors import EngineError, NotFoundError, StorageError, translate_database_error
from .mapper import instance_from_record, values_from_row
from .query.builder import build_count, build_delete, build_exists, build_insert, build_select, \
    build_soft_delete, build_update
from .query.request import QueryRequest, coerce_request
from .resolver import RelationshipResolver
from .schema.definition import EntitySchema
from .schema.registry import EntityRef, SchemaRegistry, registry as default_registry
from .schema.validation import validate_payload

logger = logging.getLogger(__name__)

RequestLike = Union[QueryRequest, dict, None]


@dataclass
class Page:
    """One page of find_all results plus pagination metadata."""
    items: list = field(default_factory=list)
    total: int = 0
    limit: Optional[int] = None
    offset: int = 0

    def __iter__(self) -> Iterator[Entity]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)

    def __getitem__(self, index):
        return self.items[index]

    @property
    def total_pages(self) -> int:
        if not self.limit:
            return 1 if self.total else 0
        return math.ceil(self.total / self.limit)

    @property
    def current_page(self) -> int:
        if not self.limit:
            return 1
        return self.offset // self.limit + 1

    @property
    def has_next_page(self) -> bool:
        return self.offset + len(self.items) < self.total

    @property
    def has_previous_page(self) -> bool:
        return self.offset > 0

    def to_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "pagination": {
                "total": self.total,
                "limit": self.limit,
                "offset": self.offset,
                "totalPages": self.total_pages,
                "currentPage": self.current_page,
                "hasNextPage": self.has_next_page,
                "hasPreviousPage": self.has_previous_page,
            },
        }


class EntityRepository:
    """CRUD operations for one registered entity type."""

    def __init__(self, db: ExecutionInterface, entity: EntityRef, registry: Optional[SchemaRegistry] = None,
                 config: Optional[EngineConfig] = None):
        self.db = db
        self.registry = registry or default_registry
        self.entity_type = self.registry.resolve_type(entity)
        self.config = config or EngineConfig()
        self.resolver = RelationshipResolver(self.registry, self._fetch_rows, self.config.batch_size)
        self._schema: Optional[EntitySchema] = None

    @property
    def schema(self) -> EntitySchema:
        if self._schema is None:
            self._schema = self.registry.get_schema(self.entity_type)
        return self._schema

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def _execute(self, sql: str, params: list, operation: str, schema: Optional[EntitySchema] = None):
        """Run one statement; backend failures are re-raised as typed engine errors."""
        schema = schema or self.schema
        logger.debug(f"{operation} {schema.entity_name}: executing statement with {len(params)} params")
        if self.config.log_sql:
            logger.info(f"{operation} {schema.entity_name}: {sql}")
        try:
            return await self.db.execute(sql, params)
        except EngineError:
            raise
        except Exception as e:
            error = translate_database_error(e, schema, operation)
            if isinstance(error, StorageError):
                logger.error(f"❌ {operation} {schema.entity_name} failed: {e}")
            else:
                logger.warning(f"⚠️  {operation} {schema.entity_name} rejected: {error.kind} {error.message}")
            raise error from e

    async def _fetch_rows(self, sql: str, params: list, schema: EntitySchema, operation: str) -> list:
        result = await self._execute(sql, params, operation, schema)
        return list(result.rows)

    def _key_of(self, instance: Entity, operation: str) -> Any:
        key = instance.get(self.schema.primary_key_field)
        if key is None:
            raise NotFoundError(
                f"Cannot {operation} {self.schema.entity_name}: primary key '{self.schema.primary_key_field}' is not set",
                entity=self.schema.entity_name, operation=operation,
            )
        return key

    def _not_found(self, key: Any, operation: str) -> NotFoundError:
        return NotFoundError(
            f"{self.schema.entity_name} with {self.schema.primary_key_field}={key} not found",
            entity=self.schema.entity_name, key=str(key), operation=operation,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _select(self, request: QueryRequest, operation: str) -> list[Entity]:
        schema = self.schema
        statement = build_select(schema, request, self.registry.get_schema, self.config.max_limit)
        result = await self._execute(statement.sql, statement.params, operation)
        instances = self.resolver.merge_joined(self.entity_type, schema, result.rows, statement)
        if instances and statement.batched:
            await self.resolver.load_batched(schema, instances, statement, request.with_deleted)
        return instances

    async def find_by_id(self, key: Any, options: RequestLike = None) -> Optional[Entity]:
        """Instance with the given primary key, or None."""
        if key is None:
            return None
        return await self.find_one({self.schema.primary_key_field: key}, options)

    async def find_one(self, where: Optional[Mapping[str, Any]] = None, options: RequestLike = None) -> Optional[Entity]:
        """First matching instance, or None when nothing matches."""
        request = coerce_request(options, where=dict(where) if where is not None else None, limit=1, offset=0)
        rows = await self._select(request, "find_one")
        return rows[0] if rows else None

    async def find_all(self, options: RequestLike = None, **kwargs: Any) -> Page:
        """
        Matching instances in deterministic order.

        Options may be a QueryRequest, a dict or keyword arguments
        (where=, include=, order_by=, limit=, offset=, ...).
        """
        request = coerce_request(options, **kwargs)
        items = await self._select(request, "find_all")

        if request.limit is None and (items or request.offset == 0):
            # Unbounded read ran to the end; an empty page past the end does not say where that is
            total = request.offset + len(items)
        elif request.offset == 0 and len(items) < min(request.limit, self.config.max_limit):
            # A short first page already is the whole result set
            total = len(items)
        else:
            total = await self.count(request.where, with_deleted=request.with_deleted)

        return Page(
            items=items,
            total=total,
            limit=min(request.limit, self.config.max_limit) if request.limit is not None else None,
            offset=request.offset,
        )

    async def count(self, where: Optional[Mapping[str, Any]] = None, with_deleted: bool = False) -> int:
        request = coerce_request(None, where=dict(where or {}), with_deleted=with_deleted)
        sql, params = build_count(self.schema, request, self.registry.get_schema)
        result = await self._execute(sql, params, "count")
        if not result.rows:
            return 0
        return int(dict(result.rows[0])["total"])

    async def exists(self, where: Optional[Mapping[str, Any]] = None, with_deleted: bool = False) -> bool:
        request = coerce_request(None, where=dict(where or {}), with_deleted=with_deleted)
        sql, params = build_exists(self.schema, request, self.registry.get_schema)
        result = await self._execute(sql, params, "exists")
        return bool(result.rows)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create(self, data: Union[Mapping[str, Any], Entity]) -> Entity:
        """
        Validate and insert ``data``.

        Raises:
            ValidationError: payload fails field constraints (no SQL is run)
            DuplicateError / ReferenceViolationError / RequiredFieldError / StorageError
        """
        payload = data.to_dict(include_related=False) if isinstance(data, Entity) else dict(data)
        validate_payload(self.schema, payload)
        sql, params = build_insert(self.schema, payload)
        result = await self._execute(sql, params, "create")
        if not result.rows:
            raise StorageError(f"Insert into {self.schema.table_name} returned no row", entity=self.schema.entity_name)
        instance = instance_from_record(self.entity_type, self.schema, result.rows[0])
        logger.info(f"Created {self.schema.entity_name} {instance.get(self.schema.primary_key_field)}")
        return instance

    async def update(self, instance: Entity, data: Mapping[str, Any], with_deleted: bool = False) -> Entity:
        """
        Apply ``data`` to the row behind ``instance`` and refresh the instance in place.

        A soft-deleted row counts as absent unless ``with_deleted`` is set.

        Raises:
            NotFoundError: primary key unset or no such row
            ValidationError: a provided field fails its constraints
            NoUpdatableFieldsError: nothing writable in ``data``
        """
        key = self._key_of(instance, "update")
        payload = dict(data)
        validate_payload(self.schema, payload, partial=True, current=instance.to_dict(include_related=False))
        sql, params = build_update(self.schema, payload, key, with_deleted=with_deleted)
        result = await self._execute(sql, params, "update")
        if not result.rows:
            raise self._not_found(key, "update")
        instance._replace_values(values_from_row(self.schema, self.schema.from_db(result.rows[0])))
        return instance

    async def delete(self, instance: Entity, soft: Optional[bool] = None, with_deleted: bool = False) -> Entity:
        """
        Delete the row behind ``instance``.

        Soft-delete schemas flip the status flag unless ``soft=False``. An
        already soft-deleted row is NotFound; ``soft=False, with_deleted=True``
        purges it.

        Returns:
            Instance built from the deleted (or flagged) row
        """
        key = self._key_of(instance, "delete")
        if soft is None:
            soft = self.schema.soft_delete is not None
        if soft:
            sql, params = build_soft_delete(self.schema, key)
        else:
            sql, params = build_delete(self.schema, key, with_deleted=with_deleted)
        result = await self._execute(sql, params, "soft_delete" if soft else "delete")
        if not result.rows:
            raise self._not_found(key, "delete")
        logger.info(f"Deleted {self.schema.entity_name} {key}{' (soft)' if soft else ''}")
        return instance_from_record(self.entity_type, self.schema, result.rows[0])

    async def save(self, instance: Entity) -> Entity:
        """Insert when the primary key is unset, update otherwise. Refreshes ``instance`` in place."""
        values = instance.to_dict(include_related=False)
        if values.get(self.schema.primary_key_field) is None:
            created = await self.create(values)
            instance._replace_values(created.to_dict(include_related=False))
            return instance
        return await self.update(instance, values)

    async def reload(self, instance: Entity) -> Entity:
        """Re-read the row behind ``instance`` and refresh it in place."""
        key = self._key_of(instance, "reload")
        fresh = await self.find_by_id(key, {"skip_auto_load": True})
        if fresh is None:
            raise self._not_found(key, "reload")
        instance._replace_values(fresh.to_dict(include_related=False))
        return instance
