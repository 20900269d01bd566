"""
Query Builder

Translates entity schemas and structured requests into parameterized SQL.
All values are passed as asyncpg positional parameters ($1, $2, ...) and
never interpolated. Identifiers come from validated schemas only.

Supports:
- INSERT / UPDATE / DELETE / soft-delete statements with RETURNING *
- SELECT with field filters (eq, ne, gt, gte, lt, lte, like, ilike, in, notIn, between, isNull)
- Cross-entity dot-notation filters (e.g., "company.name": {"like": "Acme"})
- Date range shorthand ("2026-01" expands to the full month)
- LEFT JOIN includes for BelongsTo/HasOne and aggregated HasMany counts
- Automatic soft-delete filtering
- Deterministic ordering (primary key tie-break)

Parameter numbering starts at $1 for every statement.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Optional

from ..errors import InvalidQueryError, NoUpdatableFieldsError
from ..schema.definition import EntitySchema
from ..schema.fields import FieldDescriptor, FieldType
from ..schema.relationships import RelationshipDescriptor, RelationshipKind
from ..schema.types import serialize_value
from .operators import is_operator_object, render_condition
from .request import QueryRequest

logger = logging.getLogger(__name__)

MAX_LIMIT = 200

SchemaResolver = Callable[[str], EntitySchema]


@dataclass(frozen=True)
class SelectStatement:
    """A rendered SELECT plus what the resolver needs to post-process its rows."""
    sql: str
    params: list
    joined: tuple[RelationshipDescriptor, ...] = ()
    batched: tuple[RelationshipDescriptor, ...] = ()
    counts: tuple[str, ...] = ()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_resolver() -> SchemaResolver:
    from ..schema.registry import registry
    return registry.get_schema


def join_alias(rel_name: str) -> str:
    return f"_j_{rel_name}"


def joined_column_alias(rel_name: str, field_name: str) -> str:
    return f"{rel_name}__{field_name}"


def count_alias(rel_name: str) -> str:
    return f"{rel_name}__count"


# ============================================================================
# Mutations
# ============================================================================

def _project_writable(schema: EntitySchema, data: Mapping[str, Any]) -> list[tuple[str, Any]]:
    """
    (column, parameter value) pairs for the writable fields present in ``data``.
    Unknown, read-only and computed keys are dropped.
    """
    return [
        (f.db_column, serialize_value(f, data[f.api_name]))
        for f in schema.writable_fields()
        if f.api_name in data
    ]


def build_insert(schema: EntitySchema, data: Mapping[str, Any], now: Optional[datetime] = None) -> tuple[str, list]:
    """
    Build an INSERT for ``data``.

    A None primary key is left to the column default. Timestamp columns are
    stamped when the schema declares timestamps.

    Returns (sql, params).
    """
    pairs = [
        (column, value) for column, value in _project_writable(schema, data)
        if not (column == schema.primary_key_column and value is None)
    ]
    if schema.timestamps is not None:
        stamp = now or _utcnow()
        pairs.append((schema.timestamps.created_at_column, stamp))
        pairs.append((schema.timestamps.updated_at_column, stamp))

    if not pairs:
        return f"INSERT INTO {schema.table_name} DEFAULT VALUES RETURNING *", []

    columns = ",".join(column for column, _ in pairs)
    placeholders = ",".join(f"${i}" for i in range(1, len(pairs) + 1))
    params = [value for _, value in pairs]
    return f"INSERT INTO {schema.table_name} ({columns}) VALUES ({placeholders}) RETURNING *", params


def _key_condition(schema: EntitySchema, key_param: str, with_deleted: bool) -> str:
    """Primary-key match; soft-deleted rows are excluded unless ``with_deleted``."""
    condition = f"{schema.primary_key_column}={key_param}"
    if schema.soft_delete is not None and not with_deleted:
        condition += f" AND {schema.soft_delete.flag_column}=FALSE"
    return condition


def build_update(schema: EntitySchema, data: Mapping[str, Any], key: Any,
                 now: Optional[datetime] = None, with_deleted: bool = False) -> tuple[str, list]:
    """
    Build an UPDATE of the row whose primary key equals ``key``.

    Raises:
        NoUpdatableFieldsError: nothing writable left after projection
    """
    pairs = [
        (column, value) for column, value in _project_writable(schema, data)
        if column != schema.primary_key_column
    ]
    if not pairs:
        raise NoUpdatableFieldsError(
            f"No updatable fields provided for {schema.entity_name}",
            entity=schema.entity_name,
            writableFields=[f.api_name for f in schema.writable_fields()],
        )
    if schema.timestamps is not None:
        pairs.append((schema.timestamps.updated_at_column, now or _utcnow()))

    params = [value for _, value in pairs]
    assignments = ",".join(f"{column}=${i}" for i, (column, _) in enumerate(pairs, start=1))
    params.append(key)
    return (
        f"UPDATE {schema.table_name} SET {assignments} "
        f"WHERE {_key_condition(schema, f'${len(params)}', with_deleted)} RETURNING *",
        params,
    )


def build_delete(schema: EntitySchema, key: Any, with_deleted: bool = False) -> tuple[str, list]:
    """Physical deletion by primary key."""
    return (
        f"DELETE FROM {schema.table_name} WHERE {_key_condition(schema, '$1', with_deleted)} RETURNING *",
        [key],
    )


def build_soft_delete(schema: EntitySchema, key: Any, now: Optional[datetime] = None) -> tuple[str, list]:
    """Status-flip deletion: sets the flag (and deletion timestamp) on a live row by primary key."""
    config = schema.soft_delete
    if config is None:
        raise InvalidQueryError(f"{schema.entity_name} does not support soft delete", entity=schema.entity_name)

    pairs = [(config.flag_column, True)]
    if config.timestamp_column:
        pairs.append((config.timestamp_column, now or _utcnow()))
    params = [value for _, value in pairs]
    assignments = ",".join(f"{column}=${i}" for i, (column, _) in enumerate(pairs, start=1))
    params.append(key)
    return (
        f"UPDATE {schema.table_name} SET {assignments} "
        f"WHERE {_key_condition(schema, f'${len(params)}', False)} RETURNING *",
        params,
    )


# ============================================================================
# Reads
# ============================================================================

class _SelectContext:
    """Mutable state for rendering one SELECT/COUNT: params and LEFT JOINs."""

    def __init__(self, schema: EntitySchema, resolve: Optional[SchemaResolver], with_deleted: bool):
        self.schema = schema
        self.resolve = resolve
        self.with_deleted = with_deleted
        self.params: list = []
        self.joins: dict[str, str] = {}

    def column_ref(self, field_def: FieldDescriptor, table: Optional[str] = None) -> str:
        if field_def.db_column is None:
            if field_def.expression is None:
                raise InvalidQueryError(
                    f"Computed field '{field_def.api_name}' cannot be queried", field=field_def.api_name,
                )
            return f"({field_def.expression})"
        return f"{table or self.schema.table_name}.{field_def.db_column}"

    def relationship(self, rel_name: str) -> RelationshipDescriptor:
        rel = self.schema.relationships.get(rel_name)
        if rel is None:
            raise InvalidQueryError(
                f"Unknown relationship '{rel_name}' on entity '{self.schema.entity_name}'",
                relationship=rel_name, validRelationships=list(self.schema.relationships),
            )
        return rel

    def soft_delete_filter(self, schema: EntitySchema, table: str) -> Optional[str]:
        if schema.soft_delete is None or self.with_deleted:
            return None
        return f"{table}.{schema.soft_delete.flag_column} = FALSE"

    def ensure_join(self, rel: RelationshipDescriptor) -> EntitySchema:
        """Add the LEFT JOIN for a BelongsTo/HasOne relationship (once)."""
        target = self.resolve(rel.target_entity)
        alias = join_alias(rel.name)
        if alias not in self.joins:
            root = self.schema.table_name
            local_col = self.schema.fields[rel.local_key].db_column
            foreign_col = target.fields[rel.foreign_key].db_column
            on = [f"{alias}.{foreign_col} = {root}.{local_col}"]
            soft = self.soft_delete_filter(target, alias)
            if soft:
                on.append(soft)
            self.joins[alias] = f"LEFT JOIN {target.table_name} {alias} ON {' AND '.join(on)}"
        return target

    def add_count_join(self, rel: RelationshipDescriptor) -> str:
        """LEFT JOIN an aggregated child count for a HasMany relationship."""
        target = self.resolve(rel.target_entity)
        alias = f"_c_{rel.name}"
        if alias not in self.joins:
            foreign_col = target.fields[rel.foreign_key].db_column
            local_col = self.schema.fields[rel.local_key].db_column
            inner_where = ""
            soft = self.soft_delete_filter(target, target.table_name)
            if soft:
                inner_where = f" WHERE {soft}"
            self.joins[alias] = (
                f"LEFT JOIN (SELECT {foreign_col}, COUNT(*) AS total FROM {target.table_name}{inner_where} "
                f"GROUP BY {foreign_col}) {alias} ON {alias}.{foreign_col} = {self.schema.table_name}.{local_col}"
            )
        return f'COALESCE({alias}.total, 0) AS "{count_alias(rel.name)}"'


def _field_conditions(ctx: _SelectContext, field_def: FieldDescriptor, col: str, value: Any) -> list[str]:
    if not field_def.filterable:
        raise InvalidQueryError(f"Field '{field_def.api_name}' is not filterable", field=field_def.api_name)
    if is_operator_object(field_def, value):
        if not value:
            raise InvalidQueryError(f"Empty operator object on '{field_def.api_name}'", field=field_def.api_name)
        operators = value
    elif isinstance(value, (list, tuple, set, frozenset)) and field_def.type != FieldType.ARRAY:
        operators = {"in": value}
    else:
        operators = {"eq": value}

    conditions = []
    for op, operand in operators.items():
        conditions.extend(render_condition(col, field_def, op, operand, ctx.params))
    return conditions


def _resolve_cross_entity_filter(ctx: _SelectContext, path: str, value: Any) -> list[str]:
    """
    Resolve a dot-notation filter like "company.name".

    BelongsTo/HasOne filter through the relationship's LEFT JOIN; HasMany
    compiles to an EXISTS subquery so parent rows are never duplicated.
    """
    rel_name, field_name = path.split(".", 1)
    rel = ctx.relationship(rel_name)
    target = ctx.resolve(rel.target_entity)
    target_field = target.fields.get(field_name)
    if target_field is None:
        raise InvalidQueryError(
            f"Unknown field '{field_name}' on entity '{target.entity_name}'",
            field=path, validFields=list(target.fields),
        )

    if rel.is_single:
        ctx.ensure_join(rel)
        col = ctx.column_ref(target_field, join_alias(rel.name))
        return _field_conditions(ctx, target_field, col, value)

    alias = f"_x_{rel.name}"
    if target_field.db_column is None:
        raise InvalidQueryError(f"Computed field '{path}' cannot be filtered across a relationship", field=path)
    inner = [
        f"{alias}.{target.fields[rel.foreign_key].db_column} = "
        f"{ctx.schema.table_name}.{ctx.schema.fields[rel.local_key].db_column}"
    ]
    inner.extend(_field_conditions(ctx, target_field, f"{alias}.{target_field.db_column}", value))
    soft = ctx.soft_delete_filter(target, alias)
    if soft:
        inner.append(soft)
    return [f"EXISTS (SELECT 1 FROM {target.table_name} {alias} WHERE {' AND '.join(inner)})"]


def _build_filter(ctx: _SelectContext, where: Mapping[str, Any]) -> list[str]:
    """WHERE fragments for direct and dot-notation filters."""
    conditions = []
    for field_name, value in where.items():
        if "." in field_name:
            conditions.extend(_resolve_cross_entity_filter(ctx, field_name, value))
            continue

        field_def = ctx.schema.fields.get(field_name)
        if field_def is None:
            hint = ""
            if field_name in ctx.schema.relationships:
                hint = f" Did you mean '{field_name}.<field>'?"
            raise InvalidQueryError(
                f"Unknown field '{field_name}' on entity '{ctx.schema.entity_name}'.{hint}",
                field=field_name, validFields=list(ctx.schema.fields),
            )
        conditions.extend(_field_conditions(ctx, field_def, ctx.column_ref(field_def), value))
    return conditions


def _where_clause(ctx: _SelectContext, where: Mapping[str, Any]) -> str:
    conditions = []
    soft = ctx.soft_delete_filter(ctx.schema, ctx.schema.table_name)
    if soft:
        conditions.append(soft)
    conditions.extend(_build_filter(ctx, where))
    return f"WHERE {' AND '.join(conditions)}" if conditions else ""


def _build_order(ctx: _SelectContext, order_by: Iterable[tuple[str, str]]) -> str:
    """
    ORDER BY clause. An unknown or unsortable field falls back to the
    schema's default order. The primary key is always the final tie-break.
    """
    schema = ctx.schema
    entries = list(order_by)
    for field_name, direction in entries:
        field_def = schema.fields.get(field_name)
        if field_def is None or not field_def.sortable or not field_def.is_selectable \
                or direction not in ("ASC", "DESC"):
            logger.warning(
                f"Ignoring orderBy {entries} on {schema.entity_name}: "
                f"'{field_name} {direction}' is not sortable, using default order"
            )
            entries = list(schema.default_order)
            break
    if not entries:
        entries = list(schema.default_order)

    parts = [f"{ctx.column_ref(schema.fields[name])} {direction}" for name, direction in entries]
    if schema.primary_key_field not in (name for name, _ in entries):
        parts.append(f"{schema.table_name}.{schema.primary_key_column} ASC")
    return f"ORDER BY {', '.join(parts)}"


def _select_columns(ctx: _SelectContext, projection: Optional[list[str]],
                    required: Iterable[str]) -> list[str]:
    schema = ctx.schema
    if projection:
        unknown = [name for name in projection if name not in schema.fields]
        if unknown:
            raise InvalidQueryError(
                f"Unknown projection field(s) {unknown} on entity '{schema.entity_name}'",
                field=unknown[0], validFields=list(schema.fields),
            )
        names = list(dict.fromkeys([schema.primary_key_field, *required, *projection]))
    else:
        names = list(schema.fields)

    columns = []
    for name in names:
        f = schema.fields[name]
        if not f.is_selectable:
            continue
        columns.append(f'{ctx.column_ref(f)} AS "{name}"')
    return columns


def _joined_columns(rel: RelationshipDescriptor, target: EntitySchema) -> list[str]:
    alias = join_alias(rel.name)
    return [
        f'{alias}.{f.db_column} AS "{joined_column_alias(rel.name, name)}"'
        for name, f in target.fields.items()
        if f.db_column is not None
    ]


def build_select(schema: EntitySchema, request: Optional[QueryRequest] = None,
                 resolve: Optional[SchemaResolver] = None, max_limit: int = MAX_LIMIT) -> SelectStatement:
    """
    Build a SELECT for ``request``.

    Columns are aliased to API field names; joined relationship columns are
    aliased "<relationship>__<field>".

    Raises:
        InvalidQueryError: unknown field, include or projection name
        UnsupportedOperatorError: unknown filter operator
    """
    request = request or QueryRequest()
    resolve = resolve or _default_resolver()
    ctx = _SelectContext(schema, resolve, request.with_deleted)

    includes = list(dict.fromkeys(request.include))
    if not request.skip_auto_load:
        includes.extend(name for name, rel in schema.relationships.items()
                        if rel.auto_load and name not in includes)

    joined: list[RelationshipDescriptor] = []
    batched: list[RelationshipDescriptor] = []
    for name in includes:
        rel = ctx.relationship(name)
        if rel.is_single:
            joined.append(rel)
        else:
            batched.append(rel)

    required_keys = [rel.local_key for rel in joined + batched]
    columns = _select_columns(ctx, request.projection, required_keys)
    for rel in joined:
        columns.extend(_joined_columns(rel, ctx.ensure_join(rel)))

    counts = []
    for name in dict.fromkeys(request.include_counts):
        rel = ctx.relationship(name)
        if rel.kind != RelationshipKind.HAS_MANY:
            raise InvalidQueryError(f"includeCounts needs a has_many relationship, '{name}' is {rel.kind.value}")
        columns.append(ctx.add_count_join(rel))
        counts.append(name)

    where_clause = _where_clause(ctx, request.where)
    order_clause = _build_order(ctx, request.order_by)

    parts = [f"SELECT {', '.join(columns)}", f"FROM {schema.table_name}"]
    parts.extend(ctx.joins.values())
    if where_clause:
        parts.append(where_clause)
    parts.append(order_clause)

    if request.limit is not None:
        limit = min(request.limit, max_limit)
        ctx.params.append(limit)
        parts.append(f"LIMIT ${len(ctx.params)}")
    if request.limit is not None or request.offset:
        ctx.params.append(request.offset)
        parts.append(f"OFFSET ${len(ctx.params)}")

    return SelectStatement(
        sql=" ".join(parts),
        params=ctx.params,
        joined=tuple(joined),
        batched=tuple(batched),
        counts=tuple(counts),
    )


def build_count(schema: EntitySchema, request: Optional[QueryRequest] = None,
                resolve: Optional[SchemaResolver] = None) -> tuple[str, list]:
    """
    Build a COUNT with the same filters as ``request`` (no pagination).
    Returns (sql, params).
    """
    request = request or QueryRequest()
    ctx = _SelectContext(schema, resolve or _default_resolver(), request.with_deleted)
    where_clause = _where_clause(ctx, request.where)

    # Use COUNT(DISTINCT pk) when joins present
    pk = f"{schema.table_name}.{schema.primary_key_column}"
    count_expr = f"COUNT(DISTINCT {pk})" if ctx.joins else "COUNT(*)"

    parts = [f"SELECT {count_expr} AS total", f"FROM {schema.table_name}"]
    parts.extend(ctx.joins.values())
    if where_clause:
        parts.append(where_clause)
    return " ".join(parts), ctx.params


def build_exists(schema: EntitySchema, request: Optional[QueryRequest] = None,
                 resolve: Optional[SchemaResolver] = None) -> tuple[str, list]:
    """SELECT 1 ... LIMIT 1 with the filters of ``request``."""
    request = request or QueryRequest()
    ctx = _SelectContext(schema, resolve or _default_resolver(), request.with_deleted)
    where_clause = _where_clause(ctx, request.where)

    parts = ["SELECT 1", f"FROM {schema.table_name}"]
    parts.extend(ctx.joins.values())
    if where_clause:
        parts.append(where_clause)
    parts.append("LIMIT 1")
    return " ".join(parts), ctx.params


def build_related_select(schema: EntitySchema, key_field: str, keys: list,
                         with_deleted: bool = False) -> tuple[str, list]:
    """
    Batched child query: every row of ``schema`` whose ``key_field`` is in
    ``keys``, in default order. Used to expand HasMany includes.
    """
    ctx = _SelectContext(schema, None, with_deleted)
    key_def = schema.fields[key_field]
    columns = _select_columns(ctx, None, ())

    conditions = []
    soft = ctx.soft_delete_filter(schema, schema.table_name)
    if soft:
        conditions.append(soft)
    conditions.extend(render_condition(ctx.column_ref(key_def), key_def, "in", keys, ctx.params))

    sql = (
        f"SELECT {', '.join(columns)} FROM {schema.table_name} "
        f"WHERE {' AND '.join(conditions)} {_build_order(ctx, ())}"
    )
    return sql, ctx.params
