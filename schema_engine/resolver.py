"""
Relationship Resolver

Attaches related entities to already-fetched parents:
- BelongsTo/HasOne arrive as LEFT JOIN columns on the parent row and are
  split out per row
- HasMany are batch-loaded with one IN query per chunk of parent keys and
  merged through a hash index (no N+1, no row duplication)
"""

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Mapping, Sequence

from .entity import Entity
from .mapper import instance_from_row, joined_instance
from .query.builder import SelectStatement, build_related_select, count_alias, joined_column_alias
from .schema.definition import EntitySchema
from .schema.registry import SchemaRegistry

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 500

# (sql, params, schema, operation) -> rows
RowFetcher = Callable[[str, list, EntitySchema, str], Awaitable[list]]


class RelationshipResolver:
    """Batch-loads and attaches related entities to parent instances."""

    def __init__(self, registry: SchemaRegistry, fetch: RowFetcher, batch_size: int = DEFAULT_BATCH_SIZE):
        self.registry = registry
        self.fetch = fetch
        self.batch_size = max(1, batch_size)

    def merge_joined(self, entity_type: type, schema: EntitySchema, rows: Sequence[Mapping[str, Any]],
                     statement: SelectStatement) -> list[Entity]:
        """
        Map SELECT rows to instances, splitting out joined relationship
        columns and include counts.
        """
        targets = [
            (rel, self.registry.resolve_type(rel.target_entity), self.registry.get_schema(rel.target_entity))
            for rel in statement.joined
        ]

        instances = []
        for record in rows:
            row = dict(record)
            instance = instance_from_row(entity_type, schema, row)
            for rel, target_type, target_schema in targets:
                instance.related[rel.name] = joined_instance(
                    target_type, target_schema, row, joined_column_alias(rel.name, ""),
                )
            for name in statement.counts:
                instance.related_counts[name] = int(row.get(count_alias(name)) or 0)
            instances.append(instance)
        return instances

    async def load_batched(self, schema: EntitySchema, instances: Sequence[Entity],
                           statement: SelectStatement, with_deleted: bool = False) -> None:
        """
        Expand HasMany includes. Children are fetched once per chunk of parent
        keys and grouped by foreign key in a single pass.
        """
        for rel in statement.batched:
            target_type = self.registry.resolve_type(rel.target_entity)
            target = self.registry.get_schema(rel.target_entity)

            keys = list(dict.fromkeys(
                instance.get(rel.local_key) for instance in instances
                if instance.get(rel.local_key) is not None
            ))

            children_by_key: dict[Any, list[Entity]] = defaultdict(list)
            for start in range(0, len(keys), self.batch_size):
                chunk = keys[start:start + self.batch_size]
                sql, params = build_related_select(target, rel.foreign_key, chunk, with_deleted)
                rows = await self.fetch(sql, params, target, f"include {schema.entity_name}.{rel.name}")
                for record in rows:
                    child = instance_from_row(target_type, target, dict(record))
                    children_by_key[child.get(rel.foreign_key)].append(child)

            logger.debug(
                f"Loaded {sum(len(v) for v in children_by_key.values())} {target.entity_name} rows "
                f"for {len(keys)} {schema.entity_name} keys ({rel.name})"
            )

            for instance in instances:
                instance.related[rel.name] = list(children_by_key.get(instance.get(rel.local_key), ()))
