"""
Engine Container - one execution interface, one registry, one repository per entity type
"""

import threading
from typing import Optional

from .config import EngineConfig
from .database import ExecutionInterface
from .repository import EntityRepository
from .schema.registry import EntityRef, SchemaRegistry, registry as default_registry


class EntityEngine:
    """
    Hands out cached EntityRepository instances bound to a shared execution interface.

    Usage:
        engine = EntityEngine(db)
        contacts = engine.repository(Contact)   # or engine["Contact"]
        page = await contacts.find_all(where={"status": "active"}, limit=20)
    """

    def __init__(self, db: ExecutionInterface, registry: Optional[SchemaRegistry] = None,
                 config: Optional[EngineConfig] = None):
        self.db = db
        self.registry = registry or default_registry
        self.config = config or EngineConfig()
        self._repositories: dict[type, EntityRepository] = {}
        self._lock = threading.Lock()

    def repository(self, entity: EntityRef) -> EntityRepository:
        entity_type = self.registry.resolve_type(entity)
        repo = self._repositories.get(entity_type)
        if repo is None:
            with self._lock:
                repo = self._repositories.get(entity_type)
                if repo is None:
                    repo = EntityRepository(self.db, entity_type, self.registry, self.config)
                    self._repositories[entity_type] = repo
        return repo

    __getitem__ = repository
