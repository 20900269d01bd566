"""
Relationship Descriptors

Foreign-key associations between two entities. Keys are API field names:
- belongs_to: local_key is the FK field on the owner, foreign_key the referenced
  field on the target (defaults to the target's primary key)
- has_one / has_many: foreign_key is the FK field on the target, local_key the
  referenced field on the owner (defaults to the owner's primary key)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RelationshipKind(str, Enum):
    BELONGS_TO = "belongs_to"
    HAS_ONE = "has_one"
    HAS_MANY = "has_many"


@dataclass(frozen=True)
class RelationshipDescriptor:
    """Defines how one entity relates to another."""
    name: str
    kind: RelationshipKind
    target_entity: str
    local_key: Optional[str]
    foreign_key: Optional[str]
    auto_load: bool = False

    @property
    def is_single(self) -> bool:
        return self.kind in (RelationshipKind.BELONGS_TO, RelationshipKind.HAS_ONE)


def belongs_to(target_entity: str, local_key: str, foreign_key: Optional[str] = None,
               auto_load: bool = False) -> RelationshipDescriptor:
    """Many-to-one, e.g. Contact belongs to Company via company_id."""
    return RelationshipDescriptor("", RelationshipKind.BELONGS_TO, target_entity, local_key, foreign_key, auto_load)


def has_one(target_entity: str, foreign_key: str, local_key: Optional[str] = None,
            auto_load: bool = False) -> RelationshipDescriptor:
    return RelationshipDescriptor("", RelationshipKind.HAS_ONE, target_entity, local_key, foreign_key, auto_load)


def has_many(target_entity: str, foreign_key: str, local_key: Optional[str] = None,
             auto_load: bool = False) -> RelationshipDescriptor:
    """One-to-many, e.g. Company has many Contacts via contact.company_id."""
    return RelationshipDescriptor("", RelationshipKind.HAS_MANY, target_entity, local_key, foreign_key, auto_load)
