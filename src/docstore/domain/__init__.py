"""Domain value types: entity identity, versions, and stored items.

The domain layer performs no I/O and imports nothing from persistence.
"""

from docstore.domain.entity import (
    AbstractEntity,
    AbstractEntityRoot,
    Entity,
    EntityId,
    EntityRoot,
)
from docstore.domain.models import EntitiesWithCount, StoredItem, Version

__all__ = [
    "AbstractEntity",
    "AbstractEntityRoot",
    "EntitiesWithCount",
    "Entity",
    "EntityId",
    "EntityRoot",
    "StoredItem",
    "Version",
]
