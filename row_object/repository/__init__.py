"""Repository layer - persistent objects and their collections."""

from __future__ import annotations

from row_object.repository.ai import AIClient
from row_object.repository.collection import Collection
from row_object.repository.entity import PersistentObject

__all__ = [
    "PersistentObject",
    "Collection",
    "AIClient",
]
