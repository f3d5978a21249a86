"""
Storage abstractions.

- ContentStorage -> logos, media files, backups
- MetadataStorage -> events, locations, publications, team records
"""

from elan.storage.base import (
    ContentStorage,
    MetadataStorage,
    StorageProvider,
    Collections,
    StorageError,
    NotFoundError,
    ConflictError,
    UNIQUE_VIOLATION,
)
from elan.storage.local import (
    InMemoryMetadataStorage,
    LocalContentStorage,
    create_local_storage,
)

__all__ = [
    "ContentStorage",
    "MetadataStorage",
    "StorageProvider",
    "Collections",
    "StorageError",
    "NotFoundError",
    "ConflictError",
    "UNIQUE_VIOLATION",
    "InMemoryMetadataStorage",
    "LocalContentStorage",
    "create_local_storage",
]
