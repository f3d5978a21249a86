"""
Storage abstraction layer.

All persistence goes through these interfaces. This allows swapping
implementations (local filesystem -> object storage, in-memory -> a hosted
PostgreSQL) without changing application code.

- ContentStorage: binary assets (logos, media, backups)
- MetadataStorage: entity records, filtered by equality predicates
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, AsyncIterator

from pydantic import BaseModel


# =============================================================================
# Errors
# =============================================================================


# PostgreSQL SQLSTATE for unique_violation, as reported by the hosted backend
UNIQUE_VIOLATION = "23505"
NOT_FOUND = "PGRST116"


class StorageError(Exception):
    """
    A persistence operation failed.

    `code` is a machine-readable reason when the backend reports one.
    """

    def __init__(self, message: str, code: str | None = None, details: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class NotFoundError(StorageError):
    """The requested record does not exist."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, code=NOT_FOUND, details=details)


class ConflictError(StorageError):
    """A record with the same id or unique key already exists."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message, code=UNIQUE_VIOLATION, details=details)


# =============================================================================
# Storage Interfaces
# =============================================================================


class ContentStorage(ABC):
    """
    Storage for binary content (logos, images, backups).

    Local Implementation: Filesystem
    """

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        """Store content, return its public URL/path."""
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Retrieve content by key."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete content."""
        pass

    @abstractmethod
    async def get_url(self, key: str, expires_in: int = 3600) -> str:
        """Get a URL for direct access."""
        pass

    @abstractmethod
    async def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        """List keys with optional prefix."""
        pass


class MetadataStorage(ABC):
    """
    Storage for entity records, one collection per entity type.

    Local Implementation: in-memory
    """

    @abstractmethod
    async def insert(self, collection: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a new record.

        Raises ConflictError if the id or a unique key is already taken.
        """
        pass

    @abstractmethod
    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        """Insert or replace a record."""
        pass

    @abstractmethod
    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        """Get a record by ID."""
        pass

    @abstractmethod
    async def delete(self, collection: str, id: str) -> bool:
        """Delete a record."""
        pass

    @abstractmethod
    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Records matching every filter, in insertion order."""
        pass

    @abstractmethod
    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        """Partial update of a record; returns the updated record."""
        pass

    @abstractmethod
    async def update_where(
        self,
        collection: str,
        filters: dict[str, Any],
        updates: dict[str, Any],
        exclude_id: str | None = None,
    ) -> int:
        """Partial update of every matching record; returns how many changed."""
        pass


# =============================================================================
# Storage Provider (dependency injection container)
# =============================================================================


class StorageProvider(BaseModel):
    """
    Container for all storage backends.

    Initialize once at app startup with appropriate implementations.
    Services receive this and use the interfaces without knowing
    the underlying implementation.
    """

    model_config = {"arbitrary_types_allowed": True}

    content: ContentStorage
    metadata: MetadataStorage


# =============================================================================
# Collection Names (for MetadataStorage)
# =============================================================================


class Collections:
    """Standard collection/table names."""

    EVENTS = "events"
    LOCATIONS = "locations"
    PUBLICATIONS = "publications"
    PUBLICATION_LOCATIONS = "publication_locations"
    UMOORS = "umoors"
    MEDIA_FILES = "media_files"
    MEDIA_USAGE = "media_usage"
    MEDIA_JOBS = "media_optimization_jobs"
    MEDIA_VERSIONS = "media_versions"
    BACKUP_JOBS = "media_backup_jobs"
    COMPRESSION_SETTINGS = "compression_settings"
    STORAGE_QUOTAS = "storage_quotas"
    STORAGE_USAGE_HISTORY = "storage_usage_history"
    INVITATIONS = "invitations"
    PROFILES = "profiles"
    LOCATION_ACCESS = "user_location_access"


# Unique keys enforced on insert, per collection
UNIQUE_KEYS: dict[str, list[tuple[str, ...]]] = {
    Collections.INVITATIONS: [("email", "event_id")],
    Collections.PROFILES: [("email",)],
    Collections.PUBLICATION_LOCATIONS: [("publication_id", "location_id")],
    Collections.LOCATION_ACCESS: [("user_id", "location_id")],
    Collections.UMOORS: [("slug",)],
    Collections.COMPRESSION_SETTINGS: [("event_id",)],
    Collections.STORAGE_QUOTAS: [("event_id",)],
    Collections.STORAGE_USAGE_HISTORY: [("event_id", "day")],
}
