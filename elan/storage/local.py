"""
Local storage implementations for development.

These are in-memory or filesystem-based implementations
that work without any external services.
"""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, AsyncIterator

from elan.storage.base import (
    UNIQUE_KEYS,
    ConflictError,
    ContentStorage,
    MetadataStorage,
    NotFoundError,
    StorageProvider,
)


# =============================================================================
# Local Filesystem Content Storage
# =============================================================================


class LocalContentStorage(ContentStorage):
    """Store content on local filesystem."""

    def __init__(self, base_path: str = "./data/content"):
        self.base_path = Path(base_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _key_to_path(self, key: str) -> Path:
        path = (self.base_path / key).resolve()
        if not path.is_relative_to(self.base_path.resolve()):
            raise ValueError(f"Key escapes storage root: {key}")
        return path

    async def put(self, key: str, data: bytes, content_type: str = "application/octet-stream") -> str:
        path = self._key_to_path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return await self.get_url(key)

    async def get(self, key: str) -> bytes:
        path = self._key_to_path(key)
        if not path.exists():
            raise NotFoundError(f"Content not found: {key}")
        return path.read_bytes()

    async def delete(self, key: str) -> bool:
        path = self._key_to_path(key)
        if path.exists():
            path.unlink()
            return True
        return False

    async def get_url(self, key: str, expires_in: int = 3600) -> str:
        # For local, just return the file path
        return f"file://{self._key_to_path(key)}"

    async def list_keys(self, prefix: str = "") -> AsyncIterator[str]:
        search_path = self.base_path / prefix if prefix else self.base_path
        if search_path.exists():
            for path in sorted(search_path.rglob("*")):
                if path.is_file():
                    yield str(path.relative_to(self.base_path))


# =============================================================================
# In-Memory Metadata Storage
# =============================================================================


class InMemoryMetadataStorage(MetadataStorage):
    """In-memory record storage for development and tests."""

    def __init__(self, unique_keys: dict[str, list[tuple[str, ...]]] | None = None):
        self._data: dict[str, dict[str, dict[str, Any]]] = {}
        self._unique_keys = UNIQUE_KEYS if unique_keys is None else unique_keys

    def _collection(self, collection: str) -> dict[str, dict[str, Any]]:
        return self._data.setdefault(collection, {})

    def _check_unique(self, collection: str, id: str, data: dict[str, Any]) -> None:
        for key in self._unique_keys.get(collection, []):
            values = tuple(data.get(field) for field in key)
            if None in values:
                continue  # NULLs never collide
            for other_id, doc in self._collection(collection).items():
                if other_id == id:
                    continue
                if tuple(doc.get(field) for field in key) == values:
                    raise ConflictError(
                        f"duplicate key value violates unique constraint on "
                        f"{collection}({', '.join(key)})",
                        details={"key": dict(zip(key, values))},
                    )

    async def insert(self, collection: str, id: str, data: dict[str, Any]) -> dict[str, Any]:
        if id in self._collection(collection):
            raise ConflictError(f"{collection} record {id} already exists")
        self._check_unique(collection, id, data)
        await self.save(collection, id, data)
        return copy.deepcopy(self._collection(collection)[id])

    async def save(self, collection: str, id: str, data: dict[str, Any]) -> None:
        self._collection(collection)[id] = {
            **copy.deepcopy(data),
            "id": id,
            "_updated_at": datetime.now(timezone.utc).isoformat(),
        }

    async def get(self, collection: str, id: str) -> dict[str, Any] | None:
        doc = self._data.get(collection, {}).get(id)
        return copy.deepcopy(doc) if doc is not None else None

    async def delete(self, collection: str, id: str) -> bool:
        if collection in self._data and id in self._data[collection]:
            del self._data[collection][id]
            return True
        return False

    async def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        results = [
            doc for doc in self._data.get(collection, {}).values()
            if _matches(doc, filters)
        ]
        # Apply pagination
        return copy.deepcopy(results[offset:offset + limit])

    async def update(self, collection: str, id: str, updates: dict[str, Any]) -> dict[str, Any] | None:
        docs = self._data.get(collection, {})
        if id not in docs:
            return None
        merged = {**docs[id], **copy.deepcopy(updates)}
        self._check_unique(collection, id, merged)
        merged["_updated_at"] = datetime.now(timezone.utc).isoformat()
        docs[id] = merged
        return copy.deepcopy(merged)

    async def update_where(
        self,
        collection: str,
        filters: dict[str, Any],
        updates: dict[str, Any],
        exclude_id: str | None = None,
    ) -> int:
        changed = 0
        for id, doc in self._data.get(collection, {}).items():
            if id == exclude_id or not _matches(doc, filters):
                continue
            doc.update(copy.deepcopy(updates))
            doc["_updated_at"] = datetime.now(timezone.utc).isoformat()
            changed += 1
        return changed


def _matches(doc: dict[str, Any], filters: dict[str, Any] | None) -> bool:
    if not filters:
        return True
    return all(doc.get(key) == value for key, value in filters.items())


# =============================================================================
# Factory
# =============================================================================


def create_local_storage(data_dir: str = "./data") -> StorageProvider:
    """Create a StorageProvider with local implementations."""
    return StorageProvider(
        content=LocalContentStorage(f"{data_dir}/content"),
        metadata=InMemoryMetadataStorage(),
    )
