"""
Base class for entity services.

Entity services are thin typed wrappers over MetadataStorage: they turn
records into models and back, and report failures uniformly. Anything
domain-specific (host locations, invitations, ...) lives in subclasses.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from elan.core.utils import utc_now
from elan.storage.base import NotFoundError, StorageError, StorageProvider

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


@asynccontextmanager
async def storage_operation(operation: str) -> AsyncIterator[None]:
    """
    Log and normalize failures of one persistence operation.

    StorageErrors pass through with their code; anything else is wrapped
    so callers only ever see StorageError.
    """
    try:
        yield
    except StorageError as e:
        logger.error(f"{operation} failed: {e.message} (code={e.code})")
        raise
    except (ValidationError, ValueError, KeyError) as e:
        logger.error(f"{operation} failed: {e}")
        raise StorageError(f"Failed to {operation}", details=str(e)) from e


class EntityService(Generic[ModelT]):
    """
    CRUD over one collection.

    Subclasses set `collection`, `model` and `entity_name`.
    """

    collection: str
    model: type[ModelT]
    entity_name: str = "record"

    def __init__(self, storage: StorageProvider):
        self.storage = storage

    @property
    def metadata(self):
        return self.storage.metadata

    # -------------------------------------------------------------------------
    # Conversion
    # -------------------------------------------------------------------------

    def _to_record(self, entity: ModelT) -> dict[str, Any]:
        return entity.model_dump(mode="json")

    def _from_record(self, record: dict[str, Any]) -> ModelT:
        data = {k: v for k, v in record.items() if not k.startswith("_")}
        return self.model.model_validate(data)

    # -------------------------------------------------------------------------
    # CRUD
    # -------------------------------------------------------------------------

    async def get(self, id: str) -> ModelT | None:
        async with storage_operation(f"fetch {self.entity_name}"):
            record = await self.metadata.get(self.collection, id)
            return self._from_record(record) if record else None

    async def require(self, id: str) -> ModelT:
        """Like get(), but a missing record is an error."""
        entity = await self.get(id)
        if entity is None:
            raise NotFoundError(f"{self.entity_name.capitalize()} not found: {id}")
        return entity

    async def list(
        self,
        filters: dict[str, Any] | None = None,
        limit: int = 1000,
        offset: int = 0,
    ) -> list[ModelT]:
        async with storage_operation(f"fetch {self.entity_name}s"):
            records = await self.metadata.query(self.collection, filters, limit=limit, offset=offset)
            return [self._from_record(r) for r in records]

    async def create(self, entity: ModelT) -> ModelT:
        async with storage_operation(f"create {self.entity_name}"):
            record = await self.metadata.insert(self.collection, entity.id, self._to_record(entity))
            return self._from_record(record)

    async def update(self, id: str, updates: dict[str, Any]) -> ModelT:
        async with storage_operation(f"update {self.entity_name}"):
            current = await self.require(id)
            # Validate through the model so enums/dates are stored consistently
            merged = current.model_copy(update=updates)
            record = self._to_record(self.model.model_validate(merged.model_dump()))
            changed = {k: record[k] for k in updates if k in record}
            if "updated_at" in record:
                changed["updated_at"] = utc_now().isoformat()
            updated = await self.metadata.update(self.collection, id, changed)
            if updated is None:
                raise NotFoundError(f"{self.entity_name.capitalize()} not found: {id}")
            return self._from_record(updated)

    async def delete(self, id: str) -> bool:
        async with storage_operation(f"delete {self.entity_name}"):
            return await self.metadata.delete(self.collection, id)
