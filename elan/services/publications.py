"""Publications and their per-location records."""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from elan.core.blocks import ParentBlock, serialize_content
from elan.core.utils import utc_now
from elan.core.models import (
    LocationPublicationStatus,
    Publication,
    PublicationLocation,
    PublicationStatus,
)
from elan.services.base import EntityService, storage_operation
from elan.storage.base import Collections

logger = logging.getLogger(__name__)

UNPAGED = 1_000_000


def persistence_order(publications: list[Publication]) -> list[Publication]:
    """
    The order publications are returned in: featured first, newest first.

    Bulk export relies on this order for its first-wins tie-break.
    """
    by_newest = sorted(publications, key=lambda p: p.created_at, reverse=True)
    return sorted(by_newest, key=lambda p: not p.is_featured)


class PublicationService(EntityService[Publication]):
    collection = Collections.PUBLICATIONS
    model = Publication
    entity_name = "publication"

    async def list(self, filters: dict[str, Any] | None = None, limit: int = 1000, offset: int = 0) -> list[Publication]:
        # Pages are slices of the full persistence order, not of insertion order
        matching = await super().list(filters, limit=UNPAGED, offset=0)
        return persistence_order(matching)[offset:offset + limit]

    async def list_by_location(self, location_id: str) -> list[Publication]:
        return await self.list({"location_id": location_id})

    async def list_by_event(self, event_id: str) -> list[Publication]:
        return await self.list({"event_id": event_id})

    async def list_by_event_and_date(self, event_id: str, publication_date: date | str) -> list[Publication]:
        """Every location's publication for one event day."""
        if isinstance(publication_date, date):
            publication_date = publication_date.isoformat()
        return await self.list({"event_id": event_id, "publication_date": publication_date})

    async def update_status(self, id: str, status: PublicationStatus | str) -> Publication:
        return await self.update(id, {"status": PublicationStatus(status)})

    async def update_content(self, id: str, blocks: list[ParentBlock]) -> Publication:
        return await self.update(id, {"content": serialize_content(blocks)})

    async def toggle_featured(self, id: str, is_featured: bool) -> Publication:
        """A location has at most one featured publication."""
        publication = await self.require(id)
        if is_featured and publication.location_id:
            async with storage_operation("toggle featured status"):
                await self.metadata.update_where(
                    self.collection,
                    {"location_id": publication.location_id, "is_featured": True},
                    {"is_featured": False},
                    exclude_id=id,
                )
        return await self.update(id, {"is_featured": is_featured})

    # -------------------------------------------------------------------------
    # Per-location records
    # -------------------------------------------------------------------------

    async def get_location_record(self, publication_id: str, location_id: str) -> PublicationLocation | None:
        async with storage_operation("fetch publication location"):
            records = await self.metadata.query(
                Collections.PUBLICATION_LOCATIONS,
                {"publication_id": publication_id, "location_id": location_id},
            )
            if not records:
                return None
            return PublicationLocation.model_validate(
                {k: v for k, v in records[0].items() if not k.startswith("_")}
            )

    async def list_location_records(self, publication_id: str) -> list[PublicationLocation]:
        async with storage_operation("fetch publication locations"):
            records = await self.metadata.query(
                Collections.PUBLICATION_LOCATIONS, {"publication_id": publication_id}
            )
            return [
                PublicationLocation.model_validate({k: v for k, v in r.items() if not k.startswith("_")})
                for r in records
            ]

    async def _upsert_location_record(
        self,
        publication_id: str,
        location_id: str,
        updates: dict[str, Any],
    ) -> PublicationLocation:
        await self.require(publication_id)
        existing = await self.get_location_record(publication_id, location_id)
        record = (existing or PublicationLocation(
            publication_id=publication_id,
            location_id=location_id,
        )).model_copy(update={**updates, "updated_at": utc_now()})
        record = PublicationLocation.model_validate(record.model_dump())

        async with storage_operation("update publication location"):
            await self.metadata.save(
                Collections.PUBLICATION_LOCATIONS, record.id, record.model_dump(mode="json")
            )
        return record

    async def set_location_status(
        self,
        publication_id: str,
        location_id: str,
        status: LocationPublicationStatus | str,
    ) -> PublicationLocation:
        return await self._upsert_location_record(
            publication_id, location_id, {"status": LocationPublicationStatus(status)}
        )

    async def set_location_content(
        self,
        publication_id: str,
        location_id: str,
        content: str | None,
        status: LocationPublicationStatus | str | None = None,
    ) -> PublicationLocation:
        updates: dict[str, Any] = {"content": content}
        if status is not None:
            updates["status"] = LocationPublicationStatus(status)
        return await self._upsert_location_record(publication_id, location_id, updates)
