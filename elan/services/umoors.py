"""Umoors - the department labels content blocks are filed under."""

from __future__ import annotations

import logging
from typing import Any

from elan.core.models import Umoor
from elan.core.utils import slugify
from elan.services.base import EntityService, storage_operation
from elan.storage.base import Collections, ContentStorage

logger = logging.getLogger(__name__)


def display_order(umoors: list[Umoor]) -> list[Umoor]:
    """
    Pinned umoors (order_preference > 0) first, lowest value first;
    then the rest, newest first.
    """
    pinned = sorted((u for u in umoors if u.order_preference > 0), key=lambda u: u.order_preference)
    rest = sorted((u for u in umoors if u.order_preference <= 0), key=lambda u: u.created_at, reverse=True)
    return pinned + rest


class UmoorService(EntityService[Umoor]):
    collection = Collections.UMOORS
    model = Umoor
    entity_name = "umoor"

    async def list(self, filters: dict[str, Any] | None = None, limit: int = 1000, offset: int = 0) -> list[Umoor]:
        return display_order(await super().list(filters, limit=limit, offset=offset))

    async def create(self, entity: Umoor) -> Umoor:
        if not entity.slug:
            entity = entity.model_copy(update={"slug": slugify(entity.name)})
        return await super().create(entity)

    async def update(self, id: str, updates: dict[str, Any]) -> Umoor:
        if "name" in updates and "slug" not in updates:
            updates = {**updates, "slug": slugify(updates["name"])}
        return await super().update(id, updates)

    async def delete_many(self, ids: list[str]) -> int:
        deleted = 0
        for id in ids:
            if await self.delete(id):
                deleted += 1
        return deleted

    async def update_order(self, id: str, order_preference: int) -> Umoor:
        return await self.update(id, {"order_preference": order_preference})

    async def update_bulk_orders(self, orders: dict[str, int]) -> list[Umoor]:
        return [await self.update_order(id, pref) for id, pref in orders.items()]

    async def upload_logo(self, content: ContentStorage, umoor_id: str, filename: str, data: bytes,
                          content_type: str = "image/png") -> Umoor:
        """Store a logo and point the umoor at it."""
        umoor = await self.require(umoor_id)
        extension = filename.rsplit(".", 1)[-1] if "." in filename else "png"
        async with storage_operation("upload umoor logo"):
            url = await content.put(f"umoor-logos/{umoor.id}.{extension}", data, content_type)
        logger.info(f"Uploaded logo for umoor {umoor.name}")
        return await self.update(umoor_id, {"logo_url": url})
