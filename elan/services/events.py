"""Events and their locations."""

from __future__ import annotations

import logging
from typing import Any

from elan.core.models import Event, Location
from elan.services.base import EntityService, storage_operation
from elan.storage.base import Collections

logger = logging.getLogger(__name__)


class EventService(EntityService[Event]):
    collection = Collections.EVENTS
    model = Event
    entity_name = "event"

    async def list_with_location_count(self) -> list[dict[str, Any]]:
        """Events newest first, each with the number of its locations."""
        events = await self.list()
        locations = await self.metadata.query(Collections.LOCATIONS, limit=100_000)

        counts: dict[str, int] = {}
        for location in locations:
            counts[location["event_id"]] = counts.get(location["event_id"], 0) + 1

        events.sort(key=lambda e: e.created_at, reverse=True)
        return [
            {**event.model_dump(mode="json"), "location_count": counts.get(event.id, 0)}
            for event in events
        ]


class LocationService(EntityService[Location]):
    """
    Locations of an event.

    Keeps at most one host per event: making a location the host clears the
    flag on every other location of the same event first.
    """

    collection = Collections.LOCATIONS
    model = Location
    entity_name = "location"

    async def list_for_event(self, event_id: str) -> list[Location]:
        locations = await self.list({"event_id": event_id})
        return sorted(locations, key=lambda l: l.name.lower())

    async def get_host_location(self, event_id: str) -> Location | None:
        hosts = await self.list({"event_id": event_id, "is_host": True})
        if len(hosts) > 1:
            # Should not happen; report rather than guess which one is right
            logger.error(
                f"Event {event_id} has {len(hosts)} host locations: "
                f"{[h.id for h in hosts]}"
            )
        return hosts[0] if hosts else None

    async def unset_existing_host(self, event_id: str, exclude_location_id: str | None = None) -> int:
        async with storage_operation("unset existing host"):
            return await self.metadata.update_where(
                self.collection,
                {"event_id": event_id, "is_host": True},
                {"is_host": False},
                exclude_id=exclude_location_id,
            )

    async def create(self, entity: Location) -> Location:
        if entity.is_host:
            cleared = await self.unset_existing_host(entity.event_id)
            if cleared:
                logger.info(f"Cleared previous host of event {entity.event_id} for {entity.name}")
        return await super().create(entity)

    async def update(self, id: str, updates: dict[str, Any]) -> Location:
        if updates.get("is_host"):
            location = await self.require(id)
            await self.unset_existing_host(location.event_id, exclude_location_id=id)
        return await super().update(id, updates)
