"""Services - typed persistence and domain rules per entity."""

from elan.services.base import EntityService, storage_operation
from elan.services.events import EventService, LocationService
from elan.services.media import (
    BackupJobService,
    CompressionSettingsService,
    MediaJobService,
    MediaService,
    MediaUsageService,
    MediaVersionService,
    StorageHistoryService,
    StorageQuotaService,
)
from elan.services.publications import PublicationService, persistence_order
from elan.services.team import InvitationService, LocationAccessService, ProfileService
from elan.services.umoors import UmoorService, display_order

__all__ = [
    "EntityService",
    "storage_operation",
    "EventService",
    "LocationService",
    "BackupJobService",
    "CompressionSettingsService",
    "MediaJobService",
    "MediaService",
    "MediaUsageService",
    "MediaVersionService",
    "StorageHistoryService",
    "StorageQuotaService",
    "PublicationService",
    "persistence_order",
    "InvitationService",
    "LocationAccessService",
    "ProfileService",
    "UmoorService",
    "display_order",
]
