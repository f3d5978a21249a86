"""
Core module - data models and content logic.

This module contains:
- models: Persisted entities (Event, Location, Publication, ...)
- blocks: Publication content blocks and their normalization
- merge: Host-location global block merging
- utils: Shared utility functions
"""

from elan.core.models import (
    AccessLevel,
    BackupType,
    CompressionSettings,
    Event,
    Invitation,
    InvitationStatus,
    JobStatus,
    JobType,
    Location,
    LocationAccess,
    LocationPublicationStatus,
    MediaBackupJob,
    MediaFile,
    MediaOptimizationJob,
    MediaUsage,
    MediaVersion,
    Profile,
    Publication,
    PublicationLocation,
    PublicationStatus,
    StorageQuota,
    StorageUsageSnapshot,
    Umoor,
    UserRole,
)

from elan.core.blocks import (
    GLOBAL_PREFIX,
    ChildBlock,
    ImportedOrigin,
    LocalOrigin,
    ParentBlock,
    normalize_content,
    serialize_content,
)

from elan.core.merge import (
    collect_global_blocks,
    merge_content,
    should_merge,
)

from elan.core.utils import (
    generate_id,
    slugify,
    utc_now,
)

__all__ = [
    # Models
    "AccessLevel",
    "BackupType",
    "CompressionSettings",
    "Event",
    "Invitation",
    "InvitationStatus",
    "JobStatus",
    "JobType",
    "Location",
    "LocationAccess",
    "LocationPublicationStatus",
    "MediaBackupJob",
    "MediaFile",
    "MediaOptimizationJob",
    "MediaUsage",
    "MediaVersion",
    "Profile",
    "Publication",
    "PublicationLocation",
    "PublicationStatus",
    "StorageQuota",
    "StorageUsageSnapshot",
    "Umoor",
    "UserRole",
    # Blocks
    "GLOBAL_PREFIX",
    "ChildBlock",
    "ImportedOrigin",
    "LocalOrigin",
    "ParentBlock",
    "normalize_content",
    "serialize_content",
    # Merge
    "collect_global_blocks",
    "merge_content",
    "should_merge",
    # Utils
    "generate_id",
    "slugify",
    "utc_now",
]
