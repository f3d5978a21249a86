"""
Core data models for the Elan platform.

These models represent the persisted entities: Events, Locations,
Publications and their per-location records, Umoors, media assets,
invitations, team profiles and location access grants.

Publication content is kept in its raw serialized form here; see
`elan.core.blocks` for the block tree it decodes to.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from elan.core.utils import generate_id, utc_now


# =============================================================================
# Enums
# =============================================================================


class PublicationStatus(str, Enum):
    """Status of a publication as a whole."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class LocationPublicationStatus(str, Enum):
    """Status of a publication at one location."""

    DRAFT = "draft"
    MARK_AS_READY = "mark_as_ready"  # Location editor signed off
    ARCHIVED = "archived"


class UserRole(str, Enum):
    """Platform-wide team role."""

    ADMIN = "admin"
    EDITOR = "editor"
    VIEWER = "viewer"


class InvitationStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    EXPIRED = "expired"


class AccessLevel(str, Enum):
    """Per-location access level, ordered read < write < admin."""

    READ = "read"
    WRITE = "write"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _ACCESS_RANK[self]


_ACCESS_RANK = {AccessLevel.READ: 1, AccessLevel.WRITE: 2, AccessLevel.ADMIN: 3}


class JobStatus(str, Enum):
    """Status of a media optimization or backup job."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobType(str, Enum):
    OPTIMIZE = "optimize"


class BackupType(str, Enum):
    FULL = "full"
    INCREMENTAL = "incremental"  # files changed since the last completed backup


# =============================================================================
# Event & Location
# =============================================================================


class Event(BaseModel):
    """
    An event - the top-level container.

    An event owns its locations and, through them, its publications.
    """

    id: str = Field(default_factory=lambda: generate_id("evt"))

    name: str
    description: str = ""
    start_date: date | None = None
    end_date: date | None = None

    created_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Location(BaseModel):
    """
    A location taking part in an event.

    At most one location per event is the host; the host's global
    blocks are merged into every other location's exports.
    """

    id: str = Field(default_factory=lambda: generate_id("loc"))

    event_id: str
    name: str
    description: str = ""
    timezone: str = "UTC"
    logo_url: str | None = None
    is_host: bool = False

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Publication
# =============================================================================


class Publication(BaseModel):
    """
    A dated publication written for one location.

    `content` holds the serialized block list exactly as stored: a list,
    an object with a `parentBlocks` list, or a JSON string of either.
    """

    id: str = Field(default_factory=lambda: generate_id("pub"))

    event_id: str
    location_id: str | None = None
    title: str = "Untitled Publication"
    publication_date: date

    status: PublicationStatus = PublicationStatus.DRAFT
    is_featured: bool = False
    content: Any = None

    created_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class PublicationLocation(BaseModel):
    """Per-location status and free-text content of a publication."""

    id: str = Field(default_factory=lambda: generate_id("publoc"))

    publication_id: str
    location_id: str
    status: LocationPublicationStatus = LocationPublicationStatus.DRAFT
    content: str | None = None

    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Umoor
# =============================================================================


class Umoor(BaseModel):
    """A department/category label that content blocks are filed under."""

    id: str = Field(default_factory=lambda: generate_id("umoor"))

    name: str
    slug: str = ""
    description: str = ""
    logo_url: str | None = None

    # > 0 pins the umoor to the top, lowest value first
    order_preference: int = 0

    created_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Media
# =============================================================================


class MediaFile(BaseModel):
    """An uploaded media asset."""

    id: str = Field(default_factory=lambda: generate_id("media"))

    event_id: str
    file_name: str
    storage_path: str
    url: str
    mime_type: str = "application/octet-stream"
    size_bytes: int = 0

    # Set once the asset has been compressed
    is_optimized: bool = False
    optimized_path: str | None = None
    optimized_size_bytes: int | None = None

    alt_text: str = ""
    uploaded_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class MediaUsage(BaseModel):
    """Where a media asset is referenced."""

    id: str = Field(default_factory=lambda: generate_id("usage"))

    media_file_id: str
    publication_id: str | None = None
    location_id: str | None = None
    usage_type: str = "content"  # content, logo, header
    created_at: datetime = Field(default_factory=utc_now)


class MediaOptimizationJob(BaseModel):
    """Progress record of a bulk optimization run."""

    id: str = Field(default_factory=lambda: generate_id("job"))

    event_id: str
    job_type: JobType = JobType.OPTIMIZE
    status: JobStatus = JobStatus.PENDING

    total_files: int = 0
    processed_files: int = 0
    failed_files: int = 0
    bytes_saved: int = 0
    error_message: str | None = None
    settings: dict[str, Any] = Field(default_factory=dict)

    created_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def progress(self) -> float:
        """Fraction of files handled, 0-1."""
        if not self.total_files:
            return 0.0
        return (self.processed_files + self.failed_files) / self.total_files


class MediaVersion(BaseModel):
    """A derived rendition of a media file, such as its compressed WebP."""

    id: str = Field(default_factory=lambda: generate_id("ver"))

    media_file_id: str
    version_type: str = "optimized"
    url: str
    storage_path: str
    size_bytes: int = 0
    quality: int | None = None
    max_width: int | None = None
    format: str = "webp"
    is_optimized: bool = True
    created_at: datetime = Field(default_factory=utc_now)


class MediaBackupJob(BaseModel):
    """Progress record of copying an event's media into the backup area."""

    id: str = Field(default_factory=lambda: generate_id("backup"))

    event_id: str
    backup_type: BackupType = BackupType.FULL
    status: JobStatus = JobStatus.PENDING
    backup_location: str | None = None

    file_count: int = 0
    failed_files: int = 0
    total_size_bytes: int = 0
    error_message: str | None = None

    created_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class CompressionSettings(BaseModel):
    """Per-event defaults for image compression."""

    id: str = Field(default_factory=lambda: generate_id("cmp"))

    event_id: str
    auto_compress: bool = False
    quality_images: int = Field(default=80, ge=1, le=100)
    quality_thumbnails: int = Field(default=60, ge=1, le=100)
    enable_webp: bool = True
    enable_progressive: bool = True
    max_width: int = Field(default=1920, gt=0)
    max_height: int = Field(default=1080, gt=0)
    updated_at: datetime = Field(default_factory=utc_now)

    def optimize_defaults(self) -> dict[str, Any]:
        """The arguments a compression call takes from these settings."""
        return {"max_width": self.max_width, "quality": self.quality_images}


class StorageQuota(BaseModel):
    """How much media storage an event may use, and how much it does."""

    id: str = Field(default_factory=lambda: generate_id("quota"))

    event_id: str
    quota_bytes: int = Field(default=1024 ** 3, gt=0)
    used_bytes: int = 0
    warning_threshold: float = Field(default=0.8, gt=0, le=1)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def used_fraction(self) -> float:
        return self.used_bytes / self.quota_bytes

    @property
    def near_limit(self) -> bool:
        return self.used_fraction >= self.warning_threshold


class StorageUsageSnapshot(BaseModel):
    """One day of an event's storage usage history."""

    id: str = Field(default_factory=lambda: generate_id("snap"))

    event_id: str
    day: date
    file_count: int = 0
    total_bytes: int = 0
    optimized_bytes: int = 0
    created_at: datetime = Field(default_factory=utc_now)


# =============================================================================
# Team
# =============================================================================


class Invitation(BaseModel):
    """An invitation for someone to join the team of an event."""

    id: str = Field(default_factory=lambda: generate_id("inv"))

    email: str
    event_id: str | None = None
    role: UserRole = UserRole.VIEWER
    status: InvitationStatus = InvitationStatus.PENDING
    expires_at: datetime | None = None

    invited_by: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class Profile(BaseModel):
    """A team member."""

    id: str = Field(default_factory=lambda: generate_id("user"))

    email: str
    full_name: str = ""
    role: UserRole = UserRole.VIEWER
    password_hash: str | None = None
    is_active: bool = True

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


class LocationAccess(BaseModel):
    """A grant of access to one location for one user."""

    id: str = Field(default_factory=lambda: generate_id("access"))

    user_id: str
    location_id: str
    access_level: AccessLevel = AccessLevel.READ
    granted_by: str | None = None
    granted_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime | None = None

    def is_active(self, now: datetime | None = None) -> bool:
        """Grants without an expiry never lapse."""
        if self.expires_at is None:
            return True
        return self.expires_at > (now or utc_now())
