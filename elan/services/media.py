"""
Media files, where they are used, and the jobs that maintain them.

Uploaded files go to content storage under `<user_id>/<event_id>/<file_name>`.
Optimization sends each file through the compression function and stores
the WebP result beside the original as a MediaVersion; one bad file is
counted as failed and the job carries on. Compression defaults come from
the event's CompressionSettings.

Backups copy an event's files under `backups/<event_id>/<job_id>/`. An
incremental backup only copies files changed since the last completed
backup started.

Storage usage is summarized per event against its StorageQuota, with one
history snapshot per day.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from pathlib import PurePosixPath
from typing import Any

from elan.core.models import (
    BackupType,
    CompressionSettings,
    JobStatus,
    JobType,
    MediaBackupJob,
    MediaFile,
    MediaOptimizationJob,
    MediaUsage,
    MediaVersion,
    StorageQuota,
    StorageUsageSnapshot,
)
from elan.core.utils import utc_now
from elan.integrations.compression import CompressionClient, CompressionError
from elan.services.base import EntityService, storage_operation
from elan.storage.base import Collections, StorageError, StorageProvider

logger = logging.getLogger(__name__)

IMAGE_TYPES = ("image/jpeg", "image/png", "image/webp", "image/gif")


def media_path(user_id: str, event_id: str, file_name: str) -> str:
    return f"{user_id}/{event_id}/{PurePosixPath(file_name).name}"


class MediaUsageService(EntityService[MediaUsage]):
    collection = Collections.MEDIA_USAGE
    model = MediaUsage
    entity_name = "media usage"


class MediaJobService(EntityService[MediaOptimizationJob]):
    collection = Collections.MEDIA_JOBS
    model = MediaOptimizationJob
    entity_name = "optimization job"

    async def list_for_event(self, event_id: str) -> list[MediaOptimizationJob]:
        jobs = await self.list({"event_id": event_id})
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    async def start(self, job_id: str, total_files: int) -> MediaOptimizationJob:
        return await self.update(job_id, {
            "status": JobStatus.PROCESSING,
            "total_files": total_files,
            "started_at": utc_now(),
        })

    async def record_success(self, job_id: str, bytes_saved: int) -> MediaOptimizationJob:
        job = await self.require(job_id)
        return await self.update(job_id, {
            "processed_files": job.processed_files + 1,
            "bytes_saved": job.bytes_saved + bytes_saved,
        })

    async def record_failure(self, job_id: str) -> MediaOptimizationJob:
        job = await self.require(job_id)
        return await self.update(job_id, {"failed_files": job.failed_files + 1})

    async def complete(self, job_id: str) -> MediaOptimizationJob:
        return await self.update(job_id, {"status": JobStatus.COMPLETED, "completed_at": utc_now()})

    async def fail(self, job_id: str, error: str) -> MediaOptimizationJob:
        return await self.update(job_id, {
            "status": JobStatus.FAILED,
            "error_message": error,
            "completed_at": utc_now(),
        })


class BackupJobService(EntityService[MediaBackupJob]):
    collection = Collections.BACKUP_JOBS
    model = MediaBackupJob
    entity_name = "backup job"

    async def list_for_event(self, event_id: str) -> list[MediaBackupJob]:
        jobs = await self.list({"event_id": event_id})
        return sorted(jobs, key=lambda j: j.created_at, reverse=True)

    async def last_completed(self, event_id: str, exclude_id: str | None = None) -> MediaBackupJob | None:
        jobs = await self.list({"event_id": event_id, "status": JobStatus.COMPLETED.value})
        jobs = [j for j in jobs if j.id != exclude_id and j.started_at]
        return max(jobs, key=lambda j: j.started_at, default=None)

    async def start(self, job_id: str, backup_location: str) -> MediaBackupJob:
        return await self.update(job_id, {
            "status": JobStatus.PROCESSING,
            "backup_location": backup_location,
            "started_at": utc_now(),
        })

    async def complete(self, job_id: str, file_count: int, total_size_bytes: int, failed_files: int = 0) -> MediaBackupJob:
        return await self.update(job_id, {
            "status": JobStatus.COMPLETED,
            "file_count": file_count,
            "total_size_bytes": total_size_bytes,
            "failed_files": failed_files,
            "completed_at": utc_now(),
        })

    async def fail(self, job_id: str, error: str) -> MediaBackupJob:
        return await self.update(job_id, {
            "status": JobStatus.FAILED,
            "error_message": error,
            "completed_at": utc_now(),
        })


class MediaVersionService(EntityService[MediaVersion]):
    collection = Collections.MEDIA_VERSIONS
    model = MediaVersion
    entity_name = "media version"

    async def list_for_file(self, media_file_id: str) -> list[MediaVersion]:
        versions = await self.list({"media_file_id": media_file_id})
        return sorted(versions, key=lambda v: v.created_at, reverse=True)


class CompressionSettingsService(EntityService[CompressionSettings]):
    collection = Collections.COMPRESSION_SETTINGS
    model = CompressionSettings
    entity_name = "compression settings"

    async def find(self, event_id: str) -> CompressionSettings | None:
        records = await self.list({"event_id": event_id}, limit=1)
        return records[0] if records else None

    async def for_event(self, event_id: str) -> CompressionSettings:
        """The event's settings, or the defaults when none are saved."""
        return await self.find(event_id) or CompressionSettings(event_id=event_id)

    async def save_for_event(self, event_id: str, updates: dict[str, Any]) -> CompressionSettings:
        existing = await self.find(event_id)
        if existing is None:
            return await self.create(CompressionSettings(**{**updates, "event_id": event_id}))
        return await self.update(existing.id, updates)


class StorageQuotaService(EntityService[StorageQuota]):
    collection = Collections.STORAGE_QUOTAS
    model = StorageQuota
    entity_name = "storage quota"

    async def find(self, event_id: str) -> StorageQuota | None:
        records = await self.list({"event_id": event_id}, limit=1)
        return records[0] if records else None

    async def save_for_event(self, event_id: str, updates: dict[str, Any]) -> StorageQuota:
        existing = await self.find(event_id)
        if existing is None:
            return await self.create(StorageQuota(**{**updates, "event_id": event_id}))
        return await self.update(existing.id, updates)


class StorageHistoryService(EntityService[StorageUsageSnapshot]):
    collection = Collections.STORAGE_USAGE_HISTORY
    model = StorageUsageSnapshot
    entity_name = "storage usage snapshot"

    async def record(self, snapshot: StorageUsageSnapshot) -> StorageUsageSnapshot:
        """One snapshot per event and day; a later one replaces the figures."""
        existing = await self.list({"event_id": snapshot.event_id, "day": snapshot.day.isoformat()}, limit=1)
        if not existing:
            return await self.create(snapshot)
        return await self.update(existing[0].id, {
            "file_count": snapshot.file_count,
            "total_bytes": snapshot.total_bytes,
            "optimized_bytes": snapshot.optimized_bytes,
        })

    async def list_for_event(self, event_id: str, days: int = 30, today: date | None = None) -> list[StorageUsageSnapshot]:
        """Snapshots of the last `days` days, newest first."""
        since = (today or utc_now().date()) - timedelta(days=days)
        snapshots = await self.list({"event_id": event_id}, limit=100_000)
        return sorted((s for s in snapshots if s.day >= since), key=lambda s: s.day, reverse=True)


class MediaService(EntityService[MediaFile]):
    collection = Collections.MEDIA_FILES
    model = MediaFile
    entity_name = "media file"

    def __init__(self, storage: StorageProvider, compression: CompressionClient | None = None):
        super().__init__(storage)
        self.compression = compression or CompressionClient()
        self.usage = MediaUsageService(storage)
        self.jobs = MediaJobService(storage)
        self.backups = BackupJobService(storage)
        self.versions = MediaVersionService(storage)
        self.compression_settings = CompressionSettingsService(storage)
        self.quotas = StorageQuotaService(storage)
        self.history = StorageHistoryService(storage)

    async def list_for_event(self, event_id: str) -> list[MediaFile]:
        files = await self.list({"event_id": event_id}, limit=100_000)
        return sorted(files, key=lambda f: f.created_at, reverse=True)

    async def upload(
        self,
        user_id: str,
        event_id: str,
        file_name: str,
        data: bytes,
        mime_type: str = "application/octet-stream",
        alt_text: str = "",
    ) -> MediaFile:
        path = media_path(user_id, event_id, file_name)
        async with storage_operation("upload media file"):
            url = await self.storage.content.put(path, data, mime_type)

        media = await self.create(MediaFile(
            event_id=event_id,
            file_name=PurePosixPath(file_name).name,
            storage_path=path,
            url=url,
            mime_type=mime_type,
            size_bytes=len(data),
            alt_text=alt_text,
            uploaded_by=user_id,
        ))
        logger.info(f"Uploaded {media.file_name} ({media.size_bytes} bytes) for event {event_id}")

        if mime_type in IMAGE_TYPES and self.compression.is_configured:
            settings = await self.compression_settings.for_event(event_id)
            if settings.auto_compress:
                try:
                    await self.optimize_file(media, settings.optimize_defaults())
                except (CompressionError, StorageError) as e:
                    logger.warning(f"Automatic compression of {media.file_name} failed: {e}")
                else:
                    media = await self.require(media.id)
        return media

    async def remove(self, media_id: str) -> bool:
        """Delete a file, its stored bytes, its versions and its usage records."""
        media = await self.get(media_id)
        if media is None:
            return False
        versions = await self.versions.list_for_file(media_id)
        async with storage_operation("delete media content"):
            await self.storage.content.delete(media.storage_path)
            for path in {media.optimized_path, *(v.storage_path for v in versions)} - {None}:
                await self.storage.content.delete(path)
        for version in versions:
            await self.versions.delete(version.id)
        for usage in await self.usage.list({"media_file_id": media_id}):
            await self.usage.delete(usage.id)
        return await self.delete(media_id)

    # -------------------------------------------------------------------------
    # Usage
    # -------------------------------------------------------------------------

    async def track_usage(
        self,
        media_file_id: str,
        publication_id: str | None = None,
        location_id: str | None = None,
        usage_type: str = "content",
    ) -> MediaUsage:
        await self.require(media_file_id)
        return await self.usage.create(MediaUsage(
            media_file_id=media_file_id,
            publication_id=publication_id,
            location_id=location_id,
            usage_type=usage_type,
        ))

    async def usages(self, media_file_id: str) -> list[MediaUsage]:
        return await self.usage.list({"media_file_id": media_file_id})

    async def unused(self, event_id: str) -> list[MediaFile]:
        used = {u.media_file_id for u in await self.usage.list(limit=100_000)}
        return [m for m in await self.list_for_event(event_id) if m.id not in used]

    # -------------------------------------------------------------------------
    # Optimization
    # -------------------------------------------------------------------------

    async def optimize_file(self, media: MediaFile, settings: dict[str, Any] | None = None) -> int:
        """
        Compress one file and record the result. Returns bytes saved.

        `settings` (max_width, quality) override the event's compression
        settings. Raises CompressionError or StorageError.
        """
        defaults = (await self.compression_settings.for_event(media.event_id)).optimize_defaults()
        settings = {**defaults, **{k: v for k, v in (settings or {}).items() if v is not None}}
        data = await self.storage.content.get(media.storage_path)
        result = await self.compression.compress(
            data,
            filename=media.file_name,
            max_width=settings.get("max_width"),
            quality=settings.get("quality"),
        )
        compressed = result.decoded()

        optimized_path = f"{PurePosixPath(media.storage_path).with_suffix('')}.webp"
        if optimized_path == media.storage_path:
            optimized_path = f"{media.storage_path}.optimized.webp"

        async with storage_operation("store optimized media"):
            url = await self.storage.content.put(optimized_path, compressed, "image/webp")

        await self.versions.create(MediaVersion(
            media_file_id=media.id,
            url=url,
            storage_path=optimized_path,
            size_bytes=len(compressed),
            quality=settings["quality"],
            max_width=settings["max_width"],
        ))
        await self.update(media.id, {
            "is_optimized": True,
            "optimized_path": optimized_path,
            "optimized_size_bytes": len(compressed),
        })
        return max(media.size_bytes - len(compressed), 0)

    async def create_job(
        self,
        event_id: str,
        job_type: JobType | str = JobType.OPTIMIZE,
        settings: dict[str, Any] | None = None,
        created_by: str | None = None,
    ) -> MediaOptimizationJob:
        return await self.jobs.create(MediaOptimizationJob(
            event_id=event_id,
            job_type=JobType(job_type),
            settings=settings or {},
            created_by=created_by,
        ))

    async def run_optimization(self, job_id: str) -> MediaOptimizationJob:
        """Optimize every not-yet-optimized image of the job's event."""
        job = await self.jobs.require(job_id)
        candidates = [
            m for m in await self.list_for_event(job.event_id)
            if not m.is_optimized and m.mime_type in IMAGE_TYPES
        ]
        await self.jobs.start(job_id, len(candidates))
        logger.info(f"Optimization job {job_id}: {len(candidates)} files")

        try:
            for media in candidates:
                try:
                    saved = await self.optimize_file(media, job.settings)
                except (CompressionError, StorageError) as e:
                    logger.warning(f"Optimization of {media.file_name} failed: {e}")
                    await self.jobs.record_failure(job_id)
                    continue
                await self.jobs.record_success(job_id, saved)
        except StorageError as e:
            logger.error(f"Optimization job {job_id} aborted: {e}")
            return await self.jobs.fail(job_id, str(e))

        return await self.jobs.complete(job_id)

    # -------------------------------------------------------------------------
    # Backups
    # -------------------------------------------------------------------------

    async def create_backup_job(
        self,
        event_id: str,
        backup_type: BackupType | str = BackupType.FULL,
        created_by: str | None = None,
    ) -> MediaBackupJob:
        return await self.backups.create(MediaBackupJob(
            event_id=event_id,
            backup_type=BackupType(backup_type),
            created_by=created_by,
        ))

    async def run_backup(self, job_id: str) -> MediaBackupJob:
        """Copy the job's files into its backup location; unreadable files are counted and skipped."""
        job = await self.backups.require(job_id)
        try:
            files = await self.list_for_event(job.event_id)
            if job.backup_type == BackupType.INCREMENTAL:
                previous = await self.backups.last_completed(job.event_id, exclude_id=job_id)
                if previous is not None:
                    files = [m for m in files if m.updated_at >= previous.started_at]

            location = f"backups/{job.event_id}/{job_id}"
            await self.backups.start(job_id, location)
            logger.info(f"Backup job {job_id} ({job.backup_type.value}): {len(files)} files")

            copied = size = failed = 0
            for media in files:
                try:
                    async with storage_operation("back up media file"):
                        data = await self.storage.content.get(media.storage_path)
                        await self.storage.content.put(f"{location}/{media.storage_path}", data, media.mime_type)
                except StorageError as e:
                    logger.warning(f"Backup of {media.file_name} failed: {e}")
                    failed += 1
                    continue
                copied += 1
                size += len(data)
        except StorageError as e:
            logger.error(f"Backup job {job_id} aborted: {e}")
            return await self.backups.fail(job_id, str(e))

        return await self.backups.complete(job_id, copied, size, failed)

    # -------------------------------------------------------------------------
    # Storage usage
    # -------------------------------------------------------------------------

    async def storage_summary(self, event_id: str) -> dict[str, Any]:
        """Totals for an event's media against its quota."""
        files = await self.list_for_event(event_id)
        unused = await self.unused(event_id)
        quota = await self.quotas.find(event_id) or StorageQuota(event_id=event_id)

        original_bytes = sum(m.size_bytes for m in files)
        optimized = [m for m in files if m.is_optimized]
        optimized_bytes = sum(m.optimized_size_bytes or 0 for m in optimized)
        used_bytes = original_bytes + optimized_bytes
        return {
            "event_id": event_id,
            "file_count": len(files),
            "total_bytes": used_bytes,
            "original_bytes": original_bytes,
            "optimized_files": len(optimized),
            "optimized_bytes": optimized_bytes,
            "bytes_saved": sum(max(m.size_bytes - (m.optimized_size_bytes or 0), 0) for m in optimized),
            "unused_files": len(unused),
            "quota_bytes": quota.quota_bytes,
            "used_fraction": used_bytes / quota.quota_bytes,
            "near_limit": used_bytes / quota.quota_bytes >= quota.warning_threshold,
        }

    async def refresh_storage_usage(self, event_id: str, today: date | None = None) -> StorageQuota:
        """Recount the event's usage into its quota and today's history snapshot."""
        summary = await self.storage_summary(event_id)
        quota = await self.quotas.save_for_event(event_id, {"used_bytes": summary["total_bytes"]})
        await self.history.record(StorageUsageSnapshot(
            event_id=event_id,
            day=today or utc_now().date(),
            file_count=summary["file_count"],
            total_bytes=summary["total_bytes"],
            optimized_bytes=summary["optimized_bytes"],
        ))
        if quota.near_limit:
            logger.warning(
                f"Event {event_id} uses {quota.used_fraction:.0%} of its media quota "
                f"({quota.used_bytes} of {quota.quota_bytes} bytes)"
            )
        return quota
