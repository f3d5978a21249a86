"""Tests for media storage, the compression client and optimization jobs."""

import base64
import json
import logging
from datetime import date, datetime, timedelta, timezone

import httpx
import pytest

from elan.config import Settings
from elan.core.models import BackupType, JobStatus, MediaFile, StorageUsageSnapshot
from elan.integrations.compression import CompressionClient, CompressionError, CompressionResult
from elan.services import MediaService
from elan.services.media import media_path
from elan.storage import NotFoundError


COMPRESSED = b"webp-bytes"
FUNCTION_URL = "https://functions.example.com/compress-image"


def compression_client(handler, **settings):
    client = CompressionClient(transport=httpx.MockTransport(handler))
    client.settings = Settings(
        compression_function_url=FUNCTION_URL,
        compression_api_key="secret",
        **settings,
    )
    return client


def ok_handler(request):
    body = json.loads(request.content)
    original = len(base64.b64decode(body["imageData"]))
    return httpx.Response(200, json={
        "success": True,
        "compressedData": "data:image/webp;base64," + base64.b64encode(COMPRESSED).decode(),
        "originalSize": original,
        "compressedSize": len(COMPRESSED),
        "compressionRatio": 50.0,
    })


# =============================================================================
# Compression client
# =============================================================================


class TestCompressionClient:
    @pytest.mark.asyncio
    async def test_request_shape(self):
        seen = []

        def handler(request):
            seen.append(request)
            return ok_handler(request)

        client = compression_client(handler)
        result = await client.compress(b"x" * 100, filename="a.jpg", quality=70)

        body = json.loads(seen[0].content)
        assert str(seen[0].url) == FUNCTION_URL
        assert seen[0].headers["Authorization"] == "Bearer secret"
        assert body == {
            "imageData": base64.b64encode(b"x" * 100).decode(),
            "maxWidth": 1920,
            "quality": 70,
            "filename": "a.jpg",
        }
        assert result.decoded() == COMPRESSED
        assert result.bytes_saved == 100 - len(COMPRESSED)

    @pytest.mark.asyncio
    async def test_not_configured(self):
        client = CompressionClient()
        client.settings = Settings(compression_function_url="")
        with pytest.raises(CompressionError, match="not configured"):
            await client.compress(b"x")

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        client = compression_client(lambda r: httpx.Response(500, text="boom"))
        with pytest.raises(CompressionError, match="500"):
            await client.compress(b"x")

    @pytest.mark.asyncio
    async def test_reported_failure(self):
        client = compression_client(lambda r: httpx.Response(200, json={"success": False, "error": "too big"}))
        with pytest.raises(CompressionError, match="too big"):
            await client.compress(b"x")

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("unreachable")

        client = compression_client(handler)
        with pytest.raises(CompressionError, match="unreachable"):
            await client.compress(b"x")

    def test_missing_data(self):
        with pytest.raises(CompressionError):
            CompressionResult(success=True).decoded()


# =============================================================================
# Media service
# =============================================================================


@pytest.fixture
def media(storage):
    return MediaService(storage, compression_client(ok_handler))


class TestMediaService:
    def test_path(self):
        assert media_path("u1", "evt1", "dir/photo.jpg").startswith("u1/evt1/")
        assert media_path("u1", "evt1", "dir/photo.jpg").endswith("photo.jpg")

    @pytest.mark.asyncio
    async def test_upload(self, storage, media):
        uploaded = await media.upload("u1", "evt1", "photo.jpg", b"jpeg" * 10, "image/jpeg", alt_text="Hall")

        assert uploaded.size_bytes == 40
        assert uploaded.mime_type == "image/jpeg"
        assert await storage.content.get(uploaded.storage_path) == b"jpeg" * 10
        assert [m.id for m in await media.list_for_event("evt1")] == [uploaded.id]

    @pytest.mark.asyncio
    async def test_usage_and_unused(self, media):
        used = await media.upload("u1", "evt1", "a.jpg", b"a", "image/jpeg")
        unused = await media.upload("u1", "evt1", "b.jpg", b"b", "image/jpeg")

        await media.track_usage(used.id, publication_id="pub1", location_id="loc1")

        assert len(await media.usages(used.id)) == 1
        assert [m.id for m in await media.unused("evt1")] == [unused.id]

    @pytest.mark.asyncio
    async def test_remove(self, storage, media):
        uploaded = await media.upload("u1", "evt1", "a.jpg", b"a", "image/jpeg")
        await media.track_usage(uploaded.id)

        assert await media.remove(uploaded.id)
        assert await media.get(uploaded.id) is None
        assert await media.usages(uploaded.id) == []
        assert not await media.remove(uploaded.id)

    @pytest.mark.asyncio
    async def test_optimize_file(self, storage, media):
        uploaded = await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")

        saved = await media.optimize_file(uploaded)
        optimized = await media.require(uploaded.id)

        assert saved == 100 - len(COMPRESSED)
        assert optimized.is_optimized
        assert optimized.optimized_path.endswith(".webp")
        assert optimized.optimized_size_bytes == len(COMPRESSED)
        assert await storage.content.get(optimized.optimized_path) == COMPRESSED


class TestOptimizationJob:
    @pytest.mark.asyncio
    async def test_run(self, media):
        await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")
        await media.upload("u1", "evt1", "b.png", b"y" * 50, "image/png")
        await media.upload("u1", "evt1", "notes.pdf", b"%PDF", "application/pdf")

        job = await media.create_job("evt1", settings={"quality": 60}, created_by="u1")
        done = await media.run_optimization(job.id)

        assert done.status == JobStatus.COMPLETED
        assert done.total_files == 2
        assert done.processed_files == 2
        assert done.failed_files == 0
        assert done.bytes_saved == (100 - len(COMPRESSED)) + (50 - len(COMPRESSED))
        assert done.progress == 1.0
        assert done.completed_at is not None

    @pytest.mark.asyncio
    async def test_failures_counted_and_job_continues(self, storage):
        def handler(request):
            body = json.loads(request.content)
            if body.get("filename") == "bad.jpg":
                return httpx.Response(200, json={"success": False, "error": "corrupt"})
            return ok_handler(request)

        media = MediaService(storage, compression_client(handler))
        await media.upload("u1", "evt1", "bad.jpg", b"x" * 100, "image/jpeg")
        await media.upload("u1", "evt1", "good.jpg", b"x" * 100, "image/jpeg")

        job = await media.create_job("evt1")
        done = await media.run_optimization(job.id)

        assert done.status == JobStatus.COMPLETED
        assert done.processed_files == 1
        assert done.failed_files == 1

    @pytest.mark.asyncio
    async def test_already_optimized_skipped(self, media):
        uploaded = await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")
        await media.optimize_file(uploaded)

        job = await media.create_job("evt1")
        done = await media.run_optimization(job.id)

        assert done.total_files == 0
        assert done.progress == 0.0
        assert [j.id for j in await media.jobs.list_for_event("evt1")] == [job.id]


# =============================================================================
# Compression settings & versions
# =============================================================================


def recording_handler(seen):
    def handler(request):
        seen.append(json.loads(request.content))
        return ok_handler(request)
    return handler


class TestCompressionSettings:
    @pytest.mark.asyncio
    async def test_defaults_when_unsaved(self, media):
        settings = await media.compression_settings.for_event("evt1")

        assert settings.event_id == "evt1"
        assert settings.optimize_defaults() == {"max_width": 1920, "quality": 80}
        assert await media.compression_settings.find("evt1") is None

    @pytest.mark.asyncio
    async def test_save_and_update(self, media):
        created = await media.compression_settings.save_for_event("evt1", {"quality_images": 65})
        updated = await media.compression_settings.save_for_event("evt1", {"max_width": 800})

        assert updated.id == created.id
        assert updated.quality_images == 65
        assert updated.max_width == 800

    @pytest.mark.asyncio
    async def test_event_settings_feed_compression(self, storage):
        seen = []
        media = MediaService(storage, compression_client(recording_handler(seen)))
        await media.compression_settings.save_for_event("evt1", {"quality_images": 55, "max_width": 1024})
        first = await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")
        second = await media.upload("u1", "evt1", "b.jpg", b"x" * 100, "image/jpeg")

        await media.optimize_file(first)
        await media.optimize_file(second, {"quality": 90, "max_width": None})

        assert (seen[0]["quality"], seen[0]["maxWidth"]) == (55, 1024)
        assert (seen[1]["quality"], seen[1]["maxWidth"]) == (90, 1024)

    @pytest.mark.asyncio
    async def test_job_settings_override_event_settings(self, storage):
        seen = []
        media = MediaService(storage, compression_client(recording_handler(seen)))
        await media.compression_settings.save_for_event("evt1", {"quality_images": 55})
        await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")

        job = await media.create_job("evt1", settings={"max_width": 640})
        await media.run_optimization(job.id)

        assert (seen[0]["quality"], seen[0]["maxWidth"]) == (55, 640)

    @pytest.mark.asyncio
    async def test_optimized_version_recorded(self, storage, media):
        uploaded = await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")
        await media.optimize_file(uploaded, {"quality": 70})

        versions = await media.versions.list_for_file(uploaded.id)
        assert len(versions) == 1
        assert versions[0].format == "webp"
        assert versions[0].quality == 70
        assert versions[0].size_bytes == len(COMPRESSED)

        assert await media.remove(uploaded.id)
        assert await media.versions.list_for_file(uploaded.id) == []
        with pytest.raises(NotFoundError):
            await storage.content.get(versions[0].storage_path)

    @pytest.mark.asyncio
    async def test_auto_compress_on_upload(self, media):
        await media.compression_settings.save_for_event("evt1", {"auto_compress": True})

        image = await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")
        document = await media.upload("u1", "evt1", "notes.pdf", b"%PDF", "application/pdf")

        assert image.is_optimized
        assert image.optimized_size_bytes == len(COMPRESSED)
        assert not document.is_optimized

    @pytest.mark.asyncio
    async def test_auto_compress_failure_keeps_upload(self, storage):
        failing = compression_client(lambda r: httpx.Response(200, json={"success": False, "error": "corrupt"}))
        media = MediaService(storage, failing)
        await media.compression_settings.save_for_event("evt1", {"auto_compress": True})

        uploaded = await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")

        assert not uploaded.is_optimized
        assert await media.get(uploaded.id) is not None


# =============================================================================
# Backups
# =============================================================================


BEFORE = datetime(2026, 8, 1, tzinfo=timezone.utc)
AFTER = BEFORE + timedelta(days=2)


async def stored_file(storage, media, name, data, updated_at):
    path = media_path("u1", "evt1", name)
    url = await storage.content.put(path, data, "image/jpeg")
    return await media.create(MediaFile(
        event_id="evt1",
        file_name=name,
        storage_path=path,
        url=url,
        mime_type="image/jpeg",
        size_bytes=len(data),
        created_at=updated_at,
        updated_at=updated_at,
    ))


class TestBackupJob:
    @pytest.mark.asyncio
    async def test_full_backup(self, storage, media):
        first = await media.upload("u1", "evt1", "a.jpg", b"a" * 10, "image/jpeg")
        await media.upload("u1", "evt1", "b.jpg", b"b" * 5, "image/jpeg")

        job = await media.create_backup_job("evt1", created_by="u1")
        done = await media.run_backup(job.id)

        assert done.status == JobStatus.COMPLETED
        assert done.backup_type == BackupType.FULL
        assert done.backup_location == f"backups/evt1/{job.id}"
        assert done.file_count == 2
        assert done.total_size_bytes == 15
        assert await storage.content.get(f"{done.backup_location}/{first.storage_path}") == b"a" * 10

    @pytest.mark.asyncio
    async def test_incremental_copies_changed_files(self, storage, media):
        await stored_file(storage, media, "old.jpg", b"o" * 10, BEFORE)
        full = await media.run_backup((await media.create_backup_job("evt1")).id)
        await media.backups.update(full.id, {"started_at": BEFORE + timedelta(days=1)})
        new = await stored_file(storage, media, "new.jpg", b"n" * 4, AFTER)

        job = await media.create_backup_job("evt1", BackupType.INCREMENTAL)
        done = await media.run_backup(job.id)

        assert done.file_count == 1
        assert done.total_size_bytes == 4
        assert await storage.content.get(f"{done.backup_location}/{new.storage_path}") == b"n" * 4
        assert [j.id for j in await media.backups.list_for_event("evt1")][-1] == full.id

    @pytest.mark.asyncio
    async def test_incremental_without_previous_is_full(self, storage, media):
        await stored_file(storage, media, "old.jpg", b"o" * 10, BEFORE)

        job = await media.create_backup_job("evt1", "incremental")
        done = await media.run_backup(job.id)

        assert done.file_count == 1

    @pytest.mark.asyncio
    async def test_missing_content_counted(self, storage, media):
        lost = await media.upload("u1", "evt1", "lost.jpg", b"l", "image/jpeg")
        await media.upload("u1", "evt1", "kept.jpg", b"k", "image/jpeg")
        await storage.content.delete(lost.storage_path)

        done = await media.run_backup((await media.create_backup_job("evt1")).id)

        assert done.status == JobStatus.COMPLETED
        assert done.file_count == 1
        assert done.failed_files == 1


# =============================================================================
# Storage usage
# =============================================================================


class TestStorageUsage:
    @pytest.mark.asyncio
    async def test_summary(self, media):
        optimized = await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")
        await media.upload("u1", "evt1", "b.jpg", b"y" * 50, "image/jpeg")
        await media.optimize_file(optimized)
        await media.track_usage(optimized.id)

        summary = await media.storage_summary("evt1")

        assert summary["file_count"] == 2
        assert summary["original_bytes"] == 150
        assert summary["optimized_files"] == 1
        assert summary["optimized_bytes"] == len(COMPRESSED)
        assert summary["total_bytes"] == 150 + len(COMPRESSED)
        assert summary["bytes_saved"] == 100 - len(COMPRESSED)
        assert summary["unused_files"] == 1
        assert summary["quota_bytes"] == 1024 ** 3
        assert not summary["near_limit"]

    @pytest.mark.asyncio
    async def test_refresh_updates_quota_and_history(self, media):
        await media.upload("u1", "evt1", "a.jpg", b"x" * 100, "image/jpeg")
        day = date(2026, 9, 1)

        quota = await media.refresh_storage_usage("evt1", today=day)
        assert quota.used_bytes == 100

        await media.upload("u1", "evt1", "b.jpg", b"y" * 20, "image/jpeg")
        quota = await media.refresh_storage_usage("evt1", today=day)

        history = await media.history.list_for_event("evt1", today=day)
        assert quota.used_bytes == 120
        assert len(history) == 1
        assert history[0].total_bytes == 120
        assert history[0].file_count == 2

    @pytest.mark.asyncio
    async def test_near_limit_warns(self, media, caplog):
        await media.quotas.save_for_event("evt1", {"quota_bytes": 100, "warning_threshold": 0.5})
        await media.upload("u1", "evt1", "a.jpg", b"x" * 60, "image/jpeg")

        with caplog.at_level(logging.WARNING, logger="elan.services.media"):
            quota = await media.refresh_storage_usage("evt1", today=date(2026, 9, 1))

        assert quota.near_limit
        assert quota.used_fraction == 0.6
        assert "60%" in caplog.text

    @pytest.mark.asyncio
    async def test_history_window(self, media):
        today = date(2026, 9, 30)
        for days_ago in (0, 10, 40):
            await media.history.record(StorageUsageSnapshot(
                event_id="evt1", day=today - timedelta(days=days_ago), total_bytes=days_ago
            ))

        recent = await media.history.list_for_event("evt1", days=30, today=today)
        assert [s.total_bytes for s in recent] == [0, 10]
