"""
Tests for bulk export.

One artifact per location, zipped. Failing locations are reported, not
fatal, unless every location fails.
"""

import io
import threading
import zipfile
from datetime import date, datetime, timedelta, timezone

import pytest

from conftest import DAY, block, publication
from elan.core.models import Event, Location
from elan.export import (
    ArchiveError,
    BulkExporter,
    ExportFailedError,
    ExportFormat,
    archive_path,
    export_publications,
    group_by_location,
)
from elan.export.bulk import ZIP_EPOCH, ZIP_LAST_DAY, write_zip
from elan.services import EventService, LocationService, PublicationService


HOST = Location(id="loc-host", event_id="evt1", name="Host", is_host=True)
BRANCH = Location(id="loc-branch", event_id="evt1", name="Branch")


def fake_renderer(publication, options, host_publications):
    """Renders the location name and the merged block ids."""
    from elan.export.renderer import resolve_blocks

    ids = [b.id for b in resolve_blocks(publication, options, host_publications)]
    return f"{options.location_name}:{','.join(ids)}"


def failing_for(*location_ids):
    def render(publication, options, host_publications):
        if options.location_id in location_ids:
            raise ValueError(f"cannot render {options.location_id}")
        return fake_renderer(publication, options, host_publications)
    return render


def read_zip(data):
    with zipfile.ZipFile(io.BytesIO(data)) as zf:
        return {name: zf.read(name).decode("utf-8") for name in zf.namelist()}


@pytest.fixture
def day_publications():
    return [
        publication("pub-h", HOST.id, [block("g1", is_global=True), block("p1")], title="Day 1"),
        publication("pub-b", BRANCH.id, [block("b1")], title="Day 1"),
    ]


# =============================================================================
# Grouping and naming
# =============================================================================


class TestGroupByLocation:
    def test_order_and_first_wins(self):
        pubs = [
            publication("p1", "a", []),
            publication("p2", "b", []),
            publication("p3", "a", []),
        ]
        groups = group_by_location(pubs)

        assert list(groups) == ["a", "b"]
        assert [p.id for p in groups["a"]] == ["p1", "p3"]

    def test_skips_missing_location(self):
        groups = group_by_location([publication("p1", None, [])])
        assert groups == {}


class TestArchivePath:
    def test_layout(self):
        assert archive_path("Branch", "Day 1", ExportFormat.HTML) == "Branch/Branch-Day 1.html"
        assert archive_path("Branch", "Day 1", ExportFormat.PDF) == "Branch/Branch-Day 1.pdf"

    def test_separators_replaced(self):
        assert archive_path("North/South", "A\\B", ExportFormat.HTML) == "North-South/North-South-A-B.html"

    def test_empty_names(self):
        assert archive_path("  ", "", ExportFormat.HTML) == "Untitled/Untitled-Untitled.html"


# =============================================================================
# Export
# =============================================================================


class TestExportPublications:
    def test_one_entry_per_location(self, day_publications):
        archive = export_publications(
            day_publications, [HOST, BRANCH], ExportFormat.HTML, DAY,
            host_location_id=HOST.id, renderer=fake_renderer,
        )

        assert sorted(archive.entries) == ["Branch/Branch-Day 1.html", "Host/Host-Day 1.html"]
        files = read_zip(archive.data)
        assert files["Branch/Branch-Day 1.html"] == "Branch:global-g1,b1"
        assert files["Host/Host-Day 1.html"] == "Host:g1,p1"
        assert archive.failures == []
        assert archive.summary == {"succeeded": 2, "failed": 0, "total": 2}

    def test_partial_failure(self, day_publications):
        archive = export_publications(
            day_publications, [HOST, BRANCH], ExportFormat.HTML, DAY,
            host_location_id=HOST.id, renderer=failing_for(BRANCH.id),
        )

        assert archive.entries == ["Host/Host-Day 1.html"]
        assert len(archive.failures) == 1
        failure = archive.failures[0]
        assert failure.location_id == BRANCH.id
        assert failure.location_name == "Branch"
        assert "cannot render" in failure.error
        assert list(read_zip(archive.data)) == ["Host/Host-Day 1.html"]

    def test_total_failure_raises(self, day_publications):
        with pytest.raises(ExportFailedError) as exc:
            export_publications(
                day_publications, [HOST, BRANCH], ExportFormat.HTML, DAY,
                host_location_id=HOST.id, renderer=failing_for(HOST.id, BRANCH.id),
            )
        assert {f.location_id for f in exc.value.failures} == {HOST.id, BRANCH.id}

    def test_nothing_to_export_raises(self):
        with pytest.raises(ExportFailedError) as exc:
            export_publications([], [HOST], ExportFormat.HTML, DAY, renderer=fake_renderer)
        assert exc.value.failures == []

    def test_first_publication_per_location_wins(self):
        pubs = [
            publication("pub-new", BRANCH.id, [block("new")], title="Featured"),
            publication("pub-old", BRANCH.id, [block("old")], title="Older"),
        ]
        archive = export_publications(pubs, [BRANCH], ExportFormat.HTML, DAY, renderer=fake_renderer)

        assert archive.entries == ["Branch/Branch-Featured.html"]

    def test_colliding_paths_made_unique(self):
        twins = [
            Location(id="loc-1", event_id="evt1", name="Branch"),
            Location(id="loc-2", event_id="evt1", name="Branch"),
        ]
        pubs = [publication("p1", "loc-1", []), publication("p2", "loc-2", [])]
        archive = export_publications(pubs, twins, ExportFormat.HTML, DAY, renderer=fake_renderer)

        assert archive.entries == ["Branch/Branch-Day 1.html", "Branch/Branch-Day 1 (2).html"]

    def test_unknown_location_uses_id(self):
        pubs = [publication("p1", "loc-gone", [])]
        archive = export_publications(pubs, [], ExportFormat.HTML, DAY, renderer=fake_renderer)
        assert archive.entries == ["loc-gone/loc-gone-Day 1.html"]

    def test_same_inputs_same_bytes(self, day_publications):
        args = (day_publications, [HOST, BRANCH], ExportFormat.HTML, DAY)
        first = export_publications(*args, host_location_id=HOST.id, renderer=fake_renderer)
        second = export_publications(*args, host_location_id=HOST.id, renderer=fake_renderer)
        assert first.data == second.data

    def test_pdf_bytes_stored_as_is(self, day_publications):
        archive = export_publications(
            day_publications, [HOST, BRANCH], ExportFormat.PDF, DAY,
            renderer=lambda p, o, h: b"%PDF " + o.location_name.encode(),
        )
        with zipfile.ZipFile(io.BytesIO(archive.data)) as zf:
            assert zf.read("Host/Host-Day 1.pdf") == b"%PDF Host"

    def test_filename(self, day_publications):
        archive = export_publications(
            day_publications, [HOST, BRANCH], ExportFormat.PDF, DAY,
            event_name="Ashara Mubaraka 1447H", renderer=lambda p, o, h: b"x",
        )
        assert archive.filename == "ashara-mubaraka-1447h-2026-09-01-pdf.zip"

        unnamed = export_publications(
            day_publications, [HOST, BRANCH], ExportFormat.HTML, DAY, renderer=fake_renderer,
        )
        assert unnamed.filename == "publications-2026-09-01-html.zip"


class TestWriteZip:
    def test_entry_timestamps(self):
        data = write_zip([("a.html", b"a")], (2026, 9, 1, 0, 0, 0))
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            info = zf.getinfo("a.html")
        assert info.date_time == (2026, 9, 1, 0, 0, 0)
        assert info.compress_type == zipfile.ZIP_DEFLATED

    def test_old_dates_clamped(self):
        pubs = [publication("p1", BRANCH.id, [], publication_date=date(1970, 1, 1))]
        archive = export_publications(pubs, [BRANCH], ExportFormat.HTML, date(1970, 1, 1), renderer=fake_renderer)
        with zipfile.ZipFile(io.BytesIO(archive.data)) as zf:
            assert zf.infolist()[0].date_time == ZIP_EPOCH

    def test_far_future_dates_capped(self):
        pubs = [publication("p1", BRANCH.id, [], publication_date=date(2110, 1, 1))]
        archive = export_publications(pubs, [BRANCH], ExportFormat.HTML, date(2110, 1, 1), renderer=fake_renderer)
        with zipfile.ZipFile(io.BytesIO(archive.data)) as zf:
            assert zf.infolist()[0].date_time == ZIP_LAST_DAY

    def test_unpackable_timestamp_is_archive_error(self):
        with pytest.raises(ArchiveError):
            write_zip([("a.html", b"x")], (2110, 1, 1, 0, 0, 0))


# =============================================================================
# BulkExporter (through the services)
# =============================================================================


class TestBulkExporter:
    @pytest.mark.asyncio
    async def test_export_all_for_date(self, storage):
        events = EventService(storage)
        locations = LocationService(storage)
        publications = PublicationService(storage)

        await events.create(Event(id="evt1", name="Ashara"))
        await locations.create(HOST)
        await locations.create(BRANCH)

        base = datetime(2026, 8, 1, tzinfo=timezone.utc)
        for pub in (
            publication("pub-h", HOST.id, [block("g1", is_global=True), block("p1")]),
            publication("pub-b", BRANCH.id, [block("b1")], created_at=base),
            publication("pub-b2", BRANCH.id, [block("b2")], title="Newer", created_at=base + timedelta(days=1)),
            publication("pub-other-day", BRANCH.id, [block("x")], publication_date=date(2026, 9, 2)),
        ):
            await publications.create(pub)

        exporter = BulkExporter(events, locations, publications, renderer=fake_renderer)
        archive = await exporter.export_all_for_date("evt1", DAY, "html")

        files = read_zip(archive.data)
        assert sorted(files) == ["Branch/Branch-Newer.html", "Host/Host-Day 1.html"]
        assert files["Branch/Branch-Newer.html"] == "Branch:global-g1,b2"
        assert archive.filename == "ashara-2026-09-01-html.zip"

    @pytest.mark.asyncio
    async def test_featured_publication_exported(self, storage):
        events = EventService(storage)
        locations = LocationService(storage)
        publications = PublicationService(storage)

        await events.create(Event(id="evt1", name="Ashara"))
        await locations.create(BRANCH)
        base = datetime(2026, 8, 1, tzinfo=timezone.utc)
        await publications.create(publication("pub-a", BRANCH.id, [], title="Featured", created_at=base))
        await publications.create(
            publication("pub-b", BRANCH.id, [], title="Newest", created_at=base + timedelta(days=1))
        )
        await publications.toggle_featured("pub-a", True)

        exporter = BulkExporter(events, locations, publications, renderer=fake_renderer)
        archive = await exporter.export_all_for_date("evt1", DAY)

        assert archive.entries == ["Branch/Branch-Featured.html"]

    @pytest.mark.asyncio
    async def test_rendering_runs_off_the_event_loop(self, storage):
        events = EventService(storage)
        locations = LocationService(storage)
        publications = PublicationService(storage)

        await events.create(Event(id="evt1", name="Ashara"))
        await locations.create(HOST)
        await locations.create(BRANCH)
        await publications.create(publication("pub-h", HOST.id, [block("p1")]))
        await publications.create(publication("pub-b", BRANCH.id, [block("b1")]))

        threads = []

        def recording_renderer(publication, options, host_publications):
            threads.append(threading.get_ident())
            return fake_renderer(publication, options, host_publications)

        exporter = BulkExporter(events, locations, publications, renderer=recording_renderer)
        await exporter.export_all_for_date("evt1", DAY)

        assert len(threads) == 2
        assert len(set(threads)) == 1
        assert threads[0] != threading.get_ident()
