"""
Bulk export: every location's publication for one event day, zipped.

    publications ──group by location──▶ one representative per location
                 ──render (sequential)─▶ artifacts + failures
                 ──zip──────────────────▶ ExportArchive

A location whose render fails is left out of the archive and reported in
`ExportArchive.failures`. If nothing renders, ExportFailedError is raised
and no archive is built. The zip is written only after every location has
been attempted, with fixed entry timestamps so the same inputs give the
same bytes.
"""

from __future__ import annotations

import asyncio
import io
import logging
import struct
import zipfile
from dataclasses import dataclass, field
from datetime import date
from typing import Callable, Iterable

from elan.core.models import Location, Publication
from elan.core.utils import slugify
from elan.export.options import ExportFormat, ExportOptions, TemplateStyle
from elan.export.renderer import render_publication
from elan.integrations.sentry import capture_exception

logger = logging.getLogger(__name__)

Renderer = Callable[[Publication, ExportOptions, list[Publication]], "str | bytes"]

# Range of timestamps a zip entry can carry
ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
ZIP_LAST_DAY = (2107, 12, 31, 0, 0, 0)


# =============================================================================
# Results and errors
# =============================================================================


@dataclass
class ExportFailure:
    """One location that could not be exported."""

    location_id: str
    location_name: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"location_id": self.location_id, "location_name": self.location_name, "error": self.error}


@dataclass
class ExportArchive:
    data: bytes
    filename: str
    entries: list[str] = field(default_factory=list)
    failures: list[ExportFailure] = field(default_factory=list)

    @property
    def summary(self) -> dict[str, int]:
        return {
            "succeeded": len(self.entries),
            "failed": len(self.failures),
            "total": len(self.entries) + len(self.failures),
        }


class ExportFailedError(Exception):
    """No location could be exported."""

    def __init__(self, message: str, failures: list[ExportFailure] | None = None):
        super().__init__(message)
        self.message = message
        self.failures = failures or []


class ArchiveError(Exception):
    """The rendered artifacts could not be written to an archive."""

    pass


# =============================================================================
# Grouping and naming
# =============================================================================


def group_by_location(publications: Iterable[Publication]) -> dict[str, list[Publication]]:
    """
    Publications per location, in the order given.

    Locations appear in the order of their first publication; the first
    publication of each group is the one exported.
    """
    groups: dict[str, list[Publication]] = {}
    for publication in publications:
        if publication.location_id is None:
            logger.warning(f"Publication {publication.id} has no location; skipping")
            continue
        groups.setdefault(publication.location_id, []).append(publication)

    for location_id, group in groups.items():
        if len(group) > 1:
            logger.warning(
                f"Location {location_id} has {len(group)} publications for the same date; "
                f"exporting {group[0].id}"
            )
    return groups


def safe_name(name: str) -> str:
    """A name usable as one archive path segment."""
    cleaned = name.replace("/", "-").replace("\\", "-").strip()
    return cleaned or "Untitled"


def archive_path(location_name: str, title: str, fmt: ExportFormat) -> str:
    location = safe_name(location_name)
    return f"{location}/{location}-{safe_name(title)}.{fmt.extension}"


def _unique_path(path: str, taken: set[str]) -> str:
    if path not in taken:
        return path
    stem, _, extension = path.rpartition(".")
    n = 2
    while f"{stem} ({n}).{extension}" in taken:
        n += 1
    return f"{stem} ({n}).{extension}"


def write_zip(entries: list[tuple[str, bytes]], timestamp: tuple[int, ...] = ZIP_EPOCH) -> bytes:
    """Zip the entries in order. Raises ArchiveError."""
    buffer = io.BytesIO()
    try:
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
            for path, data in entries:
                info = zipfile.ZipInfo(path, date_time=timestamp)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                zf.writestr(info, data)
    except (OSError, ValueError, struct.error, zipfile.LargeZipFile) as e:
        logger.error(f"Failed to write export archive: {e}")
        raise ArchiveError(f"Failed to create archive: {e}") from e
    return buffer.getvalue()


# =============================================================================
# Export
# =============================================================================


def export_publications(
    publications: list[Publication],
    locations: Iterable[Location],
    fmt: ExportFormat,
    publication_date: date,
    host_location_id: str | None = None,
    event_name: str | None = None,
    template: TemplateStyle = TemplateStyle.PROFESSIONAL,
    renderer: Renderer | None = None,
) -> ExportArchive:
    """
    Render one artifact per location and zip them.

    `publications` must be in persistence order; it doubles as the host
    publication list for merging. Raises ExportFailedError when no location
    renders and ArchiveError when the zip cannot be written.
    """
    render = renderer or render_publication
    by_id = {location.id: location for location in locations}
    groups = group_by_location(publications)

    rendered: list[tuple[str, bytes]] = []
    failures: list[ExportFailure] = []
    taken: set[str] = set()

    for location_id, group in groups.items():
        publication = group[0]
        location = by_id.get(location_id)
        location_name = location.name if location else location_id

        options = ExportOptions(
            format=fmt,
            template=template,
            location_id=location_id,
            host_location_id=host_location_id,
            include_global_content=host_location_id is not None and location_id != host_location_id,
            location_name=location_name,
            location_logo=location.logo_url if location else None,
            event_name=event_name,
        )

        try:
            artifact = render(publication, options, publications)
        except Exception as e:
            logger.error(f"Export of {location_name} ({publication.id}) failed: {e}")
            capture_exception(e, location_id=location_id, publication_id=publication.id)
            failures.append(ExportFailure(location_id, location_name, str(e) or type(e).__name__))
            continue

        data = artifact.encode("utf-8") if isinstance(artifact, str) else artifact
        path = _unique_path(archive_path(location_name, publication.title, fmt), taken)
        taken.add(path)
        rendered.append((path, data))

    if not rendered:
        if not failures:
            raise ExportFailedError(f"No publications to export for {publication_date.isoformat()}")
        raise ExportFailedError(f"All {len(failures)} locations failed to export", failures)

    timestamp = (publication_date.year, publication_date.month, publication_date.day, 0, 0, 0)
    timestamp = min(max(timestamp, ZIP_EPOCH), ZIP_LAST_DAY)

    data = write_zip(rendered, timestamp)
    prefix = slugify(event_name) if event_name else "publications"
    archive = ExportArchive(
        data=data,
        filename=f"{prefix or 'publications'}-{publication_date.isoformat()}-{fmt.value}.zip",
        entries=[path for path, _ in rendered],
        failures=failures,
    )
    logger.info(
        f"Exported {archive.summary['succeeded']} of {archive.summary['total']} locations "
        f"for {publication_date.isoformat()} ({len(data)} bytes)"
    )
    return archive


class BulkExporter:
    """Fetches an event day and runs `export_publications` over it."""

    def __init__(self, events, locations, publications, renderer: Renderer | None = None):
        self.events = events
        self.locations = locations
        self.publications = publications
        self.renderer = renderer

    async def export_all_for_date(
        self,
        event_id: str,
        publication_date: date,
        fmt: ExportFormat | str = ExportFormat.HTML,
        template: TemplateStyle | str = TemplateStyle.PROFESSIONAL,
    ) -> ExportArchive:
        event = await self.events.require(event_id)
        locations = await self.locations.list_for_event(event_id)
        host = await self.locations.get_host_location(event_id)
        publications = await self.publications.list_by_event_and_date(event_id, publication_date)

        logger.info(
            f"Bulk export of {event.name} for {publication_date.isoformat()}: "
            f"{len(publications)} publications, host={host.name if host else None}"
        )
        # Rendering is synchronous, so it runs on a worker thread
        return await asyncio.to_thread(
            export_publications,
            publications,
            locations,
            ExportFormat(fmt),
            publication_date,
            host_location_id=host.id if host else None,
            event_name=event.name,
            template=TemplateStyle(template),
            renderer=self.renderer,
        )
