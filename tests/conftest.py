"""Shared fixtures."""

from datetime import date, datetime, timezone

import pytest

from elan.core.models import Publication
from elan.storage import create_local_storage


DAY = date(2026, 9, 1)
UPDATED = datetime(2026, 8, 30, 12, 0, tzinfo=timezone.utc)


def block(id, umoor="Umoor", is_global=False, text="Hello", **extra):
    """A stored (camelCase) parent block with one text child."""
    return {
        "id": id,
        "umoorName": umoor,
        "isGlobal": is_global,
        "children": [{"id": f"{id}-c1", "type": "text", "data": {"content": text}}],
        **extra,
    }


def publication(id, location_id, blocks, title="Day 1", **kwargs):
    return Publication(
        id=id,
        event_id=kwargs.pop("event_id", "evt1"),
        location_id=location_id,
        title=title,
        publication_date=kwargs.pop("publication_date", DAY),
        content=blocks,
        created_at=kwargs.pop("created_at", UPDATED),
        updated_at=kwargs.pop("updated_at", UPDATED),
        **kwargs,
    )


@pytest.fixture
def storage(tmp_path):
    """In-memory records, content under a temp dir."""
    return create_local_storage(str(tmp_path))
