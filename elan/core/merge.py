"""
Multi-location content merge.

Every non-host location's publication for a date is rendered with the host
location's global blocks in front of its own:

    [host global blocks..., target blocks...]

Host blocks are imported (see `ParentBlock.as_import`) so their rendered
ids are `global-<original id>` and their origin records the host location
and publication they came from.
"""

from __future__ import annotations

import logging
from typing import Iterable

from elan.core.blocks import ImportedOrigin, ParentBlock, normalize_content
from elan.core.models import Publication

logger = logging.getLogger(__name__)


def should_merge(host_location_id: str | None, target_location_id: str | None) -> bool:
    """A location never merges its own global blocks into itself."""
    return host_location_id is not None and host_location_id != target_location_id


def collect_global_blocks(
    host_publications: Iterable[Publication],
    host_location_id: str,
) -> list[ParentBlock]:
    """
    Imported copies of the host location's global blocks.

    Host publications are visited in the order given and blocks in their
    stored order. The same host block reached twice (two host publications
    for one date) is kept once, first one wins.
    """
    imported: list[ParentBlock] = []

    for publication in host_publications:
        if publication.location_id != host_location_id:
            continue

        for block in normalize_content(publication.content, source=publication.id):
            if not block.is_global:
                continue

            candidate = block.as_import(host_location_id, publication.id)
            if _find_same_source(candidate, imported) is not None:
                logger.warning(
                    f"Global block {candidate.origin.original_id} appears in more than "
                    f"one host publication for location {host_location_id}; "
                    f"keeping the first, skipping the copy from {publication.id}"
                )
                continue
            imported.append(candidate)

    return imported


def merge_content(
    target_publication: Publication,
    host_publications: Iterable[Publication],
    host_location_id: str | None,
    target_location_id: str | None,
) -> list[ParentBlock]:
    """
    Ordered blocks to render for `target_publication`.

    Without a host location, or when the target is the host, this is just
    the target's own blocks. Otherwise the host's global blocks come first,
    followed by the target's blocks in their original order.

    Imports already present in the target (content that was merged before)
    are not added again, so merging merged content changes nothing.
    """
    own_blocks = normalize_content(target_publication.content, source=target_publication.id)

    if not should_merge(host_location_id, target_location_id):
        return own_blocks

    already_imported = [block for block in own_blocks if block.is_imported]
    global_blocks = [
        block
        for block in collect_global_blocks(host_publications, host_location_id)
        if _find_same_source(block, already_imported) is None
    ]

    logger.debug(
        f"Merged {len(global_blocks)} global blocks from {host_location_id} "
        f"into {target_publication.id} ({len(own_blocks)} own blocks)"
    )
    return global_blocks + own_blocks


def _find_same_source(block: ParentBlock, candidates: list[ParentBlock]) -> ParentBlock | None:
    origin = block.origin
    if not isinstance(origin, ImportedOrigin):
        return None
    for other in candidates:
        if isinstance(other.origin, ImportedOrigin) and origin.same_source(other.origin):
            return other
    return None
