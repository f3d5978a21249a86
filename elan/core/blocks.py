"""
Content blocks - the structure of a publication's content.

A publication's content is an ordered list of ParentBlocks, one per umoor
section, each holding a tree of ChildBlocks (text, images, menus...).

Stored content uses camelCase keys (`umoorName`, `isGlobal`,
`parentBlocks`); the models accept and emit those keys while exposing
snake_case attributes. Unknown keys are carried through untouched.

Provenance is explicit: every ParentBlock has an `origin`. Blocks written
for the publication are `LocalOrigin`; blocks pulled in from the host
location are `ImportedOrigin` and remember where they came from.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any, Iterable, Literal

from pydantic import BaseModel, Field, TypeAdapter, ValidationError
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)


# Rendered-id prefix of blocks imported from the host location
GLOBAL_PREFIX = "global-"


# =============================================================================
# Origin
# =============================================================================


class LocalOrigin(BaseModel):
    """Block written for the publication that holds it."""

    kind: Literal["local"] = "local"


class ImportedOrigin(BaseModel):
    """Block copied from a host-location publication."""

    model_config = {"alias_generator": to_camel, "populate_by_name": True}

    kind: Literal["imported"] = "imported"
    original_id: str
    source_location_id: str | None = None
    source_publication_id: str | None = None

    def same_source(self, other: ImportedOrigin) -> bool:
        """
        Whether two imports are the same host block.

        An unknown source location (content saved before provenance was
        recorded) matches any location.
        """
        if self.original_id != other.original_id:
            return False
        if self.source_location_id is None or other.source_location_id is None:
            return True
        return self.source_location_id == other.source_location_id


BlockOrigin = Annotated[LocalOrigin | ImportedOrigin, Field(discriminator="kind")]


# =============================================================================
# Blocks
# =============================================================================


class ChildBlock(BaseModel):
    """
    A content node inside a section.

    `type` is left open: renderers handle the types they know and show a
    placeholder for the rest.
    """

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "allow",
    }

    id: str
    type: str = "text"  # title, text, content, image, menu, custom
    language: str | None = None  # eng, lud
    data: dict[str, Any] = Field(default_factory=dict)
    children: list[ChildBlock] = Field(default_factory=list)


class ParentBlock(BaseModel):
    """A top-level section of a publication, usually one umoor."""

    model_config = {
        "alias_generator": to_camel,
        "populate_by_name": True,
        "extra": "allow",
    }

    id: str
    title: str | None = None
    subheading: str | None = None
    description: str | None = None

    umoor_id: str | None = None
    umoor_name: str | None = None
    umoor_logo: str | None = None

    # Marks a host-location block for inclusion in every other location
    is_global: bool = False

    children: list[ChildBlock] = Field(default_factory=list)
    origin: BlockOrigin = Field(default_factory=LocalOrigin)

    @property
    def is_imported(self) -> bool:
        return isinstance(self.origin, ImportedOrigin)

    def as_import(
        self,
        source_location_id: str | None,
        source_publication_id: str | None = None,
    ) -> ParentBlock:
        """
        Copy of this block as imported from a host location.

        The rendered id becomes `global-<original id>`. An id that already
        carries the prefix is kept as-is.
        """
        if self.is_imported:
            return self.model_copy(deep=True)

        original_id = strip_global_prefix(self.id)
        return self.model_copy(
            deep=True,
            update={
                "id": f"{GLOBAL_PREFIX}{original_id}",
                "origin": ImportedOrigin(
                    original_id=original_id,
                    source_location_id=source_location_id,
                    source_publication_id=source_publication_id,
                ),
            },
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the stored (camelCase) keys."""
        return self.model_dump(mode="json", by_alias=True)


def strip_global_prefix(block_id: str) -> str:
    """Remove one leading `global-` prefix, if any."""
    if block_id.startswith(GLOBAL_PREFIX):
        return block_id[len(GLOBAL_PREFIX):]
    return block_id


# =============================================================================
# Normalization
# =============================================================================


_blocks_adapter = TypeAdapter(list[ParentBlock])


def _infer_origin(raw: Any) -> Any:
    """
    Content saved before provenance was stored only has the id prefix.

    Such blocks are read back as imports with an unknown source location.
    """
    if not isinstance(raw, dict) or "origin" in raw:
        return raw
    block_id = raw.get("id")
    if isinstance(block_id, str) and block_id.startswith(GLOBAL_PREFIX):
        return {
            **raw,
            "origin": {"kind": "imported", "originalId": strip_global_prefix(block_id)},
        }
    return raw


def normalize_content(content: Any, source: str = "publication") -> list[ParentBlock]:
    """
    Decode stored publication content into an ordered block list.

    Accepts a list of blocks, an object with a `parentBlocks` list, a JSON
    string of either, or already-built ParentBlocks. Empty content gives
    `[]`. Anything malformed is logged and also gives `[]`: one bad
    publication must not break the caller.
    """
    if content is None or content == "":
        return []

    if isinstance(content, (str, bytes)):
        try:
            content = json.loads(content)
        except ValueError:
            logger.warning(f"Content of {source} is not valid JSON; treating as empty")
            return []

    if isinstance(content, dict):
        if "parentBlocks" not in content:
            logger.warning(f"Content of {source} has no parentBlocks; treating as empty")
            return []
        content = content["parentBlocks"]

    if not isinstance(content, list):
        logger.warning(
            f"Content of {source} is a {type(content).__name__}, not a block list; "
            "treating as empty"
        )
        return []

    raw_blocks = [
        block.to_dict() if isinstance(block, ParentBlock) else _infer_origin(block)
        for block in content
    ]

    try:
        return _blocks_adapter.validate_python(raw_blocks)
    except ValidationError as e:
        logger.warning(
            f"Content of {source} failed validation ({e.error_count()} errors); "
            "treating as empty"
        )
        return []


def serialize_content(blocks: Iterable[ParentBlock]) -> list[dict[str, Any]]:
    """Encode blocks in the stored list form."""
    return [block.to_dict() for block in blocks]
