"""Options accepted by the exporters."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ExportFormat(str, Enum):
    HTML = "html"
    PDF = "pdf"

    @property
    def extension(self) -> str:
        return self.value

    @property
    def media_type(self) -> str:
        return "application/pdf" if self is ExportFormat.PDF else "text/html; charset=utf-8"


class TemplateStyle(str, Enum):
    PROFESSIONAL = "professional"
    MINIMAL = "minimal"
    BRANDED = "branded"


class PageSize(str, Enum):
    A4 = "A4"
    LETTER = "Letter"


class ExportOptions(BaseModel):
    """
    How to render one publication.

    `location_name`, `location_logo` and `event_name` are display values
    resolved by the caller; the renderer never looks anything up.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    format: ExportFormat = ExportFormat.HTML
    template: TemplateStyle = TemplateStyle.PROFESSIONAL
    page_size: PageSize = PageSize.A4
    include_metadata: bool = True

    location_id: str | None = None
    host_location_id: str | None = None
    include_global_content: bool = False

    location_name: str | None = None
    location_logo: str | None = None
    event_name: str | None = None

    # primary_color, secondary_color, font_family
    custom_branding: dict[str, Any] = Field(default_factory=dict)


class EmailTemplateOptions(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    style: TemplateStyle = TemplateStyle.PROFESSIONAL
    include_images: bool = True
    use_base64_images: bool = False
    dark_mode_compatible: bool = True
