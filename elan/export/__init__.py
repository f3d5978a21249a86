"""
Export module - rendering publications for download and email.

- options: ExportOptions / EmailTemplateOptions
- renderer: single publication to HTML or PDF
- email: email-safe HTML
- bulk: one artifact per location for an event day, zipped
"""

from elan.export.bulk import (
    ArchiveError,
    BulkExporter,
    ExportArchive,
    ExportFailedError,
    ExportFailure,
    archive_path,
    export_publications,
    group_by_location,
)
from elan.export.email import format_text_for_email, generate_email_template
from elan.export.options import (
    EmailTemplateOptions,
    ExportFormat,
    ExportOptions,
    PageSize,
    TemplateStyle,
)
from elan.export.renderer import (
    HTMLPublicationRenderer,
    RenderError,
    render_publication,
)

__all__ = [
    "ArchiveError",
    "BulkExporter",
    "ExportArchive",
    "ExportFailedError",
    "ExportFailure",
    "archive_path",
    "export_publications",
    "group_by_location",
    "format_text_for_email",
    "generate_email_template",
    "EmailTemplateOptions",
    "ExportFormat",
    "ExportOptions",
    "PageSize",
    "TemplateStyle",
    "HTMLPublicationRenderer",
    "RenderError",
    "render_publication",
]
