"""
Single-publication rendering to HTML or PDF.

The renderer is a pure function of its arguments: display values (location
name, logo, event name) come in through ExportOptions and every timestamp
printed comes from the publication itself, so the same call always gives
the same document.

PDF output is the HTML passed through WeasyPrint.
"""

from __future__ import annotations

import logging
from datetime import date
from html import escape
from typing import Any, Callable, Iterable

from elan.core.blocks import ChildBlock, ParentBlock, normalize_content
from elan.core.merge import merge_content
from elan.core.models import Publication
from elan.export.options import ExportFormat, ExportOptions
from elan.resources.export_template import ExportTemplate, TemplateRegistry, get_template_registry

logger = logging.getLogger(__name__)

PdfWriter = Callable[[str], bytes]

RTL_LANGUAGES = ("lud",)


class RenderError(Exception):
    """A publication could not be rendered."""

    pass


def format_date(value: date) -> str:
    """`September 1, 2026` without depending on the process locale."""
    months = (
        "January", "February", "March", "April", "May", "June", "July",
        "August", "September", "October", "November", "December",
    )
    return f"{months[value.month - 1]} {value.day}, {value.year}"


def weasyprint_pdf(html: str) -> bytes:
    """Convert an HTML document to PDF bytes."""
    try:
        from weasyprint import HTML
    except ImportError as e:
        logger.error("WeasyPrint not installed. Install with: pip install weasyprint")
        raise RenderError("PDF generation library not available") from e

    try:
        return HTML(string=html).write_pdf()
    except Exception as e:
        logger.error(f"Error converting HTML to PDF: {e}")
        raise RenderError(f"PDF conversion failed: {e}") from e


def _attr(value: Any) -> str:
    return escape(str(value), quote=True)


def text_value(value: Any) -> str:
    """A stored text field as a string; structured values are dropped."""
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def menu_items(value: Any) -> list[dict[str, Any]]:
    """The dict entries of a menu's `items`, or nothing when it is not a list."""
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def unsupported_block(child: ChildBlock) -> str:
    return f'<div class="content-block unsupported-block">Unsupported block type: {escape(child.type)}</div>'


# =============================================================================
# HTML renderer
# =============================================================================


class HTMLPublicationRenderer:
    """Turns a block list into a standalone HTML document."""

    def __init__(self, template: ExportTemplate):
        self.template = template

    def render(self, publication: Publication, blocks: list[ParentBlock], options: ExportOptions) -> str:
        css = self.template.css(options.page_size.value, options.custom_branding)
        sections = "\n".join(self.render_section(block) for block in blocks)
        metadata = self.render_metadata(publication, options) if options.include_metadata else ""

        return (
            "<!DOCTYPE html>\n"
            '<html lang="en">\n'
            "<head>\n"
            '<meta charset="UTF-8">\n'
            '<meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
            f"<title>{escape(publication.title)}</title>\n"
            f"<style>\n{css}</style>\n"
            "</head>\n"
            "<body>\n"
            '<div class="publication-container">\n'
            f"{self.render_header(publication, options)}\n"
            '<main class="publication-content">\n'
            f"{sections}\n"
            "</main>\n"
            f"{metadata}"
            "</div>\n"
            "</body>\n"
            "</html>\n"
        )

    def render_header(self, publication: Publication, options: ExportOptions) -> str:
        header = self.template.header
        parts = ['<header class="publication-header">']

        if options.location_logo:
            alt = options.location_name or "Location logo"
            parts.append(
                f'<div class="logo-container"><img src="{_attr(options.location_logo)}" '
                f'alt="{_attr(alt)}" class="location-logo"></div>'
            )
        if header.decoration:
            parts.append(f'<div class="decorative-separator">{escape(header.decoration)}</div>')

        subtitle = options.event_name or header.subtitle
        parts.append('<div class="publication-title-container">')
        if header.title:
            parts.append(f'<h1 class="publication-title">{escape(header.title)}</h1>')
        if subtitle:
            parts.append(f'<div class="publication-subtitle">{escape(subtitle)}</div>')
        parts.append(
            f'<div class="publication-info">{escape(publication.title)} &bull; '
            f"{format_date(publication.publication_date)}</div>"
        )
        parts.append("</div>")
        parts.append("</header>")
        return "\n".join(parts)

    def render_section(self, block: ParentBlock) -> str:
        heading = block.umoor_name or "Section"
        parts = [
            f'<section class="umoor-section" data-block-id="{_attr(block.id)}">',
            f'<h2 class="umoor-title">{escape(heading)}</h2>',
        ]
        if block.title and block.title != block.umoor_name:
            parts.append(f'<h3 class="block-title">{escape(block.title)}</h3>')
        if block.subheading:
            parts.append(f'<p class="block-subheading">{escape(block.subheading)}</p>')

        parts.append('<div class="section-content">')
        parts.extend(self.render_child(child) for child in block.children)
        parts.append("</div>")
        parts.append("</section>")
        return "\n".join(parts)

    def render_child(self, child: ChildBlock) -> str:
        renderer = getattr(self, f"_render_{child.type}", None)
        if renderer is None:
            html = unsupported_block(child)
        else:
            try:
                html = renderer(child)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping malformed {child.type} block {child.id}: {e}")
                html = unsupported_block(child)

        if child.children:
            nested = "\n".join(self.render_child(c) for c in child.children)
            html = f"{html}\n{nested}"
        return html

    # Rich-text bodies are stored as HTML and emitted unchanged

    def _render_text(self, child: ChildBlock) -> str:
        data = child.data
        content = text_value(data.get("content")) or text_value(data.get("text"))
        rtl = " rtl" if child.language in RTL_LANGUAGES else ""
        return f'<div class="content-block text-block{rtl}">{content}</div>'

    def _render_content(self, child: ChildBlock) -> str:
        content = text_value(child.data.get("content")) or text_value(child.data.get("html"))
        rtl = " rtl" if child.language in RTL_LANGUAGES else ""
        return f'<div class="content-block text-block{rtl}">{content}</div>'

    def _render_title(self, child: ChildBlock) -> str:
        text = child.data.get("text") or child.data.get("title") or child.data.get("content") or ""
        return f'<h3 class="content-block block-title">{escape(str(text))}</h3>'

    def _render_image(self, child: ChildBlock) -> str:
        data = child.data
        src = text_value(data.get("imageUrl")) or text_value(data.get("url")) or text_value(data.get("src"))
        alt = data.get("alt") or data.get("caption") or "Image"
        caption = data.get("caption") or ""
        parts = [
            '<div class="content-block image-block">',
            f'<img src="{_attr(src)}" alt="{_attr(alt)}">',
        ]
        if caption:
            parts.append(f'<p class="image-caption">{escape(str(caption))}</p>')
        parts.append("</div>")
        return "\n".join(parts)

    def _render_menu(self, child: ChildBlock) -> str:
        title = child.data.get("title") or "Menu"
        rows = []
        for item in menu_items(child.data.get("items")):
            price = item.get("price") or item.get("calories") or ""
            row = (
                '<div class="menu-item">'
                f'<span class="menu-item-name">{escape(str(item.get("name") or ""))}</span>'
                f'<span class="menu-item-price">{escape(str(price))}</span>'
            )
            if item.get("allergens"):
                row += f'<span class="menu-item-allergens">{escape(str(item["allergens"]))}</span>'
            rows.append(row + "</div>")

        return (
            '<div class="content-block menu-block">\n'
            f'<h3 class="menu-title">{escape(str(title))}</h3>\n'
            '<div class="menu-items">\n'
            + "\n".join(rows)
            + "\n</div>\n</div>"
        )

    def render_metadata(self, publication: Publication, options: ExportOptions) -> str:
        parts = ['<footer class="publication-metadata">']
        parts.append(f"<p>Publication: {escape(publication.title)}</p>")
        if options.location_name:
            parts.append(f"<p>Location: {escape(options.location_name)}</p>")
        parts.append(f"<p>Date: {format_date(publication.publication_date)}</p>")
        parts.append(f"<p>Last updated {publication.updated_at.isoformat(timespec='seconds')}</p>")
        parts.append("</footer>\n")
        return "\n".join(parts)


# =============================================================================
# Entry point
# =============================================================================


def resolve_blocks(
    publication: Publication,
    options: ExportOptions,
    host_publications: Iterable[Publication] = (),
) -> list[ParentBlock]:
    """The blocks to render: merged with the host's globals when asked to."""
    if options.include_global_content:
        return merge_content(
            publication,
            host_publications,
            options.host_location_id,
            options.location_id or publication.location_id,
        )
    return normalize_content(publication.content, source=publication.id)


def render_publication(
    publication: Publication,
    options: ExportOptions,
    host_publications: Iterable[Publication] = (),
    registry: TemplateRegistry | None = None,
    pdf_writer: PdfWriter | None = None,
) -> str | bytes:
    """
    Render one publication.

    Returns the HTML document as `str`, or PDF bytes for `ExportFormat.PDF`.
    Raises RenderError when the PDF conversion fails and
    TemplateNotFoundError for an unknown template.
    """
    template = (registry or get_template_registry()).get(options.template.value)
    blocks = resolve_blocks(publication, options, host_publications)

    html = HTMLPublicationRenderer(template).render(publication, blocks, options)
    logger.debug(f"Rendered {publication.id} with {len(blocks)} blocks ({len(html)} chars)")

    if options.format is ExportFormat.PDF:
        return (pdf_writer or weasyprint_pdf)(html)
    return html
