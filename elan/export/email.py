"""
Email-safe rendering of a publication.

Email clients ignore most of CSS, so the layout is table based and the
stylesheet sticks to properties that survive Outlook and Gmail. Text blocks
accept a little markdown: `**bold**`, `*em*`, blank-line paragraphs and
line breaks.
"""

from __future__ import annotations

import logging
import re
from html import escape
from typing import Iterable

from elan.core.blocks import ChildBlock, ParentBlock
from elan.core.models import Publication
from elan.export.options import EmailTemplateOptions, ExportOptions
from elan.export.renderer import RTL_LANGUAGES, format_date, menu_items, resolve_blocks, text_value
from elan.resources.export_template import TemplateRegistry, get_template_registry

logger = logging.getLogger(__name__)

_BOLD = re.compile(r"\*\*(.+?)\*\*")
_EM = re.compile(r"\*(.+?)\*")


def format_text_for_email(content: str) -> str:
    """Convert the supported markdown subset to email HTML."""
    text = text_value(content).strip()
    if not text:
        return ""
    text = text.replace("\n\n", "</p><p>").replace("\n", "<br>")
    text = _BOLD.sub(r"<strong>\1</strong>", text)
    return _EM.sub(r"<em>\1</em>", text)


def _image_src(child: ChildBlock, use_base64: bool) -> str:
    data = child.data
    if use_base64:
        inline = data.get("base64") or data.get("imageData")
        if inline:
            if str(inline).startswith("data:"):
                return str(inline)
            mime = data.get("mimeType") or "image/jpeg"
            return f"data:{mime};base64,{inline}"
    return text_value(data.get("imageUrl")) or text_value(data.get("url"))


def _render_child(child: ChildBlock, options: EmailTemplateOptions) -> str:
    try:
        return _render_child_body(child, options)
    except (TypeError, ValueError, AttributeError) as e:
        logger.warning(f"Skipping malformed {child.type} block {child.id} in email: {e}")
        return ""


def _render_child_body(child: ChildBlock, options: EmailTemplateOptions) -> str:
    if child.type in ("text", "content"):
        rtl = " rtl" if child.language in RTL_LANGUAGES else ""
        body = format_text_for_email(text_value(child.data.get("content")) or "No content added yet...")
        return (
            '<div class="email-content-block">'
            f'<div class="email-text-content{rtl}"><p>{body}</p></div>'
            "</div>"
        )

    if child.type == "title":
        text = child.data.get("text") or child.data.get("title") or ""
        return f'<h3 class="email-umoor-title">{escape(str(text))}</h3>'

    if child.type == "image":
        src = _image_src(child, options.use_base64_images)
        if not options.include_images or not src:
            return ""
        alt = child.data.get("alt") or ""
        caption = f'<div class="email-image-caption">{escape(str(alt))}</div>' if alt else ""
        return (
            '<div class="email-content-block">'
            f'<img src="{escape(src, quote=True)}" alt="{escape(str(alt), quote=True)}" class="email-image">'
            f"{caption}</div>"
        )

    if child.type == "menu":
        items = menu_items(child.data.get("items"))
        if not items:
            return '<div class="email-content-block"><div class="email-menu-empty">No menu items added yet</div></div>'

        rows = []
        for item in items:
            extra = ""
            if item.get("price"):
                extra += f'<div class="email-menu-item-price">{escape(str(item["price"]))}</div>'
            if item.get("calories"):
                extra += f'<div class="email-menu-item-nutrition"><span>Calories: {escape(str(item["calories"]))}</span></div>'
            if item.get("allergens"):
                extra += (
                    '<div class="email-menu-item-allergens"><span class="email-menu-item-allergens-label">'
                    f'Allergens:</span> {escape(str(item["allergens"]))}</div>'
                )
            rows.append(
                '<div class="email-menu-item"><table cellpadding="0" cellspacing="0" border="0"><tr>'
                f'<td class="email-menu-item-info"><div class="email-menu-item-name">{escape(str(item.get("name") or ""))}</div>'
                f"{extra}</td></tr></table></div>"
            )
        title = child.data.get("title")
        heading = f'<h3 class="email-menu-title">{escape(str(title))}</h3>' if title else ""
        return f'<div class="email-content-block"><div class="email-menu-block">{heading}{"".join(rows)}</div></div>'

    # Types without an email rendering are left out
    return ""


def _render_section(block: ParentBlock, options: EmailTemplateOptions) -> str:
    logo = ""
    if block.umoor_logo and block.umoor_logo.startswith(("http", "data:")):
        logo = (
            f'<img src="{escape(block.umoor_logo, quote=True)}" '
            f'alt="{escape(block.umoor_name or "", quote=True)}" width="50" height="50">'
        )

    info = ""
    if block.umoor_name:
        info += f'<div class="email-umoor-name">{escape(block.umoor_name)}</div>'
    if block.title:
        info += f'<h2 class="email-umoor-title">{escape(block.title)}</h2>'
        if block.umoor_name and block.title != block.umoor_name:
            info += f'<p class="email-umoor-subtitle">({escape(block.umoor_name)})</p>'

    children = "".join(_render_child(c, options) for c in block.children)
    return (
        '<div class="email-umoor-section">'
        '<div class="email-umoor-header"><table cellpadding="0" cellspacing="0" border="0"><tr>'
        f'<td class="email-umoor-logo">{logo}</td>'
        f'<td class="email-umoor-info">{info}</td>'
        "</tr></table></div>"
        f"{children}</div>"
    )


def generate_email_template(
    publication: Publication,
    options: EmailTemplateOptions,
    export_options: ExportOptions | None = None,
    host_publications: Iterable[Publication] = (),
    registry: TemplateRegistry | None = None,
) -> str:
    """
    Email HTML for a publication.

    `export_options` controls merging of host content and the breadcrumb
    (event and location names) exactly as for the document export.
    """
    export_options = export_options or ExportOptions(template=options.style)
    template = (registry or get_template_registry()).get(options.style.value)
    css = template.email_css(export_options.custom_branding, dark_mode=options.dark_mode_compatible)
    blocks = resolve_blocks(publication, export_options, host_publications)

    breadcrumb = " / ".join(n for n in (export_options.event_name, export_options.location_name) if n)
    decoration = template.header.decoration or "* * *"
    header = (
        '<div class="email-header">'
        f'<div class="email-decorative">{escape(decoration)}</div>'
        f'<h1 class="email-title">{escape(publication.title)}</h1>'
        + (f'<p class="email-breadcrumb">{escape(breadcrumb)}</p>' if breadcrumb else "")
        + f'<p class="email-date">{format_date(publication.publication_date)}</p>'
        "</div>"
    )
    sections = "".join(_render_section(b, options) for b in blocks)
    footer = (
        '<div class="email-footer">'
        f"<p>Last updated {publication.updated_at.date().isoformat()}</p>"
        "</div>"
    )

    return (
        "<!DOCTYPE html>\n"
        '<html lang="en" dir="ltr">\n'
        "<head>\n"
        '<meta charset="UTF-8">\n'
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">\n'
        '<meta http-equiv="X-UA-Compatible" content="IE=edge">\n'
        f"<title>{escape(publication.title)}</title>\n"
        f"<style>\n{css}</style>\n"
        "</head>\n"
        "<body>\n"
        '<table role="presentation" width="100%" cellpadding="0" cellspacing="0" border="0"><tr><td>\n'
        f'<div class="email-container">{header}{sections}{footer}</div>\n'
        "</td></tr></table>\n"
        "</body>\n"
        "</html>\n"
    )
