"""Tests for HTML/PDF rendering of a single publication."""

import logging

import pytest

from conftest import block, publication
from elan.core.blocks import ChildBlock
from elan.export import ExportFormat, ExportOptions, PageSize, RenderError, TemplateStyle, render_publication
from elan.export.renderer import HTMLPublicationRenderer, format_date, resolve_blocks
from elan.resources import ExportTemplate, HeaderText, TemplateNotFoundError, TemplateRegistry


HOST = "loc-host"
BRANCH = "loc-branch"


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def registry():
    """A registry with one small template, independent of the bundled files."""
    registry = TemplateRegistry()
    registry.register(ExportTemplate(
        id="professional",
        header=HeaderText(title="Daily Bulletin", subtitle="Default subtitle", decoration="~"),
        styles="@page { size: $page_size; }\nh2 { color: $primary_color; font-family: $font_family; }\n",
    ))
    return registry


@pytest.fixture
def branch_publication():
    return publication("pub-b", BRANCH, [block("b1", umoor="Mawaid", text="<p>Lunch at <b>noon</b></p>")])


@pytest.fixture
def host_publication():
    return publication("pub-h", HOST, [block("g1", umoor="Announcements", is_global=True), block("p1")])


def options(**kwargs):
    defaults = {"location_id": BRANCH, "location_name": "Branch"}
    return ExportOptions(**{**defaults, **kwargs})


# =============================================================================
# HTML
# =============================================================================


class TestRenderHTML:
    def test_document_shape(self, registry, branch_publication):
        html = render_publication(branch_publication, options(), registry=registry)

        assert html.startswith("<!DOCTYPE html>")
        assert "<title>Day 1</title>" in html
        assert '<h1 class="publication-title">Daily Bulletin</h1>' in html
        assert '<div class="publication-subtitle">Default subtitle</div>' in html
        assert "September 1, 2026" in html
        assert '<section class="umoor-section" data-block-id="b1">' in html
        assert '<h2 class="umoor-title">Mawaid</h2>' in html

    def test_rich_text_emitted_as_stored(self, registry, branch_publication):
        html = render_publication(branch_publication, options(), registry=registry)
        assert "<p>Lunch at <b>noon</b></p>" in html

    def test_display_values_escaped(self, registry):
        pub = publication("pub-b", BRANCH, [block("b1", umoor="<script>x</script>")], title="A & B")
        html = render_publication(pub, options(location_name="<Branch>"), registry=registry)

        assert "<script>x</script>" not in html
        assert "&lt;script&gt;x&lt;/script&gt;" in html
        assert "<title>A &amp; B</title>" in html
        assert "Location: &lt;Branch&gt;" in html

    def test_event_name_replaces_subtitle(self, registry, branch_publication):
        html = render_publication(branch_publication, options(event_name="Ashara 1447H"), registry=registry)
        assert '<div class="publication-subtitle">Ashara 1447H</div>' in html

    def test_logo(self, registry, branch_publication):
        html = render_publication(
            branch_publication, options(location_logo="https://cdn/logo.png"), registry=registry
        )
        assert 'src="https://cdn/logo.png"' in html
        assert 'alt="Branch"' in html

    def test_css_variables_and_branding(self, registry, branch_publication):
        html = render_publication(
            branch_publication,
            options(page_size=PageSize.LETTER, custom_branding={"primaryColor": "#112233"}),
            registry=registry,
        )
        assert "size: Letter;" in html
        assert "color: #112233;" in html
        assert "font-family: Georgia, serif;" in html

    def test_metadata_footer(self, registry, branch_publication):
        html = render_publication(branch_publication, options(), registry=registry)

        assert '<footer class="publication-metadata">' in html
        assert "Last updated 2026-08-30T12:00:00+00:00" in html

        bare = render_publication(branch_publication, options(include_metadata=False), registry=registry)
        assert "publication-metadata" not in bare

    def test_unsupported_child_type(self, registry):
        pub = publication("pub-b", BRANCH, [{
            "id": "b1",
            "children": [{"id": "c1", "type": "poll", "data": {}}],
        }])
        html = render_publication(pub, options(), registry=registry)

        assert "Unsupported block type: poll" in html
        assert '<h2 class="umoor-title">Section</h2>' in html

    def test_menu_and_image(self, registry):
        pub = publication("pub-b", BRANCH, [{
            "id": "b1",
            "umoorName": "Mawaid",
            "children": [
                {"id": "c1", "type": "menu", "data": {"title": "Lunch", "items": [
                    {"name": "Daal", "price": "Free", "allergens": "none"},
                    "not an item",
                ]}},
                {"id": "c2", "type": "image", "data": {"imageUrl": "https://cdn/a.jpg", "caption": "Hall"}},
            ],
        }])
        html = render_publication(pub, options(), registry=registry)

        assert '<h3 class="menu-title">Lunch</h3>' in html
        assert '<span class="menu-item-name">Daal</span>' in html
        assert html.count('class="menu-item"') == 1
        assert '<img src="https://cdn/a.jpg" alt="Hall">' in html
        assert '<p class="image-caption">Hall</p>' in html

    def test_malformed_child_data(self, registry):
        pub = publication("pub-b", BRANCH, [{
            "id": "b1",
            "umoorName": "Mawaid",
            "children": [
                {"id": "c1", "type": "menu", "data": {"title": "Lunch", "items": 5}},
                {"id": "c2", "type": "text", "data": {"content": {"x": 1}}},
                {"id": "c3", "type": "content", "data": {"content": ["a"], "html": "<p>kept</p>"}},
            ],
        }])
        html = render_publication(pub, options(), registry=registry)

        assert '<h3 class="menu-title">Lunch</h3>' in html
        assert 'class="menu-item"' not in html
        assert '<div class="content-block text-block"></div>' in html
        assert "<p>kept</p>" in html
        assert "{'x': 1}" not in html

    def test_failing_child_falls_back_to_placeholder(self, registry, caplog):
        class BrokenMenuRenderer(HTMLPublicationRenderer):
            def _render_menu(self, child):
                raise TypeError("bad menu")

        renderer = BrokenMenuRenderer(registry.get("professional"))
        child = ChildBlock(id="c1", type="menu", children=[ChildBlock(id="c2", type="title", data={"text": "After"})])
        with caplog.at_level(logging.WARNING, logger="elan.export.renderer"):
            html = renderer.render_child(child)

        assert "Unsupported block type: menu" in html
        assert "After" in html
        assert "c1" in caplog.text

    def test_lisan_text_is_rtl(self, registry):
        pub = publication("pub-b", BRANCH, [{
            "id": "b1",
            "children": [{"id": "c1", "type": "text", "language": "lud", "data": {"content": "x"}}],
        }])
        html = render_publication(pub, options(), registry=registry)
        assert 'class="content-block text-block rtl"' in html

    def test_deterministic(self, registry, branch_publication, host_publication):
        opts = options(host_location_id=HOST, include_global_content=True, event_name="Ashara")
        first = render_publication(branch_publication, opts, [host_publication], registry=registry)
        second = render_publication(branch_publication, opts, [host_publication], registry=registry)
        assert first == second

    def test_unknown_template(self, branch_publication):
        with pytest.raises(TemplateNotFoundError):
            render_publication(branch_publication, options(), registry=TemplateRegistry())


# =============================================================================
# Merging
# =============================================================================


class TestResolveBlocks:
    def test_merges_when_asked(self, branch_publication, host_publication):
        opts = options(host_location_id=HOST, include_global_content=True)
        blocks = resolve_blocks(branch_publication, opts, [host_publication])
        assert [b.id for b in blocks] == ["global-g1", "b1"]

    def test_own_blocks_otherwise(self, branch_publication, host_publication):
        blocks = resolve_blocks(branch_publication, options(host_location_id=HOST), [host_publication])
        assert [b.id for b in blocks] == ["b1"]

    def test_merged_section_rendered_first(self, registry, branch_publication, host_publication):
        opts = options(host_location_id=HOST, include_global_content=True)
        html = render_publication(branch_publication, opts, [host_publication], registry=registry)
        assert html.index('data-block-id="global-g1"') < html.index('data-block-id="b1"')


# =============================================================================
# PDF
# =============================================================================


class TestRenderPDF:
    def test_uses_pdf_writer(self, registry, branch_publication):
        seen = []

        def writer(html):
            seen.append(html)
            return b"%PDF-1.7 fake"

        result = render_publication(
            branch_publication, options(format=ExportFormat.PDF), registry=registry, pdf_writer=writer
        )

        assert result == b"%PDF-1.7 fake"
        assert seen[0] == render_publication(branch_publication, options(), registry=registry)

    def test_writer_errors_propagate(self, registry, branch_publication):
        def writer(html):
            raise RenderError("PDF conversion failed: boom")

        with pytest.raises(RenderError, match="boom"):
            render_publication(
                branch_publication, options(format=ExportFormat.PDF), registry=registry, pdf_writer=writer
            )


# =============================================================================
# Helpers
# =============================================================================


class TestFormatDate:
    def test_long_form(self):
        from datetime import date

        assert format_date(date(2026, 1, 9)) == "January 9, 2026"


class TestExportFormat:
    def test_media_types(self):
        assert ExportFormat.PDF.media_type == "application/pdf"
        assert ExportFormat.HTML.media_type.startswith("text/html")
        assert ExportFormat("pdf").extension == "pdf"

    def test_template_style_values(self):
        assert [s.value for s in TemplateStyle] == ["professional", "minimal", "branded"]
