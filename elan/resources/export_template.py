"""
Export template resource.

An export template is the look of a rendered publication: its stylesheet,
the header text printed above every publication, and the stylesheet used
for the email version. Templates are YAML files; the bundled ones live in
`elan/resources/templates/` and more can be loaded from a directory set in
`EXPORT_TEMPLATES_DIR`.

Stylesheets may reference `$primary_color`, `$secondary_color`,
`$font_family` and `$page_size`; they are filled from the template's own
defaults, overridden by custom branding.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from typing import Any

import yaml

logger = logging.getLogger(__name__)

BUNDLED_TEMPLATES_DIR = Path(__file__).parent / "templates"

_BRANDING_KEYS = {
    "primary_color": "primary_color",
    "primaryColor": "primary_color",
    "secondary_color": "secondary_color",
    "secondaryColor": "secondary_color",
    "font_family": "font_family",
    "fontFamily": "font_family",
}


class TemplateNotFoundError(LookupError):
    """No template is registered under the requested id."""

    pass


@dataclass
class HeaderText:
    """Text printed in the publication header."""

    title: str = ""
    subtitle: str = ""
    decoration: str = "* * *"

    def to_dict(self) -> dict[str, Any]:
        return {"title": self.title, "subtitle": self.subtitle, "decoration": self.decoration}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> HeaderText:
        data = data or {}
        return cls(
            title=data.get("title", ""),
            subtitle=data.get("subtitle", ""),
            decoration=data.get("decoration", "* * *"),
        )


@dataclass
class ExportTemplate:
    """Styles and header text for one export look."""

    id: str
    name: str = ""
    description: str = ""
    version: int = 1
    header: HeaderText = field(default_factory=HeaderText)
    defaults: dict[str, str] = field(default_factory=dict)
    styles: str = ""
    email_styles: str = ""
    email_dark_styles: str = ""

    def __post_init__(self):
        if not self.name:
            self.name = self.id.replace("_", " ").title()

    def variables(self, page_size: str = "A4", branding: dict[str, Any] | None = None) -> dict[str, str]:
        values = {
            "primary_color": "#4E6F1F",
            "secondary_color": "#ADBF97",
            "font_family": "Georgia, serif",
            **self.defaults,
            "page_size": page_size,
        }
        for key, value in (branding or {}).items():
            if key in _BRANDING_KEYS and value:
                values[_BRANDING_KEYS[key]] = str(value)
        return values

    def css(self, page_size: str = "A4", branding: dict[str, Any] | None = None) -> str:
        """The document stylesheet with branding applied."""
        return Template(self.styles).safe_substitute(self.variables(page_size, branding))

    def email_css(self, branding: dict[str, Any] | None = None, dark_mode: bool = False) -> str:
        """The email stylesheet, optionally with the dark-mode media query."""
        css = self.email_styles
        if dark_mode and self.email_dark_styles:
            css = f"{css}\n{self.email_dark_styles}"
        return Template(css).safe_substitute(self.variables(branding=branding))

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "version": self.version,
            "header": self.header.to_dict(),
            "defaults": self.defaults,
            "styles": self.styles,
            "email_styles": self.email_styles,
            "email_dark_styles": self.email_dark_styles,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExportTemplate:
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            description=data.get("description", ""),
            version=data.get("version", 1),
            header=HeaderText.from_dict(data.get("header")),
            defaults={k: str(v) for k, v in (data.get("defaults") or {}).items()},
            styles=data.get("styles", ""),
            email_styles=data.get("email_styles", ""),
            email_dark_styles=data.get("email_dark_styles", ""),
        )

    @classmethod
    def from_yaml(cls, path: Path | str) -> ExportTemplate:
        with open(path, encoding="utf-8") as f:
            return cls.from_dict(yaml.safe_load(f))

    def to_yaml(self, path: Path | str) -> None:
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def __repr__(self) -> str:
        return f"<ExportTemplate(id={self.id}, v{self.version})>"


class TemplateRegistry:
    """Export templates by id."""

    def __init__(self):
        self._templates: dict[str, ExportTemplate] = {}

    def register(self, template: ExportTemplate) -> None:
        if template.id in self._templates:
            logger.info(f"Replacing export template '{template.id}'")
        self._templates[template.id] = template

    def get(self, template_id: str) -> ExportTemplate:
        if template_id not in self._templates:
            raise TemplateNotFoundError(f"Export template '{template_id}' not found")
        return self._templates[template_id]

    def list(self) -> list[str]:
        return sorted(self._templates)

    def load_directory(self, directory: Path | str) -> int:
        """Register every *.yaml template in a directory. Returns the count."""
        directory = Path(directory)
        if not directory.is_dir():
            logger.warning(f"Export template directory not found: {directory}")
            return 0

        loaded = 0
        for path in sorted(directory.glob("*.yaml")):
            try:
                self.register(ExportTemplate.from_yaml(path))
            except (yaml.YAMLError, KeyError, TypeError) as e:
                logger.error(f"Failed to load export template {path.name}: {e}")
                continue
            loaded += 1
        return loaded


_registry: TemplateRegistry | None = None


def get_template_registry() -> TemplateRegistry:
    """The bundled templates plus any from EXPORT_TEMPLATES_DIR."""
    global _registry
    if _registry is None:
        from elan.config import get_settings

        registry = TemplateRegistry()
        registry.load_directory(BUNDLED_TEMPLATES_DIR)
        extra = get_settings().export_templates_dir
        if extra:
            registry.load_directory(extra)
        _registry = registry
    return _registry
