"""Resources - editable data loaded from YAML."""

from elan.resources.export_template import (
    ExportTemplate,
    HeaderText,
    TemplateNotFoundError,
    TemplateRegistry,
    get_template_registry,
)

__all__ = [
    "ExportTemplate",
    "HeaderText",
    "TemplateNotFoundError",
    "TemplateRegistry",
    "get_template_registry",
]
