"""Built-in template types.

Each template type points at a directory under the templates root that
holds the Handlebars sources (mainTemplate.json.hbs,
createUiDefinition.json.hbs and optionally viewDefinition.json.hbs).
"""

from plugins.manifest import TemplateMetadata


# =============================================================================
# Storage Template
# =============================================================================

STORAGE_TEMPLATE = TemplateMetadata(
    type="storage",
    name="Storage Account",
    description="Managed application with a hardened Azure Storage account",
    version="3.1.0",
    template_path="storage",
    tags=("storage", "data", "builtin"),
)


# =============================================================================
# Template Registry
# =============================================================================

BUILTIN_TEMPLATES: list[TemplateMetadata] = [
    STORAGE_TEMPLATE,
]
