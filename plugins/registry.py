"""Template registry for built-in and plugin-provided template types.

Stores template metadata by type and remembers which plugin owns each
entry. Read by the renderer to look up the requested template type.
"""

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .errors import PluginError, RegistrationConflictError
from .manifest import BUILT_IN, TemplateMetadata

logger = logging.getLogger(__name__)

# Files every template directory must provide
REQUIRED_TEMPLATE_FILES = ("mainTemplate.json.hbs", "createUiDefinition.json.hbs")


class TemplateRegistry:
    """Registry of template types.

    Built-in types are seeded once before plugins load and can never be
    replaced. Plugin batches are all-or-nothing.
    """

    def __init__(self) -> None:
        """Initialize empty registry."""
        self._templates: dict[str, TemplateMetadata] = {}
        self._owners: dict[str, str] = {}

    def register_builtins(self, templates: Iterable[TemplateMetadata | Mapping[str, Any]]) -> None:
        """Seed the host's native template types.

        Raises:
            PluginError: If plugin templates are already registered
            RegistrationConflictError: If a built-in type is duplicated
        """
        if any(owner != BUILT_IN for owner in self._owners.values()):
            raise PluginError("Built-in templates must be registered before plugins load")

        self._commit(BUILT_IN, self._preflight(BUILT_IN, templates))

    def register_many(
        self, plugin_id: str, templates: Iterable[TemplateMetadata | Mapping[str, Any]]
    ) -> list[TemplateMetadata]:
        """Register a plugin's templates, all or nothing.

        Args:
            plugin_id: Plugin contributing the templates
            templates: Template metadata entries

        Returns:
            The registered entries

        Raises:
            RegistrationConflictError: If any type is invalid or already
                registered. Nothing from the batch is registered.
        """
        batch = self._preflight(plugin_id, templates)
        self._commit(plugin_id, batch)
        return batch

    def _preflight(
        self, plugin_id: str, templates: Iterable[TemplateMetadata | Mapping[str, Any]]
    ) -> list[TemplateMetadata]:
        """Validate a batch against the registry and itself."""
        batch: list[TemplateMetadata] = []
        seen: set[str] = set()

        for entry in templates:
            template = _coerce_template(entry, plugin_id)

            if template.type in self._templates:
                raise RegistrationConflictError("template", template.type, plugin_id, self._owners[template.type])
            if template.type in seen:
                raise RegistrationConflictError("template", template.type, plugin_id, plugin_id)

            seen.add(template.type)
            batch.append(template)

        return batch

    def _commit(self, owner: str, batch: list[TemplateMetadata]) -> None:
        for template in batch:
            self._templates[template.type] = template
            self._owners[template.type] = owner

        if batch:
            logger.info("Registered %d template(s) from %s", len(batch), owner)

    def has(self, template_type: str) -> bool:
        return template_type in self._templates

    def get(self, template_type: str) -> TemplateMetadata | None:
        """Get template metadata by type."""
        return self._templates.get(template_type)

    def owner(self, template_type: str) -> str | None:
        """Plugin id (or "built-in") that registered a type."""
        return self._owners.get(template_type)

    def list_all(self) -> list[TemplateMetadata]:
        """All templates in registration order."""
        return list(self._templates.values())

    def types(self) -> list[str]:
        return list(self._templates)

    def by_tag(self, tag: str) -> list[TemplateMetadata]:
        """Templates carrying a tag."""
        return [t for t in self._templates.values() if tag in t.tags]

    def search(self, keyword: str) -> list[TemplateMetadata]:
        """Case-insensitive search over type, name and description."""
        needle = keyword.lower()
        return [
            t
            for t in self._templates.values()
            if needle in t.type.lower() or needle in t.name.lower() or needle in t.description.lower()
        ]

    def validate_template_path(self, templates_dir: Path | str, template_path: str) -> bool:
        """Check that a template directory holds the required files."""
        full_path = Path(templates_dir) / template_path
        if not full_path.is_dir():
            return False
        return all((full_path / name).is_file() for name in REQUIRED_TEMPLATE_FILES)

    def clear(self) -> None:
        """Drop plugin templates, keeping built-ins."""
        for template_type in [t for t, owner in self._owners.items() if owner != BUILT_IN]:
            del self._templates[template_type]
            del self._owners[template_type]

    def __len__(self) -> int:
        return len(self._templates)

    def __contains__(self, template_type: str) -> bool:
        return template_type in self._templates


def _coerce_template(entry: TemplateMetadata | Mapping[str, Any], plugin_id: str) -> TemplateMetadata:
    """Accept TemplateMetadata or a plain mapping."""
    if isinstance(entry, TemplateMetadata):
        return entry
    if not isinstance(entry, Mapping):
        raise RegistrationConflictError(
            "template", repr(entry), plugin_id, reason=f"expected a mapping, got {type(entry).__name__}"
        )
    try:
        return TemplateMetadata.model_validate(dict(entry))
    except ValidationError as e:
        err = e.errors()[0]
        location = ".".join(str(part) for part in err["loc"])
        raise RegistrationConflictError(
            "template", str(entry.get("type", "?")), plugin_id, reason=f"invalid metadata ({location}: {err['msg']})"
        ) from None
