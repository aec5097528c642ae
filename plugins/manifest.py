"""Plugin descriptor and metadata schemas.

Descriptors come from the host configuration (which plugins to load),
metadata is declared by the plugin itself, and template metadata
describes each generation target a plugin contributes.

Example descriptor list (azmp.toml):
    [[plugins.load]]
    source = "./plugins/compute"
    options = { default_size = "Standard_B2s" }

    [[plugins.load]]
    source = "azmp_network_templates"
    enabled = false
"""

import re
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StrictBool, StrictStr, ValidationError, field_validator

from .errors import ConfigurationError

# Shared by plugin ids, helper names and command names
IDENTIFIER_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")

# Owner recorded for artifacts seeded by the host itself
BUILT_IN = "built-in"


class PluginDescriptor(BaseModel):
    """Configuration entry naming a plugin to load."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    source: StrictStr = Field(
        ...,
        validation_alias=AliasChoices("source", "package"),
        description="Package name or filesystem path",
    )
    enabled: StrictBool = Field(True, description="Load this plugin")
    options: dict[str, Any] = Field(default_factory=dict, description="Plugin-specific options")

    @field_validator("source")
    @classmethod
    def validate_source(cls, v: str) -> str:
        """Reject empty sources."""
        if not v.strip():
            raise ValueError("source must be a non-empty string")
        return v


class PluginMetadata(BaseModel):
    """Identity a plugin declares through its ``metadata`` attribute."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    id: StrictStr = Field(..., min_length=1)
    name: StrictStr = Field(..., min_length=1)
    version: StrictStr = Field(..., min_length=1)
    description: str = ""
    author: str | None = None
    required_host_version: str | None = Field(None, alias="requiredHostVersion")

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        """Validate id format."""
        if not IDENTIFIER_PATTERN.match(v):
            raise ValueError(f"must match pattern {IDENTIFIER_PATTERN.pattern}")
        return v


class TemplateMetadata(BaseModel):
    """A template type the generator can render."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    type: StrictStr = Field(..., min_length=1, description="Unique template type, e.g. 'storage'")
    name: str
    description: str = ""
    version: str
    template_path: str = Field(..., alias="templatePath", description="Relative to the templates root")
    tags: tuple[str, ...] = ()
    documentation_url: str | None = Field(None, alias="documentationUrl")


def parse_descriptors(raw: Any) -> list[PluginDescriptor]:
    """Validate the raw plugin list from configuration.

    Args:
        raw: Parsed configuration value (list of mappings, or None)

    Returns:
        Descriptors in configuration order

    Raises:
        ConfigurationError: If the list or any entry is malformed. All
            problems are reported together.
    """
    if raw is None:
        return []
    if not isinstance(raw, (list, tuple)):
        raise ConfigurationError([f"plugins must be a list, got {type(raw).__name__}"])

    descriptors: list[PluginDescriptor] = []
    problems: list[str] = []

    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            problems.append(f"plugins[{index}]: expected a table/object, got {type(entry).__name__}")
            continue
        try:
            descriptors.append(PluginDescriptor.model_validate(entry))
        except ValidationError as e:
            for err in e.errors():
                location = ".".join(str(part) for part in err["loc"]) or "entry"
                problems.append(f"plugins[{index}].{location}: {err['msg']}")

    if problems:
        raise ConfigurationError(problems)

    return descriptors
