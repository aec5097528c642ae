"""Configuration management for the azmp generator.

Loads configuration from:
1. azmp.toml or azmp.yaml (defaults)
2. Environment variables (overrides)
"""

import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

import yaml
from dotenv import load_dotenv

from plugins.errors import ConfigurationError
from plugins.loader import INIT_TIMEOUT_SECONDS
from plugins.manifest import PluginDescriptor, parse_descriptors

CONFIG_FILENAMES = ("azmp.toml", "azmp.yaml", "azmp.yml")


@dataclass
class PathsConfig:
    """Filesystem locations."""

    templates_dir: str = "templates"
    output_dir: str = "output"
    # Relative plugin paths must stay inside this directory (empty = cwd)
    workspace_root: str = ""


@dataclass
class LoggingConfig:
    """Logging configuration."""

    level: str = "INFO"


@dataclass
class PluginsConfig:
    """Plugin loading configuration."""

    enabled: bool = True
    init_timeout: float = INIT_TIMEOUT_SECONDS
    # Raw [[plugins.load]] entries, validated by descriptors()
    load: list[Any] = field(default_factory=list)


@dataclass
class Config:
    """Main configuration container."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    plugins: PluginsConfig = field(default_factory=PluginsConfig)
    source: Path | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any], source: Path | None = None) -> "Config":
        """Create Config from dictionary.

        Raises:
            ConfigurationError: If a section has unknown keys or the wrong shape
        """
        problems: list[str] = []
        sections: dict[str, Any] = {}

        for name, section_cls in (("paths", PathsConfig), ("logging", LoggingConfig), ("plugins", PluginsConfig)):
            section_data = data.get(name) or {}
            if not isinstance(section_data, dict):
                problems.append(f"[{name}] must be a table")
                continue
            try:
                sections[name] = section_cls(**section_data)
            except TypeError as e:
                problems.append(f"[{name}]: {e}")

        if problems:
            raise ConfigurationError(problems)

        return cls(**sections, source=source)

    @property
    def workspace_root(self) -> Path:
        if self.paths.workspace_root:
            return Path(self.paths.workspace_root).expanduser().resolve()
        if self.source is not None:
            return self.source.parent.resolve()
        return Path.cwd().resolve()

    def descriptors(self) -> list[PluginDescriptor]:
        """Validated plugin descriptors, in configured order.

        Raises:
            ConfigurationError: Listing every malformed entry
        """
        if not self.plugins.enabled:
            return []
        return parse_descriptors(self.plugins.load)

    def to_dict(self) -> dict[str, Any]:
        """Host configuration as plain data (plugin list excluded)."""
        data = asdict(self)
        data.pop("source", None)
        data["plugins"].pop("load", None)
        return data


def find_config_file(start: Path | None = None) -> Path | None:
    """Find azmp.toml/azmp.yaml in current or parent directories.

    Returns:
        Path to the config file or None if not found.
    """
    current = start or Path.cwd()

    for directory in [current, *current.parents]:
        for filename in CONFIG_FILENAMES:
            config_path = directory / filename
            if config_path.exists():
                return config_path

    return None


def read_config_file(path: Path) -> dict[str, Any]:
    """Parse a TOML or YAML config file.

    Raises:
        ConfigurationError: If the file cannot be parsed
    """
    try:
        if path.suffix in (".yaml", ".yml"):
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        else:
            with open(path, "rb") as f:
                data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError([f"{path.name}: {e}"]) from e

    if not isinstance(data, dict):
        raise ConfigurationError([f"{path.name}: top level must be a mapping"])
    return data


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Optional explicit path to azmp.toml or azmp.yaml

    Returns:
        Config object with merged settings.

    Raises:
        ConfigurationError: If the file is unreadable or malformed
    """
    load_dotenv()

    config_data: dict[str, Any] = {}
    path: Path | None = None

    if config_path is None:
        path = find_config_file()
    else:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError([f"Config file not found: {path}"])

    if path is not None:
        config_data = read_config_file(path)

    # Apply environment variable overrides
    env_overrides = {
        "paths": {
            "templates_dir": os.getenv("AZMP_TEMPLATES_DIR"),
            "output_dir": os.getenv("AZMP_OUTPUT_DIR"),
        },
        "logging": {
            "level": os.getenv("AZMP_LOG_LEVEL"),
        },
        "plugins": {
            "init_timeout": _float_or_none(os.getenv("AZMP_PLUGIN_TIMEOUT")),
        },
    }

    # Merge env overrides (only non-None values)
    for section, values in env_overrides.items():
        if config_data.get(section) is None:
            config_data[section] = {}
        section_data = config_data[section]
        if not isinstance(section_data, dict):
            # Reported by Config.from_dict
            continue
        for key, value in values.items():
            if value is not None:
                section_data[key] = value

    return Config.from_dict(config_data, source=path.resolve() if path else None)


def _float_or_none(value: str | None) -> float | None:
    """Convert string to a positive float, or return None."""
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if number > 0 else None


DEFAULT_CONFIG_TOML = """\
# azmp generator configuration

[paths]
templates_dir = "templates"
output_dir = "output"

[logging]
level = "INFO"

[plugins]
enabled = true
init_timeout = 5.0

# [[plugins.load]]
# source = "./plugins/compute"
# options = { default_size = "Standard_B2s" }
"""


def write_default_config(directory: Path, force: bool = False) -> Path:
    """Write a starter azmp.toml.

    Raises:
        FileExistsError: If the file exists and force is False
    """
    path = directory / "azmp.toml"
    if path.exists() and not force:
        raise FileExistsError(path)
    path.write_text(DEFAULT_CONFIG_TOML, encoding="utf-8")
    return path
