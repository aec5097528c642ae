"""Shared fixtures for the plugin system tests."""

import textwrap
from pathlib import Path

import pytest

from plugins import CommandRegistrar, HelperRegistrar, PluginContext, PluginLoader, TemplateRegistry
from plugins.resolver import ModuleResolver
from scaffolding import BUILTIN_HELPERS, BUILTIN_TEMPLATES


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host environment overrides out of the tests."""
    for name in ("AZMP_TEMPLATES_DIR", "AZMP_OUTPUT_DIR", "AZMP_LOG_LEVEL", "AZMP_PLUGIN_TIMEOUT"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def workspace(tmp_path) -> Path:
    return tmp_path


@pytest.fixture
def write_plugin(workspace):
    """Write a plugin package under the workspace and return its source string."""

    def _write(relpath: str, code: str) -> str:
        directory = workspace / relpath
        directory.mkdir(parents=True, exist_ok=True)
        (directory / "__init__.py").write_text(textwrap.dedent(code))
        return f"./{relpath}"

    return _write


@pytest.fixture
def templates() -> TemplateRegistry:
    registry = TemplateRegistry()
    registry.register_builtins(BUILTIN_TEMPLATES)
    return registry


@pytest.fixture
def helpers() -> HelperRegistrar:
    registrar = HelperRegistrar()
    registrar.register_builtins(BUILTIN_HELPERS)
    return registrar


@pytest.fixture
def commands() -> CommandRegistrar:
    registrar = CommandRegistrar()
    registrar.register_builtins(["templates", "helpers", "plugins", "version", "config"])
    return registrar


@pytest.fixture
def loader(workspace, templates, helpers, commands) -> PluginLoader:
    return PluginLoader(templates, helpers, commands, resolver=ModuleResolver(workspace), init_timeout=1.0)


@pytest.fixture
def context(workspace) -> PluginContext:
    return PluginContext.create(
        host_version="0.1.0",
        templates_dir=str(workspace / "templates"),
        output_dir=str(workspace / "output"),
        config={"logging": {"level": "INFO"}},
    )
