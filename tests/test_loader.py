"""Tests for PluginLoader."""

import asyncio
import logging
import sys
import time

import pytest

from plugins import (
    ConfigurationError,
    InitializationError,
    LoadStage,
    ModuleResolutionError,
    PathTraversalError,
    PluginDescriptor,
    PluginLoader,
    RegistrationConflictError,
)
from plugins.manifest import BUILT_IN
from plugins.resolver import ModuleResolver

COMPUTE_PLUGIN = """
from plugins import BasePlugin


class Plugin(BasePlugin):
    metadata = {"id": "azmp-compute", "name": "Compute", "version": "1.2.0"}

    def initialize(self, context):
        self.options = context.config["plugin_options"]

    def get_templates(self):
        return [{"type": "vm", "name": "Virtual Machine", "version": "1.0.0",
                 "templatePath": "vm", "tags": ["compute"]}]

    def get_handlebars_helpers(self):
        return {"resourceName": lambda prefix: prefix + "-vm"}

    def register_commands(self, api):
        api.add_command("list-sizes", lambda: None, aliases=["ls-sizes"])
"""

SECOND_VM_PLUGIN = """
class Plugin:
    metadata = {"id": "azmp-other-vm", "name": "Other VM", "version": "0.1.0"}

    def get_templates(self):
        return [{"type": "vm", "name": "Another VM", "version": "0.1.0", "templatePath": "vm2"}]
"""


def run(loader, descriptors, context):
    return asyncio.run(loader.load_all(descriptors, context))


def plugin_code(plugin_id: str, body: str = "") -> str:
    return f"""
import asyncio

from plugins import BasePlugin


class Plugin(BasePlugin):
    metadata = {{"id": "{plugin_id}", "name": "{plugin_id}", "version": "1.0.0"}}
{body}
"""


class SpyResolver(ModuleResolver):
    def __init__(self, root):
        super().__init__(root)
        self.calls = []

    def resolve(self, source, workspace_root=None):
        self.calls.append(source)
        return super().resolve(source, workspace_root)


class TestHappyPath:
    """Plugins that load cleanly."""

    def test_loads_and_registers_everything(self, loader, context, write_plugin, templates, helpers, commands):
        source = write_plugin("plugins/compute", COMPUTE_PLUGIN)

        result = run(loader, [{"source": source, "options": {"size": "B2s"}}], context)

        assert result.ok
        [record] = result.loaded
        assert (record.plugin_id, record.version) == ("azmp-compute", "1.2.0")
        assert (record.templates, record.helpers, record.commands) == (1, 1, 1)
        assert templates.owner("vm") == "azmp-compute"
        assert helpers.get("resourceName")("web") == "web-vm"
        assert commands.has_alias("ls-sizes")
        assert loader.is_loaded("azmp-compute")
        assert result.summary() == "All 1 plugins loaded successfully"

    def test_plugin_receives_its_options(self, loader, context, write_plugin):
        write_plugin("plugins/compute", COMPUTE_PLUGIN)

        run(loader, [PluginDescriptor(source="./plugins/compute", options={"size": "B2s"})], context)

        instance = loader._instances["azmp-compute"]
        assert instance.options["size"] == "B2s"
        assert "plugin_options" not in context.config
        assert any(name.startswith("azmp_plugin_compute_") for name in sys.modules)

    def test_named_instance_export(self, loader, context, write_plugin):
        source = write_plugin(
            "plugins/named",
            """
            class _Named:
                metadata = {"id": "named", "name": "Named", "version": "1.0.0"}

            plugin = _Named()
            """,
        )

        result = run(loader, [{"source": source}], context)

        assert loader.loaded_ids == ["named"]
        assert result.loaded[0].templates == 0

    def test_async_initialize(self, loader, context, write_plugin):
        source = write_plugin(
            "plugins/async_init",
            plugin_code(
                "async-init",
                """
    async def initialize(self, context):
        await asyncio.sleep(0)
        self.ready = context.host_version
""",
            ),
        )

        run(loader, [{"source": source}], context)

        assert loader._instances["async-init"].ready == "0.1.0"

    def test_empty_list(self, loader, context):
        result = run(loader, [], context)
        assert result.ok
        assert result.loaded == []


class TestSkipping:
    def test_disabled_never_resolved(self, workspace, templates, helpers, commands, context, write_plugin):
        spy = SpyResolver(workspace)
        loader = PluginLoader(templates, helpers, commands, resolver=spy)
        enabled = write_plugin("plugins/compute", COMPUTE_PLUGIN)

        result = run(
            loader,
            [{"source": "./plugins/never-there", "enabled": False}, {"source": enabled}],
            context,
        )

        assert spy.calls == [enabled]
        assert [d.source for d in result.skipped] == ["./plugins/never-there"]
        assert result.ok

    def test_malformed_descriptors_raise_before_loading(self, workspace, templates, helpers, commands, context):
        spy = SpyResolver(workspace)
        loader = PluginLoader(templates, helpers, commands, resolver=spy)

        with pytest.raises(ConfigurationError) as exc_info:
            run(loader, [{"source": "./a"}, {"enabled": True}, 42], context)

        assert len(exc_info.value.problems) == 2
        assert spy.calls == []


class TestResolvingFailures:
    def test_path_traversal(self, loader, context, write_plugin, caplog):
        later = write_plugin("plugins/compute", COMPUTE_PLUGIN)

        with caplog.at_level(logging.ERROR, logger="plugins.loader"):
            result = run(loader, [{"source": "../../etc/passwd"}, {"source": later}], context)

        [failure] = result.failed
        assert failure.stage == LoadStage.RESOLVING
        assert isinstance(failure.error, PathTraversalError)
        assert failure.is_security_violation
        assert "Security violation" in caplog.text
        assert loader.loaded_ids == ["azmp-compute"]

    def test_missing_package(self, loader, context):
        result = run(loader, [{"source": "azmp-missing-plugin"}], context)

        [failure] = result.failed
        assert failure.stage == LoadStage.RESOLVING
        assert "pip install azmp-missing-plugin" in failure.message

    def test_import_error_in_module(self, loader, context, write_plugin):
        source = write_plugin("plugins/broken", "raise RuntimeError('boom at import')\n")

        result = run(loader, [{"source": source}], context)

        [failure] = result.failed
        assert failure.stage == LoadStage.RESOLVING
        assert isinstance(failure.error, ModuleResolutionError)
        assert "boom at import" in failure.message

    def test_ordinary_failure_is_not_logged_as_warning(self, loader, context, caplog):
        with caplog.at_level(logging.DEBUG, logger="plugins.loader"):
            result = run(loader, [{"source": "azmp-missing-plugin"}], context)

        assert result.failed[0].stage == LoadStage.RESOLVING
        per_plugin = [r for r in caplog.records if "azmp-missing-plugin" in r.getMessage()]
        assert per_plugin
        assert all(r.levelno < logging.WARNING for r in per_plugin)


class TestValidatingFailures:
    def test_package_without_export(self, loader, context):
        result = run(loader, [{"source": "json"}], context)

        [failure] = result.failed
        assert failure.stage == LoadStage.VALIDATING
        assert "No plugin export found in 'json'" in failure.message

    def test_bad_metadata_leaves_registries_untouched(self, loader, context, write_plugin, templates):
        source = write_plugin(
            "plugins/bad",
            """
            class Plugin:
                metadata = {"id": "bad id", "name": "Bad", "version": "1.0.0"}

                def get_templates(self):
                    return [{"type": "bad", "name": "Bad", "version": "1", "templatePath": "bad"}]
            """,
        )

        result = run(loader, [{"source": source}], context)

        assert result.failed[0].stage == LoadStage.VALIDATING
        assert "invalid metadata.id" in result.failed[0].message
        assert not templates.has("bad")

    def test_duplicate_plugin_id(self, loader, context, write_plugin):
        first = write_plugin("plugins/one", plugin_code("same-id"))
        second = write_plugin("plugins/two", plugin_code("same-id"))

        result = run(loader, [{"source": first}, {"source": second}], context)

        assert loader.loaded_ids == ["same-id"]
        [failure] = result.failed
        assert failure.descriptor.source == second
        assert failure.stage == LoadStage.VALIDATING

    def test_rejected_local_plugin_is_not_left_importable(self, loader, context, write_plugin):
        source = write_plugin(
            "plugins/rejected",
            """
            class Plugin:
                metadata = {"id": "not valid!", "name": "Rejected", "version": "1.0.0"}
            """,
        )

        result = run(loader, [{"source": source}], context)

        assert result.failed[0].stage == LoadStage.VALIDATING
        assert not any(name.startswith("azmp_plugin_rejected_") for name in sys.modules)


class TestInitializingFailures:
    def test_initialize_raises(self, loader, context, write_plugin, templates):
        source = write_plugin(
            "plugins/raiser",
            plugin_code(
                "raiser",
                """
    def initialize(self, context):
        raise ValueError("missing credentials")

    def get_templates(self):
        return [{"type": "never", "name": "Never", "version": "1", "templatePath": "never"}]
""",
            ),
        )

        result = run(loader, [{"source": source}], context)

        [failure] = result.failed
        assert failure.stage == LoadStage.INITIALIZING
        assert failure.plugin_id == "raiser"
        assert "missing credentials" in failure.message
        assert not templates.has("never")

    def test_hung_initialize_times_out(self, workspace, templates, helpers, commands, context, write_plugin):
        loader = PluginLoader(templates, helpers, commands, resolver=ModuleResolver(workspace), init_timeout=0.05)
        hung = write_plugin(
            "plugins/hung",
            plugin_code(
                "hung",
                """
    async def initialize(self, context):
        await asyncio.sleep(30)
""",
            ),
        )
        later = write_plugin("plugins/compute", COMPUTE_PLUGIN)

        result = run(loader, [{"source": hung}, {"source": later}], context)

        [failure] = result.failed
        assert failure.stage == LoadStage.INITIALIZING
        assert isinstance(failure.error, InitializationError)
        assert failure.error.timed_out
        assert "timed out" in failure.message
        assert loader.loaded_ids == ["azmp-compute"]

    def test_timed_out_initialize_is_not_awaited(self, workspace, templates, helpers, commands, context, write_plugin):
        loader = PluginLoader(templates, helpers, commands, resolver=ModuleResolver(workspace), init_timeout=0.05)
        stubborn = write_plugin(
            "plugins/stubborn",
            plugin_code(
                "stubborn",
                """
    async def initialize(self, context):
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            await asyncio.sleep(0.5)
""",
            ),
        )
        later = write_plugin("plugins/compute", COMPUTE_PLUGIN)

        async def scenario():
            started = time.monotonic()
            result = await loader.load_all([{"source": stubborn}, {"source": later}], context)
            return result, time.monotonic() - started

        result, elapsed = asyncio.run(scenario())

        [failure] = result.failed
        assert failure.plugin_id == "stubborn"
        assert failure.error.timed_out
        assert elapsed < 0.4
        assert loader.loaded_ids == ["azmp-compute"]

    def test_plugin_raising_timeout_error_is_ordinary_failure(self, loader, context, write_plugin):
        source = write_plugin(
            "plugins/socket",
            plugin_code(
                "socket-user",
                """
    async def initialize(self, context):
        raise TimeoutError("socket connect timed out")
""",
            ),
        )

        result = run(loader, [{"source": source}], context)

        [failure] = result.failed
        assert failure.stage == LoadStage.INITIALIZING
        assert not failure.error.timed_out
        assert "socket connect" in failure.message
        assert "after 1s" not in failure.message


class TestRegisteringFailures:
    def test_duplicate_template_type_between_plugins(self, loader, context, write_plugin, templates):
        a = write_plugin("plugins/a", COMPUTE_PLUGIN)
        b = write_plugin("plugins/b", SECOND_VM_PLUGIN)

        result = run(loader, [{"source": a}, {"source": b}], context)

        assert [r.plugin_id for r in result.loaded] == ["azmp-compute"]
        [failure] = result.failed
        assert failure.stage == LoadStage.REGISTERING
        assert isinstance(failure.error, RegistrationConflictError)
        assert templates.owner("vm") == "azmp-compute"
        assert templates.get("vm").template_path == "vm"
        assert not loader.is_loaded("azmp-other-vm")
        assert result.summary() == "Loaded 1/2 plugins (1 failed)"

    def test_duplicate_helper_rejects_whole_set(self, loader, context, write_plugin, helpers):
        first = write_plugin(
            "plugins/first",
            plugin_code(
                "first",
                """
    def get_handlebars_helpers(self):
        return {"resourceName": lambda p: "first"}
""",
            ),
        )
        second = write_plugin(
            "plugins/second",
            plugin_code(
                "second",
                """
    def get_handlebars_helpers(self):
        return {"onlySecond": lambda: "x", "resourceName": lambda p: "second"}
""",
            ),
        )

        result = run(loader, [{"source": first}, {"source": second}], context)

        assert result.failed[0].plugin_id == "second"
        assert helpers.get("resourceName")("x") == "first"
        assert not helpers.has("onlySecond")

    def test_template_colliding_with_builtin(self, loader, context, write_plugin, templates):
        source = write_plugin(
            "plugins/greedy",
            plugin_code(
                "greedy",
                """
    def get_templates(self):
        return [
            {"type": "brand-new", "name": "New", "version": "1", "templatePath": "new"},
            {"type": "storage", "name": "Mine", "version": "1", "templatePath": "mine"},
        ]
""",
            ),
        )

        result = run(loader, [{"source": source}], context)

        assert result.failed[0].stage == LoadStage.REGISTERING
        assert not templates.has("brand-new")
        assert templates.owner("storage") == BUILT_IN

    def test_command_conflict(self, loader, context, write_plugin, commands):
        source = write_plugin(
            "plugins/cmd",
            plugin_code(
                "cmd",
                """
    def register_commands(self, api):
        api.add_command("deploy", lambda: None)
        api.add_command("version", lambda: None)
""",
            ),
        )

        result = run(loader, [{"source": source}], context)

        assert result.failed[0].stage == LoadStage.REGISTERING
        assert not commands.has_command("deploy")

    def test_hook_exception(self, loader, context, write_plugin):
        source = write_plugin(
            "plugins/hook",
            plugin_code(
                "hook",
                """
    def get_templates(self):
        raise KeyError("region")
""",
            ),
        )

        result = run(loader, [{"source": source}], context)

        assert result.failed[0].stage == LoadStage.REGISTERING
        assert "get_templates() failed" in result.failed[0].message


class TestEndToEnd:
    def test_vm_conflict_scenario(self, loader, context, write_plugin, templates, helpers):
        a = write_plugin("plugins/a", COMPUTE_PLUGIN)
        b = write_plugin("plugins/b", SECOND_VM_PLUGIN)
        descriptors = [
            {"source": a},
            {"source": b},
            {"source": "../../etc/passwd"},
            {"source": "./plugins/c", "enabled": False},
        ]

        result = run(loader, descriptors, context)

        assert [r.plugin_id for r in result.loaded] == ["azmp-compute"]
        assert [f.stage for f in result.failed] == [LoadStage.REGISTERING, LoadStage.RESOLVING]
        assert len(result.skipped) == 1
        assert templates.types() == ["storage", "vm"]
        assert helpers.owner("resourceName") == "azmp-compute"
        assert result.get("azmp-compute").templates == 1
        assert result.get("azmp-other-vm") is None


class TestCleanup:
    def test_cleanup_runs_for_loaded_plugins(self, loader, context, write_plugin, workspace):
        marker = workspace / "cleaned.txt"
        source = write_plugin(
            "plugins/tidy",
            plugin_code(
                "tidy",
                f"""
    async def cleanup(self):
        open({str(marker)!r}, "w").close()
""",
            ),
        )
        run(loader, [{"source": source}], context)

        asyncio.run(loader.cleanup_all())

        assert marker.exists()
        assert loader.loaded_ids == []

    def test_cleanup_errors_and_timeouts_are_swallowed(
        self, workspace, templates, helpers, commands, context, write_plugin
    ):
        loader = PluginLoader(templates, helpers, commands, resolver=ModuleResolver(workspace), cleanup_timeout=0.05)
        failing = write_plugin(
            "plugins/failing",
            plugin_code(
                "failing",
                """
    def cleanup(self):
        raise RuntimeError("cannot close")
""",
            ),
        )
        slow = write_plugin(
            "plugins/slow",
            plugin_code(
                "slow",
                """
    async def cleanup(self):
        await asyncio.sleep(30)
""",
            ),
        )
        run(loader, [{"source": failing}, {"source": slow}], context)

        asyncio.run(loader.cleanup_all())

        assert loader.loaded_ids == []
