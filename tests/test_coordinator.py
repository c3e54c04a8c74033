"""
Test Plugin Execution Coordinator

End-to-end tests of batches: discovery, classpath, loading, lifecycle and
error isolation between plugins.
"""

import sys

from liveplug.domain.models import ErrorPhase, TriggerSource
from liveplug.framework.plugin_management import run_plugins

from .fixtures.plugin_fixtures import build_wheel, recording_event, write_plugin

RECORDING_PLUGIN = """
calls = event.data["calls"]
calls.append(plugin_id + ":run")
registrar.on_unload(lambda: calls.append(plugin_id + ":cleanup"))
"""


class TestPluginExecutionCoordinator:
    """Test running batches of plugins."""

    def test_batch_runs_in_input_order(self, runner_core, plugins_path):
        """Plugins run, and their errors are reported, in the order given."""
        write_plugin(plugins_path, "a", {"plugin.py": RECORDING_PLUGIN + "raise ValueError('a failed')\n"})
        write_plugin(plugins_path, "b", {"plugin.py": RECORDING_PLUGIN + "raise ValueError('b failed')\n"})
        calls = []

        report = runner_core.coordinator.run(["b", "a"], recording_event(calls))

        assert calls[0] == "b:run"
        assert "a:run" in calls
        assert report.plugin_ids == ["b", "a"]

    def test_failure_does_not_block_other_plugins(self, runner_core, plugins_path):
        """One throwing plugin yields one record; the rest of the batch still runs."""
        write_plugin(plugins_path, "bad", {"plugin.py": "raise RuntimeError('nope')\n"})
        write_plugin(plugins_path, "good", {"plugin.py": RECORDING_PLUGIN})
        calls = []

        report = runner_core.coordinator.run(["bad", "good"], recording_event(calls))

        assert report.plugin_ids == ["bad"]
        assert [r.error_type for r in report.records_for("bad")] == ["RuntimeError"]
        assert calls == ["good:run"]
        assert runner_core.lifecycle.active_ids() == ["good"]

    def test_all_runs_every_plugin_sorted(self, runner_core, plugins_path):
        for plugin_id in ("c", "a", "b"):
            write_plugin(plugins_path, plugin_id, {"plugin.py": RECORDING_PLUGIN})
        calls = []

        report = runner_core.coordinator.run("all", recording_event(calls))

        assert report.is_empty
        assert calls == ["a:run", "b:run", "c:run"]

    def test_unknown_id_is_discovery_error(self, runner_core, plugins_path):
        write_plugin(plugins_path, "known", {"plugin.py": RECORDING_PLUGIN})
        calls = []

        report = runner_core.coordinator.run(["ghost", "known"], recording_event(calls))

        assert [r.error_type for r in report.records_for("ghost")] == ["DiscoveryError"]
        assert calls == ["known:run"]

    def test_folder_without_entry_point(self, runner_core, plugins_path):
        """A plugin folder nobody can run is reported, never skipped silently."""
        write_plugin(plugins_path, "docs", {"readme.md": "# nothing to run"})

        report = runner_core.coordinator.run(["docs"], recording_event([]))

        records = report.records_for("docs", ErrorPhase.DISCOVERY)
        assert len(records) == 1
        assert "plugin.py" in records[0].message

    def test_rerun_cleans_up_before_running_again(self, runner_core, plugins_path):
        """Running an unchanged plugin twice tears the first run down before the second."""
        write_plugin(plugins_path, "p", {"plugin.py": RECORDING_PLUGIN})
        calls = []

        runner_core.coordinator.run(["p"], recording_event(calls))
        runner_core.coordinator.run(["p"], recording_event(calls))

        assert calls == ["p:run", "p:cleanup", "p:run"]

    def test_unload(self, runner_core, plugins_path):
        write_plugin(plugins_path, "p", {"plugin.py": RECORDING_PLUGIN})
        calls = []
        runner_core.coordinator.run(["p"], recording_event(calls))

        report = runner_core.coordinator.unload("p")

        assert report.is_empty
        assert calls == ["p:run", "p:cleanup"]
        assert runner_core.coordinator.unload("p").is_empty

    def test_reload_sees_edited_sources(self, runner_core, plugins_path):
        """Every run loads fresh module objects from disk."""
        root = write_plugin(plugins_path, "p", {
            "plugin.py": "import helper\nevent.data['calls'].append(helper.VALUE)\n",
            "lib/helper.py": "VALUE = 'first'\n",
        })
        calls = []

        runner_core.coordinator.run(["p"], recording_event(calls))
        (root / "lib" / "helper.py").write_text("VALUE = 'second'\n")
        runner_core.coordinator.run(["p"], recording_event(calls))

        assert calls == ["first", "second"]

    def test_plugins_do_not_share_modules(self, runner_core, plugins_path):
        """Two plugins with a same-named module each get their own."""
        for plugin_id in ("one", "two"):
            write_plugin(plugins_path, plugin_id, {
                "plugin.py": "import helper\nevent.data['calls'].append((plugin_id, helper.NAME))\n",
                "lib/helper.py": f"NAME = '{plugin_id}'\n",
            })
        calls = []

        report = runner_core.coordinator.run(["one", "two"], recording_event(calls))

        assert report.is_empty
        assert calls == [("one", "one"), ("two", "two")]
        assert "helper" not in sys.modules

    def test_declared_dependency_shadows_support_library(self, runner_core, plugins_path):
        """A classpath entry declared by the plugin wins over the bundled support library."""
        write_plugin(plugins_path, "plain", {
            "plugin.py": "import plugin_util\nevent.data['calls'].append(hasattr(plugin_util, 'every'))\n",
        })
        write_plugin(plugins_path, "shadowing", {
            "plugin.py": (
                "# add-to-classpath vendor\n"
                "import plugin_util\n"
                "event.data['calls'].append(plugin_util.ORIGIN)\n"
            ),
            "vendor/plugin_util.py": "ORIGIN = 'declared'\n",
        })
        calls = []

        report = runner_core.coordinator.run(["plain", "shadowing"], recording_event(calls))

        assert report.is_empty
        assert calls == [True, "declared"]

    def test_background_work_stops_on_unload(self, runner_core, plugins_path):
        """Threads started through the support library end with the plugin."""
        write_plugin(plugins_path, "ticker", {
            "plugin.py": (
                "from plugin_util import every\n"
                "event.data['calls'].append(every(registrar, 0.01, lambda: None, name='ticker'))\n"
            ),
        })
        calls = []

        report = runner_core.coordinator.run(["ticker"], recording_event(calls))
        stop_event = calls[0]
        assert report.is_empty
        assert not stop_event.is_set()

        runner_core.coordinator.unload("ticker")

        assert stop_event.is_set()

    def test_remote_dependency_importable(self, runner_core, plugins_path, package_index):
        package_index.add("tinydep", "1.0", build_wheel({"tinydep/__init__.py": "ANSWER = 42\n"}))
        write_plugin(plugins_path, "p", {
            "plugin.py": "# add-dependency tinydep==1.0\nimport tinydep\nevent.data['calls'].append(tinydep.ANSWER)\n",
        })
        calls = []

        report = runner_core.coordinator.run(["p"], recording_event(calls))

        assert report.is_empty
        assert calls == [42]

    def test_unresolvable_dependency_reported_for_that_plugin(self, runner_core, plugins_path):
        write_plugin(plugins_path, "p", {"plugin.py": "# add-dependency ghost==0.1\n"})
        write_plugin(plugins_path, "q", {"plugin.py": RECORDING_PLUGIN})
        calls = []

        report = runner_core.coordinator.run(["p", "q"], recording_event(calls))

        assert [r.error_type for r in report.records_for("p")] == ["DependencyResolutionError"]
        assert report.records_for("p")[0].phase is ErrorPhase.COMPILE
        assert calls == ["q:run"]

    def test_depends_on_plugin_imports_its_modules(self, runner_core, plugins_path):
        write_plugin(plugins_path, "shared", {
            "plugin.py": "pass\n",
            "greetings.py": "def hello():\n    return 'hello from shared'\n",
        })
        write_plugin(plugins_path, "user", {
            "plugin.py": (
                "# depends-on-plugin shared\n"
                "from greetings import hello\n"
                "event.data['calls'].append(hello())\n"
            ),
        })
        calls = []

        report = runner_core.coordinator.run(["user"], recording_event(calls))

        assert report.is_empty
        assert calls == ["hello from shared"]

    def test_compiled_plugin_end_to_end(self, runner_core, plugins_path):
        write_plugin(plugins_path, "compiled", {
            "plugin_main.py": (
                "def main(bindings):\n"
                "    calls = bindings.event.data['calls']\n"
                "    calls.append(bindings.is_host_startup)\n"
                "    bindings.registrar.on_unload(lambda: calls.append('closed'))\n"
            ),
        })
        calls = []

        report = runner_core.coordinator.run(["compiled"], recording_event(calls, TriggerSource.STARTUP))
        runner_core.coordinator.unload("compiled")

        assert report.is_empty
        assert calls == [True, "closed"]

    def test_failed_recompile_keeps_live_unit_working(self, runner_core, plugins_path):
        """A compiled plugin that fails to recompile stays live with its own bytecode."""
        root = write_plugin(plugins_path, "c", {
            "plugin_main.py": (
                "def main(bindings):\n"
                "    calls = bindings.event.data['calls']\n"
                "    def cleanup():\n"
                "        import helper\n"
                "        calls.append(helper.VALUE)\n"
                "    bindings.registrar.on_unload(cleanup)\n"
            ),
            "helper.py": "VALUE = 'first build'\n",
        })
        calls = []
        assert runner_core.coordinator.run(["c"], recording_event(calls)).is_empty

        (root / "helper.py").write_text("VALUE = (\n")
        report = runner_core.coordinator.run(["c"], recording_event(calls))
        assert [r.error_type for r in report.records_for("c")] == ["CompileError"]
        assert runner_core.lifecycle.is_loaded("c")

        assert runner_core.coordinator.unload("c").is_empty
        assert calls == ["first build"]

    def test_recompile_does_not_leak_into_live_unit(self, runner_core, plugins_path):
        """The previous unit's lazy imports see its own build until it is unloaded."""
        root = write_plugin(plugins_path, "c", {
            "plugin_main.py": (
                "def main(bindings):\n"
                "    calls = bindings.event.data['calls']\n"
                "    def cleanup():\n"
                "        import helper\n"
                "        calls.append(helper.VALUE)\n"
                "    bindings.registrar.on_unload(cleanup)\n"
            ),
            "helper.py": "VALUE = 'first build'\n",
        })
        calls = []
        runner_core.coordinator.run(["c"], recording_event(calls))

        (root / "helper.py").write_text("VALUE = 'second build'\n")
        runner_core.coordinator.run(["c"], recording_event(calls))
        runner_core.coordinator.unload("c")

        assert calls == ["first build", "second build"]

    def test_configured_host_library_is_importable(self, runner_core, plugins_path, workspace):
        """Host library folders the interpreter does not know are still importable."""
        host_lib = write_plugin(workspace, "hostlib", {"hostonly_mod.py": "VALUE = 'host'\n"})
        runner_core.assembler.host_library_paths = [host_lib]
        write_plugin(plugins_path, "p", {
            "plugin.py": "import hostonly_mod\nevent.data['calls'].append(hostonly_mod.VALUE)\n",
        })
        calls = []

        report = runner_core.coordinator.run(["p"], recording_event(calls))

        assert report.is_empty
        assert calls == ["host"]

    def test_later_declared_path_shadows_earlier_dependency(self, runner_core, plugins_path, package_index):
        package_index.add("tinydep", "1.0", build_wheel({"shared_name.py": "ORIGIN = 'dependency'\n"}))
        write_plugin(plugins_path, "p", {
            "plugin.py": (
                "# add-dependency tinydep==1.0\n"
                "# add-to-classpath vendor\n"
                "import shared_name\n"
                "event.data['calls'].append(shared_name.ORIGIN)\n"
            ),
            "vendor/shared_name.py": "ORIGIN = 'vendor'\n",
        })
        calls = []

        report = runner_core.coordinator.run(["p"], recording_event(calls))

        assert report.is_empty
        assert calls == ["vendor"]

    def test_run_plugins_function(self, runner_core, plugins_path):
        """The module-level entry point wires the same components."""
        write_plugin(plugins_path, "p", {"plugin.py": RECORDING_PLUGIN})
        calls = []

        report = run_plugins(
            ["p"],
            recording_event(calls),
            runner_core.store,
            runner_core.selector,
            runner_core.assembler,
            runner_core.lifecycle
        )

        assert report.is_empty
        assert calls == ["p:run"]
