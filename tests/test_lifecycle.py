"""
Test Execution Lifecycle

Tests for the cleanup registrar and the ExecutionLifecycleManager.
"""

import sys

import pytest

from liveplug.domain.models import ErrorPhase, Language, PluginDescriptor, TriggerEvent
from liveplug.framework.plugin_management import (
    CleanupRegistrar, ExecutionLifecycleManager, ExecutionUnit, IsolatedImportContext, create_host_bindings
)


def make_unit(workspace, plugin_id, entry_point):
    """Execution unit whose entry point is a plain callable taking the bindings."""
    bindings = create_host_bindings(plugin_id, workspace, TriggerEvent())
    context = IsolatedImportContext(plugin_id, [workspace])
    descriptor = PluginDescriptor(plugin_id, workspace, Language.PYTHON_SCRIPT)
    return ExecutionUnit(descriptor, context, bindings, lambda: entry_point(bindings))


class TestCleanupRegistrar:
    """Test the cleanup registrar."""

    def test_actions_run_newest_first_once(self):
        """Cleanup actions run in reverse order and never twice."""
        calls = []
        registrar = CleanupRegistrar("p")
        registrar.on_unload(lambda: calls.append(1))
        registrar.on_unload(lambda: calls.append(2))

        assert registrar.run_all() == []
        assert registrar.run_all() == []
        assert calls == [2, 1]

    def test_decorator_usage(self):
        """on_unload returns the action so it can decorate a function."""
        registrar = CleanupRegistrar("p")

        @registrar.on_unload
        def close():
            pass

        assert callable(close)
        assert len(registrar) == 1

    def test_non_callable_rejected(self):
        with pytest.raises(TypeError):
            CleanupRegistrar("p").on_unload("not callable")

    def test_late_registration_runs_immediately(self):
        """Actions registered after unload run right away."""
        calls = []
        registrar = CleanupRegistrar("p")
        registrar.run_all()

        registrar.on_unload(lambda: calls.append("late"))

        assert registrar.closed
        assert calls == ["late"]
        assert len(registrar) == 0


class TestExecutionLifecycleManager:
    """Test installing and unloading execution units."""

    @pytest.fixture
    def lifecycle(self):
        return ExecutionLifecycleManager()

    def test_install_registers_started_unit(self, lifecycle, workspace):
        calls = []
        unit = make_unit(workspace, "p", lambda bindings: calls.append("run"))

        assert lifecycle.install("p", unit) == []

        assert calls == ["run"]
        assert lifecycle.get("p") is unit
        assert lifecycle.is_loaded("p")
        assert lifecycle.active_ids() == ["p"]

    def test_reinstall_unloads_previous_first(self, lifecycle, workspace):
        """The old unit's cleanup completes before the new unit runs."""
        calls = []

        def entry(bindings):
            calls.append("run")
            bindings.registrar.on_unload(lambda: calls.append("cleanup"))

        first = make_unit(workspace, "p", entry)
        lifecycle.install("p", first)
        second = make_unit(workspace, "p", entry)
        lifecycle.install("p", second)

        assert calls == ["run", "cleanup", "run"]
        assert first.context.discarded
        assert lifecycle.get("p") is second

    def test_every_cleanup_runs_when_one_fails(self, lifecycle, workspace):
        """A failing cleanup is reported once and the others still run."""
        calls = []

        def failing():
            calls.append(2)
            raise OSError("socket already closed")

        def entry(bindings):
            bindings.registrar.on_unload(lambda: calls.append(1))
            bindings.registrar.on_unload(failing)
            bindings.registrar.on_unload(lambda: calls.append(3))

        lifecycle.install("p", make_unit(workspace, "p", entry))
        records = lifecycle.unload("p")

        assert calls == [3, 2, 1]
        assert len(records) == 1
        assert records[0].phase is ErrorPhase.RUN
        assert records[0].error_type == "RuntimeError"
        assert isinstance(records[0].cause, OSError)
        assert not lifecycle.is_loaded("p")

    def test_failed_start_registers_nothing(self, lifecycle, workspace):
        """A unit whose start fails is torn down and the id stays empty."""
        calls = []

        def entry(bindings):
            bindings.registrar.on_unload(lambda: calls.append("cleanup"))
            raise ValueError("broken")

        unit = make_unit(workspace, "p", entry)
        records = lifecycle.install("p", unit)

        assert [r.error_type for r in records] == ["RuntimeError"]
        assert calls == ["cleanup"]
        assert unit.context.discarded
        assert not lifecycle.is_loaded("p")

    def test_failed_reload_leaves_no_unit(self, lifecycle, workspace):
        """The previous unit is gone even if its replacement fails."""
        lifecycle.install("p", make_unit(workspace, "p", lambda bindings: None))

        def broken(bindings):
            raise ValueError("broken")

        lifecycle.install("p", make_unit(workspace, "p", broken))

        assert lifecycle.get("p") is None

    def test_unload_unknown_is_noop(self, lifecycle):
        assert lifecycle.unload("never-loaded") == []

    def test_unload_discards_context_modules(self, lifecycle, workspace):
        """Modules loaded by a unit are gone after unload."""
        (workspace / "unit_helper.py").write_text("X = 1\n")
        unit = make_unit(workspace, "p", lambda bindings: None)
        module = unit.context.import_module("unit_helper")

        lifecycle.install("p", unit)
        lifecycle.unload("p")

        assert module.__name__ not in sys.modules

    def test_unload_all(self, lifecycle, workspace):
        """Shutdown unloads every unit, newest first."""
        calls = []
        for plugin_id in ("a", "b"):
            def entry(bindings, plugin_id=plugin_id):
                bindings.registrar.on_unload(lambda: calls.append(plugin_id))
            lifecycle.install(plugin_id, make_unit(workspace, plugin_id, entry))

        assert lifecycle.unload_all() == []
        assert calls == ["b", "a"]
        assert lifecycle.active_ids() == []
