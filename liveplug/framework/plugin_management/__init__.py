"""
Plugin Management System for liveplug

This package holds the runner core: plugin discovery, runner selection,
classpath assembly, the per-language compile/execute pipelines with isolated
import contexts, the execution lifecycle and error reporting.
"""

from .plugin_store import PluginStore
from .runner_selector import RunnerSelector, find_entry_points
from .dependency_resolver import DependencyResolver, parse_coordinate
from .classpath import ClasspathAssembler, latest_build_folder, parse_directives
from .isolation import IsolatedImportContext
from .host_bindings import CleanupRegistrar, create_host_bindings
from .execution_unit import ExecutionUnit
from .runners import BasePluginRunner, ScriptPluginRunner, CompiledPluginRunner, create_default_runners
from .lifecycle import ExecutionLifecycleManager
from .error_reporter import ErrorReport, ErrorReporter
from .coordinator import ALL_PLUGINS, PluginExecutionCoordinator, run_plugins
from .watcher import PluginWatcher

__all__ = [
    'PluginStore',
    'RunnerSelector',
    'find_entry_points',
    'DependencyResolver',
    'parse_coordinate',
    'ClasspathAssembler',
    'parse_directives',
    'latest_build_folder',
    'IsolatedImportContext',
    'CleanupRegistrar',
    'create_host_bindings',
    'ExecutionUnit',
    'BasePluginRunner',
    'ScriptPluginRunner',
    'CompiledPluginRunner',
    'create_default_runners',
    'ExecutionLifecycleManager',
    'ErrorReport',
    'ErrorReporter',
    'ALL_PLUGINS',
    'PluginExecutionCoordinator',
    'run_plugins',
    'PluginWatcher',
]
