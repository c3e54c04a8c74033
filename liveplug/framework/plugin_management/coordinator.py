"""
Plugin Execution Coordinator Module

Runs a batch of plugins sequentially: resolve, select runner, assemble the
classpath, load and install. A failure is recorded for the plugin it belongs
to and the batch moves on.
"""

import logging
from typing import Iterable, List, Optional, Union

from ...domain.models import ErrorRecord, PluginDescriptor, TriggerEvent
from ...infrastructure.exceptions import DiscoveryError, PluginError
from ...infrastructure.observability.logging import plugin_context
from .classpath import ClasspathAssembler
from .error_reporter import ErrorReport, ErrorReporter
from .host_bindings import create_host_bindings
from .lifecycle import ExecutionLifecycleManager
from .plugin_store import PluginStore
from .runner_selector import RunnerSelector

logger = logging.getLogger(__name__)

ALL_PLUGINS = "all"

PluginIds = Union[str, Iterable[str]]


class PluginExecutionCoordinator:
    """Orchestrates plugin batches over the runner core components."""

    def __init__(
        self,
        store: PluginStore,
        selector: RunnerSelector,
        assembler: ClasspathAssembler,
        lifecycle: ExecutionLifecycleManager
    ):
        self.store = store
        self.selector = selector
        self.assembler = assembler
        self.lifecycle = lifecycle

    def expand_ids(self, plugin_ids: PluginIds) -> List[str]:
        """Expand ``"all"`` to every discovered plugin; keep explicit ids in input order."""
        if plugin_ids == ALL_PLUGINS:
            return list(self.store.list_plugins())
        if isinstance(plugin_ids, str):
            return [plugin_ids]
        return list(plugin_ids)

    def run(self, plugin_ids: PluginIds, trigger_event: Optional[TriggerEvent] = None) -> ErrorReport:
        """
        Run plugins one after another in input order.

        Returns:
            The report of every failure of the batch, empty if all succeeded.
        """
        event = trigger_event or TriggerEvent()
        ids = self.expand_ids(plugin_ids)
        reporter = ErrorReporter()

        logger.info(
            f"Running {len(ids)} plugin(s)",
            extra={"plugin_ids": ids, "trigger": event.source.value}
        )

        for plugin_id in ids:
            with plugin_context(plugin_id):
                try:
                    reporter.report_all(self._run_one(plugin_id, event))
                except PluginError as e:
                    logger.warning(
                        f"Plugin {plugin_id} failed in {e.phase.value} phase: {e.message}",
                        extra={"plugin_id": plugin_id, "error_type": e.error_type}
                    )
                    reporter.report(e.to_record())
                except Exception as e:
                    logger.error(f"Unexpected error running plugin {plugin_id}: {e}", exc_info=True)
                    reporter.report_exception(plugin_id, e)

        return reporter.flush()

    def unload(self, plugin_id: str) -> ErrorReport:
        """Unload the live unit of a plugin, if any."""
        reporter = ErrorReporter()
        with plugin_context(plugin_id):
            try:
                reporter.report_all(self.lifecycle.unload(plugin_id))
            except Exception as e:
                logger.error(f"Unexpected error unloading plugin {plugin_id}: {e}", exc_info=True)
                reporter.report_exception(plugin_id, e)
        return reporter.flush()

    def describe(self, plugin_id: str) -> PluginDescriptor:
        """
        Build the descriptor of a discovered plugin.

        Raises:
            DiscoveryError: for unknown ids and folders without an entry point
        """
        plugin_root = self.store.resolve(plugin_id)
        if plugin_root is None:
            raise DiscoveryError(
                f"Plugin '{plugin_id}' was not found in {self.store.plugins_path}",
                plugin_id
            )

        language = self.selector.select_runner(plugin_root)
        if language is None:
            names = ", ".join(self.selector.entry_file_names())
            raise DiscoveryError(
                f"Plugin folder {plugin_root} has no entry point (looked for {names})",
                plugin_id
            )
        return PluginDescriptor(plugin_id, plugin_root, language)

    def _run_one(self, plugin_id: str, event: TriggerEvent) -> List[ErrorRecord]:
        descriptor = self.describe(plugin_id)
        runner = self.selector.runner_for(descriptor.language)
        classpath = self.assembler.assemble_classpath(descriptor)
        bindings = create_host_bindings(plugin_id, descriptor.root_path, event)
        unit = runner.load(descriptor, classpath, bindings)
        return self.lifecycle.install(plugin_id, unit)


def run_plugins(
    plugin_ids: PluginIds,
    trigger_event: Optional[TriggerEvent],
    store: PluginStore,
    selector: RunnerSelector,
    assembler: ClasspathAssembler,
    lifecycle: ExecutionLifecycleManager
) -> ErrorReport:
    """Run a batch of plugins with the given runner core components."""
    coordinator = PluginExecutionCoordinator(store, selector, assembler, lifecycle)
    return coordinator.run(plugin_ids, trigger_event)
