"""
Live Plugin Host - Main orchestration class

Owns the single runner core instance of the process and exposes the trigger
interface used by collaborators (command line, UI actions, file watcher).
"""

import asyncio
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional, Union

from ..domain.models import Language, TriggerEvent, TriggerSource
from ..infrastructure.exceptions import LivePluginException
from ..infrastructure.observability.logging import configure_default_logging
from .configuration import LivePluginConfiguration, RunnerConfiguration, load_default_configuration
from .plugin_management import (
    ALL_PLUGINS, ClasspathAssembler, DependencyResolver, ErrorReport, ExecutionLifecycleManager,
    PluginExecutionCoordinator, PluginStore, PluginWatcher, RunnerSelector, create_default_runners
)


class LivePluginHost:
    """
    Facade over the runner core.

    Batches triggered from different threads are serialized, so plugins of
    two batches never interleave.
    """

    def __init__(self, configuration: Optional[LivePluginConfiguration] = None):
        self.configuration = configuration or load_default_configuration()
        self.config: RunnerConfiguration = self.configuration.get_runner_config()
        self.logger = logging.getLogger(__name__)

        self.store = PluginStore(self.config.plugins_path)
        self.selector = RunnerSelector(create_default_runners(self.config.compiled_path))
        dependencies = self.config.dependencies
        self.dependency_resolver = DependencyResolver(
            dependencies.cache_path,
            index_url=dependencies.index_url,
            timeout=dependencies.timeout,
            allow_downloads=dependencies.allow_downloads
        )
        self.assembler = ClasspathAssembler(
            self.config.host_library_paths,
            self.config.support_library_path,
            self.dependency_resolver,
            plugin_root_lookup=self.store.resolve,
            compiled_path=self.config.compiled_path
        )
        self.lifecycle = ExecutionLifecycleManager()
        self.coordinator = PluginExecutionCoordinator(self.store, self.selector, self.assembler, self.lifecycle)
        self.watcher = PluginWatcher(
            self.store,
            self._watched_ids,
            self._on_plugins_changed,
            poll_interval=self.config.hot_reload.poll_interval
        )

        self._batch_lock = threading.Lock()
        self._requested_ids: set = set()
        self._running = False

    # Trigger interface

    def request_run(
        self,
        plugin_ids: Union[str, Iterable[str]] = ALL_PLUGINS,
        event: Optional[TriggerEvent] = None
    ) -> ErrorReport:
        """
        Run plugins by id, or every discovered plugin with ``"all"``.

        Returns:
            The error report of the batch.
        """
        event = event or TriggerEvent(TriggerSource.ACTION)
        with self._batch_lock:
            ids = self.coordinator.expand_ids(plugin_ids)
            self._requested_ids.update(ids)
            report = self.coordinator.run(ids, event)

        self._log_report(report)
        return report

    def request_unload(self, plugin_id: str) -> ErrorReport:
        """Unload a plugin and stop watching it."""
        with self._batch_lock:
            self._requested_ids.discard(plugin_id)
            report = self.coordinator.unload(plugin_id)

        self._log_report(report)
        return report

    def list_plugins(self) -> Dict[str, Optional[Language]]:
        """Discovered plugin ids with their language, None for folders without an entry point."""
        return {
            plugin_id: self.selector.select_runner(plugin_root)
            for plugin_id, plugin_root in self.store.list_plugins().items()
        }

    # Host lifecycle

    async def start(self, run_all_on_startup: Optional[bool] = None) -> None:
        """
        Start the host.

        Configures logging, runs every plugin if ``run_all_on_startup`` is
        set and starts the file watcher if hot reload is enabled.

        Args:
            run_all_on_startup: overrides the configured setting when given
        """
        if self._running:
            self.logger.warning("Plugin host is already running")
            return

        try:
            configure_default_logging(self.config.logging_config)
            self.logger.info(f"Starting plugin host for {self.store.plugins_path}")
            self._running = True

            if run_all_on_startup is None:
                run_all_on_startup = self.config.run_all_on_startup
            if run_all_on_startup:
                await asyncio.to_thread(
                    self.request_run, ALL_PLUGINS, TriggerEvent(TriggerSource.STARTUP)
                )

            if self.config.hot_reload.enabled:
                self.watcher.start()

            self.logger.info("Plugin host started")

        except Exception as e:
            self.logger.error(f"Failed to start plugin host: {e}")
            self._running = False
            raise LivePluginException(
                "Failed to start plugin host",
                error_code="HOST_START_ERROR",
                cause=e
            ) from e

    async def stop(self) -> ErrorReport:
        """
        Stop the watcher and unload every live plugin.

        Returns:
            Failures of cleanup actions run during shutdown.
        """
        if not self._running:
            self.logger.warning("Plugin host is not running")
            return ErrorReport([])

        self.logger.info("Stopping plugin host...")
        await asyncio.to_thread(self.watcher.stop)
        report = await asyncio.to_thread(self._unload_all)
        self._running = False

        self._log_report(report)
        self.logger.info("Plugin host stopped")
        return report

    def is_running(self) -> bool:
        return self._running

    def get_status(self) -> Dict[str, Any]:
        """Get the current status of the host."""
        return {
            "running": self._running,
            "plugins_path": str(self.store.plugins_path),
            "loaded_plugins": self.lifecycle.active_ids(),
            "watcher_running": self.watcher.running,
        }

    def _unload_all(self) -> ErrorReport:
        with self._batch_lock:
            self._requested_ids.clear()
            return ErrorReport(self.lifecycle.unload_all())

    def _watched_ids(self) -> List[str]:
        with self._batch_lock:
            return sorted(self._requested_ids)

    def _on_plugins_changed(self, plugin_ids: List[str]) -> None:
        self.request_run(plugin_ids, TriggerEvent(TriggerSource.WATCHER))

    def _log_report(self, report: ErrorReport) -> None:
        if report.is_empty:
            return
        self.logger.warning(f"Plugin errors:\n{report.render()}")
