"""
Plugin Watcher Module

Background polling of plugin folders. When the files of a watched plugin
change, the plugin is handed to a callback that re-runs it.
"""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .plugin_store import PluginStore
from .runner_selector import IGNORED_SOURCE_FOLDERS

logger = logging.getLogger(__name__)

Fingerprint = Tuple[int, float]


def plugin_fingerprint(plugin_root: Path) -> Fingerprint:
    """File count and newest modification time of a plugin folder."""
    count = 0
    newest = 0.0
    for folder, subfolders, files in os.walk(plugin_root):
        subfolders[:] = [
            name for name in subfolders
            if not name.startswith('.') and name not in IGNORED_SOURCE_FOLDERS
        ]
        for name in files:
            try:
                mtime = os.stat(os.path.join(folder, name)).st_mtime
            except OSError:
                continue
            count += 1
            newest = max(newest, mtime)
    return count, newest


class PluginWatcher:
    """
    Polls watched plugins and reports the ones whose files changed.

    The first poll of a plugin only records its state. A plugin that
    disappears from the plugins folder is forgotten.
    """

    def __init__(
        self,
        store: PluginStore,
        watched_ids: Callable[[], Iterable[str]],
        on_change: Callable[[List[str]], None],
        poll_interval: float = 2.0
    ):
        self.store = store
        self.watched_ids = watched_ids
        self.on_change = on_change
        self.poll_interval = poll_interval

        self._fingerprints: Dict[str, Fingerprint] = {}
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start polling in a daemon thread."""
        if self._thread is not None:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._watch_worker,
            name="LivePluginWatcher",
            daemon=True
        )
        self._thread.start()
        logger.info("Plugin watcher started", extra={"poll_interval": self.poll_interval})

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._stop_event.set()
        self._thread.join(timeout=timeout)
        self._thread = None
        logger.info("Plugin watcher stopped")

    def check_once(self) -> List[str]:
        """
        Poll every watched plugin once.

        Returns:
            Ids of the plugins whose files changed since the previous poll,
            in sorted order.
        """
        plugins = self.store.list_plugins()
        watched = sorted(set(self.watched_ids()))
        changed = []

        for plugin_id in list(self._fingerprints):
            if plugin_id not in plugins or plugin_id not in watched:
                del self._fingerprints[plugin_id]

        for plugin_id in watched:
            plugin_root = plugins.get(plugin_id)
            if plugin_root is None:
                continue
            fingerprint = plugin_fingerprint(plugin_root)
            previous = self._fingerprints.get(plugin_id)
            self._fingerprints[plugin_id] = fingerprint
            if previous is not None and previous != fingerprint:
                changed.append(plugin_id)

        return changed

    def _watch_worker(self) -> None:
        while not self._stop_event.is_set():
            try:
                changed = self.check_once()
                if changed:
                    logger.info(f"Plugin files changed, re-running: {', '.join(changed)}")
                    self.on_change(changed)
                self._stop_event.wait(self.poll_interval)
            except Exception as e:
                logger.error(f"Error in plugin watcher: {e}", exc_info=True)
                self._stop_event.wait(self.poll_interval * 2)
