"""
Host Bindings Module

Builds the objects injected into plugin code: the cleanup registrar and the
binding struct for one plugin run.
"""

import logging
import threading
from pathlib import Path
from typing import List, Tuple

from ...domain.models import CleanupAction, HostBindings, TriggerEvent
from ...infrastructure.observability.logging import get_plugin_logger

logger = logging.getLogger(__name__)


class CleanupRegistrar:
    """
    Collects cleanup actions a plugin registers for its own unload.

    Actions run in reverse registration order, each at most once. Actions
    registered after the owning unit was unloaded run immediately.
    """

    def __init__(self, plugin_id: str):
        self.plugin_id = plugin_id
        self._actions: List[CleanupAction] = []
        self._lock = threading.Lock()
        self._closed = False

    def on_unload(self, action: CleanupAction) -> CleanupAction:
        """Register a zero-argument action run when the plugin is unloaded. Usable as a decorator."""
        if not callable(action):
            raise TypeError(f"Cleanup action must be callable, got {type(action).__name__}")

        with self._lock:
            if not self._closed:
                self._actions.append(action)
                return action

        logger.warning(
            f"Cleanup action registered after unload of {self.plugin_id}, running it now",
            extra={"plugin_id": self.plugin_id}
        )
        try:
            action()
        except Exception as e:
            logger.error(f"Late cleanup action of {self.plugin_id} failed: {e}", exc_info=True)
        return action

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._actions)

    def run_all(self) -> List[Tuple[CleanupAction, Exception]]:
        """
        Close the registrar and run every action, newest first.

        Returns:
            (action, exception) pairs for the actions that raised. A failing
            action never stops the remaining ones.
        """
        with self._lock:
            actions = list(reversed(self._actions))
            self._actions.clear()
            self._closed = True

        failures = []
        for action in actions:
            try:
                action()
            except Exception as e:
                failures.append((action, e))
        return failures


def create_host_bindings(plugin_id: str, plugin_path: Path, event: TriggerEvent) -> HostBindings:
    """Create the bindings for one run of one plugin."""
    return HostBindings(
        event=event,
        logger=get_plugin_logger(plugin_id),
        registrar=CleanupRegistrar(plugin_id),
        plugin_path=Path(plugin_path),
        plugin_id=plugin_id,
    )
