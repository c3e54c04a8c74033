"""
Execution Lifecycle Manager Module

Owns the mapping from plugin id to its live ExecutionUnit and guarantees the
previous unit of an id is torn down before a new one runs.
"""

import logging
import threading
from typing import Dict, List, Optional

from ...domain.models import ErrorRecord
from ...infrastructure.exceptions import PluginError
from .execution_unit import ExecutionUnit

logger = logging.getLogger(__name__)


class ExecutionLifecycleManager:
    """
    Installs and unloads execution units, one live unit per plugin id.

    All operations hold a single re-entrant lock, so an install never
    interleaves with an unload of the same or another plugin.
    """

    def __init__(self):
        self._units: Dict[str, ExecutionUnit] = {}
        self._lock = threading.RLock()

    def install(self, plugin_id: str, unit: ExecutionUnit) -> List[ErrorRecord]:
        """
        Replace the live unit of a plugin with a freshly loaded one.

        The previous unit is unloaded first, then the new unit is started.
        It is registered only if its start succeeds; otherwise it is torn
        down and no unit remains for the id.

        Returns:
            Records for failed cleanups of the previous unit and for the
            failed start, if any. Empty on a clean install.
        """
        with self._lock:
            records = self.unload(plugin_id)

            try:
                unit.start()
            except PluginError as e:
                logger.error(
                    f"Plugin {plugin_id} failed: {e.message}",
                    extra={"plugin_id": plugin_id, "phase": e.phase.value}
                )
                records.append(e.to_record())
                records.extend(unit.teardown())
                return records

            self._units[plugin_id] = unit
            logger.info(f"Plugin {plugin_id} installed", extra={"plugin_id": plugin_id})
            return records

    def unload(self, plugin_id: str) -> List[ErrorRecord]:
        """
        Run the cleanup actions of a plugin's live unit and discard it.

        Returns:
            One Run-phase record per failed cleanup action. Unknown ids
            are a no-op.
        """
        with self._lock:
            unit = self._units.pop(plugin_id, None)
            if unit is None:
                return []

            records = unit.teardown()
            logger.info(
                f"Plugin {plugin_id} unloaded",
                extra={"plugin_id": plugin_id, "failed_cleanups": len(records)}
            )
            return records

    def unload_all(self) -> List[ErrorRecord]:
        """Unload every live unit, most recently installed first."""
        with self._lock:
            records = []
            for plugin_id in reversed(list(self._units)):
                records.extend(self.unload(plugin_id))
            return records

    def get(self, plugin_id: str) -> Optional[ExecutionUnit]:
        with self._lock:
            return self._units.get(plugin_id)

    def is_loaded(self, plugin_id: str) -> bool:
        with self._lock:
            return plugin_id in self._units

    def active_ids(self) -> List[str]:
        with self._lock:
            return list(self._units)
